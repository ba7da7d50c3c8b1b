import asyncio
import logging
import os
import sys
import uuid
from types import SimpleNamespace

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import pytest

import pyavatartracker.network.event_queue_feed as event_queue_feed
from pyavatartracker.client import TrackerClient
from pyavatartracker.managers import Settings
from pyavatartracker.network import EventQueueFeed, parse_agent_id
from pyavatartracker.world import World

ALICE = "6f1c5a43-3f2b-4c57-9a3e-2f5d2c8f7b10"
BOB = "0d9c3a1e-8b1f-4e63-a6c2-9e9d1c5b2a77"


class FakeResponse:
    def __init__(self, data):
        self.data = data
        self.status_code = 200
    def raise_for_status(self):
        if isinstance(self.data, Exception):
            raise self.data
    def json(self):
        return self.data


class FakeClient:
    def __init__(self, responses):
        self.responses = responses
        self.calls = []
        self.closed = False
    async def get(self, url):
        self.calls.append(("get", url))
        if self.responses:
            return FakeResponse(self.responses.pop(0))
        return FakeResponse({"events": []})
    async def aclose(self):
        self.closed = True


def make_settings(**overrides):
    values = {"settle_delay": 0, "placement_poll_interval": 1,
              "event_queue_url": "http://events", "event_queue_poll_interval": 1}
    values.update(overrides)
    return Settings(**values)


async def wait_until(predicate, timeout=1.0):
    async def poll():
        while not predicate():
            await asyncio.sleep(0.001)
    await asyncio.wait_for(poll(), timeout=timeout)


def test_parse_agent_id():
    assert parse_agent_id(ALICE) == uuid.UUID(ALICE)
    assert parse_agent_id(uuid.UUID(BOB)) == uuid.UUID(BOB)
    assert parse_agent_id(7) == "7"


def test_poll_once_applies_events_in_order():
    async def run_test():
        world = World()
        feed = EventQueueFeed(world, make_settings())
        feed.http = FakeClient([{"events": [
            {"event": "AgentJoined", "id": ALICE, "name": "alice", "local": True},
            {"event": "AvatarAttached", "id": ALICE, "placed": False},
        ]}, {"events": [
            {"event": "AvatarPlaced", "id": ALICE},
            {"event": "HealthChanged", "id": ALICE, "health": 25},
        ]}])
        assert await feed.poll_once() == 2
        alice = world.get_agent(uuid.UUID(ALICE))
        assert world.local_agent is alice
        assert alice.avatar is not None
        assert not alice.avatar.is_in_world()

        assert await feed.poll_once() == 2
        assert alice.avatar.is_in_world()
        assert alice.avatar.find_first_child("Humanoid").health == 25
        assert feed.events_applied == 4
        assert feed.http.calls == [("get", "http://events"), ("get", "http://events")]

    asyncio.run(run_test())


def test_unknown_and_orphan_events_are_skipped(caplog):
    world = World()
    feed = EventQueueFeed(world, make_settings())
    with caplog.at_level(logging.WARNING, logger="pyavatartracker.network.event_queue_feed"):
        assert feed.handle_event({"event": "Teleport", "id": ALICE}) is False
        assert feed.handle_event({"event": "AgentLeft", "id": BOB}) is False
        assert feed.handle_event({"event": "AgentJoined", "id": BOB, "name": "bob"}) is True
        assert feed.handle_event({"event": "HealthChanged", "id": BOB, "health": 0}) is False
        assert feed.handle_event({"event": "AvatarDetached", "id": BOB}) is False
    assert "unknown event 'Teleport'" in caplog.text
    assert "unknown agent" in caplog.text
    assert feed.events_applied == 1


def test_poll_once_requires_start():
    async def run_test():
        feed = EventQueueFeed(World(), make_settings())
        with pytest.raises(RuntimeError):
            await feed.poll_once()

    asyncio.run(run_test())


def test_start_requires_url():
    async def run_test():
        feed = EventQueueFeed(World(), make_settings(event_queue_url=None))
        with pytest.raises(ValueError):
            await feed.start()

    asyncio.run(run_test())


def test_client_feed_drives_trackers_end_to_end(monkeypatch):
    async def run_test():
        fake_http = FakeClient([
            {"events": [
                {"event": "AgentJoined", "id": ALICE, "name": "alice", "local": True},
                {"event": "AgentJoined", "id": BOB, "name": "bob"},
                {"event": "AvatarAttached", "id": ALICE},
            ]},
            RuntimeError("event queue unavailable"),
        ])
        created = {}

        def fake_async_client(**kwargs):
            created.update(kwargs)
            return fake_http

        monkeypatch.setattr(event_queue_feed, "httpx", SimpleNamespace(AsyncClient=fake_async_client))

        world = World()
        async with TrackerClient(world, make_settings()) as client:
            assert client.feed.running
            await wait_until(lambda: client.get_local_tracker() is not None)
            tracker = client.get_local_tracker()
            avatar = await asyncio.wait_for(tracker.await_ready(), timeout=1.0)
            assert avatar is world.get_agent(uuid.UUID(ALICE)).avatar

            bob = world.get_agent(uuid.UUID(BOB))
            assert (await client.await_tracker(bob)).is_dead()

            died = asyncio.create_task(tracker.on_died.wait())
            await asyncio.sleep(0)
            fake_http.responses.append({"events": [{"event": "HealthChanged", "id": ALICE, "health": 0}]})
            await asyncio.wait_for(died, timeout=1.0)
            assert tracker.is_dead()
            assert tracker.get_avatar() is avatar

        assert fake_http.closed
        assert tracker.destroyed
        assert created["headers"]["User-Agent"] == Settings.USER_AGENT
        assert created["timeout"] == 30.0

    asyncio.run(run_test())
