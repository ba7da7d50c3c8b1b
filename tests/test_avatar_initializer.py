import asyncio
import os
import sys

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from pyavatartracker.managers import AgentTracker, AvatarInitializer, Settings
from pyavatartracker.types.enums import InitializerPhase
from pyavatartracker.world import Agent, Animator, AvatarModel, Humanoid, Part, World


def make_tracker():
    return AgentTracker(Agent(name="carol"), Settings(settle_delay=0, placement_poll_interval=1))


def test_phases_progress_to_ready():
    async def run_test():
        world = World()
        tracker = make_tracker()
        avatar = AvatarModel("body")
        initializer = AvatarInitializer(avatar, tracker)
        tracker._pending = initializer
        assert initializer.phase is InitializerPhase.STARTING
        task = initializer.start()
        await asyncio.sleep(0.005)
        assert initializer.phase is InitializerPhase.STARTING

        world.place_avatar(avatar)
        await asyncio.sleep(0.005)
        assert initializer.phase is InitializerPhase.LOCATING_PARTS

        humanoid = avatar.add_child(Humanoid())
        avatar.add_child(Part("HumanoidRootPart"))
        await asyncio.sleep(0)
        assert initializer.get_humanoid() is humanoid
        assert initializer.get_animator() is None
        humanoid.add_child(Animator())
        assert await task is True
        assert initializer.phase is InitializerPhase.READY
        assert tracker.current_avatar is initializer

    asyncio.run(run_test())


def test_getters_resolve_lazily_without_blocking():
    tracker = make_tracker()
    avatar = AvatarModel.build_default("body")
    initializer = AvatarInitializer(avatar, tracker)
    assert initializer.get_root_part() is avatar.find_first_child("HumanoidRootPart")
    assert initializer.get_animator() is avatar.find_first_child("Humanoid").find_first_child("Animator")
    initializer.abandon()
    assert initializer.get_root_part() is None
    assert initializer.get_humanoid() is None


def test_positive_health_changes_are_ignored():
    async def run_test():
        world = World()
        tracker = make_tracker()
        avatar = AvatarModel.build_default("body")
        world.place_avatar(avatar)
        tracker.on_avatar_attached(avatar)
        initializer = tracker.pending_initializer
        await initializer.task
        humanoid = avatar.find_first_child("Humanoid")
        humanoid.take_damage(40)
        assert not tracker.is_dead()
        assert not initializer.reported_dead
        humanoid.take_damage(60)
        assert tracker.is_dead()
        assert initializer.reported_dead

    asyncio.run(run_test())


def test_avatar_already_dead_when_located():
    async def run_test():
        world = World()
        tracker = make_tracker()
        avatar = AvatarModel.build_default("corpse")
        avatar.find_first_child("Humanoid").set_health(0)
        world.place_avatar(avatar)
        tracker.on_avatar_attached(avatar)
        initializer = tracker.pending_initializer
        assert await initializer.task is True
        assert initializer.reported_dead
        assert tracker.is_dead()
        assert tracker.get_avatar() is avatar

    asyncio.run(run_test())


def test_stale_promotion_is_rejected():
    async def run_test():
        tracker = make_tracker()
        avatar = AvatarModel.build_default("orphan")
        initializer = AvatarInitializer(avatar, tracker)
        initializer.phase = InitializerPhase.READY
        assert tracker.promote_initializer(initializer) is False
        assert tracker.current_avatar is None
        assert tracker.is_dead()

    asyncio.run(run_test())


def test_abandon_on_promoted_avatar_leaves_teardown_to_tracker():
    async def run_test():
        world = World()
        tracker = make_tracker()
        avatar = AvatarModel.build_default("body")
        world.place_avatar(avatar)
        tracker.on_avatar_attached(avatar)
        initializer = tracker.pending_initializer
        await initializer.task
        humanoid = avatar.find_first_child("Humanoid")

        initializer.abandon()
        assert not initializer.destroyed
        assert not initializer.abandoned
        assert tracker.current_avatar is initializer
        assert humanoid.health_handler_count() == 1
        assert not tracker.is_dead()

        humanoid.set_health(0)
        assert tracker.is_dead()
        tracker.on_avatar_detached(avatar)
        assert initializer.destroyed
        assert humanoid.health_handler_count() == 0

    asyncio.run(run_test())


def test_rejected_promotion_releases_health_subscription():
    async def run_test():
        world = World()
        tracker = make_tracker()
        avatar = AvatarModel.build_default("orphan")
        world.place_avatar(avatar)
        initializer = AvatarInitializer(avatar, tracker)
        assert await initializer.start() is False
        assert initializer.destroyed
        assert avatar.find_first_child("Humanoid").health_handler_count() == 0
        assert tracker.current_avatar is None
        assert tracker.is_dead()

    asyncio.run(run_test())
