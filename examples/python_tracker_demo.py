import asyncio
import logging
import os
import sys

current_dir = os.path.dirname(os.path.abspath(__file__))
parent_dir = os.path.dirname(current_dir)
sys.path.insert(0, parent_dir)

from pyavatartracker.client import TrackerClient
from pyavatartracker.exceptions import LifecycleEnded
from pyavatartracker.managers import AgentTracker, Settings
from pyavatartracker.types.enums import AnimationPriority, LogLevel
from pyavatartracker.world import Agent, AvatarModel, World


def on_tracker_added(t: AgentTracker): logging.info(f"[Registry] Tracking {t.agent.name}")
def on_tracker_removed(t: AgentTracker): logging.info(f"[Registry] Released {t.agent.name}")

def watch_tracker(t: AgentTracker):
    t.on_spawned.register_handler(lambda: logging.info(f"[Tracker] {t.agent.name} spawned as {t.get_avatar().name}"))
    t.on_died.register_handler(lambda: logging.info(f"[Tracker] {t.agent.name} died"))


async def run_local_scene(client: TrackerClient):
    """Drives the in-memory world directly: spawn, animate, die, respawn, leave."""
    world = client.world
    me = world.add_agent(Agent(name="demo"), local=True)
    tracker = client.get_local_tracker()
    watch_tracker(tracker)

    world.attach_avatar(me, AvatarModel.build_default("demo-body-1"))
    track = await tracker.await_and_load_animation("wave", {"priority": AnimationPriority.ACTION, "looped": False})
    track.play()
    logging.info(f"Playing '{track.animation}' at priority {track.priority.name}")

    tracker.get_humanoid().take_damage(150)
    world.attach_avatar(me, AvatarModel.build_default("demo-body-2"))
    root = await tracker.await_root_part()
    logging.info(f"Respawned, root part at {root.position}")

    world.remove_agent(me)
    try:
        await tracker.await_ready()
    except LifecycleEnded as e:
        logging.info(f"Await released after leave: {e}")


async def main():
    settings = Settings(log_level=LogLevel.DEBUG, log_status_changes=True,
                        event_queue_url=os.getenv("PYAVATARTRACKER_EVENT_QUEUE"))
    logging.basicConfig(level=logging.DEBUG, format='%(asctime)s-%(name)s-%(levelname)s-%(message)s')

    client = TrackerClient(World(), settings)
    client.registry.on_tracker_added.register_handler(on_tracker_added)
    client.registry.on_tracker_removed.register_handler(on_tracker_removed)
    async with client:
        if client.feed is None:
            await run_local_scene(client)
        else:
            logging.info(f"Following event queue {settings.event_queue_url}. Ctrl+C to stop.")
            local = await client.registry.await_lookup(await _wait_local_agent(client))
            watch_tracker(local)
            while True:
                await asyncio.sleep(1)
                logging.info(f"{client} local={'dead' if local.is_dead() else 'alive'}")


async def _wait_local_agent(client: TrackerClient):
    while client.world.local_agent is None:
        await asyncio.sleep(0.1)
    return client.world.local_agent


if __name__=="__main__":
    try: asyncio.run(main())
    except KeyboardInterrupt: logging.info("Terminated by user.")
    except Exception as e: logging.exception(f"Unhandled exception: {e}")
    finally: logging.info("Exiting.")
