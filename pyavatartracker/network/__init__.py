# This file marks pyavatartracker.network as a Python package.

from .event_queue_feed import EventQueueFeed, parse_agent_id

__all__ = ["EventQueueFeed", "parse_agent_id"]
