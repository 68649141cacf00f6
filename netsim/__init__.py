"""In-memory network topology simulation engine.

Devices, links and synthetic packets live in a TopologyStore; packets are
routed with BFS and settled by timers against an injectable clock.
"""

from .core import TopologyStore
from .routing import shortest_path
from .validator import find_available_interface, link_devices
from .scheduler import PacketLifecycle, ManualTimerScheduler, AsyncioTimerScheduler, VirtualClock
from .actions import NetworkActions
from .session_log import SessionLogger

__all__ = [
    "TopologyStore",
    "shortest_path",
    "find_available_interface",
    "link_devices",
    "PacketLifecycle",
    "ManualTimerScheduler",
    "AsyncioTimerScheduler",
    "VirtualClock",
    "NetworkActions",
    "SessionLogger",
]
