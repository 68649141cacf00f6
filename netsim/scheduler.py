"""Delayed packet settlement.

Two pieces live here: timer schedulers that run callbacks after a delay
against some clock, and the packet lifecycle that uses them to move each
injected packet into a terminal status exactly once.

Timers cannot be cancelled. Stopping or resetting the simulation leaves them
armed; a timer whose packet has since been cleared just updates nothing.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, List, Optional, Protocol, Set
import asyncio
import heapq
import random
import time

from .core import Packet, TopologyStore
from .routing import shortest_path
from .settings import DEFAULT_SETTINGS, SimulationSettings


OUTCOMES = ("success", "failure", "timeout")


# ───────────────────────────── Clocks ─────────────────────────────


class Clock(Protocol):
    def now(self) -> float:
        """Current time in milliseconds."""
        ...


class SystemClock:
    def now(self) -> float:
        return time.monotonic() * 1000.0


class VirtualClock:
    """Clock that only moves when told to."""

    def __init__(self, start_ms: float = 0.0):
        self._now = float(start_ms)

    def now(self) -> float:
        return self._now

    def advance(self, ms: float) -> None:
        if ms < 0:
            raise ValueError("Cannot move a clock backwards")
        self._now += ms


# ───────────────────────────── Timer schedulers ─────────────────────────────


class TimerScheduler(Protocol):
    def now(self) -> float:
        ...

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> None:
        ...


@dataclass(order=True)
class _Timer:
    due: float
    seq: int
    callback: Callable[[], None] = field(compare=False)


class ManualTimerScheduler:
    """Deterministic scheduler driven by a VirtualClock.

    Nothing fires until `advance()` (or `run_until_idle()`) is called. Timers
    due at the same instant fire in the order they were scheduled.
    """

    def __init__(self, clock: Optional[VirtualClock] = None):
        self.clock = clock if clock is not None else VirtualClock()
        self._queue: List[_Timer] = []
        self._seq = 0

    def now(self) -> float:
        return self.clock.now()

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> None:
        self._seq += 1
        heapq.heappush(self._queue, _Timer(due=self.now() + max(0.0, float(delay_ms)), seq=self._seq, callback=callback))

    @property
    def pending(self) -> int:
        return len(self._queue)

    def advance(self, ms: float) -> int:
        """Move virtual time forward by `ms`, firing everything that comes due."""
        target = self.now() + ms
        fired = 0
        while self._queue and self._queue[0].due <= target:
            timer = heapq.heappop(self._queue)
            self.clock.advance(timer.due - self.now())
            timer.callback()
            fired += 1
        self.clock.advance(target - self.now())
        return fired

    def run_until_idle(self) -> int:
        fired = 0
        while self._queue:
            fired += self.advance(self._queue[0].due - self.now())
        return fired


class AsyncioTimerScheduler:
    """Runs callbacks on an asyncio event loop via loop.call_later."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now(self) -> float:
        return self._get_loop().time() * 1000.0

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> None:
        self._get_loop().call_later(max(0.0, float(delay_ms)) / 1000.0, callback)


# ───────────────────────────── Packet lifecycle ─────────────────────────────


class PacketLifecycle:
    """Turns injected packets into one delayed terminal transition each.

    pending -> transmitted -> received | dropped

    Packets are created already transmitted. Each packet is owned by at most
    one timer, whichever model scheduled it first: an action outcome
    (`inject`) or a canvas animation (`animate`).
    """

    def __init__(
        self,
        store: TopologyStore,
        timers: TimerScheduler,
        settings: SimulationSettings = DEFAULT_SETTINGS,
        rng: Optional[random.Random] = None,
    ):
        self.store = store
        self.timers = timers
        self.settings = settings
        self._rng = rng if rng is not None else random.Random()
        self._owned: Set[str] = set()

    def resolve_path(self, source_id: str, destination_id: str) -> List[str]:
        state = self.store.snapshot()
        return shortest_path(source_id, destination_id, state.devices, state.connections)

    def choose_ping_outcome(self) -> str:
        if self._rng.random() < self.settings.ping_success_probability:
            return "success"
        return "failure"

    def is_scheduled(self, packet_id: str) -> bool:
        return packet_id in self._owned

    def inject(
        self,
        source_id: str,
        destination_id: str,
        protocol: str,
        outcome: str,
        payload: Optional[dict] = None,
    ) -> Packet:
        """Add a transmitted packet and arm its outcome timer.

        success settles as received after the success delay; failure and
        timeout both settle as dropped, after their own delays.
        """
        if outcome not in OUTCOMES:
            raise ValueError(f"Unknown outcome class: {outcome!r}")

        delay = self.settings.delay_for_outcome(outcome)
        packet = self.store.add_packet(
            source_id,
            destination_id,
            protocol,
            self.resolve_path(source_id, destination_id),
            status="transmitted",
            timestamp=self.timers.now(),
            payload=dict(payload or {}, outcome=outcome),
        )
        self._arm(packet.id, delay, "received" if outcome == "success" else "dropped")
        return packet

    def animate(self, packet_id: str) -> Optional[int]:
        """Arm the travel timer for a transmitted packet; returns the delay used.

        The route is resolved again now, and one hop delay is spent per
        waypoint. A packet whose endpoints no longer exist has no waypoints
        and gets the minimum delay.
        """
        packet = self.store.get_packet(packet_id)
        if packet is None or packet.status != "transmitted" or packet_id in self._owned:
            return None

        state = self.store.snapshot()
        hops = 0
        if state.device(packet.source) is not None and state.device(packet.destination) is not None:
            hops = len(shortest_path(packet.source, packet.destination, state.devices, state.connections))

        delay = self.settings.animation_delay(hops)
        self._arm(packet_id, delay, "received")
        return delay

    def animate_transmitted(self) -> List[str]:
        """Animate every transmitted packet nobody owns yet, if running."""
        if not self.store.is_running:
            return []
        started = []
        for packet in self.store.packet_history():
            if self.animate(packet.id) is not None:
                started.append(packet.id)
        return started

    def _arm(self, packet_id: str, delay_ms: int, status: str) -> None:
        self._owned.add(packet_id)

        def settle() -> None:
            # Ownership ends here; a settled packet is terminal and never re-armed.
            self._owned.discard(packet_id)
            self.store.update_packet(packet_id, {"status": status})

        self.timers.call_later(delay_ms, settle)
