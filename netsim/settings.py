"""Timing and probability knobs for the packet lifecycle."""

from __future__ import annotations

from dataclasses import dataclass


# ─────────────────────────────────────────────────────────────────────────────
# Action-triggered packets: fixed delay per outcome class
# ─────────────────────────────────────────────────────────────────────────────

SUCCESS_DELAY_MS = 4000
FAILURE_DELAY_MS = 2000
TIMEOUT_DELAY_MS = 6000

# Plain ping picks its own outcome; DNS/traceroute always succeed.
PING_SUCCESS_PROBABILITY = 0.9


# ─────────────────────────────────────────────────────────────────────────────
# Animated canvas packets: time spent per waypoint, with a floor
# ─────────────────────────────────────────────────────────────────────────────

HOP_DELAY_MS = 2000
MIN_ANIMATION_MS = 2000


@dataclass(frozen=True)
class SimulationSettings:
    success_delay_ms: int = SUCCESS_DELAY_MS
    failure_delay_ms: int = FAILURE_DELAY_MS
    timeout_delay_ms: int = TIMEOUT_DELAY_MS
    hop_delay_ms: int = HOP_DELAY_MS
    min_animation_ms: int = MIN_ANIMATION_MS
    ping_success_probability: float = PING_SUCCESS_PROBABILITY

    def delay_for_outcome(self, outcome: str) -> int:
        if outcome == "success":
            return self.success_delay_ms
        if outcome == "failure":
            return self.failure_delay_ms
        if outcome == "timeout":
            return self.timeout_delay_ms
        raise ValueError(f"Unknown outcome class: {outcome!r}")

    def animation_delay(self, hop_count: int) -> int:
        return max(hop_count * self.hop_delay_ms, self.min_animation_ms)


DEFAULT_SETTINGS = SimulationSettings()
