from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from .configs import has_enabled_service
from .core import PACKET_PROTOCOLS, Device, Packet, SimulationState, TopologyStore
from .routing import is_reachable
from .scheduler import OUTCOMES, PacketLifecycle


@dataclass
class ActionResult:
    ok: bool
    message: str = ""
    packets: List[Packet] = field(default_factory=list)


class NetworkActions:
    """User-triggered traffic: ping, DNS lookup, traceroute.

    Preconditions are checked synchronously. When one fails nothing is
    injected and no timer is armed; the reason comes back as a '% ...'
    message and is recorded in the session log.
    """

    def __init__(self, store: TopologyStore, lifecycle: PacketLifecycle):
        self.store = store
        self.lifecycle = lifecycle

    def _blocked(self, action: str, message: str, **data) -> ActionResult:
        self.store.log.add("action-blocked", action=action, reason=message, **data)
        return ActionResult(ok=False, message=message)

    def _endpoints(self, source_id: str, target_id: str):
        state = self.store.snapshot()
        return state, state.device(source_id), state.device(target_id)

    def send_packet(self, source_id: str, target_id: str, protocol: str = "ICMP", outcome: str = "success") -> ActionResult:
        if protocol not in PACKET_PROTOCOLS:
            return self._blocked("send", f"% Unknown protocol {protocol}")
        if outcome not in OUTCOMES:
            return self._blocked("send", f"% Unknown outcome {outcome}")
        _state, src, dst = self._endpoints(source_id, target_id)
        if src is None or dst is None:
            return self._blocked("send", "% Unknown device", source=source_id, target=target_id)
        pkt = self.lifecycle.inject(source_id, target_id, protocol, outcome)
        return ActionResult(ok=True, message=f"{protocol} {src.name} -> {dst.name}", packets=[pkt])

    def ping(self, source_id: str, target_id: str) -> ActionResult:
        _state, src, dst = self._endpoints(source_id, target_id)
        if src is None or dst is None:
            return self._blocked("ping", "% Unknown device", source=source_id, target=target_id)

        outcome = self.lifecycle.choose_ping_outcome()
        pkt = self.lifecycle.inject(source_id, target_id, "ICMP", outcome, payload={"type": "ping", "sequence": 1})
        return ActionResult(ok=True, message=f"Pinging {dst.name} from {src.name}", packets=[pkt])

    def find_dns_server(self, state: SimulationState, source_id: str) -> Optional[Device]:
        for dev in state.devices:
            if dev.type != "server" or not has_enabled_service(dev.config, "dns"):
                continue
            if is_reachable(source_id, dev.id, state.devices, state.connections):
                return dev
        return None

    def dns_lookup(self, source_id: str, server_id: Optional[str] = None) -> ActionResult:
        state = self.store.snapshot()
        src = state.device(source_id)
        if src is None:
            return self._blocked("dns", "% Unknown device", source=source_id)

        if server_id is None:
            server = self.find_dns_server(state, source_id)
            if server is None:
                return self._blocked("dns", "% No reachable DNS server", source=source_id)
        else:
            server = state.device(server_id)
            if server is None or server.type != "server" or not has_enabled_service(server.config, "dns"):
                return self._blocked("dns", "% Target is not a DNS server", source=source_id, target=server_id)
            if not is_reachable(source_id, server.id, state.devices, state.connections):
                return self._blocked("dns", "% DNS server unreachable", source=source_id, target=server_id)

        pkt = self.lifecycle.inject(source_id, server.id, "DNS", "success", payload={"type": "dns"})
        return ActionResult(ok=True, message=f"Resolving via {server.name}", packets=[pkt])

    def traceroute(self, source_id: str, target_id: str) -> ActionResult:
        if source_id == target_id:
            return self._blocked("traceroute", "% Source and destination are the same", source=source_id)
        _state, src, dst = self._endpoints(source_id, target_id)
        if src is None or dst is None:
            return self._blocked("traceroute", "% Unknown device", source=source_id, target=target_id)

        # One probe per hop along the route.
        path = self.lifecycle.resolve_path(source_id, target_id)
        packets = [
            self.lifecycle.inject(source_id, hop, "ICMP", "success", payload={"type": "traceroute", "hop": i})
            for i, hop in enumerate(path[1:], start=1)
        ]
        return ActionResult(ok=True, message=f"Tracing the route to {dst.name}", packets=packets)
