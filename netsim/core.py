from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple
import time

from .configs import coerce_config, default_config
from .session_log import SessionLogger


DEVICE_TYPES = ("router", "switch", "pc", "server")
DEVICE_STATUSES = ("online", "offline", "error")
INTERFACE_STATUSES = ("up", "down")
CONNECTION_STATUSES = ("connected", "disconnected")
PACKET_PROTOCOLS = ("ICMP", "TCP", "UDP", "ARP", "DNS")
# "pending" is a legal status that nothing currently produces.
PACKET_STATUSES = ("pending", "transmitted", "received", "dropped")
TERMINAL_PACKET_STATUSES = ("received", "dropped")


def _mac_from_text(text: str) -> str:
    # Deterministic locally-administered unicast MAC.
    h = 0
    for ch in text.encode("utf-8"):
        h = (h * 131 + ch) & 0xFFFFFFFF
    b = [0x02, (h >> 24) & 0xFF, (h >> 16) & 0xFF, (h >> 8) & 0xFF, h & 0xFF, (h >> 1) & 0xFF]
    return ":".join(f"{x:02x}" for x in b)


@dataclass
class Position:
    x: float = 0.0
    y: float = 0.0


@dataclass
class Interface:
    id: str  # unique within its device only
    name: str
    status: str = "down"  # up|down
    ip_address: Optional[str] = None
    subnet_mask: Optional[str] = None
    mac_address: Optional[str] = None
    connected_to: Optional[str] = None  # peer device id, informational


@dataclass
class Device:
    id: str
    type: str  # router|switch|pc|server
    name: str
    position: Position = field(default_factory=Position)
    status: str = "offline"  # online|offline|error
    interfaces: List[Interface] = field(default_factory=list)
    config: Any = None  # RouterConfig | SwitchConfig | PCConfig | ServerConfig


@dataclass
class Connection:
    id: str
    source: str
    target: str
    source_interface: str
    target_interface: str
    status: str = "connected"  # connected|disconnected


@dataclass
class Packet:
    id: str
    source: str
    destination: str
    protocol: str  # label only
    status: str = "transmitted"
    path: List[str] = field(default_factory=list)
    timestamp: float = 0.0  # ms
    payload: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_PACKET_STATUSES


@dataclass(frozen=True)
class SimulationState:
    """Read-only view of the store at one point in time."""

    devices: Tuple[Device, ...]
    connections: Tuple[Connection, ...]
    packets: Tuple[Packet, ...]
    is_running: bool

    def device(self, device_id: str) -> Optional[Device]:
        for d in self.devices:
            if d.id == device_id:
                return d
        return None


# Interface id/name pairs handed to freshly created devices.
_DEFAULT_INTERFACES: Dict[str, List[Tuple[str, str]]] = {
    "router": [
        ("gig0/0", "GigabitEthernet0/0"),
        ("gig0/1", "GigabitEthernet0/1"),
        ("se0/0/0", "Serial0/0/0"),
    ],
    "switch": [(f"fa0/{n}", f"FastEthernet0/{n}") for n in range(1, 9)],
    "pc": [("eth0", "Ethernet0")],
    "server": [("eth0", "Ethernet0")],
}


def default_interfaces(device_type: str, device_id: str = "") -> List[Interface]:
    return [
        Interface(id=ifid, name=name, status="down", mac_address=_mac_from_text(f"{device_id}:{ifid}"))
        for ifid, name in _DEFAULT_INTERFACES.get(device_type, [])
    ]


def _coerce_position(value: Any) -> Position:
    if isinstance(value, Position):
        return value
    if value is None:
        return Position()
    if isinstance(value, Mapping):
        return Position(x=float(value.get("x", 0.0)), y=float(value.get("y", 0.0)))
    x, y = value
    return Position(x=float(x), y=float(y))


def _split_patch(cls: type, patch: Mapping[str, Any]) -> Tuple[Dict[str, Any], List[str]]:
    """Split a patch into record fields and keys the record doesn't have. `id` is never patched."""
    known = {f.name for f in fields(cls)}
    changes: Dict[str, Any] = {}
    dropped: List[str] = []
    for key, value in patch.items():
        if key == "id":
            continue
        if key in known:
            changes[key] = value
        else:
            dropped.append(key)
    return changes, dropped


Listener = Callable[[str, Dict[str, Any]], None]


class TopologyStore:
    """Canonical in-memory simulation state.

    Records are replaced on update, never mutated in place, so a snapshot taken
    earlier keeps showing what it saw. Requests naming unknown ids are no-ops.
    The store trusts its callers: it does not look at interface status when a
    connection is added, and it never touches interface status on removal.
    """

    def __init__(self, log: Optional[SessionLogger] = None, clock: Optional[Callable[[], float]] = None):
        self.log = log if log is not None else SessionLogger()
        self._clock = clock
        self.devices: Dict[str, Device] = {}
        self.connections: Dict[str, Connection] = {}
        self.packets: Dict[str, Packet] = {}
        self.is_running = False
        self._counters: Dict[str, int] = {}
        self._listeners: List[Listener] = []

    # ───────────────────────────── Plumbing ─────────────────────────────

    def _now(self) -> float:
        if self._clock is not None:
            return float(self._clock())
        return time.time() * 1000.0

    def _new_id(self, prefix: str, taken: Mapping[str, Any]) -> str:
        n = self._counters.get(prefix, 0)
        while True:
            n += 1
            candidate = f"{prefix}-{n}"
            if candidate not in taken:
                self._counters[prefix] = n
                return candidate

    def _emit(self, kind: str, **data: Any) -> None:
        self.log.add(kind, **data)
        for listener in list(self._listeners):
            listener(kind, data)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call `listener(kind, data)` after every successful mutation."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def snapshot(self) -> SimulationState:
        return SimulationState(
            devices=tuple(self.devices.values()),
            connections=tuple(self.connections.values()),
            packets=tuple(self.packets.values()),
            is_running=self.is_running,
        )

    # ───────────────────────────── Devices ─────────────────────────────

    def get_device(self, device_id: str) -> Optional[Device]:
        return self.devices.get(device_id)

    def add_device(
        self,
        type: str,
        name: str,
        position: Any = None,
        *,
        interfaces: Optional[List[Interface]] = None,
        status: str = "offline",
        config: Any = None,
    ) -> Device:
        kind = (type or "").strip().lower()
        if kind not in DEVICE_TYPES:
            raise ValueError(f"Unknown device type: {type!r}")

        device_id = self._new_id("device", self.devices)
        if interfaces is None:
            interfaces = default_interfaces(kind, device_id)
        if config is None:
            config = default_config(kind, hostname=str(name).replace(" ", "-"))
        else:
            config = coerce_config(kind, config)

        dev = Device(
            id=device_id,
            type=kind,
            name=str(name),
            position=_coerce_position(position),
            status=status,
            interfaces=list(interfaces),
            config=config,
        )
        self.devices[device_id] = dev
        self._emit("device-added", id=device_id, type=kind, name=dev.name)
        return dev

    def update_device(self, device_id: str, patch: Mapping[str, Any]) -> Optional[Device]:
        """Shallow-merge `patch` into a device.

        Interface names and config contents are taken as given; a config
        mapping is only coerced into the typed model for the device's kind.
        Keys that are not device fields, and unknown device types, are
        dropped. Changing the type without a config swaps in that type's
        default config.
        """
        dev = self.devices.get(device_id)
        if dev is None:
            self.log.add("device-update-ignored", id=device_id)
            return None

        changes, dropped = _split_patch(Device, patch)
        if "type" in changes:
            kind = str(changes["type"] or "").strip().lower()
            if kind in DEVICE_TYPES:
                changes["type"] = kind
            else:
                del changes["type"]
                dropped.append("type")
        if dropped:
            self.log.add("device-fields-ignored", id=device_id, fields=sorted(dropped))

        if changes.get("type", dev.type) != dev.type and changes.get("config") is None:
            hostname = getattr(dev.config, "hostname", "") or dev.name.replace(" ", "-")
            changes["config"] = default_config(changes["type"], hostname=hostname)
        if "position" in changes:
            changes["position"] = _coerce_position(changes["position"])
        if "interfaces" in changes:
            changes["interfaces"] = list(changes["interfaces"])
        if changes.get("config") is not None:
            changes["config"] = coerce_config(changes.get("type", dev.type), changes["config"])

        updated = replace(dev, **changes)
        self.devices[device_id] = updated
        self._emit("device-updated", id=device_id, fields=sorted(changes))
        return updated

    def remove_device(self, device_id: str) -> None:
        if device_id not in self.devices:
            self.log.add("device-remove-ignored", id=device_id)
            return

        # Peers keep whatever interface status they had.
        doomed = [cid for cid, c in self.connections.items() if c.source == device_id or c.target == device_id]
        for cid in doomed:
            del self.connections[cid]
        del self.devices[device_id]
        self._emit("device-removed", id=device_id, connections=doomed)

    # ───────────────────────────── Connections ─────────────────────────────

    def get_connection(self, connection_id: str) -> Optional[Connection]:
        return self.connections.get(connection_id)

    def add_connection(
        self,
        source: str,
        target: str,
        source_interface: str,
        target_interface: str,
    ) -> Optional[Connection]:
        """Append a connected link.

        Callers check interface availability first and bring the chosen
        interfaces up themselves; see validator.link_devices.
        """
        if source == target or source not in self.devices or target not in self.devices:
            self.log.add("connection-rejected", source=source, target=target)
            return None

        conn = Connection(
            id=self._new_id("conn", self.connections),
            source=source,
            target=target,
            source_interface=source_interface,
            target_interface=target_interface,
            status="connected",
        )
        self.connections[conn.id] = conn
        self._emit("connection-added", id=conn.id, source=source, target=target)
        return conn

    def update_connection(self, connection_id: str, patch: Mapping[str, Any]) -> Optional[Connection]:
        conn = self.connections.get(connection_id)
        if conn is None:
            self.log.add("connection-update-ignored", id=connection_id)
            return None
        changes, dropped = _split_patch(Connection, patch)
        if dropped:
            self.log.add("connection-fields-ignored", id=connection_id, fields=sorted(dropped))
        updated = replace(conn, **changes)
        self.connections[connection_id] = updated
        self._emit("connection-updated", id=connection_id, fields=sorted(changes))
        return updated

    def remove_connection(self, connection_id: str) -> None:
        if self.connections.pop(connection_id, None) is None:
            self.log.add("connection-remove-ignored", id=connection_id)
            return
        self._emit("connection-removed", id=connection_id)

    # ───────────────────────────── Packets ─────────────────────────────

    def get_packet(self, packet_id: str) -> Optional[Packet]:
        return self.packets.get(packet_id)

    def packet_history(self) -> List[Packet]:
        return list(self.packets.values())

    def add_packet(
        self,
        source: str,
        destination: str,
        protocol: str,
        path: Optional[List[str]] = None,
        *,
        status: str = "transmitted",
        timestamp: Optional[float] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Packet:
        if not path:
            path = [source] if source == destination else [source, destination]
        pkt = Packet(
            id=self._new_id("packet", self.packets),
            source=source,
            destination=destination,
            protocol=protocol,
            status=status,
            path=list(path),
            timestamp=self._now() if timestamp is None else float(timestamp),
            payload=dict(payload or {}),
        )
        self.packets[pkt.id] = pkt
        self._emit("packet-added", id=pkt.id, source=source, destination=destination, protocol=protocol)
        return pkt

    def update_packet(self, packet_id: str, patch: Mapping[str, Any]) -> Optional[Packet]:
        pkt = self.packets.get(packet_id)
        if pkt is None:
            # Late timers land here after a clear/reset.
            self.log.add("packet-update-ignored", id=packet_id)
            return None
        changes, dropped = _split_patch(Packet, patch)
        if dropped:
            self.log.add("packet-fields-ignored", id=packet_id, fields=sorted(dropped))
        updated = replace(pkt, **changes)
        self.packets[packet_id] = updated
        self._emit("packet-updated", id=packet_id, status=updated.status)
        return updated

    def clear_packets(self) -> None:
        count = len(self.packets)
        self.packets = {}
        self._emit("packets-cleared", count=count)

    # ───────────────────────────── Simulation ─────────────────────────────

    def start_simulation(self) -> None:
        self.is_running = True
        self._emit("simulation-started")

    def stop_simulation(self) -> None:
        # Pending packet timers keep running.
        self.is_running = False
        self._emit("simulation-stopped")

    def reset_simulation(self) -> None:
        """Drop packets, stop, and mark every device offline.

        Interfaces and connections are left as they are.
        """
        self.packets = {}
        self.is_running = False
        self.devices = {did: replace(d, status="offline") for did, d in self.devices.items()}
        self._emit("simulation-reset", devices=len(self.devices))
