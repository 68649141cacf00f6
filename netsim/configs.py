from __future__ import annotations

from typing import Annotated, Any, List, Literal, Mapping, Optional, Union
import ipaddress
import re

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


# Per-device configuration is a tagged union keyed by `kind`, which always
# equals the owning device's type. Forms hand us either a model instance or a
# plain mapping; mappings are coerced through the union below.


class RouteEntry(BaseModel):
    model_config = ConfigDict(extra="forbid")

    destination: str = Field(..., description="Destination network, e.g. 10.0.0.0")
    netmask: str = Field(..., description="Dotted netmask, e.g. 255.255.255.0")
    gateway: str = Field(..., description="Next-hop IPv4 address")
    interface: str = Field("", description="Egress interface name")


class RouterConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    kind: Literal["router"] = "router"
    hostname: str = ""
    enable_password: Optional[str] = None
    routing_table: List[RouteEntry] = Field(default_factory=list)
    snmp_community: Optional[str] = None
    snmp_location: Optional[str] = None
    ntp_server: Optional[str] = None
    log_level: Literal[
        "emergencies", "alerts", "critical", "errors", "warnings", "notifications", "informational", "debugging"
    ] = "informational"


class Vlan(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: int
    name: str
    description: str = ""


class SwitchPort(BaseModel):
    model_config = ConfigDict(extra="forbid")

    interface: str = Field(..., description="Interface name, e.g. FastEthernet0/1")
    mode: Literal["access", "trunk"] = "access"
    vlan: int = 1
    speed: Literal["auto", "10", "100", "1000"] = "auto"


class SwitchConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    kind: Literal["switch"] = "switch"
    hostname: str = ""
    vlans: List[Vlan] = Field(default_factory=list)
    ports: List[SwitchPort] = Field(default_factory=list)


class IPSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    dhcp: bool = False
    ip_address: Optional[str] = None
    subnet_mask: Optional[str] = None
    default_gateway: Optional[str] = None


class PCConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    kind: Literal["pc"] = "pc"
    hostname: str = ""
    ip: IPSettings = Field(default_factory=IPSettings)
    dns_servers: List[str] = Field(default_factory=list)


ServiceType = Literal["web", "dns", "dhcp", "ftp", "email", "database", "file"]


class ServiceListener(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: ServiceType
    name: str = ""
    port: int
    protocol: Literal["TCP", "UDP"] = "TCP"
    enabled: bool = False


class ServerConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    kind: Literal["server"] = "server"
    hostname: str = ""
    os: str = "linux"
    ip: IPSettings = Field(default_factory=IPSettings)
    dns_servers: List[str] = Field(default_factory=list)
    services: List[ServiceListener] = Field(default_factory=list)


DeviceConfig = Annotated[
    Union[RouterConfig, SwitchConfig, PCConfig, ServerConfig],
    Field(discriminator="kind"),
]

_CONFIG_ADAPTER = TypeAdapter(DeviceConfig)


def coerce_config(device_type: str, data: Any):
    """Return a typed config for `device_type` from a model or a mapping.

    Mappings without a `kind` get the device type filled in. Shape errors
    surface as pydantic.ValidationError; a config of the wrong kind is a
    ValueError.
    """
    if isinstance(data, BaseModel):
        cfg = data
    elif isinstance(data, Mapping):
        payload = dict(data)
        payload.setdefault("kind", device_type)
        cfg = _CONFIG_ADAPTER.validate_python(payload)
    else:
        raise TypeError(f"Unsupported config value: {type(data).__name__}")

    if getattr(cfg, "kind", None) != device_type:
        raise ValueError(f"{type(cfg).__name__} cannot configure a {device_type}")
    return cfg


def default_config(device_type: str, hostname: str = ""):
    if device_type == "router":
        return RouterConfig(
            hostname=hostname,
            enable_password="cisco",
            routing_table=[
                RouteEntry(
                    destination="0.0.0.0",
                    netmask="0.0.0.0",
                    gateway="192.168.1.1",
                    interface="GigabitEthernet0/0",
                )
            ],
        )
    if device_type == "switch":
        return SwitchConfig(hostname=hostname, vlans=[Vlan(id=1, name="default")])
    if device_type == "pc":
        return PCConfig(hostname=hostname)
    if device_type == "server":
        return ServerConfig(
            hostname=hostname,
            services=[
                ServiceListener(type="web", name="HTTP", port=80, protocol="TCP"),
                ServiceListener(type="dns", name="DNS", port=53, protocol="UDP"),
            ],
        )
    raise ValueError(f"Unknown device type: {device_type!r}")


def has_enabled_service(config, service_type: str) -> bool:
    if not isinstance(config, ServerConfig):
        return False
    return any(s.type == service_type and s.enabled for s in config.services)


# ───────────────────────────── Advisory validation ─────────────────────────────

_HOSTNAME_RE = re.compile(r"^[A-Za-z0-9_-]+$")


def _is_ipv4(text: Optional[str]) -> bool:
    try:
        ipaddress.IPv4Address(text or "")
    except ValueError:
        return False
    return True


def _is_netmask(text: Optional[str]) -> bool:
    if not _is_ipv4(text):
        return False
    try:
        # Rejects non-contiguous masks like 255.0.255.0
        ipaddress.IPv4Network(f"0.0.0.0/{text}")
    except ValueError:
        return False
    return True


def _check_ip_settings(ip: IPSettings, problems: List[str]) -> None:
    if ip.dhcp:
        return
    if ip.ip_address and not _is_ipv4(ip.ip_address):
        problems.append(f"Invalid IP address: {ip.ip_address}")
    if ip.subnet_mask and not _is_netmask(ip.subnet_mask):
        problems.append(f"Invalid subnet mask: {ip.subnet_mask}")
    if ip.default_gateway and not _is_ipv4(ip.default_gateway):
        problems.append(f"Invalid default gateway: {ip.default_gateway}")


def validate_device_config(config) -> List[str]:
    """List human-readable problems with a config; empty means it looks sane.

    This never blocks a store update. Forms use it to decide what to show.
    """
    problems: List[str] = []

    if config.hostname and not _HOSTNAME_RE.match(config.hostname):
        problems.append("Hostname contains invalid characters")

    if isinstance(config, RouterConfig):
        for i, route in enumerate(config.routing_table):
            if not _is_ipv4(route.destination):
                problems.append(f"Invalid destination in route {i}")
            if not _is_netmask(route.netmask):
                problems.append(f"Invalid netmask in route {i}")
            if not _is_ipv4(route.gateway):
                problems.append(f"Invalid gateway in route {i}")
        if config.ntp_server and not _is_ipv4(config.ntp_server):
            problems.append(f"Invalid NTP server: {config.ntp_server}")

    elif isinstance(config, SwitchConfig):
        vlan_ids = set()
        for v in config.vlans:
            if not 1 <= v.id <= 4094:
                problems.append(f"VLAN id out of range: {v.id}")
            if v.id in vlan_ids:
                problems.append(f"Duplicate VLAN id: {v.id}")
            vlan_ids.add(v.id)
        for p in config.ports:
            if p.mode == "access" and p.vlan not in vlan_ids:
                problems.append(f"{p.interface} uses undefined VLAN {p.vlan}")

    else:
        _check_ip_settings(config.ip, problems)
        for dns in config.dns_servers:
            if not _is_ipv4(dns):
                problems.append(f"Invalid DNS server: {dns}")
        if isinstance(config, ServerConfig):
            for s in config.services:
                if not 1 <= s.port <= 65535:
                    problems.append(f"Port out of range for {s.name or s.type}: {s.port}")

    return problems
