from __future__ import annotations

from dataclasses import replace
from typing import List, Optional

from .core import Connection, Device, Interface, SimulationState, TopologyStore


def find_available_interface(device: Device) -> Optional[Interface]:
    """First interface still marked down, or None when every port is in use."""
    for itf in device.interfaces:
        if itf.status == "down":
            return itf
    return None


def _bring_up(interfaces: List[Interface], interface_id: str, peer_id: str) -> List[Interface]:
    return [
        replace(itf, status="up", connected_to=peer_id) if itf.id == interface_id else itf
        for itf in interfaces
    ]


def link_devices(
    store: TopologyStore,
    source_id: str,
    target_id: str,
    snapshot: Optional[SimulationState] = None,
) -> Optional[Connection]:
    """Connect two devices the way a well-behaved caller should.

    Availability is read from `snapshot` (a fresh one by default). Two calls
    sharing one stale snapshot can both pick the same port; the store accepts
    both links.
    """
    state = snapshot if snapshot is not None else store.snapshot()
    src = state.device(source_id)
    dst = state.device(target_id)
    if src is None or dst is None:
        store.log.add("link-blocked", source=source_id, target=target_id, reason="unknown device")
        return None

    src_if = find_available_interface(src)
    dst_if = find_available_interface(dst)
    if src_if is None or dst_if is None:
        store.log.add("link-blocked", source=source_id, target=target_id, reason="no available interface")
        return None

    conn = store.add_connection(source_id, target_id, src_if.id, dst_if.id)
    if conn is None:
        return None

    for dev_id, if_id, peer in ((source_id, src_if.id, target_id), (target_id, dst_if.id, source_id)):
        current = store.get_device(dev_id)
        if current is not None:
            store.update_device(dev_id, {"interfaces": _bring_up(current.interfaces, if_id, peer)})
    return conn
