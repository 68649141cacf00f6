from __future__ import annotations

from collections import deque
from typing import Dict, Iterable, List, Optional

from .core import Connection, Device


def build_adjacency(devices: Iterable[Device], connections: Iterable[Connection]) -> Dict[str, List[str]]:
    """Undirected neighbor lists over connected links only.

    Neighbor order follows the connection order, which is what makes BFS
    tie-breaking deterministic.
    """
    graph: Dict[str, List[str]] = {d.id: [] for d in devices}
    for c in connections:
        if c.status != "connected":
            continue
        graph.setdefault(c.source, []).append(c.target)
        graph.setdefault(c.target, []).append(c.source)
    return graph


def find_path(
    source_id: str,
    destination_id: str,
    devices: Iterable[Device],
    connections: Iterable[Connection],
) -> Optional[List[str]]:
    """Breadth-first path from source to destination, or None if unreachable."""
    if source_id == destination_id:
        return [source_id]

    graph = build_adjacency(devices, connections)
    queue = deque([[source_id]])
    visited = {source_id}

    while queue:
        path = queue.popleft()
        current = path[-1]
        if current == destination_id:
            return path
        for neighbor in graph.get(current, []):
            if neighbor not in visited:
                visited.add(neighbor)
                queue.append(path + [neighbor])

    return None


def shortest_path(
    source_id: str,
    destination_id: str,
    devices: Iterable[Device],
    connections: Iterable[Connection],
) -> List[str]:
    """Route used for packets; never fails.

    When the two devices sit in different components the answer is the
    direct pair [source, destination].
    """
    path = find_path(source_id, destination_id, devices, connections)
    if path is None:
        return [source_id, destination_id]
    return path


def is_reachable(source_id: str, destination_id: str, devices: Iterable[Device], connections: Iterable[Connection]) -> bool:
    return find_path(source_id, destination_id, devices, connections) is not None
