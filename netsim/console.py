from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional
import argparse
import random
import shlex
import time

from .actions import ActionResult, NetworkActions
from .core import Device, TopologyStore
from .routing import shortest_path
from .scheduler import ManualTimerScheduler, PacketLifecycle
from .validator import link_devices


class ConsoleError(Exception):
    pass


@dataclass
class ConsoleResult:
    output: str = ""
    prompt: str = ""


@dataclass
class ConsoleContext:
    store: TopologyStore
    uid: str

    def prompt(self) -> str:
        dev = self.store.get_device(self.uid)
        return f"{dev.name if dev else self.uid}> "


class SimConsole:
    """Small PC-style console bound to one device at a time.

    Purpose: fire traffic from a device and poke the simulation controls.
    Devices can be named by id or by display name.
    """

    def __init__(self, store: TopologyStore, lifecycle: PacketLifecycle):
        self.store = store
        self.lifecycle = lifecycle
        self.actions = NetworkActions(store, lifecycle)

    def new_context(self, uid: str) -> ConsoleContext:
        return ConsoleContext(store=self.store, uid=uid)

    def execute(self, ctx: ConsoleContext, line: str) -> ConsoleResult:
        stripped = (line or "").strip()
        if stripped == "":
            return ConsoleResult(output="", prompt=ctx.prompt())

        if stripped == "?" or stripped.endswith(" ?"):
            return ConsoleResult(output=self._help(), prompt=ctx.prompt())

        try:
            argv = shlex.split(stripped)
        except ValueError:
            argv = stripped.split()

        cmd = argv[0].lower()
        if cmd in ("exit", "quit"):
            return ConsoleResult(output="__CLOSE__", prompt=ctx.prompt())

        try:
            out = self._dispatch(ctx, cmd, argv)
        except ConsoleError as e:
            out = str(e)
        return ConsoleResult(output=out, prompt=ctx.prompt())

    def _dispatch(self, ctx: ConsoleContext, cmd: str, argv: List[str]) -> str:
        if cmd == "devices":
            return self._show_devices()
        if cmd == "packets":
            return self._show_packets()
        if cmd == "start":
            self.store.start_simulation()
            started = self.lifecycle.animate_transmitted()
            return f"Simulation running ({len(started)} packets in flight)"
        if cmd == "stop":
            self.store.stop_simulation()
            return "Simulation stopped"
        if cmd == "reset":
            self.store.reset_simulation()
            return "Simulation reset"
        if cmd == "clear":
            self.store.clear_packets()
            return ""
        if cmd == "use":
            ctx.uid = self._resolve(self._arg(argv, "use <device>")).id
            return ""

        me = self.store.get_device(ctx.uid)
        if me is None:
            raise ConsoleError("% Device not found.")

        if cmd == "ping":
            target = self._resolve(self._arg(argv, "ping <device>"))
            return self._render(self.actions.ping(me.id, target.id))
        if cmd in ("traceroute", "tracert"):
            target = self._resolve(self._arg(argv, "traceroute <device>"))
            return self._render(self.actions.traceroute(me.id, target.id))
        if cmd == "nslookup":
            server_id = self._resolve(argv[1]).id if len(argv) >= 2 else None
            return self._render(self.actions.dns_lookup(me.id, server_id))
        if cmd == "path":
            target = self._resolve(self._arg(argv, "path <device>"))
            state = self.store.snapshot()
            hops = shortest_path(me.id, target.id, state.devices, state.connections)
            return " -> ".join(self._name(h) for h in hops)
        if cmd == "link":
            target = self._resolve(self._arg(argv, "link <device>"))
            conn = link_devices(self.store, me.id, target.id)
            if conn is None:
                raise ConsoleError("% No available interface.")
            return f"{conn.id}: {me.name} {conn.source_interface} <-> {target.name} {conn.target_interface}"

        raise ConsoleError("% Unknown command.")

    def _arg(self, argv: List[str], usage: str) -> str:
        if len(argv) < 2:
            raise ConsoleError(f"% Usage: {usage}")
        return argv[1]

    def _resolve(self, ref: str) -> Device:
        dev = self.store.get_device(ref)
        if dev is not None:
            return dev
        for d in self.store.devices.values():
            if d.name.lower() == ref.lower():
                return d
        raise ConsoleError(f"% Unknown device '{ref}'.")

    def _name(self, uid: str) -> str:
        dev = self.store.get_device(uid)
        return dev.name if dev else uid

    def _render(self, result: ActionResult) -> str:
        if not result.ok:
            return result.message
        lines = [result.message]
        for p in result.packets:
            lines.append(f"  {p.id} {p.protocol} {' -> '.join(self._name(h) for h in p.path)}")
        return "\n".join(lines)

    def _show_devices(self) -> str:
        lines = [f"{'Id':<12}{'Name':<16}{'Type':<8}{'Status':<8}Up/Total"]
        for d in self.store.devices.values():
            up = sum(1 for i in d.interfaces if i.status == "up")
            lines.append(f"{d.id:<12}{d.name:<16}{d.type:<8}{d.status:<8}{up}/{len(d.interfaces)}")
        return "\n".join(lines)

    def _show_packets(self) -> str:
        lines = [f"{'Id':<12}{'Proto':<7}{'Status':<13}Path"]
        for p in self.store.packet_history():
            lines.append(f"{p.id:<12}{p.protocol:<7}{p.status:<13}{' -> '.join(self._name(h) for h in p.path)}")
        return "\n".join(lines)

    def _help(self) -> str:
        return "\n".join(
            [
                "devices",
                "use <device>",
                "link <device>",
                "path <device>",
                "ping <device>",
                "nslookup [server]",
                "traceroute <device>",
                "packets",
                "start | stop | reset | clear",
                "exit",
            ]
        )


def build_demo(store: TopologyStore) -> None:
    r1 = store.add_device("router", "R1", (300, 100))
    sw1 = store.add_device("switch", "SW1", (300, 250))
    pc1 = store.add_device("pc", "PC1", (150, 400))
    pc2 = store.add_device("pc", "PC2", (450, 400))
    srv = store.add_device("server", "DNS1", (550, 100))
    cfg = srv.config.model_copy(deep=True)
    for svc in cfg.services:
        if svc.type == "dns":
            svc.enabled = True
    store.update_device(srv.id, {"config": cfg})
    for a, b in ((r1, sw1), (sw1, pc1), (sw1, pc2), (r1, srv)):
        link_devices(store, a.id, b.id)


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="netsim-console", description="Drive a toy network simulation.")
    parser.add_argument("--seed", type=int, default=None, help="Seed for ping outcomes")
    parser.add_argument("--demo", action="store_true", help="Start with a small sample topology")
    args = parser.parse_args(argv)

    timers = ManualTimerScheduler()
    store = TopologyStore(clock=timers.now)
    lifecycle = PacketLifecycle(store, timers, rng=random.Random(args.seed))
    console = SimConsole(store, lifecycle)

    if args.demo:
        build_demo(store)
    if not store.devices:
        store.add_device("pc", "PC1", (100, 100))

    ctx = console.new_context(next(iter(store.devices)))
    last = time.monotonic()
    while True:
        try:
            line = input(ctx.prompt())
        except (EOFError, KeyboardInterrupt):
            print()
            return 0
        # Let virtual time catch up with the wall clock before each command.
        now = time.monotonic()
        timers.advance((now - last) * 1000.0)
        last = now

        res = console.execute(ctx, line)
        if res.output == "__CLOSE__":
            return 0
        if res.output:
            print(res.output)


if __name__ == "__main__":
    raise SystemExit(main())
