import unittest

from netsim.core import TopologyStore, Interface, PACKET_STATUSES
from netsim.configs import RouterConfig, PCConfig


class TestDevices(unittest.TestCase):
    def test_switch_gets_eight_fastethernet_ports_down(self):
        store = TopologyStore()
        sw = store.add_device("switch", "SW1", (10, 20))

        names = [i.name for i in sw.interfaces]
        self.assertEqual(names, [f"FastEthernet0/{n}" for n in range(1, 9)])
        self.assertTrue(all(i.status == "down" for i in sw.interfaces))
        self.assertEqual(sw.status, "offline")

    def test_default_interface_sets_by_type(self):
        store = TopologyStore()
        r1 = store.add_device("router", "R1")
        pc = store.add_device("pc", "PC1")
        srv = store.add_device("server", "SRV1")

        self.assertEqual(
            [i.name for i in r1.interfaces],
            ["GigabitEthernet0/0", "GigabitEthernet0/1", "Serial0/0/0"],
        )
        self.assertEqual([i.name for i in pc.interfaces], ["Ethernet0"])
        self.assertEqual([i.name for i in srv.interfaces], ["Ethernet0"])
        # Interface ids only need to be unique per device.
        self.assertEqual(pc.interfaces[0].id, srv.interfaces[0].id)
        self.assertNotEqual(pc.interfaces[0].mac_address, srv.interfaces[0].mac_address)

    def test_ids_are_fresh(self):
        store = TopologyStore()
        a = store.add_device("pc", "PC1")
        b = store.add_device("pc", "PC1")
        self.assertNotEqual(a.id, b.id)
        store.remove_device(a.id)
        c = store.add_device("pc", "PC3")
        self.assertNotIn(c.id, (a.id, b.id))

    def test_unknown_type_rejected(self):
        store = TopologyStore()
        with self.assertRaises(ValueError):
            store.add_device("firewall", "FW1")
        self.assertEqual(store.devices, {})

    def test_position_forms(self):
        store = TopologyStore()
        a = store.add_device("pc", "PC1", {"x": 5, "y": 6})
        b = store.add_device("pc", "PC2", (7, 8))
        self.assertEqual((a.position.x, a.position.y), (5.0, 6.0))
        self.assertEqual((b.position.x, b.position.y), (7.0, 8.0))

    def test_explicit_empty_interfaces_kept(self):
        store = TopologyStore()
        dev = store.add_device("router", "R1", interfaces=[])
        self.assertEqual(dev.interfaces, [])

    def test_update_device_merges_and_keeps_id(self):
        store = TopologyStore()
        r1 = store.add_device("router", "R1")
        updated = store.update_device(r1.id, {"name": "Core", "status": "online", "id": "hijack"})

        self.assertEqual(updated.id, r1.id)
        self.assertEqual(updated.name, "Core")
        self.assertEqual(updated.status, "online")
        self.assertEqual(updated.interfaces, r1.interfaces)
        # Old record untouched.
        self.assertEqual(r1.name, "R1")

    def test_update_device_config_mapping_is_typed(self):
        store = TopologyStore()
        r1 = store.add_device("router", "R1")
        store.update_device(r1.id, {"config": {"hostname": "edge", "ntp_server": "10.0.0.1"}})

        cfg = store.get_device(r1.id).config
        self.assertIsInstance(cfg, RouterConfig)
        self.assertEqual(cfg.hostname, "edge")
        self.assertEqual(cfg.ntp_server, "10.0.0.1")

    def test_update_device_wrong_config_kind(self):
        store = TopologyStore()
        r1 = store.add_device("router", "R1")
        with self.assertRaises(ValueError):
            store.update_device(r1.id, {"config": PCConfig()})
        self.assertIsInstance(store.get_device(r1.id).config, RouterConfig)

    def test_update_does_not_check_interface_names(self):
        store = TopologyStore()
        pc = store.add_device("pc", "PC1")
        dupes = [Interface(id="eth0", name="Ethernet0"), Interface(id="eth1", name="Ethernet0")]
        store.update_device(pc.id, {"interfaces": dupes})
        self.assertEqual(len(store.get_device(pc.id).interfaces), 2)

    def test_update_unknown_device_is_noop(self):
        store = TopologyStore()
        self.assertIsNone(store.update_device("device-404", {"name": "x"}))
        self.assertEqual(store.devices, {})
        self.assertEqual(store.log.last().kind, "device-update-ignored")

    def test_update_device_drops_unknown_keys(self):
        store = TopologyStore()
        pc = store.add_device("pc", "PC1")
        updated = store.update_device(pc.id, {"label": "x", "name": "Desk", "colour": "red"})

        self.assertEqual(updated.name, "Desk")
        self.assertFalse(hasattr(updated, "label"))
        ignored = store.log.of_kind("device-fields-ignored")
        self.assertEqual(len(ignored), 1)
        self.assertEqual(ignored[0].data, {"id": pc.id, "fields": ["colour", "label"]})
        self.assertEqual(store.log.last().kind, "device-updated")
        self.assertEqual(store.log.last().data["fields"], ["name"])

    def test_update_device_type_change_redefaults_config(self):
        store = TopologyStore()
        pc = store.add_device("pc", "PC1")
        updated = store.update_device(pc.id, {"type": "router"})

        self.assertEqual(updated.type, "router")
        self.assertIsInstance(updated.config, RouterConfig)
        self.assertEqual(updated.config.kind, "router")
        self.assertEqual(updated.config.hostname, "PC1")

    def test_update_device_type_change_with_config(self):
        store = TopologyStore()
        pc = store.add_device("pc", "PC1")
        store.update_device(pc.id, {"type": "router", "config": {"hostname": "edge"}})
        cfg = store.get_device(pc.id).config
        self.assertIsInstance(cfg, RouterConfig)
        self.assertEqual(cfg.hostname, "edge")

    def test_update_device_unknown_type_ignored(self):
        store = TopologyStore()
        pc = store.add_device("pc", "PC1")
        updated = store.update_device(pc.id, {"type": "toaster"})

        self.assertEqual(updated.type, "pc")
        self.assertIsInstance(updated.config, PCConfig)
        self.assertEqual(store.log.of_kind("device-fields-ignored")[0].data["fields"], ["type"])


class TestRemoval(unittest.TestCase):
    def _triangle(self):
        store = TopologyStore()
        a = store.add_device("router", "A")
        b = store.add_device("router", "B")
        c = store.add_device("router", "C")
        ab = store.add_connection(a.id, b.id, "gig0/0", "gig0/0")
        bc = store.add_connection(b.id, c.id, "gig0/1", "gig0/0")
        ca = store.add_connection(c.id, a.id, "gig0/1", "gig0/1")
        return store, (a, b, c), (ab, bc, ca)

    def test_remove_device_cascades(self):
        store, (a, b, c), (ab, bc, ca) = self._triangle()
        store.remove_device(a.id)

        self.assertNotIn(a.id, store.devices)
        self.assertEqual(list(store.connections), [bc.id])

    def test_remove_device_idempotent(self):
        store, (a, _b, _c), _conns = self._triangle()
        store.remove_device(a.id)
        before = store.snapshot()
        store.remove_device(a.id)
        after = store.snapshot()
        self.assertEqual(before.devices, after.devices)
        self.assertEqual(before.connections, after.connections)

    def test_peer_interface_status_not_reset(self):
        store = TopologyStore()
        pc = store.add_device("pc", "PC1")
        r1 = store.add_device("router", "R1")
        store.add_connection(pc.id, r1.id, "eth0", "gig0/0")
        up = [Interface(id=i.id, name=i.name, status="up") if i.id == "gig0/0" else i for i in r1.interfaces]
        store.update_device(r1.id, {"interfaces": up})

        store.remove_device(pc.id)

        self.assertEqual(store.get_device(r1.id).interfaces[0].status, "up")

    def test_remove_connection_leaves_interfaces(self):
        store = TopologyStore()
        a = store.add_device("pc", "PC1")
        b = store.add_device("pc", "PC2")
        conn = store.add_connection(a.id, b.id, "eth0", "eth0")
        store.remove_connection(conn.id)
        store.remove_connection(conn.id)

        self.assertEqual(store.connections, {})
        self.assertEqual(len(store.log.of_kind("connection-remove-ignored")), 1)


class TestConnections(unittest.TestCase):
    def test_add_connection_defaults_connected(self):
        store = TopologyStore()
        a = store.add_device("pc", "PC1")
        b = store.add_device("pc", "PC2")
        conn = store.add_connection(a.id, b.id, "eth0", "eth0")
        self.assertEqual(conn.status, "connected")
        self.assertEqual((conn.source, conn.target), (a.id, b.id))

    def test_self_loop_and_missing_endpoint_refused(self):
        store = TopologyStore()
        a = store.add_device("pc", "PC1")
        self.assertIsNone(store.add_connection(a.id, a.id, "eth0", "eth0"))
        self.assertIsNone(store.add_connection(a.id, "device-99", "eth0", "eth0"))
        self.assertEqual(store.connections, {})
        self.assertEqual(len(store.log.of_kind("connection-rejected")), 2)

    def test_store_does_not_check_interface_state(self):
        store = TopologyStore()
        a = store.add_device("pc", "PC1")
        b = store.add_device("pc", "PC2")
        c = store.add_device("pc", "PC3")
        store.add_connection(a.id, b.id, "eth0", "eth0")
        second = store.add_connection(a.id, c.id, "eth0", "eth0")
        self.assertIsNotNone(second)
        self.assertEqual(store.get_device(a.id).interfaces[0].status, "down")

    def test_update_connection(self):
        store = TopologyStore()
        a = store.add_device("pc", "PC1")
        b = store.add_device("pc", "PC2")
        conn = store.add_connection(a.id, b.id, "eth0", "eth0")
        store.update_connection(conn.id, {"status": "disconnected"})
        self.assertEqual(store.get_connection(conn.id).status, "disconnected")
        self.assertIsNone(store.update_connection("conn-404", {"status": "connected"}))

    def test_update_connection_drops_unknown_keys(self):
        store = TopologyStore()
        a = store.add_device("pc", "PC1")
        b = store.add_device("pc", "PC2")
        conn = store.add_connection(a.id, b.id, "eth0", "eth0")
        updated = store.update_connection(conn.id, {"bandwidth": 100, "status": "disconnected"})

        self.assertEqual(updated.status, "disconnected")
        self.assertEqual(store.log.of_kind("connection-fields-ignored")[0].data["fields"], ["bandwidth"])


class TestPacketsAndSimulation(unittest.TestCase):
    def test_packet_crud(self):
        store = TopologyStore(clock=lambda: 1234.0)
        a = store.add_device("pc", "PC1")
        b = store.add_device("pc", "PC2")
        pkt = store.add_packet(a.id, b.id, "UDP")

        self.assertEqual(pkt.status, "transmitted")
        self.assertEqual(pkt.path, [a.id, b.id])
        self.assertEqual(pkt.timestamp, 1234.0)

        store.update_packet(pkt.id, {"status": "dropped"})
        self.assertEqual(store.get_packet(pkt.id).status, "dropped")
        self.assertTrue(store.get_packet(pkt.id).is_terminal)

    def test_pending_is_a_legal_status(self):
        self.assertIn("pending", PACKET_STATUSES)
        store = TopologyStore()
        a = store.add_device("pc", "PC1")
        pkt = store.add_packet(a.id, a.id, "ARP", status="pending")
        self.assertEqual(pkt.path, [a.id])
        self.assertFalse(pkt.is_terminal)

    def test_update_unknown_packet_is_noop(self):
        store = TopologyStore()
        self.assertIsNone(store.update_packet("packet-1", {"status": "received"}))
        self.assertEqual(store.packets, {})

    def test_update_packet_drops_unknown_keys(self):
        store = TopologyStore()
        a = store.add_device("pc", "PC1")
        pkt = store.add_packet(a.id, a.id, "ICMP")
        updated = store.update_packet(pkt.id, {"hops": 3})

        self.assertEqual(updated, pkt)
        self.assertEqual(store.log.of_kind("packet-fields-ignored")[0].data, {"id": pkt.id, "fields": ["hops"]})

    def test_clear_packets(self):
        store = TopologyStore()
        a = store.add_device("pc", "PC1")
        for _ in range(3):
            store.add_packet(a.id, a.id, "ICMP")
        store.clear_packets()
        self.assertEqual(store.packet_history(), [])

    def test_start_stop_only_toggle_flag(self):
        store = TopologyStore()
        a = store.add_device("pc", "PC1", status="online")
        store.start_simulation()
        self.assertTrue(store.is_running)
        store.stop_simulation()
        self.assertFalse(store.is_running)
        self.assertEqual(store.get_device(a.id).status, "online")

    def test_reset_simulation(self):
        store = TopologyStore()
        a = store.add_device("pc", "PC1", status="online")
        b = store.add_device("router", "R1", status="online")
        conn = store.add_connection(a.id, b.id, "eth0", "gig0/0")
        for _ in range(3):
            store.add_packet(a.id, b.id, "ICMP")
        store.start_simulation()

        store.reset_simulation()

        state = store.snapshot()
        self.assertEqual(state.packets, ())
        self.assertFalse(state.is_running)
        self.assertEqual([d.status for d in state.devices], ["offline", "offline"])
        self.assertEqual(len(state.devices[1].interfaces), 3)
        self.assertEqual([c.id for c in state.connections], [conn.id])


class TestNotifications(unittest.TestCase):
    def test_subscribe_and_unsubscribe(self):
        store = TopologyStore()
        seen = []
        unsubscribe = store.subscribe(lambda kind, data: seen.append(kind))

        a = store.add_device("pc", "PC1")
        store.update_device("device-404", {"name": "x"})
        store.start_simulation()
        unsubscribe()
        store.remove_device(a.id)

        self.assertEqual(seen, ["device-added", "simulation-started"])

    def test_snapshot_is_stable(self):
        store = TopologyStore()
        a = store.add_device("pc", "PC1")
        before = store.snapshot()
        store.update_device(a.id, {"status": "online"})
        self.assertEqual(before.device(a.id).status, "offline")
        self.assertEqual(store.snapshot().device(a.id).status, "online")


if __name__ == "__main__":
    unittest.main()
