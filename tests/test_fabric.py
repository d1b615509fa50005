"""
Tests for the IP fabric: addressing, routing and the PGW tunnel.
"""

import unittest
import sys
import os
from ipaddress import IPv4Address, IPv4Network

import simpy

# Add package root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from nrbench.core.errors import SimulationPhaseError
from nrbench.core.phase import SetupPhase
from nrbench.network.fabric import (FIRST_EPHEMERAL_PORT, CoreNetwork, NetworkFabricBuilder,
                                    NodeList, Packet, StaticRoutingTable)


class StubGnb:
    def __init__(self):
        self.received = []

    def enqueue_downlink(self, ue, packet):
        self.received.append((ue, packet))


class StubUe:
    """Bare UE device: a node and a serving gNB"""

    def __init__(self, node, serving_gnb=None):
        self.node = node
        self.serving_gnb = serving_gnb
        self.address = None

    def transmit(self, node, packet):
        node.drop(packet, "NoUplink")


def make_packet(source, destination, payload=100, now=0.0):
    return Packet(packet_id=1, source=source, source_port=FIRST_EPHEMERAL_PORT,
                  destination=destination, destination_port=1234, payload_size=payload,
                  created_at=now)


class TestFabric(unittest.TestCase):
    """Test NetworkFabricBuilder functionality."""

    def build(self, install_static_route=True, attached=True):
        self.env = simpy.Environment()
        self.node_list = NodeList()
        self.core = CoreNetwork(self.env, self.node_list)
        builder = NetworkFabricBuilder(self.env, self.node_list, install_static_route)
        self.fabric = builder.build_fabric(self.core)
        self.gnb = StubGnb()
        self.ue = StubUe(self.node_list.create("UE0"), self.gnb if attached else None)
        builder.assign_ue_addresses(self.core, [self.ue])

    def send_downlink(self, payload=100):
        host = self.fabric.remote_host
        packet = make_packet(host.address(1), self.ue.address, payload, self.env.now)
        host.send(packet)
        self.env.run(until=1.0)
        return packet

    def test_addresses(self):
        self.build()
        self.assertEqual([str(a) for a in self.fabric.link_addresses], ["1.0.0.1", "1.0.0.2"])
        self.assertEqual(str(self.core.pgw.address(1)), "7.0.0.1")
        self.assertEqual(self.ue.address, IPv4Address("7.0.0.2"))
        # loopback first, then the link
        self.assertEqual(str(self.fabric.remote_host.address(0)), "127.0.0.1")
        self.assertEqual(str(self.fabric.remote_host.address(1)), "1.0.0.2")

    def test_downlink_reaches_serving_gnb(self):
        self.build()
        packet = self.send_downlink()
        self.assertEqual(len(self.gnb.received), 1)
        self.assertIs(self.gnb.received[0][1], packet)
        self.assertTrue(self.fabric.static_route_installed)

    def test_missing_route_drops_traffic(self):
        self.build(install_static_route=False)
        self.send_downlink()
        self.assertEqual(self.gnb.received, [])
        self.assertEqual(self.fabric.remote_host.drops["NoRouteToHost"], 1)
        self.assertFalse(self.fabric.static_route_installed)

    def test_mtu_exceeded(self):
        self.build()
        self.send_downlink(payload=3000)
        self.assertEqual(self.gnb.received, [])
        self.assertEqual(self.fabric.remote_host.drops["MtuExceeded"], 1)

    def test_no_bearer_for_detached_ue(self):
        self.build(attached=False)
        self.send_downlink()
        self.assertEqual(self.core.pgw.drops["NoBearer"], 1)

    def test_link_delay(self):
        self.build()
        arrivals = []
        self.gnb.enqueue_downlink = lambda ue, packet: arrivals.append(self.env.now)
        self.send_downlink()
        self.assertEqual(len(arrivals), 1)
        self.assertGreaterEqual(arrivals[0], 0.010)
        self.assertLess(arrivals[0], 0.011)

    def test_tx_listener_sees_packet(self):
        self.build()
        seen = []
        self.fabric.remote_host.tx_listeners.append(seen.append)
        self.send_downlink()
        self.assertEqual(len(seen), 1)
        self.assertEqual(seen[0].size, 128)

    def test_setup_after_run_start(self):
        env = simpy.Environment()
        node_list = NodeList()
        phase = SetupPhase()
        phase.close()
        with self.assertRaises(SimulationPhaseError):
            NetworkFabricBuilder(env, node_list, phase=phase).build_fabric(CoreNetwork(env, node_list))


class TestNode(unittest.TestCase):
    """Test node-level helpers."""

    def test_longest_prefix_match(self):
        table = StaticRoutingTable()
        table.add_network_route(IPv4Network("7.0.0.0/8"), 1)
        table.add_network_route(IPv4Network("7.0.0.0/24"), 2)
        self.assertEqual(table.lookup(IPv4Address("7.0.0.5"), []), 2)
        self.assertEqual(table.lookup(IPv4Address("7.1.0.5"), []), 1)
        self.assertIsNone(table.lookup(IPv4Address("8.0.0.1"), []))

    def test_ephemeral_ports(self):
        node = NodeList().create("host")
        self.assertEqual(node.allocate_ephemeral_port(), FIRST_EPHEMERAL_PORT)
        self.assertEqual(node.allocate_ephemeral_port(), FIRST_EPHEMERAL_PORT + 1)

    def test_double_bind(self):
        node = NodeList().create("host")
        node.bind(1234, object())
        with self.assertRaises(ValueError):
            node.bind(1234, object())

    def test_interface_requires_stack(self):
        node = NodeList().create("host")
        with self.assertRaises(RuntimeError):
            node.add_interface(object(), None)


if __name__ == '__main__':
    unittest.main()
