"""
IP fabric between the remote host and the terminals.

A minimal IPv4 model: nodes with interfaces and a static routing table, a
point-to-point link with serialization and propagation delay, and the core
network gateway (PGW) that tunnels downlink packets to the serving gNB of
the destination terminal.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from ipaddress import IPv4Address, IPv4Interface, IPv4Network
from typing import Dict, List, Optional, Tuple

import simpy

from ..core.phase import SetupPhase

logger = logging.getLogger(__name__)

IP_UDP_HEADER_SIZE = 28  # bytes
FIRST_EPHEMERAL_PORT = 49153

P2P_DATA_RATE = 100e9  # bit/s
P2P_MTU = 2500  # bytes
P2P_DELAY = 0.010  # seconds
LINK_NETWORK = "1.0.0.0/8"
UE_NETWORK = "7.0.0.0/8"


@dataclass(frozen=True)
class FiveTuple:
    source: IPv4Address
    destination: IPv4Address
    protocol: str
    source_port: int
    destination_port: int

    def __str__(self):
        return f"{self.source}:{self.source_port} -> {self.destination}:{self.destination_port}"


@dataclass
class Packet:
    """UDP datagram; `payload_size` excludes the IP/UDP headers"""
    packet_id: int
    source: IPv4Address
    source_port: int
    destination: IPv4Address
    destination_port: int
    payload_size: int
    created_at: float
    protocol: str = "UDP"

    @property
    def size(self) -> int:
        return self.payload_size + IP_UDP_HEADER_SIZE

    @property
    def five_tuple(self) -> FiveTuple:
        return FiveTuple(self.source, self.destination, self.protocol,
                         self.source_port, self.destination_port)


@dataclass
class NetInterface:
    index: int
    address: IPv4Interface
    device: Optional[object] = None  # None for loopback


class StaticRoutingTable:
    """Network routes plus the directly connected networks of the node"""

    def __init__(self):
        self.routes: List[Tuple[IPv4Network, int]] = []

    def add_network_route(self, network: IPv4Network, interface: int):
        self.routes.append((network, interface))
        logger.debug(f"Route {network} -> interface {interface}")

    def lookup(self, destination: IPv4Address, interfaces: List[NetInterface]) -> Optional[int]:
        """Longest-prefix match; connected networks count as routes"""
        candidates = [(iface.address.network, iface.index) for iface in interfaces
                      if iface.device is not None]
        candidates.extend(self.routes)
        best = None
        for network, index in candidates:
            if destination in network and (best is None or network.prefixlen > best[0].prefixlen):
                best = (network, index)
        return best[1] if best else None


class Node:
    """Network node with an optional IPv4 stack and UDP sockets"""

    def __init__(self, node_id: int, name: str = ""):
        self.node_id = node_id
        self.name = name or f"node{node_id}"
        self.interfaces: List[NetInterface] = []
        self.routing = StaticRoutingTable()
        self.sockets: Dict[int, object] = {}
        self.drops: Counter = Counter()
        self._next_port = FIRST_EPHEMERAL_PORT

        # probes: tx(packet), rx(packet), drop(packet, reason)
        self.tx_listeners: List = []
        self.rx_listeners: List = []
        self.drop_listeners: List = []

    @property
    def has_internet_stack(self) -> bool:
        return bool(self.interfaces)

    def install_internet_stack(self):
        if not self.interfaces:
            self.interfaces.append(NetInterface(0, IPv4Interface("127.0.0.1/8")))

    def add_interface(self, device, address: IPv4Interface) -> int:
        if not self.interfaces:
            raise RuntimeError(f"{self.name}: internet stack not installed")
        index = len(self.interfaces)
        self.interfaces.append(NetInterface(index, address, device))
        return index

    def address(self, interface: int = 1) -> IPv4Address:
        return self.interfaces[interface].address.ip

    def is_local(self, address: IPv4Address) -> bool:
        return any(iface.address.ip == address for iface in self.interfaces)

    def bind(self, port: int, handler):
        if port in self.sockets:
            raise ValueError(f"{self.name}: port {port} already bound")
        self.sockets[port] = handler

    def allocate_ephemeral_port(self) -> int:
        port = self._next_port
        self._next_port += 1
        return port

    def send(self, packet: Packet):
        for listener in self.tx_listeners:
            listener(packet)
        self._route_out(packet)

    def _route_out(self, packet: Packet):
        index = self.routing.lookup(packet.destination, self.interfaces)
        if index is None:
            self.drop(packet, "NoRouteToHost")
            return
        self.interfaces[index].device.transmit(self, packet)

    def receive(self, packet: Packet):
        """Entry point for packets handed up by a device"""
        if self.is_local(packet.destination):
            self.deliver_local(packet)
        else:
            self._route_out(packet)

    def deliver_local(self, packet: Packet):
        for listener in self.rx_listeners:
            listener(packet)
        handler = self.sockets.get(packet.destination_port)
        if handler is None:
            self.drop(packet, "NoSocket")
            return
        handler.receive(packet)

    def drop(self, packet: Packet, reason: str):
        self.drops[reason] += 1
        logger.debug(f"{self.name} dropped packet {packet.packet_id} ({packet.five_tuple}): {reason}")
        for listener in self.drop_listeners:
            listener(packet, reason)


class NodeList:
    """Creates nodes with consecutive ids"""

    def __init__(self):
        self.nodes: List[Node] = []

    def create(self, name: str) -> Node:
        node = Node(len(self.nodes), name)
        self.nodes.append(node)
        return node


class PointToPointDevice:
    def __init__(self, link: 'PointToPointLink', node: Node):
        self.link = link
        self.node = node

    def transmit(self, node: Node, packet: Packet):
        self.link.transmit(self, packet)


class PointToPointLink:
    """Full-duplex link with a fixed data rate, MTU and propagation delay"""

    def __init__(self, env: simpy.Environment, data_rate: float = P2P_DATA_RATE,
                 mtu: int = P2P_MTU, delay: float = P2P_DELAY):
        self.env = env
        self.data_rate = data_rate
        self.mtu = mtu
        self.delay = delay
        self.devices: List[PointToPointDevice] = []
        self._busy_until: Dict[int, float] = {}

    def install(self, a: Node, b: Node) -> Tuple[PointToPointDevice, PointToPointDevice]:
        self.devices = [PointToPointDevice(self, a), PointToPointDevice(self, b)]
        return self.devices[0], self.devices[1]

    def peer(self, device: PointToPointDevice) -> PointToPointDevice:
        return self.devices[1] if device is self.devices[0] else self.devices[0]

    def transmit(self, device: PointToPointDevice, packet: Packet):
        if packet.size > self.mtu:
            device.node.drop(packet, "MtuExceeded")
            return
        # one transmit queue per direction
        start = max(self.env.now, self._busy_until.get(id(device), 0.0))
        finish = start + packet.size * 8 / self.data_rate
        self._busy_until[id(device)] = finish
        self.env.process(self._deliver(self.peer(device), packet, finish + self.delay))

    def _deliver(self, device: PointToPointDevice, packet: Packet, arrival: float):
        yield self.env.timeout(arrival - self.env.now)
        device.node.receive(packet)


class Ipv4AddressHelper:
    """Hands out consecutive host addresses of a network"""

    def __init__(self, network: str):
        self.network = IPv4Network(network)
        self._hosts = self.network.hosts()

    def assign(self, devices) -> List[IPv4Address]:
        addresses = []
        for device in devices:
            address = next(self._hosts)
            device.node.install_internet_stack()
            device.node.add_interface(device, IPv4Interface(f"{address}/{self.network.prefixlen}"))
            addresses.append(address)
        return addresses


class GatewayTunnelDevice:
    """S1-U side of the PGW: forwards downlink packets to the serving gNB"""

    def __init__(self, core: 'CoreNetwork'):
        self.core = core

    def transmit(self, node: Node, packet: Packet):
        self.core.forward_downlink(packet)


class CoreNetwork:
    """
    Core network with a single PGW.

    The PGW owns the UE address pool; its first address is the gateway
    itself, terminals get the following ones.
    """

    def __init__(self, env: simpy.Environment, node_list: NodeList,
                 ue_network: str = UE_NETWORK, s1u_delay: float = 0.0):
        self.env = env
        self.ue_network = IPv4Network(ue_network)
        self.s1u_delay = s1u_delay
        self.pgw = node_list.create("PGW")
        self.pgw.install_internet_stack()
        self._pool = self.ue_network.hosts()
        gateway_address = next(self._pool)
        self.pgw.add_interface(GatewayTunnelDevice(self),
                               IPv4Interface(f"{gateway_address}/{self.ue_network.prefixlen}"))
        self.ue_by_address: Dict[IPv4Address, object] = {}

    def assign_ue_ipv4_addresses(self, ue_devices) -> List[IPv4Address]:
        addresses = []
        for ue in ue_devices:
            address = next(self._pool)
            ue.node.install_internet_stack()
            ue.node.add_interface(ue, IPv4Interface(f"{address}/{self.ue_network.prefixlen}"))
            ue.address = address
            self.ue_by_address[address] = ue
            addresses.append(address)
        return addresses

    def forward_downlink(self, packet: Packet):
        ue = self.ue_by_address.get(packet.destination)
        if ue is None or ue.serving_gnb is None:
            self.pgw.drop(packet, "NoBearer")
            return
        if self.s1u_delay > 0:
            self.env.process(self._delayed_forward(ue, packet))
        else:
            ue.serving_gnb.enqueue_downlink(ue, packet)

    def _delayed_forward(self, ue, packet: Packet):
        yield self.env.timeout(self.s1u_delay)
        ue.serving_gnb.enqueue_downlink(ue, packet)


@dataclass
class Fabric:
    """Remote host, its link to the PGW and the link addresses"""
    remote_host: Node
    pgw: Node
    link: PointToPointLink
    link_addresses: List[IPv4Address] = field(default_factory=list)
    static_route_installed: bool = False


class NetworkFabricBuilder:
    """Connects a remote host to the core network and addresses the terminals"""

    def __init__(self, env: simpy.Environment, node_list: NodeList,
                 install_static_route: bool = True, phase: Optional[SetupPhase] = None):
        self.env = env
        self.node_list = node_list
        self.install_static_route = install_static_route
        self.phase = phase or SetupPhase()

    def build_fabric(self, core_network: CoreNetwork) -> Fabric:
        self.phase.check("build_fabric")
        remote_host = self.node_list.create("RemoteHost")
        remote_host.install_internet_stack()
        print("Internet stack installed on remote host")

        link = PointToPointLink(self.env, P2P_DATA_RATE, P2P_MTU, P2P_DELAY)
        pgw_device, host_device = link.install(core_network.pgw, remote_host)
        link_addresses = Ipv4AddressHelper(LINK_NETWORK).assign([pgw_device, host_device])

        fabric = Fabric(remote_host=remote_host, pgw=core_network.pgw, link=link,
                        link_addresses=link_addresses)
        if self.install_static_route:
            # interface 0 is loopback, 1 the link to the PGW
            remote_host.routing.add_network_route(core_network.ue_network, 1)
            fabric.static_route_installed = True
        else:
            logger.warning("Remote host has no route to the UE network; downlink traffic will be dropped")
        logger.info(f"PGW {link_addresses[0]} <-> remote host {link_addresses[1]}, "
                    f"{P2P_DATA_RATE / 1e9:.0f} Gb/s, MTU {P2P_MTU}, {P2P_DELAY * 1e3:.0f} ms")
        return fabric

    def assign_ue_addresses(self, core_network: CoreNetwork, ue_devices) -> List[IPv4Address]:
        self.phase.check("assign_ue_addresses")
        addresses = core_network.assign_ue_ipv4_addresses(ue_devices)
        print("IPv4 addresses assigned to UEs")
        return addresses
