"""
NGMN gaming traffic model (downlink) and the UDP sink that receives it.
"""

import math
import logging
from dataclasses import dataclass
from ipaddress import IPv4Address

import numpy as np
import simpy

from ..network.fabric import Node, Packet

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NgmnGamingProfile:
    """
    NGMN gaming DL traffic.

    Packets leave every `packet_interval` seconds after an initial offset
    drawn uniformly from [0, packet_interval). Sizes follow a Largest
    Extreme Value distribution with location `size_a` and scale `size_b`.
    """
    size_a: float = 120.0  # bytes
    size_b: float = 36.0  # bytes
    packet_interval: float = 0.040  # seconds

    def initial_delay(self, rng: np.random.Generator) -> float:
        return float(rng.uniform(0.0, self.packet_interval))

    def packet_size(self, rng: np.random.Generator) -> int:
        # inverse CDF of the largest extreme value distribution
        u = rng.uniform(0.0, 1.0)
        while u <= 0.0:
            u = rng.uniform(0.0, 1.0)
        size = self.size_a - self.size_b * math.log(-math.log(u))
        return max(1, int(round(size)))


class GamingTrafficClient:
    """Client application on the remote host sending one gaming DL flow"""

    def __init__(self, env: simpy.Environment, node: Node, destination: IPv4Address,
                 destination_port: int, profile: NgmnGamingProfile, rng: np.random.Generator):
        self.env = env
        self.node = node
        self.destination = destination
        self.destination_port = destination_port
        self.profile = profile
        self.rng = rng
        self.source_port = node.allocate_ephemeral_port()
        self.packets_sent = 0
        self.bytes_sent = 0
        self.process = None

    def start(self, start_time: float, stop_time: float):
        self.process = self.env.process(self._run(start_time, stop_time))

    def _run(self, start_time: float, stop_time: float):
        if start_time > self.env.now:
            yield self.env.timeout(start_time - self.env.now)
        yield self.env.timeout(self.profile.initial_delay(self.rng))

        while self.env.now < stop_time:
            size = self.profile.packet_size(self.rng)
            packet = Packet(
                packet_id=self.packets_sent,
                source=self.node.address(1),
                source_port=self.source_port,
                destination=self.destination,
                destination_port=self.destination_port,
                payload_size=size,
                created_at=self.env.now
            )
            self.node.send(packet)
            self.packets_sent += 1
            self.bytes_sent += size
            yield self.env.timeout(self.profile.packet_interval)


class UdpSink:
    """UDP server on a terminal; counts what arrives while it is active"""

    def __init__(self, env: simpy.Environment, node: Node, port: int):
        self.env = env
        self.node = node
        self.port = port
        self.start_time = 0.0
        self.stop_time = math.inf
        self.packets_received = 0
        self.bytes_received = 0
        node.bind(port, self)

    def start(self, start_time: float, stop_time: float):
        self.start_time = start_time
        self.stop_time = stop_time

    def receive(self, packet: Packet):
        if not self.start_time <= self.env.now <= self.stop_time:
            return
        self.packets_received += 1
        self.bytes_received += packet.payload_size
