"""
Downlink flow setup: one gaming flow per terminal, all sharing the same
active interval.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

import simpy

from ..core.phase import SetupPhase
from ..core.random import RandomStreamAllocator, RngSeedManager
from ..network.fabric import FiveTuple, Node
from .gaming import GamingTrafficClient, NgmnGamingProfile, UdpSink

logger = logging.getLogger(__name__)


@dataclass
class Flow:
    """DL association between the remote host client and a terminal sink"""
    ue_id: int
    client: GamingTrafficClient
    sink: UdpSink
    start_time: float
    stop_time: float

    @property
    def five_tuple(self) -> FiveTuple:
        return FiveTuple(self.client.node.address(1), self.client.destination, "UDP",
                         self.client.source_port, self.client.destination_port)


class TrafficOrchestrator:
    """Installs the DL applications; clients draw from their own random streams"""

    def __init__(self, env: simpy.Environment, rng_manager: RngSeedManager,
                 streams: RandomStreamAllocator, start_time: float, stop_time: float,
                 phase: Optional[SetupPhase] = None):
        if stop_time <= start_time:
            raise ValueError(f"Traffic stop time {stop_time} must follow start time {start_time}")
        self.env = env
        self.rng_manager = rng_manager
        self.streams = streams
        self.start_time = start_time
        self.stop_time = stop_time
        self.phase = phase or SetupPhase()
        self.flows: List[Flow] = []

    def create_downlink_flows(self, ue_devices, remote_host: Node, port: int,
                              profile: NgmnGamingProfile = NgmnGamingProfile()) -> List[Flow]:
        """
        Create one DL flow per UE.

        Args:
            ue_devices: UE devices with assigned addresses
            remote_host: Node running the clients
            port: UDP port of the sinks
            profile: Gaming traffic profile

        Returns:
            The created flows, in UE order
        """
        self.phase.check("create_downlink_flows")
        flows = []
        for ue in ue_devices:
            sink = UdpSink(self.env, ue.node, port)
            stream = self.streams.allocate(f"client{ue.imsi}")
            client = GamingTrafficClient(self.env, remote_host, ue.address, port, profile,
                                         self.rng_manager.generator(stream))
            flows.append(Flow(ue_id=ue.ue_id, client=client, sink=sink,
                              start_time=self.start_time, stop_time=self.stop_time))

        for flow in flows:
            flow.sink.start(self.start_time, self.stop_time)
            flow.client.start(self.start_time, self.stop_time)
        self.flows.extend(flows)
        logger.info(f"{len(flows)} DL flows active from {self.start_time}s to {self.stop_time}s")
        print("Gaming applications started")
        return flows
