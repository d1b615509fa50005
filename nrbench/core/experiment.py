"""
Experiment lifecycle for the NR channel-model comparison.

The ExperimentRunner owns the SimPy environment, the seed/run numbers and
the state machine CONFIGURED -> SEEDED -> RUNNING -> COMPLETED -> DESTROYED.
The ExperimentPipeline drives the setup stages in their fixed order and
records which stage boundaries were crossed.
"""

import os
import time
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

import pandas as pd
import simpy

from .config import ExperimentConfig
from .errors import SimulationPhaseError
from .phase import SetupPhase
from .random import TOPOLOGY_STREAM, RandomStreamAllocator, RngSeedManager
from ..mobility.topology import Scenario, TopologyGenerator
from ..network.antenna import UniformPlanarArray
from ..network.band import OperationBand
from ..network.channel import (ChannelModelConfig, ChannelModelConfigurator, SpectrumChannel,
                               build_spectrum_channel)
from ..network.fabric import CoreNetwork, Fabric, NetworkFabricBuilder, NodeList
from ..network.provisioning import DeviceProvisioner, ProvisionedDevices, attach_to_closest_gnb
from ..simulation.flow_monitor import FlowMonitor
from ..simulation.traces import TraceSink
from ..traffic.gaming import NgmnGamingProfile
from ..traffic.orchestrator import Flow, TrafficOrchestrator
from ..utils.visualization import write_gnuplot_topology

logger = logging.getLogger(__name__)

TOPOLOGY_FILE = "hexagonal-topology.gnuplot"
FLOW_CSV_FILE = "flow-stats.csv"


class ExperimentState(Enum):
    CONFIGURED = "configured"
    SEEDED = "seeded"
    RUNNING = "running"
    COMPLETED = "completed"
    DESTROYED = "destroyed"


@dataclass
class ExperimentResult:
    """What a finished experiment leaves behind"""
    flow_stats: pd.DataFrame
    runtime_ms: float
    associations: Dict[int, int]
    stream_assignments: Dict[str, int]
    output_files: List[str] = field(default_factory=list)
    gnb_statistics: List[Dict] = field(default_factory=list)
    ue_statistics: List[Dict] = field(default_factory=list)

    @property
    def num_flows(self) -> int:
        return len(self.flow_stats)


class ExperimentRunner:
    """
    Owns one experiment: environment, random streams and the built network.

    Setup methods are only accepted before `run()`; afterwards they raise
    SimulationPhaseError.
    """

    def __init__(self, config: ExperimentConfig):
        self.config = config
        self.state = ExperimentState.CONFIGURED
        self.env = simpy.Environment()
        self.rng_manager = RngSeedManager()
        self.streams = RandomStreamAllocator(config.random_stream)
        self.phase = SetupPhase()
        self.node_list = NodeList()

        self.scenario: Optional[Scenario] = None
        self.channel_config: Optional[ChannelModelConfig] = None
        self.band: Optional[OperationBand] = None
        self.channel: Optional[SpectrumChannel] = None
        self.devices: Optional[ProvisionedDevices] = None
        self.core_network: Optional[CoreNetwork] = None
        self.fabric: Optional[Fabric] = None
        self.associations: Dict[int, int] = {}
        self.flows: List[Flow] = []
        self.flow_monitor: Optional[FlowMonitor] = None
        self.trace_sink: Optional[TraceSink] = None
        self.output_files: List[str] = []
        self.runtime_ms: Optional[float] = None

        logger.info(f"Experiment configured: {config.channel_model}/{config.channel_condition_model}, "
                    f"{config.num_ues} UEs, {config.num_gnbs} gNBs")

    # lifecycle

    def seed(self):
        """Apply seed and run number; exactly once, before any setup stage draws randomness"""
        if self.state != ExperimentState.CONFIGURED:
            raise SimulationPhaseError(f"Cannot seed in state {self.state.value}")
        self.rng_manager.set_seed(self.config.seed, self.config.run)
        self.state = ExperimentState.SEEDED

    def run(self) -> float:
        """
        Advance the clock to the configured stop time.

        Returns:
            Wall-clock duration in milliseconds
        """
        if self.state != ExperimentState.SEEDED:
            raise SimulationPhaseError(f"Cannot run in state {self.state.value}")
        self.state = ExperimentState.RUNNING
        self.phase.close()

        start = time.perf_counter()
        try:
            self.env.run(until=self.config.simulation_time)
        except Exception as e:
            logger.error(f"Simulation error at t={self.env.now:.6f}s: {e}")
            raise
        elapsed = time.perf_counter() - start

        self.runtime_ms = elapsed * 1000.0
        self.state = ExperimentState.COMPLETED
        print(f"\nSimulation runtime: {int(self.runtime_ms)} ms ({self.runtime_ms / 1000.0} seconds)")
        return self.runtime_ms

    def destroy(self):
        """Close outputs and release the simulation objects"""
        if self.trace_sink is not None:
            self.trace_sink.close()
        if self.channel is not None:
            self.channel.reset()
        self.rng_manager.reset()
        self.devices = None
        self.fabric = None
        self.core_network = None
        self.flows = []
        self.env = None
        self.state = ExperimentState.DESTROYED
        print("Simulation completed")

    def _ensure_seeded(self, operation: str):
        self.phase.check(operation)
        if self.state != ExperimentState.SEEDED:
            raise SimulationPhaseError(f"{operation} requires a seeded experiment (state {self.state.value})")

    def _require(self, value, operation: str, missing: str):
        if value is None:
            raise SimulationPhaseError(f"{operation} needs the {missing} stage first")
        return value

    # setup stages

    def build_topology(self) -> Scenario:
        self._ensure_seeded("build_topology")
        generator = TopologyGenerator(self.rng_manager.generator(TOPOLOGY_STREAM), self.config.ue_speed)
        self.scenario = generator.create_scenario(
            num_terminals=self.config.num_ues,
            num_base_stations=self.config.num_gnbs,
            inter_site_distance=self.config.inter_site_distance,
            ut_height=self.config.ut_height,
            bs_height=self.config.bs_height,
            sectors=self.config.sectors
        )
        return self.scenario

    def configure_channel(self) -> SpectrumChannel:
        self._ensure_seeded("configure_channel")
        configurator = ChannelModelConfigurator(
            ue_array=UniformPlanarArray(self.config.ue_antenna_rows, self.config.ue_antenna_columns),
            gnb_array=UniformPlanarArray(self.config.gnb_antenna_rows, self.config.gnb_antenna_columns)
        )
        self.channel_config = configurator.configure(self.config.channel_model,
                                                     self.config.channel_condition_model,
                                                     self.config.scenario)
        self.band = OperationBand.contiguous(self.config.central_frequency, self.config.bandwidth,
                                             self.config.num_component_carriers)
        self.channel = build_spectrum_channel(self.channel_config, self.band,
                                              buildings=self.config.buildings)
        return self.channel

    def provision_devices(self) -> ProvisionedDevices:
        self._ensure_seeded("provision_devices")
        scenario = self._require(self.scenario, "provision_devices", "topology")
        channel = self._require(self.channel, "provision_devices", "channel")

        provisioner = DeviceProvisioner(self.env, self.config, self.rng_manager, self.streams,
                                        self.node_list, self.phase)
        self.devices = provisioner.provision(scenario, channel, self.band)
        # the channel draws after the devices
        stream = self.streams.allocate("channel")
        channel.assign_stream(stream, self.rng_manager.generator(stream))
        return self.devices

    def build_fabric(self) -> Fabric:
        self._ensure_seeded("build_fabric")
        devices = self._require(self.devices, "build_fabric", "devices")

        self.core_network = CoreNetwork(self.env, self.node_list)
        builder = NetworkFabricBuilder(self.env, self.node_list, phase=self.phase)
        self.fabric = builder.build_fabric(self.core_network)
        builder.assign_ue_addresses(self.core_network, devices.ue_devices)
        # attachment needs the UE addresses
        self.associations = attach_to_closest_gnb(devices.ue_devices, devices.gnb_devices)
        return self.fabric

    def create_traffic(self) -> List[Flow]:
        self._ensure_seeded("create_traffic")
        fabric = self._require(self.fabric, "create_traffic", "fabric")

        orchestrator = TrafficOrchestrator(self.env, self.rng_manager, self.streams,
                                           self.config.traffic_start, self.config.simulation_time,
                                           self.phase)
        self.flows = orchestrator.create_downlink_flows(self.devices.ue_devices, fabric.remote_host,
                                                        self.config.dl_port, NgmnGamingProfile())
        self.flow_monitor = FlowMonitor(self.env)
        self.flow_monitor.install(fabric.remote_host, [ue.node for ue in self.devices.ue_devices],
                                  pgw=fabric.pgw, gnb_devices=self.devices.gnb_devices,
                                  flows=self.flows)
        return self.flows

    def enable_traces(self) -> TraceSink:
        self._ensure_seeded("enable_traces")
        devices = self._require(self.devices, "enable_traces", "devices")

        self.trace_sink = TraceSink(self.config.output_directory, self.phase)
        self.trace_sink.enable_all(self.config.enabled_traces, devices.gnb_devices, self.channel)
        self.output_files.extend(self.trace_sink.path(c) for c in self.trace_sink.enabled)

        if self.config.write_topology:
            path = os.path.join(self.config.output_directory, TOPOLOGY_FILE)
            write_gnuplot_topology(self.scenario, path)
            self.output_files.append(path)
        return self.trace_sink

    # after the run

    def report(self) -> ExperimentResult:
        if self.state != ExperimentState.COMPLETED:
            raise SimulationPhaseError(f"Cannot report in state {self.state.value}")
        monitor = self._require(self.flow_monitor, "report", "traffic")

        active_duration = self.config.simulation_time - self.config.traffic_start
        report_path = os.path.join(self.config.output_directory, self.config.flow_report_file)
        csv_path = os.path.join(self.config.output_directory, FLOW_CSV_FILE)
        df = monitor.write_report(report_path, active_duration)
        monitor.write_csv(csv_path, active_duration)
        self.output_files.extend([report_path, csv_path])

        return ExperimentResult(
            flow_stats=df,
            runtime_ms=self.runtime_ms,
            associations=dict(self.associations),
            stream_assignments=dict(self.streams.assignments),
            output_files=list(self.output_files),
            gnb_statistics=[gnb.get_statistics() for gnb in self.devices.gnb_devices],
            ue_statistics=[ue.get_statistics() for ue in self.devices.ue_devices]
        )


class ExperimentPipeline:
    """
    Named stages of one experiment, executed strictly in order.

    `completed_stages` lists the boundaries crossed so far; a failing stage
    leaves it at the last successful one.
    """

    STAGES = ("topology", "channel", "devices", "fabric", "traffic", "traces", "run", "report", "destroy")

    def __init__(self, config: ExperimentConfig):
        self.config = config
        self.runner = ExperimentRunner(config)
        self.completed_stages: List[str] = []
        self.result: Optional[ExperimentResult] = None

    def _stages(self) -> List[Tuple[str, Callable]]:
        runner = self.runner
        return [
            ("topology", runner.build_topology),
            ("channel", runner.configure_channel),
            ("devices", runner.provision_devices),
            ("fabric", runner.build_fabric),
            ("traffic", runner.create_traffic),
            ("traces", runner.enable_traces),
            ("run", runner.run),
            ("report", self._report),
            ("destroy", runner.destroy),
        ]

    def _report(self):
        self.result = self.runner.report()
        return self.result

    def execute(self, until: Optional[str] = None) -> Optional[ExperimentResult]:
        """
        Seed, then run the stages in order.

        Args:
            until: Stop after this stage (inclusive); None runs all of them

        Returns:
            The experiment result once the report stage ran, else None
        """
        if until is not None and until not in self.STAGES:
            raise ValueError(f"Unknown stage: {until}")
        if self.runner.state == ExperimentState.CONFIGURED:
            self.runner.seed()

        for name, stage in self._stages():
            if name in self.completed_stages:
                continue
            logger.debug(f"Stage {name}")
            stage()
            self.completed_stages.append(name)
            if name == until:
                break
        return self.result
