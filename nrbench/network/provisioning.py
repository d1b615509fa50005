"""
Device provisioning: installs gNB and UE net devices on the scenario nodes.

The error model and AMC strategy are resolved from their registries before
any device exists, so an unsupported identifier aborts the setup with
nothing half-built. Random streams are handed out to gNB devices first and
then to UE devices.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import simpy

from ..core.config import ExperimentConfig
from ..core.errors import SimulationPhaseError
from ..core.phase import SetupPhase
from ..core.random import RandomStreamAllocator, RngSeedManager
from ..mobility.topology import Scenario
from .amc import Amc, AmcModel, ErrorModel, lookup_error_model, parse_amc_model
from .band import OperationBand, validate_numerology
from .channel import SpectrumChannel
from .fabric import NodeList
from .gnb import GnbDevice
from .ue import UeDevice

logger = logging.getLogger(__name__)


@dataclass
class ProvisionedDevices:
    gnb_devices: List[GnbDevice]
    ue_devices: List[UeDevice]
    error_model: ErrorModel
    amc_model: AmcModel
    fixed_mcs_dl: bool = False
    fixed_mcs_ul: bool = False
    stream_assignments: Dict[str, int] = field(default_factory=dict)


class DeviceProvisioner:
    """Creates the radio devices of every base station and terminal"""

    def __init__(self, env: simpy.Environment, config: ExperimentConfig,
                 rng_manager: RngSeedManager, streams: RandomStreamAllocator,
                 node_list: NodeList, phase: Optional[SetupPhase] = None):
        self.env = env
        self.config = config
        self.rng_manager = rng_manager
        self.streams = streams
        self.node_list = node_list
        self.phase = phase or SetupPhase()

    def provision(self, scenario: Scenario, channel: SpectrumChannel,
                  band: OperationBand) -> ProvisionedDevices:
        """
        Install gNB and UE devices.

        Args:
            scenario: Topology; frozen from here on
            channel: Spectrum channel of the band
            band: Operation band (a single BWP is used)

        Returns:
            ProvisionedDevices with streams assigned

        Raises:
            ConfigurationError: unknown error model, AMC model or numerology
        """
        self.phase.check("provision")
        error_model = lookup_error_model(self.config.error_model_type)
        amc_model = parse_amc_model(self.config.amc_selection_model)
        numerology = validate_numerology(self.config.numerology)
        scenario.freeze()

        bwp = band.bandwidth_parts[0]
        # same error model for UL and DL, adaptive MCS in both directions
        dl_amc = Amc(error_model, amc_model)

        gnb_devices = []
        for bs in scenario.base_stations:
            node = self.node_list.create(f"gNB{bs.bs_id}")
            gnb_devices.append(GnbDevice(
                env=self.env,
                cell_id=bs.bs_id + 1,
                base_station=bs,
                node=node,
                bwp=bwp,
                channel=channel,
                amc=dl_amc,
                tx_power=self.config.gnb_tx_power,
                numerology=numerology,
                rlc_buffer_size=self.config.rlc_max_tx_buffer_size
            ))

        ue_devices = []
        for terminal in scenario.terminals:
            node = self.node_list.create(f"UE{terminal.ue_id}")
            ue_devices.append(UeDevice(
                env=self.env,
                terminal=terminal,
                node=node,
                channel=channel,
                amc=dl_amc,
                tx_power=self.config.ue_tx_power
            ))
        print("Attributes set for gNBs and UEs")

        devices = ProvisionedDevices(gnb_devices=gnb_devices, ue_devices=ue_devices,
                                     error_model=error_model, amc_model=amc_model)
        self.assign_streams(devices)
        print("NetDevices installed and streams assigned")
        return devices

    def assign_streams(self, devices: ProvisionedDevices):
        """gNBs first, then UEs; each device takes the next stream"""
        for gnb in devices.gnb_devices:
            owner = f"gnb{gnb.cell_id}"
            stream = self.streams.allocate(owner)
            gnb.assign_stream(stream, self.rng_manager.generator(stream))
            devices.stream_assignments[owner] = stream
        for ue in devices.ue_devices:
            owner = f"ue{ue.imsi}"
            stream = self.streams.allocate(owner)
            ue.assign_stream(stream, self.rng_manager.generator(stream))
            devices.stream_assignments[owner] = stream


def closest_gnb_index(ue: UeDevice, gnb_devices: List[GnbDevice], now: float = 0.0) -> int:
    """Index of the nearest gNB (3D distance); ties go to the lowest index"""
    ue_position = ue.position(now)
    best_index = 0
    best_distance = None
    for index, gnb in enumerate(gnb_devices):
        distance = ue_position.distance_to(gnb.position(now))
        if best_distance is None or distance < best_distance:
            best_index = index
            best_distance = distance
    return best_index


def attach_to_closest_gnb(ue_devices: List[UeDevice], gnb_devices: List[GnbDevice],
                          now: float = 0.0) -> Dict[int, int]:
    """
    Attach each UE to its nearest gNB.

    Must run after IP addresses were assigned to the UEs.

    Returns:
        Mapping of UE id to serving cell id
    """
    if not gnb_devices:
        raise SimulationPhaseError("No gNB devices to attach to")
    associations = {}
    for ue in ue_devices:
        if ue.address is None:
            raise SimulationPhaseError(f"UE {ue.ue_id} attached before IP address assignment")
        gnb = gnb_devices[closest_gnb_index(ue, gnb_devices, now)]
        ue.attach(gnb)
        associations[ue.ue_id] = gnb.cell_id
    return associations
