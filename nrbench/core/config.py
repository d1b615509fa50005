"""
Configuration classes for the channel-model experiment
"""

from dataclasses import dataclass, replace
from typing import Optional, Tuple


@dataclass(frozen=True)
class ExperimentConfig:
    """Immutable run parameters, supplied once at startup"""
    # RNG
    seed: int = 1
    run: int = 1
    random_stream: int = 1  # first stream handed to devices

    # Timeline
    simulation_time: float = 10.0  # seconds
    traffic_start: float = 0.0  # seconds

    # Channel selection
    scenario: str = "UMa"
    channel_model: str = "ThreeGpp"
    channel_condition_model: str = "Default"
    buildings: Tuple[Tuple[float, float, float, float], ...] = ()  # (xmin, xmax, ymin, ymax)

    # Topology
    num_ues: int = 4
    num_gnbs: int = 1
    inter_site_distance: float = 200.0  # meters
    ut_height: float = 1.5  # meters
    bs_height: float = 25.0  # meters
    sectors: int = 1
    ue_speed: float = 30.0  # m/s, grid default before the zig-zag override

    # Spectrum and PHY
    central_frequency: float = 30.5e9  # Hz
    bandwidth: float = 100e6  # Hz
    num_component_carriers: int = 1
    numerology: int = 1
    ue_tx_power: float = 23.0  # dBm
    gnb_tx_power: float = 41.0  # dBm

    # Antenna arrays for phased-array models
    ue_antenna_rows: int = 1
    ue_antenna_columns: int = 1
    gnb_antenna_rows: int = 4
    gnb_antenna_columns: int = 8

    # Link adaptation
    error_model_type: str = "ns3::NrEesmCcT1"
    amc_selection_model: str = "ErrorModel"
    rlc_max_tx_buffer_size: int = 999999999  # bytes

    # Traffic
    dl_port: int = 1234

    # Output
    logging: bool = True
    output_directory: str = "."
    flow_report_file: str = "channels-example-flows.txt"
    enabled_traces: Tuple[str, ...] = ("pathloss", "dl_data_phy", "dl_mac_sched", "gnb_mac_ctrl_msgs")
    write_topology: bool = True

    def with_overrides(self, **overrides) -> 'ExperimentConfig':
        """Return a copy with some fields replaced"""
        return replace(self, **overrides)

    @property
    def slot_duration(self) -> float:
        """Slot length in seconds for the configured numerology"""
        return 1e-3 / (2 ** self.numerology)


@dataclass(frozen=True)
class CampaignConfig:
    """Seed/run sweep parameters for repeated experiments"""
    start_seed: int = 100
    end_seed: int = 110  # exclusive
    runs_per_seed: int = 3
    output_directory: str = "./sim_results"
    trace_files: Tuple[str, ...] = (
        "NrDlMacStats.txt",
        "DlDataSinr.txt",
        "RxedGnbMacCtrlMsgsTrace.txt",
        "hexagonal-topology.gnuplot",
    )
    base_config: Optional[ExperimentConfig] = None
