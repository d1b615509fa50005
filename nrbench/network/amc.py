"""
Adaptive Modulation and Coding (AMC) and link error models.

Error models are selected from a registry of identifiers; the AMC strategy
picks the MCS for a transport block either from the error model BLER curve
or from a Shannon-gap bound.
"""

import math
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Tuple

import numpy as np

from ..core.errors import ConfigurationError

logger = logging.getLogger(__name__)

TARGET_BLER = 0.1
SHANNON_TARGET_BER = 0.00005
DATA_SYMBOLS_PER_SLOT = 12  # 14 OFDM symbols minus DL control
SUBCARRIERS_PER_RB = 12
MAX_HARQ_ATTEMPTS = 4

# Spectral efficiency (bits per resource element) per MCS index
MCS_TABLE_1 = (
    0.2344, 0.3066, 0.3770, 0.4902, 0.6016, 0.7402, 0.8770, 1.0273, 1.1758, 1.3262,
    1.3281, 1.4766, 1.6953, 1.9141, 2.1602, 2.4063, 2.5703, 2.5664, 2.7305, 3.0293,
    3.3223, 3.6094, 3.9023, 4.2129, 4.5234, 4.8164, 5.1152, 5.3320, 5.5547,
)
MCS_TABLE_2 = (
    0.2344, 0.3770, 0.6016, 0.8770, 1.1758, 1.4766, 1.6953, 1.9141, 2.1602, 2.4063,
    2.5703, 2.7305, 3.0293, 3.3223, 3.6094, 3.9023, 4.2129, 4.5234, 4.8164, 5.1152,
    5.3320, 5.5547, 5.8906, 6.2266, 6.5703, 6.9141, 7.1602, 7.4063,
)
CQI_TABLE = (
    0.1523, 0.2344, 0.3770, 0.6016, 0.8770, 1.1758, 1.4766, 1.9141,
    2.4063, 2.7305, 3.3223, 3.9023, 4.5234, 5.1152, 5.5547,
)


class HarqMethod(Enum):
    CHASE_COMBINING = "ChaseCombining"
    INCREMENTAL_REDUNDANCY = "IncrementalRedundancy"


@dataclass(frozen=True)
class ErrorModel:
    """
    Logistic BLER curve around a per-MCS SINR threshold.

    The threshold of MCS m is the Shannon SINR needed for its spectral
    efficiency plus `gap_db`.
    """
    type_id: str
    mcs_table: Tuple[float, ...]
    harq_method: HarqMethod
    gap_db: float = 1.0
    slope: float = 1.5  # per dB

    @property
    def max_mcs(self) -> int:
        return len(self.mcs_table) - 1

    def sinr_threshold_db(self, mcs: int) -> float:
        return 10 * math.log10(2 ** self.mcs_table[mcs] - 1) + self.gap_db

    def combining_gain_db(self, attempts: int) -> float:
        """SINR gain from soft-combining `attempts` transmissions of the same TB"""
        gain = 10 * math.log10(attempts)
        if self.harq_method == HarqMethod.INCREMENTAL_REDUNDANCY:
            gain += 0.5 * (attempts - 1)
        return gain

    def bler(self, sinr_db: float, mcs: int, attempts: int = 1) -> float:
        effective = sinr_db + self.combining_gain_db(attempts)
        exponent = self.slope * (effective - self.sinr_threshold_db(mcs))
        # clip to keep exp() finite for very good or very bad links
        return float(1.0 / (1.0 + np.exp(np.clip(exponent, -50.0, 50.0))))


ERROR_MODEL_PREFIX = "ns3::"

_ERROR_MODELS: Dict[str, ErrorModel] = {
    "ns3::NrEesmCcT1": ErrorModel("ns3::NrEesmCcT1", MCS_TABLE_1, HarqMethod.CHASE_COMBINING),
    "ns3::NrEesmCcT2": ErrorModel("ns3::NrEesmCcT2", MCS_TABLE_2, HarqMethod.CHASE_COMBINING),
    "ns3::NrEesmIrT1": ErrorModel("ns3::NrEesmIrT1", MCS_TABLE_1, HarqMethod.INCREMENTAL_REDUNDANCY),
    "ns3::NrEesmIrT2": ErrorModel("ns3::NrEesmIrT2", MCS_TABLE_2, HarqMethod.INCREMENTAL_REDUNDANCY),
    "ns3::NrLteMiErrorModel": ErrorModel("ns3::NrLteMiErrorModel", MCS_TABLE_1,
                                         HarqMethod.CHASE_COMBINING, gap_db=2.0),
}


def lookup_error_model(type_id: str) -> ErrorModel:
    """Resolve an error model identifier, with or without the ns3:: prefix"""
    key = type_id if type_id.startswith(ERROR_MODEL_PREFIX) else ERROR_MODEL_PREFIX + type_id
    try:
        return _ERROR_MODELS[key]
    except KeyError:
        raise ConfigurationError(
            f"Unknown error model type: {type_id}. Available: {', '.join(sorted(_ERROR_MODELS))}") from None


def available_error_models():
    return sorted(_ERROR_MODELS)


class AmcModel(Enum):
    """MCS selection strategies"""
    ERROR_MODEL = "ErrorModel"
    SHANNON = "ShannonModel"


def parse_amc_model(name: str) -> AmcModel:
    try:
        return AmcModel(name)
    except ValueError:
        raise ConfigurationError(
            f"Unrecognized AMC model: {name}. Choose among 'ErrorModel', 'ShannonModel'.") from None


class Amc:
    """Link adaptation for one direction of a device"""

    def __init__(self, error_model: ErrorModel, amc_model: AmcModel):
        self.error_model = error_model
        self.amc_model = amc_model

    def spectral_efficiency(self, mcs: int) -> float:
        return self.error_model.mcs_table[mcs]

    def select_mcs(self, sinr_db: float) -> int:
        if self.amc_model == AmcModel.SHANNON:
            return self._shannon_mcs(sinr_db)
        return self._error_model_mcs(sinr_db)

    def _error_model_mcs(self, sinr_db: float) -> int:
        for mcs in range(self.error_model.max_mcs, -1, -1):
            if self.error_model.bler(sinr_db, mcs) <= TARGET_BLER:
                return mcs
        return 0

    def _shannon_mcs(self, sinr_db: float) -> int:
        achievable = self.shannon_spectral_efficiency(sinr_db)
        selected = 0
        for mcs, efficiency in enumerate(self.error_model.mcs_table):
            if efficiency <= achievable:
                selected = mcs
        return selected

    @staticmethod
    def shannon_spectral_efficiency(sinr_db: float) -> float:
        gamma = -math.log(5 * SHANNON_TARGET_BER) / 1.5
        return math.log2(1 + 10 ** (sinr_db / 10) / gamma)

    def cqi(self, sinr_db: float) -> int:
        """Wideband CQI (0 = out of range, 1..15)"""
        achievable = self.shannon_spectral_efficiency(sinr_db)
        return sum(1 for efficiency in CQI_TABLE if efficiency <= achievable)

    def transport_block_size(self, mcs: int, num_rbs: int) -> int:
        """TB size in bytes for `num_rbs` RBs over one slot"""
        resource_elements = num_rbs * SUBCARRIERS_PER_RB * DATA_SYMBOLS_PER_SLOT
        return int(resource_elements * self.spectral_efficiency(mcs)) // 8
