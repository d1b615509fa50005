"""
Operation band plan: one contiguous band split into component carriers,
each carrying a single bandwidth part.
"""

import math
import logging
from dataclasses import dataclass
from typing import List

from ..core.errors import ConfigurationError

logger = logging.getLogger(__name__)

SUBCARRIERS_PER_RB = 12
MAX_NUMEROLOGY = 4


@dataclass(frozen=True)
class BandwidthPart:
    """A BWP covering a whole component carrier"""
    bwp_id: int
    central_frequency: float  # Hz
    bandwidth: float  # Hz

    @property
    def lower_frequency(self) -> float:
        return self.central_frequency - self.bandwidth / 2

    @property
    def higher_frequency(self) -> float:
        return self.central_frequency + self.bandwidth / 2


@dataclass(frozen=True)
class ComponentCarrier:
    cc_id: int
    central_frequency: float
    bandwidth: float
    bwp: BandwidthPart


@dataclass(frozen=True)
class OperationBand:
    """Contiguous spectrum band with its component carriers"""
    central_frequency: float
    bandwidth: float
    carriers: List[ComponentCarrier]

    @classmethod
    def contiguous(cls, central_frequency: float, bandwidth: float,
                   num_cc: int = 1) -> 'OperationBand':
        """Split [fc - B/2, fc + B/2] into `num_cc` equal carriers, one BWP each"""
        if central_frequency <= 0 or bandwidth <= 0:
            raise ConfigurationError(
                f"Invalid band: central frequency {central_frequency} Hz, bandwidth {bandwidth} Hz")
        if num_cc < 1:
            raise ConfigurationError(f"At least one component carrier is required, got {num_cc}")

        cc_bandwidth = bandwidth / num_cc
        lower = central_frequency - bandwidth / 2
        carriers = []
        for cc_id in range(num_cc):
            cc_center = lower + cc_bandwidth * (cc_id + 0.5)
            bwp = BandwidthPart(bwp_id=cc_id, central_frequency=cc_center, bandwidth=cc_bandwidth)
            carriers.append(ComponentCarrier(cc_id=cc_id, central_frequency=cc_center,
                                             bandwidth=cc_bandwidth, bwp=bwp))
        logger.info(f"Operation band at {central_frequency / 1e9:.2f} GHz, "
                    f"{bandwidth / 1e6:.0f} MHz, {num_cc} CC")
        return cls(central_frequency=central_frequency, bandwidth=bandwidth, carriers=carriers)

    @property
    def bandwidth_parts(self) -> List[BandwidthPart]:
        return [cc.bwp for cc in self.carriers]


def validate_numerology(numerology: int) -> int:
    if not 0 <= numerology <= MAX_NUMEROLOGY:
        raise ConfigurationError(f"Numerology must be in [0, {MAX_NUMEROLOGY}], got {numerology}")
    return numerology


def subcarrier_spacing(numerology: int) -> float:
    """Subcarrier spacing in Hz: 15 kHz * 2^mu"""
    return 15e3 * (2 ** numerology)


def slot_duration(numerology: int) -> float:
    return 1e-3 / (2 ** numerology)


def num_resource_blocks(bandwidth: float, numerology: int) -> int:
    return int(math.floor(bandwidth / (SUBCARRIERS_PER_RB * subcarrier_spacing(numerology))))
