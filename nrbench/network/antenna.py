"""
Antenna models for gNB and UE devices.

Elements abstract away array geometry (isotropic, parabolic); the uniform
planar array describes an explicit multi-element panel built from isotropic
elements and is only usable together with phased-array propagation models.
"""

import math
from dataclasses import dataclass
from enum import Enum


class AntennaElementType(Enum):
    """Available antenna element types"""
    ISOTROPIC = "ns3::IsotropicAntennaModel"
    PARABOLIC = "ns3::ParabolicAntennaModel"


class IsotropicAntennaModel:
    """Unit gain in every direction"""

    element_type = AntennaElementType.ISOTROPIC

    def gain_db(self, azimuth: float) -> float:
        return 0.0


class ParabolicAntennaModel:
    """
    Horizontal parabolic pattern.

    Gain is -min(12 * (angle / beamwidth)^2, max_attenuation) dB, with the
    angle measured from the antenna orientation.
    """

    element_type = AntennaElementType.PARABOLIC

    def __init__(self, beamwidth: float = 60.0, orientation: float = 0.0,
                 max_attenuation: float = 20.0):
        self.beamwidth = beamwidth  # degrees
        self.orientation = orientation  # degrees
        self.max_attenuation = max_attenuation  # dB

    def gain_db(self, azimuth: float) -> float:
        """
        Gain towards a direction.

        Args:
            azimuth: Direction of departure/arrival in radians

        Returns:
            Gain in dB (0 at boresight)
        """
        offset = math.degrees(azimuth) - self.orientation
        offset = (offset + 180.0) % 360.0 - 180.0
        return -min(12.0 * (offset / self.beamwidth) ** 2, self.max_attenuation)


@dataclass(frozen=True)
class UniformPlanarArray:
    """Antenna panel of rows x columns isotropic elements"""
    rows: int
    columns: int

    def __post_init__(self):
        if self.rows < 1 or self.columns < 1:
            raise ValueError(f"Invalid array dimensions {self.rows}x{self.columns}")

    @property
    def element_type(self) -> AntennaElementType:
        return AntennaElementType.ISOTROPIC

    @property
    def num_elements(self) -> int:
        return self.rows * self.columns

    def array_gain_db(self) -> float:
        """Coherent combining gain when the beam points at the peer"""
        return 10.0 * math.log10(self.num_elements)
