"""
Propagation loss and channel condition models.

These are deliberately compact closed-form models: enough to produce
pathloss, shadowing and LOS/NLOS behaviour for each strategy the channel
configurator can select. They are consumed through the PropagationLossModel
and ChannelConditionModel interfaces only.
"""

import math
from abc import ABC, abstractmethod
from enum import Enum
from typing import Dict, Sequence, Tuple

import numpy as np

from ..mobility.mobility_models import Vector3D

SPEED_OF_LIGHT = 299792458.0  # m/s
MIN_DISTANCE = 1.0  # meters


class ChannelCondition(Enum):
    """Channel conditions for modeling."""
    LOS = "line_of_sight"
    NLOS = "non_line_of_sight"


def free_space_path_loss(distance: float, frequency: float) -> float:
    """Friis free-space path loss in dB (frequency in Hz)"""
    distance = max(distance, MIN_DISTANCE)
    return 20 * math.log10(4 * math.pi * distance * frequency / SPEED_OF_LIGHT)


def thermal_noise_power_dbm(bandwidth_hz: float, noise_figure_db: float) -> float:
    """Thermal noise (-174 dBm/Hz at 290K) over a bandwidth plus receiver noise figure"""
    return -174.0 + 10 * math.log10(bandwidth_hz) + noise_figure_db


class PropagationLossModel(ABC):
    """Large-scale path loss between a gNB and a UE"""

    phased_array = True

    def __init__(self, frequency: float, scenario: str = "UMa"):
        self.frequency = frequency  # Hz
        self.scenario = scenario

    @property
    def frequency_ghz(self) -> float:
        return self.frequency / 1e9

    @abstractmethod
    def path_loss(self, distance_2d: float, bs_height: float, ut_height: float,
                  condition: ChannelCondition) -> float:
        """Path loss in dB"""
        pass

    def shadowing_std(self, condition: ChannelCondition) -> float:
        """Log-normal shadowing standard deviation in dB"""
        return 0.0


class ThreeGppPropagationLossModel(PropagationLossModel):
    """3GPP TR 38.901 Urban Macro / Urban Micro path loss"""

    SHADOWING_STD = {
        "UMa": {ChannelCondition.LOS: 4.0, ChannelCondition.NLOS: 6.0},
        "UMi": {ChannelCondition.LOS: 4.0, ChannelCondition.NLOS: 7.82},
    }

    def path_loss(self, distance_2d: float, bs_height: float, ut_height: float,
                  condition: ChannelCondition) -> float:
        distance_2d = max(distance_2d, MIN_DISTANCE)
        distance_3d = math.sqrt(distance_2d**2 + (bs_height - ut_height)**2)

        if self.scenario == "UMa":
            los = self._urban_macro_los(distance_2d, distance_3d, bs_height, ut_height)
            if condition == ChannelCondition.LOS:
                return los
            nlos = (13.54 + 39.08 * math.log10(distance_3d) + 20 * math.log10(self.frequency_ghz)
                    - 0.6 * (ut_height - 1.5))
            return max(los, nlos)

        los = self._urban_micro_los(distance_2d, distance_3d, bs_height, ut_height)
        if condition == ChannelCondition.LOS:
            return los
        nlos = (35.3 * math.log10(distance_3d) + 22.4 + 21.3 * math.log10(self.frequency_ghz)
                - 0.3 * (ut_height - 1.5))
        return max(los, nlos)

    def _breakpoint(self, bs_height: float, ut_height: float) -> float:
        # effective antenna heights use a 1 m environment height
        return 4 * (bs_height - 1.0) * (ut_height - 1.0) * self.frequency / SPEED_OF_LIGHT

    def _urban_macro_los(self, distance_2d: float, distance_3d: float,
                         bs_height: float, ut_height: float) -> float:
        if distance_2d <= self._breakpoint(bs_height, ut_height):
            return 28.0 + 22 * math.log10(distance_3d) + 20 * math.log10(self.frequency_ghz)
        return (28.0 + 40 * math.log10(distance_3d) + 20 * math.log10(self.frequency_ghz)
                - 9 * math.log10(self._breakpoint(bs_height, ut_height)**2 + (bs_height - ut_height)**2))

    def _urban_micro_los(self, distance_2d: float, distance_3d: float,
                         bs_height: float, ut_height: float) -> float:
        if distance_2d <= self._breakpoint(bs_height, ut_height):
            return 32.4 + 21 * math.log10(distance_3d) + 20 * math.log10(self.frequency_ghz)
        return (32.4 + 40 * math.log10(distance_3d) + 20 * math.log10(self.frequency_ghz)
                - 9.5 * math.log10(self._breakpoint(bs_height, ut_height)**2 + (bs_height - ut_height)**2))

    def shadowing_std(self, condition: ChannelCondition) -> float:
        return self.SHADOWING_STD[self.scenario][condition]


class NyuPropagationLossModel(PropagationLossModel):
    """NYU close-in free space reference distance model (1 m reference)"""

    # (path loss exponent, shadowing std)
    PARAMETERS = {
        "UMa": {ChannelCondition.LOS: (2.0, 4.1), ChannelCondition.NLOS: (3.2, 8.2)},
        "UMi": {ChannelCondition.LOS: (2.0, 4.0), ChannelCondition.NLOS: (3.2, 7.0)},
    }

    def path_loss(self, distance_2d: float, bs_height: float, ut_height: float,
                  condition: ChannelCondition) -> float:
        distance_3d = max(math.sqrt(distance_2d**2 + (bs_height - ut_height)**2), MIN_DISTANCE)
        exponent, _ = self.PARAMETERS[self.scenario][condition]
        return free_space_path_loss(MIN_DISTANCE, self.frequency) + 10 * exponent * math.log10(distance_3d)

    def shadowing_std(self, condition: ChannelCondition) -> float:
        return self.PARAMETERS[self.scenario][condition][1]


class TwoRayPropagationLossModel(PropagationLossModel):
    """Free space up to the crossover distance, two-ray ground reflection beyond"""

    NLOS_EXCESS_LOSS = 20.0  # dB

    def path_loss(self, distance_2d: float, bs_height: float, ut_height: float,
                  condition: ChannelCondition) -> float:
        distance_3d = max(math.sqrt(distance_2d**2 + (bs_height - ut_height)**2), MIN_DISTANCE)
        wavelength = SPEED_OF_LIGHT / self.frequency
        crossover = 4 * math.pi * bs_height * ut_height / wavelength

        if distance_3d <= crossover:
            loss = free_space_path_loss(distance_3d, self.frequency)
        else:
            loss = (40 * math.log10(distance_3d) - 20 * math.log10(bs_height)
                    - 20 * math.log10(ut_height))
            loss = max(loss, free_space_path_loss(distance_3d, self.frequency))
        if condition == ChannelCondition.NLOS:
            loss += self.NLOS_EXCESS_LOSS
        return loss

    def shadowing_std(self, condition: ChannelCondition) -> float:
        return ThreeGppPropagationLossModel.SHADOWING_STD["UMa"][condition]


class FriisPropagationLossModel(PropagationLossModel):
    """Free-space propagation; used with non-array antennas"""

    phased_array = False

    def path_loss(self, distance_2d: float, bs_height: float, ut_height: float,
                  condition: ChannelCondition = ChannelCondition.LOS) -> float:
        distance_3d = math.sqrt(distance_2d**2 + (bs_height - ut_height)**2)
        return free_space_path_loss(distance_3d, self.frequency)


class ChannelConditionModel(ABC):
    """Decides whether a gNB-UE link is LOS or NLOS"""

    @abstractmethod
    def evaluate(self, a: Vector3D, b: Vector3D, rng: np.random.Generator) -> ChannelCondition:
        pass


class ThreeGppChannelConditionModel(ChannelConditionModel):
    """TR 38.901 LOS probability for the scenario"""

    def __init__(self, scenario: str = "UMa"):
        self.scenario = scenario

    def los_probability(self, distance_2d: float) -> float:
        if distance_2d <= 18.0:
            return 1.0
        decay = 63.0 if self.scenario == "UMa" else 36.0
        return 18.0 / distance_2d + math.exp(-distance_2d / decay) * (1 - 18.0 / distance_2d)

    def evaluate(self, a: Vector3D, b: Vector3D, rng: np.random.Generator) -> ChannelCondition:
        los_prob = self.los_probability(a.distance_2d_to(b))
        return ChannelCondition.LOS if rng.random() < los_prob else ChannelCondition.NLOS


class AlwaysLosChannelConditionModel(ChannelConditionModel):

    def evaluate(self, a: Vector3D, b: Vector3D, rng: np.random.Generator) -> ChannelCondition:
        return ChannelCondition.LOS


class NeverLosChannelConditionModel(ChannelConditionModel):

    def evaluate(self, a: Vector3D, b: Vector3D, rng: np.random.Generator) -> ChannelCondition:
        return ChannelCondition.NLOS


class BuildingsChannelConditionModel(ChannelConditionModel):
    """
    NLOS when the horizontal segment between the nodes crosses a building.

    Buildings are axis-aligned footprints (xmin, xmax, ymin, ymax) of
    unlimited height.
    """

    def __init__(self, buildings: Sequence[Tuple[float, float, float, float]] = ()):
        self.buildings = list(buildings)

    def evaluate(self, a: Vector3D, b: Vector3D, rng: np.random.Generator) -> ChannelCondition:
        for box in self.buildings:
            if self._segment_crosses_box(a, b, box):
                return ChannelCondition.NLOS
        return ChannelCondition.LOS

    @staticmethod
    def _segment_crosses_box(a: Vector3D, b: Vector3D,
                             box: Tuple[float, float, float, float]) -> bool:
        # Liang-Barsky clipping of the 2D segment against the box
        xmin, xmax, ymin, ymax = box
        dx = b.x - a.x
        dy = b.y - a.y
        t0, t1 = 0.0, 1.0
        for p, q in ((-dx, a.x - xmin), (dx, xmax - a.x), (-dy, a.y - ymin), (dy, ymax - a.y)):
            if p == 0:
                if q < 0:
                    return False
                continue
            t = q / p
            if p < 0:
                t0 = max(t0, t)
            else:
                t1 = min(t1, t)
            if t0 > t1:
                return False
        return True


CONDITION_MODELS: Dict[str, type] = {
    "Default": ThreeGppChannelConditionModel,
    "LOS": AlwaysLosChannelConditionModel,
    "NLOS": NeverLosChannelConditionModel,
    "Buildings": BuildingsChannelConditionModel,
}
