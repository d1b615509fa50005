"""
Channel model configuration for the NR experiment.

This module maps a channel-model name and a channel-condition name to one
consistent bundle of antenna, propagation, beamforming and shadowing
configuration, and builds the spectrum channel that the devices share.
Phased-array propagation models only ever come with uniform planar arrays of
isotropic elements; Friis only ever comes with parabolic elements. The
pairing lives in the dispatch registries below, so an invalid combination
cannot be constructed.
"""

import logging
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Deque, Dict, List, Optional, Tuple, Union

import numpy as np

from ..core.errors import ConfigurationError
from .antenna import (AntennaElementType, IsotropicAntennaModel, ParabolicAntennaModel,
                      UniformPlanarArray)
from .propagation import (CONDITION_MODELS, BuildingsChannelConditionModel, ChannelCondition,
                          ChannelConditionModel, FriisPropagationLossModel, NyuPropagationLossModel,
                          PropagationLossModel, ThreeGppPropagationLossModel,
                          TwoRayPropagationLossModel)

logger = logging.getLogger(__name__)

CONDITION_UPDATE_PERIOD = 0.1  # seconds, for conditions that are re-evaluated
SUPPORTED_SCENARIOS = ("UMa", "UMi")
TIME_EPSILON = 1e-9


class ChannelModelName(Enum):
    """Channel models the experiment can compare"""
    THREE_GPP = "ThreeGpp"
    NYU = "NYU"
    TWO_RAY = "TwoRay"
    FRIIS = "Friis"


class ChannelConditionName(Enum):
    """Channel condition models"""
    DEFAULT = "Default"
    LOS = "LOS"
    NLOS = "NLOS"
    BUILDINGS = "Buildings"


class BeamformingMethod(Enum):
    DIRECT_PATH = "ns3::DirectPathBeamforming"


class PropagationFactory(Enum):
    FRIIS = "ns3::FriisPropagationLossModel"


# Phased-array models: model-specific propagation, condition model, UPA antennas
_PHASED_ARRAY_MODELS: Dict[ChannelModelName, type] = {
    ChannelModelName.THREE_GPP: ThreeGppPropagationLossModel,
    ChannelModelName.NYU: NyuPropagationLossModel,
    ChannelModelName.TWO_RAY: TwoRayPropagationLossModel,
}

# Non-phased models: (antenna element, propagation factory)
_NON_PHASED_MODELS: Dict[ChannelModelName, Tuple[AntennaElementType, PropagationFactory]] = {
    ChannelModelName.FRIIS: (AntennaElementType.PARABOLIC, PropagationFactory.FRIIS),
}

_PROPAGATION_FACTORIES: Dict[PropagationFactory, type] = {
    PropagationFactory.FRIIS: FriisPropagationLossModel,
}


@dataclass(frozen=True)
class PhasedArrayChannelConfig:
    """Channel bundle for models that explicitly model antenna arrays"""
    model: ChannelModelName
    condition: ChannelConditionName
    scenario: str
    ue_array: UniformPlanarArray
    gnb_array: UniformPlanarArray
    beamforming: BeamformingMethod = BeamformingMethod.DIRECT_PATH
    shadowing_enabled: bool = True
    condition_update_period: Optional[float] = None  # None: collaborator default, never re-evaluated

    is_phased_array = True

    @property
    def antenna_element(self) -> AntennaElementType:
        return AntennaElementType.ISOTROPIC

    def create_propagation_model(self, frequency: float) -> PropagationLossModel:
        return _PHASED_ARRAY_MODELS[self.model](frequency, self.scenario)


@dataclass(frozen=True)
class NonPhasedChannelConfig:
    """Channel bundle for models that abstract the array away"""
    model: ChannelModelName

    is_phased_array = False
    beamforming = None
    shadowing_enabled = False
    condition_update_period = None

    @property
    def antenna_element(self) -> AntennaElementType:
        return _NON_PHASED_MODELS[self.model][0]

    @property
    def propagation(self) -> PropagationFactory:
        return _NON_PHASED_MODELS[self.model][1]

    def create_propagation_model(self, frequency: float) -> PropagationLossModel:
        return _PROPAGATION_FACTORIES[self.propagation](frequency)


ChannelModelConfig = Union[PhasedArrayChannelConfig, NonPhasedChannelConfig]


def parse_channel_model(model_name: str) -> ChannelModelName:
    try:
        return ChannelModelName(model_name)
    except ValueError:
        choices = ", ".join(f"'{m.value}'" for m in ChannelModelName)
        raise ConfigurationError(f"Invalid channel model: {model_name}. Choose among {choices}.") from None


def parse_channel_condition(condition_name: str) -> ChannelConditionName:
    try:
        return ChannelConditionName(condition_name)
    except ValueError:
        choices = ", ".join(f"'{c.value}'" for c in ChannelConditionName)
        raise ConfigurationError(
            f"Invalid channel condition model: {condition_name}. Choose among {choices}.") from None


class ChannelModelConfigurator:
    """Selects the antenna/propagation/beamforming bundle for a channel model"""

    def __init__(self, ue_array: UniformPlanarArray = UniformPlanarArray(1, 1),
                 gnb_array: UniformPlanarArray = UniformPlanarArray(4, 8)):
        self.ue_array = ue_array
        self.gnb_array = gnb_array

    def configure(self, model_name: str, condition_name: str = "Default",
                  scenario: str = "UMa") -> ChannelModelConfig:
        """
        Build the channel bundle.

        Args:
            model_name: 'ThreeGpp', 'NYU', 'TwoRay' or 'Friis'
            condition_name: 'Default', 'LOS', 'NLOS' or 'Buildings'
            scenario: Deployment scenario for the phased-array models

        Returns:
            PhasedArrayChannelConfig or NonPhasedChannelConfig

        Raises:
            ConfigurationError: unknown model, condition or scenario
        """
        model = parse_channel_model(model_name)
        condition = parse_channel_condition(condition_name)
        if scenario not in SUPPORTED_SCENARIOS:
            raise ConfigurationError(
                f"Invalid scenario: {scenario}. Choose among {', '.join(SUPPORTED_SCENARIOS)}.")

        if model in _PHASED_ARRAY_MODELS:
            # fixed LOS/NLOS conditions are static and keep the model default
            update_period = None
            if condition in (ChannelConditionName.DEFAULT, ChannelConditionName.BUILDINGS):
                update_period = CONDITION_UPDATE_PERIOD

            config = PhasedArrayChannelConfig(
                model=model,
                condition=condition,
                scenario=scenario,
                ue_array=self.ue_array,
                gnb_array=self.gnb_array,
                beamforming=BeamformingMethod.DIRECT_PATH,
                shadowing_enabled=True,
                condition_update_period=update_period
            )
            logger.info(f"Phased-array channel: {model.value}/{condition.value} in {scenario}, "
                        f"UE {self.ue_array.rows}x{self.ue_array.columns}, "
                        f"gNB {self.gnb_array.rows}x{self.gnb_array.columns}")
            return config

        config = NonPhasedChannelConfig(model=model)
        logger.info(f"Non-phased channel: {model.value} with {config.antenna_element.value}")
        return config


class SpectrumChannel:
    """
    Shared DL channel of one operation band.

    Keeps per-link channel condition and shadowing state, computes received
    power and SINR, and tracks which gNBs transmit in the current slot so
    that co-channel cells interfere with each other.
    """

    def __init__(self, config: ChannelModelConfig, frequency: float, bandwidth: float,
                 rng: Optional[np.random.Generator] = None,
                 buildings: Tuple[Tuple[float, float, float, float], ...] = ()):
        self.config = config
        self.frequency = frequency
        self.bandwidth = bandwidth
        self.rng = rng
        self.stream: Optional[int] = None
        self.propagation = config.create_propagation_model(frequency)

        self.condition_model: Optional[ChannelConditionModel] = None
        if config.is_phased_array:
            condition_cls = CONDITION_MODELS[config.condition.value]
            if condition_cls is BuildingsChannelConditionModel:
                self.condition_model = BuildingsChannelConditionModel(buildings)
            elif condition_cls is CONDITION_MODELS["Default"]:
                self.condition_model = condition_cls(config.scenario)
            else:
                self.condition_model = condition_cls()

        # (cell_id, ue_id) -> (condition, shadowing_db, evaluated_at)
        self._links: Dict[Tuple[int, int], Tuple[ChannelCondition, float, float]] = {}
        # cell_id -> last transmissions (gnb device, start, end)
        self._transmissions: Dict[int, Deque] = {}
        self.pathloss_listeners: List = []

    def assign_stream(self, stream: int, rng: np.random.Generator) -> int:
        self.stream = stream
        self.rng = rng
        return 1

    def link_condition(self, gnb, ue, now: float) -> Tuple[ChannelCondition, float]:
        """Condition and shadowing of a link, re-evaluated per the update period"""
        if self.condition_model is None:
            return ChannelCondition.LOS, 0.0

        key = (gnb.cell_id, ue.ue_id)
        cached = self._links.get(key)
        period = self.config.condition_update_period
        if cached is not None:
            condition, shadowing, evaluated_at = cached
            if period is None or now - evaluated_at < period:
                return condition, shadowing

        condition = self.condition_model.evaluate(gnb.position(now), ue.position(now), self.rng)
        if cached is not None and cached[0] == condition:
            shadowing = cached[1]
        elif self.config.shadowing_enabled:
            shadowing = self.rng.normal(0.0, self.propagation.shadowing_std(condition))
        else:
            shadowing = 0.0
        self._links[key] = (condition, shadowing, now)
        return condition, shadowing

    def path_loss_db(self, gnb, ue, now: float) -> float:
        """Path loss plus shadowing in dB"""
        condition, shadowing = self.link_condition(gnb, ue, now)
        gnb_pos = gnb.position(now)
        ue_pos = ue.position(now)
        loss = self.propagation.path_loss(gnb_pos.distance_2d_to(ue_pos), gnb_pos.z, ue_pos.z, condition)
        return loss + shadowing

    def antenna_gain_db(self, gnb, ue, now: float, serving: bool) -> float:
        """Combined tx and rx antenna gain of a link"""
        if self.config.is_phased_array:
            if not serving:
                return 0.0
            # direct-path beamforming points both panels at each other
            return gnb.antenna.array_gain_db() + ue.antenna.array_gain_db()

        gnb_pos = gnb.position(now)
        ue_pos = ue.position(now)
        return gnb.antenna.gain_db(gnb_pos.azimuth_to(ue_pos)) + ue.antenna.gain_db(ue_pos.azimuth_to(gnb_pos))

    def rx_power_dbm(self, gnb, ue, now: float, serving: bool = True) -> float:
        loss = self.path_loss_db(gnb, ue, now)
        if serving:
            for listener in self.pathloss_listeners:
                listener(now, gnb, ue, loss)
        return gnb.tx_power - loss + self.antenna_gain_db(gnb, ue, now, serving)

    def start_transmission(self, gnb, start_time: float, end_time: float):
        self._transmissions.setdefault(gnb.cell_id, deque(maxlen=2)).append((gnb, start_time, end_time))

    def interferers(self, serving_gnb, now: float) -> List:
        """gNBs other than `serving_gnb` whose transmission covers the slot ending at `now`"""
        found = []
        for cell_id in sorted(self._transmissions):
            if cell_id == serving_gnb.cell_id:
                continue
            for gnb, start_time, end_time in self._transmissions[cell_id]:
                if start_time < now - TIME_EPSILON and now <= end_time + TIME_EPSILON:
                    found.append(gnb)
                    break
        return found

    def dl_sinr_db(self, gnb, ue, now: float, noise_power_dbm: float) -> float:
        """SINR at the UE for a DL transmission of `gnb`"""
        signal_mw = 10 ** (self.rx_power_dbm(gnb, ue, now, serving=True) / 10)
        interference_mw = sum(10 ** (self.rx_power_dbm(other, ue, now, serving=False) / 10)
                              for other in self.interferers(gnb, now))
        noise_mw = 10 ** (noise_power_dbm / 10)
        return 10 * np.log10(signal_mw / (interference_mw + noise_mw))

    def create_ue_antenna(self):
        if self.config.is_phased_array:
            return self.config.ue_array
        return self._element(self.config.antenna_element, 0.0)

    def create_gnb_antenna(self, bearing: float):
        if self.config.is_phased_array:
            return self.config.gnb_array
        return self._element(self.config.antenna_element, bearing)

    @staticmethod
    def _element(element_type: AntennaElementType, orientation: float):
        if element_type == AntennaElementType.PARABOLIC:
            return ParabolicAntennaModel(orientation=orientation)
        return IsotropicAntennaModel()

    def reset(self):
        self._links.clear()
        self._transmissions.clear()
        self.pathloss_listeners.clear()


def build_spectrum_channel(config: ChannelModelConfig, band, rng: Optional[np.random.Generator] = None,
                           buildings: Tuple[Tuple[float, float, float, float], ...] = ()) -> SpectrumChannel:
    """Create the spectrum channel shared by every BWP of an operation band"""
    channel = SpectrumChannel(config, band.central_frequency, band.bandwidth, rng, buildings)
    print("Spectrum channel created and assigned to the band")
    return channel
