"""Core experiment components: configuration, errors, randomness and setup phase."""

from .config import CampaignConfig, ExperimentConfig
from .errors import ConfigurationError, SimulationPhaseError
from .phase import SetupPhase
from .random import RandomStreamAllocator, RngSeedManager

__all__ = ['ExperimentConfig', 'CampaignConfig', 'ConfigurationError', 'SimulationPhaseError',
           'SetupPhase', 'RngSeedManager', 'RandomStreamAllocator']
