"""
NR channel-model comparison on a SimPy event kernel

Builds a hexagonal NR deployment, attaches terminals to the closest gNB,
drives NGMN gaming downlink traffic and records PHY/MAC traces plus
per-flow statistics for one selected channel model.
"""

__version__ = "1.0.0"
__author__ = "Carlos Lopes"

from .core.config import CampaignConfig, ExperimentConfig
from .core.experiment import ExperimentPipeline, ExperimentResult, ExperimentRunner
from .simulation.campaign import Campaign

__all__ = ['ExperimentConfig', 'CampaignConfig', 'ExperimentRunner', 'ExperimentPipeline',
           'ExperimentResult', 'Campaign']
