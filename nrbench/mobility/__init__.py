"""
Mobility module for NR simulations.

This module places gNBs on a hexagonal grid and moves terminals at constant velocity.
"""

from .mobility_models import ConstantPositionMobilityModel, ConstantVelocityMobilityModel, Vector3D
from .topology import BaseStation, HexagonalGridLayout, Scenario, Terminal, TopologyGenerator

__all__ = ['Vector3D', 'ConstantPositionMobilityModel', 'ConstantVelocityMobilityModel',
           'BaseStation', 'Terminal', 'Scenario', 'HexagonalGridLayout', 'TopologyGenerator']
