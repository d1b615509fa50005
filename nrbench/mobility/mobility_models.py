"""
Mobility Models for the NR channel-model experiment

This module implements the position/velocity primitives and the two mobility
models the experiment needs: constant position (base stations, hosts) and
constant velocity (user terminals).
"""

import math
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Vector3D:
    """3D position or velocity vector."""
    x: float
    y: float
    z: float = 0.0

    def distance_to(self, other: 'Vector3D') -> float:
        """Euclidean distance to another point."""
        return math.sqrt((self.x - other.x)**2 + (self.y - other.y)**2 + (self.z - other.z)**2)

    def distance_2d_to(self, other: 'Vector3D') -> float:
        """Horizontal distance to another point."""
        return math.sqrt((self.x - other.x)**2 + (self.y - other.y)**2)

    def azimuth_to(self, other: 'Vector3D') -> float:
        """Horizontal angle (radians) of the direction towards another point."""
        return math.atan2(other.y - self.y, other.x - self.x)

    def scaled(self, factor: float) -> 'Vector3D':
        return Vector3D(self.x * factor, self.y * factor, self.z * factor)

    @property
    def magnitude(self) -> float:
        return math.sqrt(self.x**2 + self.y**2 + self.z**2)

    def __add__(self, other: 'Vector3D') -> 'Vector3D':
        return Vector3D(self.x + other.x, self.y + other.y, self.z + other.z)

    def __sub__(self, other: 'Vector3D') -> 'Vector3D':
        return Vector3D(self.x - other.x, self.y - other.y, self.z - other.z)


class MobilityModel(ABC):
    """Abstract base class for mobility models"""

    @abstractmethod
    def get_position(self, now: float) -> Vector3D:
        """Position at simulation time `now`"""
        pass

    @abstractmethod
    def get_velocity(self) -> Vector3D:
        pass


class ConstantPositionMobilityModel(MobilityModel):
    """Node that never moves"""

    def __init__(self, position: Vector3D):
        self.position = position

    def get_position(self, now: float) -> Vector3D:
        return self.position

    def get_velocity(self) -> Vector3D:
        return Vector3D(0.0, 0.0, 0.0)


class ConstantVelocityMobilityModel(MobilityModel):
    """
    Straight-line movement at a constant velocity.

    Setting the position or the velocity re-anchors the trajectory at the
    given reference time, so `position(t) = anchor + velocity * (t - t_ref)`.
    """

    def __init__(self, position: Vector3D, velocity: Vector3D = Vector3D(0.0, 0.0, 0.0)):
        self._anchor = position
        self._velocity = velocity
        self._reference_time = 0.0

    def set_position(self, position: Vector3D, now: float = 0.0):
        self._anchor = position
        self._reference_time = now

    def set_velocity(self, velocity: Vector3D, now: float = 0.0):
        self._anchor = self.get_position(now)
        self._reference_time = now
        self._velocity = velocity

    def get_position(self, now: float) -> Vector3D:
        elapsed = now - self._reference_time
        return self._anchor + self._velocity.scaled(elapsed)

    def get_velocity(self) -> Vector3D:
        return self._velocity
