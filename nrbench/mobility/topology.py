"""
Hexagonal-cell topology generation.

This module builds the scenario of the experiment: base stations on the
centres of a hexagonal grid and user terminals that are first dropped inside
the grid cells and then deterministically spread with a zig-zag layout and a
constant-velocity mobility.
"""

import math
import logging
from dataclasses import dataclass, field
from typing import List

import numpy as np

from ..core.errors import ConfigurationError
from .mobility_models import (ConstantPositionMobilityModel, ConstantVelocityMobilityModel,
                              Vector3D)

logger = logging.getLogger(__name__)

# Axial neighbour offsets of a hexagon, walked in this order around each ring
_HEX_DIRECTIONS = [(1, 0), (1, -1), (0, -1), (-1, 0), (-1, 1), (0, 1)]


@dataclass
class BaseStation:
    """A gNB cell: one sector of a site"""
    bs_id: int
    site_id: int
    sector: int
    position: Vector3D
    bearing: float  # degrees

    def __post_init__(self):
        self.mobility = ConstantPositionMobilityModel(self.position)


@dataclass
class Terminal:
    """A user terminal (UE) with constant-velocity mobility"""
    ue_id: int
    mobility: ConstantVelocityMobilityModel
    serving_cell_hint: int = 0
    position_overridden: bool = False
    velocity_assigned: bool = False
    _frozen: bool = field(default=False, repr=False)

    @property
    def position(self) -> Vector3D:
        return self.mobility.get_position(0.0)

    @property
    def velocity(self) -> Vector3D:
        return self.mobility.get_velocity()

    def override_position(self, position: Vector3D):
        """Replace the grid placement. Allowed once, before provisioning."""
        if self._frozen:
            raise ConfigurationError(
                f"UE {self.ue_id}: position override after device provisioning started")
        if self.position_overridden:
            raise ConfigurationError(f"UE {self.ue_id}: position already overridden")
        self.mobility.set_position(position)
        self.position_overridden = True

    def assign_velocity(self, velocity: Vector3D):
        """Set the constant velocity. Allowed once."""
        if self.velocity_assigned:
            raise ConfigurationError(f"UE {self.ue_id}: velocity already assigned")
        self.mobility.set_velocity(velocity)
        self.velocity_assigned = True


@dataclass
class Scenario:
    """Base stations, terminals and the layout parameters they were built with"""
    base_stations: List[BaseStation]
    terminals: List[Terminal]
    inter_site_distance: float
    sectors: int
    ut_height: float
    bs_height: float
    frozen: bool = False

    @property
    def num_sites(self) -> int:
        return len({bs.site_id for bs in self.base_stations})

    def freeze(self):
        """Mark the scenario immutable; called when device provisioning begins"""
        self.frozen = True
        for terminal in self.terminals:
            terminal._frozen = True


def terminal_override_position(ue_index: int, ut_height: float) -> Vector3D:
    """Deterministic spread: UE 0 at (10, 20), UE i at (50i, +/-30) alternating by parity"""
    if ue_index == 0:
        return Vector3D(10.0, 20.0, ut_height)
    return Vector3D(50.0 * ue_index, 30.0 * (1 if ue_index % 2 == 0 else -1), ut_height)


def zigzag_velocity(ue_index: int) -> Vector3D:
    """Speed grows 3 m/s per index (1, 4, 7, ...), y sign alternates with parity"""
    speed = 1.0 + ue_index * 3.0
    return Vector3D(speed, (1 if ue_index % 2 == 0 else -1) * speed, 0.0)


class HexagonalGridLayout:
    """
    Hexagonal grid of sites.

    Site 0 is at the origin and ring k around it holds 6k sites. Every site
    hosts `sectors` cells; with 3 sectors the antenna bearings are 30, 150
    and 270 degrees.
    """

    def __init__(self, inter_site_distance: float, sectors: int = 1):
        if inter_site_distance <= 0:
            raise ConfigurationError(f"Inter-site distance must be positive, got {inter_site_distance}")
        if sectors not in (1, 3):
            raise ConfigurationError(f"Sectorization must be 1 or 3, got {sectors}")
        self.isd = inter_site_distance
        self.sectors = sectors

    @property
    def apothem(self) -> float:
        """Distance from a site to the edge of its hexagon"""
        return self.isd / 2.0

    @property
    def cell_radius(self) -> float:
        """Distance from a site to a corner of its hexagon"""
        return self.apothem * 2.0 / math.sqrt(3.0)

    def site_positions(self, num_sites: int, height: float) -> List[Vector3D]:
        """Centres of the first `num_sites` hexagons, ring by ring"""
        positions = [Vector3D(0.0, 0.0, height)]
        ring = 1
        while len(positions) < num_sites:
            q, r = -ring, ring  # start corner of the ring
            for direction in _HEX_DIRECTIONS:
                for _ in range(ring):
                    positions.append(self._axial_to_cartesian(q, r, height))
                    q += direction[0]
                    r += direction[1]
            ring += 1
        return positions[:num_sites]

    def _axial_to_cartesian(self, q: int, r: int, height: float) -> Vector3D:
        x = self.isd * (q + r / 2.0)
        y = self.isd * (r * math.sqrt(3.0) / 2.0)
        return Vector3D(x, y, height)

    def bearing(self, sector: int) -> float:
        if self.sectors == 1:
            return 0.0
        return 30.0 + 360.0 * sector / self.sectors

    def contains(self, site: Vector3D, point: Vector3D) -> bool:
        """Whether `point` lies inside the hexagon of `site`"""
        dx = point.x - site.x
        dy = point.y - site.y
        for angle in (0.0, math.pi / 3.0, 2.0 * math.pi / 3.0):
            if abs(dx * math.cos(angle) + dy * math.sin(angle)) > self.apothem:
                return False
        return True

    def random_point_in_cell(self, site: Vector3D, height: float,
                             rng: np.random.Generator) -> Vector3D:
        """Uniform drop inside the hexagon (rejection sampling on the bounding box)"""
        while True:
            x = site.x + rng.uniform(-self.apothem, self.apothem)
            y = site.y + rng.uniform(-self.cell_radius, self.cell_radius)
            candidate = Vector3D(x, y, height)
            if self.contains(site, candidate):
                return candidate


class TopologyGenerator:
    """
    Builds the experiment scenario.

    The grid drop is random (topology stream); the override and velocity
    steps that follow are fully deterministic functions of the UE index.
    """

    def __init__(self, rng: np.random.Generator, initial_speed: float = 30.0):
        self.rng = rng
        self.initial_speed = initial_speed

    def create_scenario(self, num_terminals: int, num_base_stations: int,
                        inter_site_distance: float, ut_height: float,
                        bs_height: float, sectors: int = 1,
                        apply_overrides: bool = True) -> Scenario:
        """
        Create the hexagonal scenario with mobility.

        Args:
            num_terminals: Number of UEs
            num_base_stations: Number of gNB cells (sites * sectors)
            inter_site_distance: ISD in meters
            ut_height: UE antenna height in meters
            bs_height: gNB antenna height in meters
            sectors: Cells per site
            apply_overrides: Apply the zig-zag position and velocity steps

        Returns:
            Scenario with exactly `num_terminals` terminals
        """
        if num_terminals < 1:
            raise ConfigurationError(f"Number of UEs must be positive, got {num_terminals}")
        if num_base_stations < 1:
            raise ConfigurationError(f"Number of gNBs must be positive, got {num_base_stations}")

        layout = HexagonalGridLayout(inter_site_distance, sectors)
        num_sites = int(math.ceil(num_base_stations / sectors))
        sites = layout.site_positions(num_sites, bs_height)

        base_stations = []
        for bs_id in range(num_base_stations):
            site_id, sector = divmod(bs_id, sectors)
            base_stations.append(BaseStation(
                bs_id=bs_id,
                site_id=site_id,
                sector=sector,
                position=sites[site_id],
                bearing=layout.bearing(sector)
            ))

        terminals = []
        for ue_id in range(num_terminals):
            cell = ue_id % num_base_stations
            site = sites[base_stations[cell].site_id]
            position = layout.random_point_in_cell(site, ut_height, self.rng)
            mobility = ConstantVelocityMobilityModel(position, Vector3D(self.initial_speed, 0.0, 0.0))
            terminals.append(Terminal(ue_id=ue_id, mobility=mobility, serving_cell_hint=cell))
            logger.info(f"UE [{ue_id}] dropped at ({position.x:.2f}, {position.y:.2f}, {position.z:.2f})")

        scenario = Scenario(
            base_stations=base_stations,
            terminals=terminals,
            inter_site_distance=inter_site_distance,
            sectors=sectors,
            ut_height=ut_height,
            bs_height=bs_height
        )
        logger.info(f"Number of UEs: {len(terminals)}, Number of gNBs: {len(base_stations)}")

        if apply_overrides:
            self.apply_position_overrides(scenario)
            self.assign_velocities(scenario)
        return scenario

    def apply_position_overrides(self, scenario: Scenario):
        for terminal in scenario.terminals:
            position = terminal_override_position(terminal.ue_id, scenario.ut_height)
            terminal.override_position(position)
            print(f"UE [{terminal.ue_id}] position set to "
                  f"({position.x:.2f}, {position.y:.2f}, {position.z:.2f})")

    def assign_velocities(self, scenario: Scenario):
        for terminal in scenario.terminals:
            terminal.assign_velocity(zigzag_velocity(terminal.ue_id))
