"""
Topology output for the hexagonal deployment.

The gnuplot script is always available; the PNG figure uses matplotlib with
seaborn styling.
"""

import math
import os
import logging
from typing import List, Optional, Tuple

import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import numpy as np
import seaborn as sns

from ..mobility.topology import HexagonalGridLayout, Scenario

logger = logging.getLogger(__name__)


def hexagon_corners(x: float, y: float, inter_site_distance: float) -> List[Tuple[float, float]]:
    """Corners of the pointy-top hexagon of a site, closed (first corner repeated)"""
    radius = HexagonalGridLayout(inter_site_distance).cell_radius
    corners = []
    for k in range(7):
        angle = math.radians(60 * k + 30)
        corners.append((x + radius * math.cos(angle), y + radius * math.sin(angle)))
    return corners


def _sites(scenario: Scenario):
    seen = {}
    for bs in scenario.base_stations:
        seen.setdefault(bs.site_id, bs.position)
    return sorted(seen.items())


def write_gnuplot_topology(scenario: Scenario, path: str, arrow_length: Optional[float] = None):
    """Write the deployment (hexagons, sites, sector bearings, UEs) as a gnuplot script"""
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    if arrow_length is None:
        arrow_length = scenario.inter_site_distance / 4

    pdf_name = os.path.splitext(os.path.basename(path))[0] + ".pdf"
    with open(path, 'w') as f:
        f.write("set term pdf\n")
        f.write(f"set output \"{pdf_name}\"\n")
        f.write("set style arrow 1 lc \"black\" lt 1 head filled\n")
        f.write("set autoscale\n")

        index = 1
        for site_id, position in _sites(scenario):
            corners = hexagon_corners(position.x, position.y, scenario.inter_site_distance)
            points = " to ".join(f"{cx:.2f},{cy:.2f}" for cx, cy in corners)
            f.write(f"set object {index} polygon from {points} front fs empty\n")
            f.write(f"set label \"{site_id + 1}\" at {position.x:.2f},{position.y:.2f} center\n")
            index += 1

        if scenario.sectors > 1:
            for bs in scenario.base_stations:
                dx = arrow_length * math.cos(math.radians(bs.bearing))
                dy = arrow_length * math.sin(math.radians(bs.bearing))
                f.write(f"set arrow from {bs.position.x:.2f},{bs.position.y:.2f} "
                        f"rto {dx:.2f},{dy:.2f} arrowstyle 1\n")

        for terminal in scenario.terminals:
            p = terminal.position
            f.write(f"set object {index} circle at {p.x:.2f},{p.y:.2f} size 2 "
                    f"fc rgb \"blue\" fs solid noborder\n")
            f.write(f"set label \"UE{terminal.ue_id}\" at {p.x:.2f},{p.y + 4:.2f} center font \",6\"\n")
            index += 1

        f.write("plot 1/0 notitle\n")
    logger.info(f"Topology written to {path}")


def plot_topology(scenario: Scenario, path: str, duration: float = 0.0):
    """
    Save a PNG of the deployment.

    Args:
        scenario: Deployment to draw
        path: Output file
        duration: When positive, also draw each UE trajectory over this many seconds
    """
    sns.set_theme(style="whitegrid")
    palette = sns.color_palette("deep")
    fig, ax = plt.subplots(figsize=(8, 8))

    for site_id, position in _sites(scenario):
        corners = np.array(hexagon_corners(position.x, position.y, scenario.inter_site_distance))
        ax.plot(corners[:, 0], corners[:, 1], color='gray', linewidth=1)
        ax.scatter([position.x], [position.y], c=[palette[3]], s=200, marker='^',
                   edgecolors='black', linewidth=1.5, zorder=3)
        ax.annotate(f'Site {site_id + 1}', (position.x, position.y), xytext=(8, 8),
                    textcoords='offset points', fontweight='bold')

    for terminal in scenario.terminals:
        start = terminal.mobility.get_position(0.0)
        ax.scatter([start.x], [start.y], c=[palette[0]], s=40, zorder=3)
        ax.annotate(f'UE {terminal.ue_id}', (start.x, start.y), xytext=(5, -12),
                    textcoords='offset points', fontsize=8)
        if duration > 0:
            end = terminal.mobility.get_position(duration)
            ax.plot([start.x, end.x], [start.y, end.y], color=palette[0], alpha=0.5, linestyle='--')

    ax.set_title('Hexagonal Deployment', fontweight='bold')
    ax.set_xlabel('X Position (m)')
    ax.set_ylabel('Y Position (m)')
    ax.axis('equal')
    fig.tight_layout()
    fig.savefig(path, dpi=150, bbox_inches='tight')
    plt.close(fig)
    logger.info(f"Topology figure saved to {path}")
