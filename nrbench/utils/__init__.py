"""
Utility modules for NR simulations.

This module provides configuration parsing and topology output.
"""

from .config_parser import ConfigParser
from .visualization import plot_topology, write_gnuplot_topology

__all__ = ['ConfigParser', 'plot_topology', 'write_gnuplot_topology']
