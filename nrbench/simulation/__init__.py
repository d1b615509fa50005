"""
Simulation output module.

This module provides the trace sinks and the per-flow monitor.
"""

from .flow_monitor import FlowMonitor, FlowStats
from .traces import TraceChannel, TraceSink

__all__ = ['FlowMonitor', 'FlowStats', 'TraceChannel', 'TraceSink']
