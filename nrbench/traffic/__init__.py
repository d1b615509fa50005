"""
Traffic applications and flow setup
"""

from .gaming import GamingTrafficClient, NgmnGamingProfile, UdpSink
from .orchestrator import Flow, TrafficOrchestrator

__all__ = [
    'GamingTrafficClient',
    'NgmnGamingProfile',
    'UdpSink',
    'Flow',
    'TrafficOrchestrator',
]
