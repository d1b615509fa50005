"""
Network module for NR simulations.

This module implements the channel models, the gNB/UE devices and the
IP fabric between the remote host and the terminals.
"""

from .amc import Amc, ErrorModel, lookup_error_model
from .band import OperationBand
from .channel import ChannelModelConfigurator, SpectrumChannel, build_spectrum_channel
from .fabric import CoreNetwork, NetworkFabricBuilder, NodeList
from .gnb import GnbDevice
from .provisioning import DeviceProvisioner, attach_to_closest_gnb
from .ue import UeDevice

__all__ = ['Amc', 'ErrorModel', 'lookup_error_model', 'OperationBand', 'ChannelModelConfigurator',
           'SpectrumChannel', 'build_spectrum_channel', 'CoreNetwork', 'NetworkFabricBuilder',
           'NodeList', 'GnbDevice', 'UeDevice', 'DeviceProvisioner', 'attach_to_closest_gnb']
