"""
Tests for device provisioning and UE attachment.
"""

import unittest
import sys
import os

import simpy

# Add package root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from nrbench.core.config import ExperimentConfig
from nrbench.core.errors import ConfigurationError, SimulationPhaseError
from nrbench.core.phase import SetupPhase
from nrbench.core.random import TOPOLOGY_STREAM, RandomStreamAllocator, RngSeedManager
from nrbench.mobility.mobility_models import Vector3D
from nrbench.mobility.topology import TopologyGenerator
from nrbench.network.band import OperationBand
from nrbench.network.channel import ChannelModelConfigurator, build_spectrum_channel
from nrbench.network.fabric import CoreNetwork, NetworkFabricBuilder, NodeList
from nrbench.network.provisioning import (DeviceProvisioner, attach_to_closest_gnb,
                                          closest_gnb_index)


class ProvisioningFixture:
    """Topology, channel and provisioner for one seeded configuration"""

    def __init__(self, config):
        self.config = config
        self.env = simpy.Environment()
        self.rng_manager = RngSeedManager()
        self.rng_manager.set_seed(config.seed, config.run)
        self.streams = RandomStreamAllocator(config.random_stream)
        self.node_list = NodeList()
        self.phase = SetupPhase()
        generator = TopologyGenerator(self.rng_manager.generator(TOPOLOGY_STREAM))
        self.scenario = generator.create_scenario(config.num_ues, config.num_gnbs,
                                                  config.inter_site_distance, config.ut_height,
                                                  config.bs_height)
        self.band = OperationBand.contiguous(config.central_frequency, config.bandwidth)
        channel_config = ChannelModelConfigurator().configure(config.channel_model,
                                                              config.channel_condition_model)
        self.channel = build_spectrum_channel(channel_config, self.band)
        self.provisioner = DeviceProvisioner(self.env, config, self.rng_manager, self.streams,
                                             self.node_list, self.phase)

    def provision(self):
        return self.provisioner.provision(self.scenario, self.channel, self.band)

    def address(self, devices):
        core = CoreNetwork(self.env, self.node_list)
        builder = NetworkFabricBuilder(self.env, self.node_list, phase=self.phase)
        builder.build_fabric(core)
        builder.assign_ue_addresses(core, devices.ue_devices)
        return core


class TestDeviceProvisioner(unittest.TestCase):
    """Test DeviceProvisioner functionality."""

    def test_device_counts_and_cell_ids(self):
        fixture = ProvisioningFixture(ExperimentConfig(num_ues=3, num_gnbs=2))
        devices = fixture.provision()
        self.assertEqual(len(devices.gnb_devices), 2)
        self.assertEqual(len(devices.ue_devices), 3)
        self.assertEqual([g.cell_id for g in devices.gnb_devices], [1, 2])
        self.assertEqual([u.imsi for u in devices.ue_devices], [1, 2, 3])
        self.assertFalse(devices.fixed_mcs_dl)
        self.assertFalse(devices.fixed_mcs_ul)

    def test_streams_gnbs_first_then_ues(self):
        fixture = ProvisioningFixture(ExperimentConfig(num_ues=2, num_gnbs=2, random_stream=1))
        devices = fixture.provision()
        self.assertEqual([g.stream for g in devices.gnb_devices], [1, 2])
        self.assertEqual([u.stream for u in devices.ue_devices], [3, 4])
        self.assertEqual(devices.stream_assignments, {'gnb1': 1, 'gnb2': 2, 'ue1': 3, 'ue2': 4})
        self.assertEqual(fixture.streams.next_stream, 5)

    def test_streams_start_at_configured_offset(self):
        fixture = ProvisioningFixture(ExperimentConfig(num_ues=1, num_gnbs=1, random_stream=10))
        devices = fixture.provision()
        self.assertEqual(devices.gnb_devices[0].stream, 10)
        self.assertEqual(devices.ue_devices[0].stream, 11)

    def test_unknown_error_model_builds_nothing(self):
        fixture = ProvisioningFixture(ExperimentConfig(num_ues=1, error_model_type="ns3::Bogus"))
        with self.assertRaises(ConfigurationError):
            fixture.provision()
        self.assertEqual(fixture.node_list.nodes, [])
        self.assertFalse(fixture.scenario.frozen)

    def test_unknown_amc_model(self):
        fixture = ProvisioningFixture(ExperimentConfig(num_ues=1, amc_selection_model="Oracle"))
        with self.assertRaises(ConfigurationError):
            fixture.provision()

    def test_scenario_frozen_after_provisioning(self):
        fixture = ProvisioningFixture(ExperimentConfig(num_ues=1))
        fixture.provision()
        self.assertTrue(fixture.scenario.frozen)
        with self.assertRaises(ConfigurationError):
            fixture.scenario.terminals[0].override_position(Vector3D(0.0, 0.0, 1.5))

    def test_provision_after_run_start(self):
        fixture = ProvisioningFixture(ExperimentConfig(num_ues=1))
        fixture.phase.close()
        with self.assertRaises(SimulationPhaseError):
            fixture.provision()


class TestAttachment(unittest.TestCase):
    """Test closest-gNB attachment."""

    def test_attach_before_addressing_rejected(self):
        fixture = ProvisioningFixture(ExperimentConfig(num_ues=2))
        devices = fixture.provision()
        with self.assertRaises(SimulationPhaseError):
            attach_to_closest_gnb(devices.ue_devices, devices.gnb_devices)

    def test_attach_single_gnb(self):
        fixture = ProvisioningFixture(ExperimentConfig(num_ues=3, num_gnbs=1))
        devices = fixture.provision()
        fixture.address(devices)
        associations = attach_to_closest_gnb(devices.ue_devices, devices.gnb_devices)
        self.assertEqual(associations, {0: 1, 1: 1, 2: 1})
        self.assertEqual([u.rnti for u in devices.ue_devices], [1, 2, 3])
        self.assertTrue(all(u.is_attached() for u in devices.ue_devices))

    def test_attach_to_nearest(self):
        # site 1 of the first ring is at (-100, 173); UE 0 at (10, 20) is closer to the origin
        fixture = ProvisioningFixture(ExperimentConfig(num_ues=1, num_gnbs=2))
        devices = fixture.provision()
        fixture.address(devices)
        associations = attach_to_closest_gnb(devices.ue_devices, devices.gnb_devices)
        self.assertEqual(associations, {0: 1})

    def test_tie_goes_to_lowest_index(self):
        fixture = ProvisioningFixture(ExperimentConfig(num_ues=1, num_gnbs=3, sectors=1))
        devices = fixture.provision()
        # co-located gNBs are all at the same distance
        for gnb in devices.gnb_devices:
            gnb.base_station.mobility.position = Vector3D(0.0, 0.0, 25.0)
        self.assertEqual(closest_gnb_index(devices.ue_devices[0], devices.gnb_devices), 0)

    def test_ue_addresses(self):
        fixture = ProvisioningFixture(ExperimentConfig(num_ues=2))
        devices = fixture.provision()
        fixture.address(devices)
        self.assertEqual([str(u.address) for u in devices.ue_devices], ["7.0.0.2", "7.0.0.3"])


if __name__ == '__main__':
    unittest.main()
