"""
Tests for the multi-seed campaign.
"""

import os
import shutil
import sys
import tempfile
import unittest

# Add package root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from nrbench.core.config import CampaignConfig, ExperimentConfig
from nrbench.simulation.campaign import Campaign


class TestCampaign(unittest.TestCase):
    """Test Campaign functionality."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.base = ExperimentConfig(channel_model="Friis", num_ues=1, simulation_time=0.2)

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def make_campaign(self, base=None, **overrides):
        values = dict(start_seed=100, end_seed=101, runs_per_seed=2,
                      output_directory=self.temp_dir, base_config=base or self.base)
        values.update(overrides)
        return Campaign(CampaignConfig(**values))

    def test_grid(self):
        campaign = self.make_campaign(end_seed=102, runs_per_seed=3)
        self.assertEqual(campaign.grid(), [(100, 1), (100, 2), (100, 3),
                                           (101, 1), (101, 2), (101, 3)])

    def test_folder_layout(self):
        campaign = self.make_campaign()
        runs = campaign.execute()
        self.assertEqual([(r.seed, r.run) for r in runs], [(100, 1), (100, 2)])
        for run in runs:
            self.assertEqual(run.folder, os.path.join(self.temp_dir, f"seed100_run{run.run}"))
            self.assertEqual(run.missing_files, [])
            for name in campaign.config.trace_files:
                self.assertTrue(os.path.isfile(os.path.join(run.folder, name)))

    def test_runs_use_their_seed_and_run(self):
        runs = self.make_campaign().execute()
        self.assertEqual(runs[0].result.num_flows, 1)
        self.assertEqual(runs[1].result.num_flows, 1)
        self.assertNotEqual(runs[0].folder, runs[1].folder)

    def test_missing_trace_reported(self):
        base = self.base.with_overrides(write_topology=False)
        with self.assertLogs('nrbench.simulation.campaign', level='WARNING'):
            runs = self.make_campaign(base=base, runs_per_seed=1).execute()
        self.assertEqual(runs[0].missing_files, ["hexagonal-topology.gnuplot"])

    def test_summary(self):
        campaign = self.make_campaign()
        campaign.execute()
        summary = campaign.summary()
        self.assertEqual(len(summary), 2)
        self.assertEqual(list(summary['seed']), [100, 100])
        self.assertEqual(list(summary['flows']), [1, 1])

    def test_empty_seed_range(self):
        with self.assertRaises(ValueError):
            self.make_campaign(start_seed=110, end_seed=110)


if __name__ == '__main__':
    unittest.main()
