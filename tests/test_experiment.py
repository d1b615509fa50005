"""
Tests for the experiment lifecycle and the end-to-end pipeline.
"""

import os
import shutil
import sys
import tempfile
import unittest

import pandas as pd

# Add package root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from nrbench.core.config import ExperimentConfig
from nrbench.core.errors import ConfigurationError, SimulationPhaseError
from nrbench.core.experiment import ExperimentPipeline, ExperimentRunner, ExperimentState
from nrbench.simulation.traces import TraceChannel


class ExperimentTestCase(unittest.TestCase):

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def make_config(self, **overrides):
        values = dict(channel_model="Friis", num_ues=2, num_gnbs=1, simulation_time=0.5,
                      output_directory=self.temp_dir)
        values.update(overrides)
        return ExperimentConfig(**values)


class TestExperimentRunner(ExperimentTestCase):
    """Test ExperimentRunner state machine."""

    def test_double_seed_rejected(self):
        runner = ExperimentRunner(self.make_config())
        runner.seed()
        with self.assertRaises(SimulationPhaseError):
            runner.seed()

    def test_run_before_seed_rejected(self):
        runner = ExperimentRunner(self.make_config())
        with self.assertRaises(SimulationPhaseError):
            runner.run()
        self.assertEqual(runner.state, ExperimentState.CONFIGURED)

    def test_setup_before_seed_rejected(self):
        runner = ExperimentRunner(self.make_config())
        with self.assertRaises(SimulationPhaseError):
            runner.build_topology()

    def test_stage_order_enforced(self):
        runner = ExperimentRunner(self.make_config())
        runner.seed()
        with self.assertRaises(SimulationPhaseError):
            runner.provision_devices()

    def test_states(self):
        pipeline = ExperimentPipeline(self.make_config())
        pipeline.execute(until="traces")
        self.assertEqual(pipeline.runner.state, ExperimentState.SEEDED)
        pipeline.execute(until="run")
        self.assertEqual(pipeline.runner.state, ExperimentState.COMPLETED)
        self.assertIsNotNone(pipeline.runner.runtime_ms)
        pipeline.execute()
        self.assertEqual(pipeline.runner.state, ExperimentState.DESTROYED)


class TestExperimentPipeline(ExperimentTestCase):
    """Test the full channel-model experiment."""

    def test_friis_two_ues(self):
        pipeline = ExperimentPipeline(self.make_config())
        result = pipeline.execute()

        self.assertEqual(pipeline.completed_stages, list(ExperimentPipeline.STAGES))
        self.assertEqual(result.num_flows, 2)
        self.assertEqual(result.associations, {0: 1, 1: 1})
        self.assertTrue((result.flow_stats['tx_packets'] > 0).all())
        self.assertTrue((result.flow_stats['rx_packets'] > 0).all())
        self.assertTrue((result.flow_stats['mean_delay_ms'] >= 10.0).all())

    def test_stream_assignment_order(self):
        result = ExperimentPipeline(self.make_config()).execute()
        self.assertEqual(result.stream_assignments,
                         {'gnb1': 1, 'ue1': 2, 'ue2': 3, 'channel': 4, 'client1': 5, 'client2': 6})

    def test_output_files(self):
        result = ExperimentPipeline(self.make_config()).execute()
        expected = ["Pathloss.txt", "DlDataSinr.txt", "NrDlMacStats.txt",
                    "RxedGnbMacCtrlMsgsTrace.txt", "hexagonal-topology.gnuplot",
                    "channels-example-flows.txt", "flow-stats.csv"]
        for name in expected:
            path = os.path.join(self.temp_dir, name)
            self.assertTrue(os.path.isfile(path), name)
            self.assertIn(path, result.output_files)

    def test_traces_have_rows(self):
        ExperimentPipeline(self.make_config()).execute()
        for channel in TraceChannel:
            with open(os.path.join(self.temp_dir, channel.file_name)) as f:
                lines = f.read().splitlines()
            self.assertEqual(lines[0], channel.header)
            self.assertGreater(len(lines), 1, channel.file_name)

    def test_ctrl_messages_are_harq_and_cqi(self):
        ExperimentPipeline(self.make_config()).execute()
        path = os.path.join(self.temp_dir, TraceChannel.GNB_MAC_CTRL_MSGS.file_name)
        with open(path) as f:
            types = {line.split("\t")[-1] for line in f.read().splitlines()[1:]}
        self.assertEqual(types, {"DL_HARQ", "DL_CQI"})

    def test_flow_report(self):
        ExperimentPipeline(self.make_config()).execute()
        with open(os.path.join(self.temp_dir, "channels-example-flows.txt")) as f:
            report = f.read()
        self.assertEqual(report.count("Flow "), 2)
        self.assertIn("Mean flow throughput:", report)
        self.assertIn("Mean flow delay:", report)
        df = pd.read_csv(os.path.join(self.temp_dir, "flow-stats.csv"))
        self.assertEqual(len(df), 2)

    def test_deterministic_for_same_seed_and_run(self):
        first_dir = os.path.join(self.temp_dir, "a")
        second_dir = os.path.join(self.temp_dir, "b")
        first = ExperimentPipeline(self.make_config(output_directory=first_dir)).execute()
        second = ExperimentPipeline(self.make_config(output_directory=second_dir)).execute()
        pd.testing.assert_frame_equal(first.flow_stats, second.flow_stats)
        for channel in TraceChannel:
            with open(os.path.join(first_dir, channel.file_name)) as f:
                a = f.read()
            with open(os.path.join(second_dir, channel.file_name)) as f:
                b = f.read()
            self.assertEqual(a, b, channel.file_name)

    def test_deterministic_with_channel_draws(self):
        first_dir = os.path.join(self.temp_dir, "a")
        second_dir = os.path.join(self.temp_dir, "b")
        values = dict(channel_model="ThreeGpp", channel_condition_model="Default", simulation_time=0.3)
        first = ExperimentPipeline(self.make_config(output_directory=first_dir, **values)).execute()
        second = ExperimentPipeline(self.make_config(output_directory=second_dir, **values)).execute()
        pd.testing.assert_frame_equal(first.flow_stats, second.flow_stats)
        for channel in (TraceChannel.PATHLOSS, TraceChannel.DL_DATA_PHY):
            with open(os.path.join(first_dir, channel.file_name)) as f:
                a = f.read()
            with open(os.path.join(second_dir, channel.file_name)) as f:
                b = f.read()
            self.assertEqual(a, b, channel.file_name)

    def test_one_flow_per_ue_in_short_run(self):
        # shorter than the 40 ms gaming interval
        result = ExperimentPipeline(self.make_config(num_ues=4, simulation_time=0.01)).execute()
        self.assertEqual(result.num_flows, 4)
        with open(os.path.join(self.temp_dir, "channels-example-flows.txt")) as f:
            self.assertEqual(f.read().count("Flow "), 4)

    def test_phased_array_model(self):
        config = self.make_config(channel_model="ThreeGpp", channel_condition_model="Default",
                                  simulation_time=0.2, num_ues=1)
        result = ExperimentPipeline(config).execute()
        self.assertEqual(result.num_flows, 1)

    def test_unknown_channel_model_never_runs(self):
        pipeline = ExperimentPipeline(self.make_config(channel_model="Rayleigh"))
        with self.assertRaises(ConfigurationError):
            pipeline.execute()
        self.assertEqual(pipeline.completed_stages, ["topology"])
        self.assertEqual(pipeline.runner.state, ExperimentState.SEEDED)
        self.assertIsNone(pipeline.runner.runtime_ms)

    def test_unknown_amc_never_runs(self):
        pipeline = ExperimentPipeline(self.make_config(amc_selection_model="Oracle"))
        with self.assertRaises(ConfigurationError):
            pipeline.execute()
        self.assertEqual(pipeline.completed_stages, ["topology", "channel"])
        self.assertIsNone(pipeline.runner.runtime_ms)

    def test_setup_after_run_rejected(self):
        pipeline = ExperimentPipeline(self.make_config())
        pipeline.execute(until="run")
        runner = pipeline.runner
        with self.assertRaises(SimulationPhaseError):
            runner.create_traffic()
        with self.assertRaises(SimulationPhaseError):
            runner.trace_sink.enable(TraceChannel.PATHLOSS, runner.devices.gnb_devices, runner.channel)
        with self.assertRaises(SimulationPhaseError):
            runner.build_topology()

    def test_unknown_stage(self):
        with self.assertRaises(ValueError):
            ExperimentPipeline(self.make_config()).execute(until="warmup")


if __name__ == '__main__':
    unittest.main()
