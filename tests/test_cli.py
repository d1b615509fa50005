"""
Tests for the command-line entry points.
"""

import json
import os
import shutil
import sys
import tempfile
import unittest
from contextlib import redirect_stdout
from io import StringIO

# Add package root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

import run_simulation
import run_multi_sim


class TestRunSimulation(unittest.TestCase):
    """Test run_simulation.py argument handling."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def run_main(self, *argv):
        output = StringIO()
        with redirect_stdout(output), self.assertRaises(SystemExit) as ctx:
            run_simulation.main(list(argv))
        return ctx.exception.code, output.getvalue()

    def test_unknown_channel_model_exits_before_running(self):
        code, output = self.run_main("--channelModel=Rayleigh", f"--output-dir={self.temp_dir}")
        self.assertEqual(code, 1)
        self.assertIn("Invalid channel model: Rayleigh", output)
        self.assertNotIn("Simulation runtime", output)
        self.assertEqual(os.listdir(self.temp_dir), [])

    def test_unknown_amc_model_exits(self):
        code, output = self.run_main("--amcSelectionModel=Oracle", f"--output-dir={self.temp_dir}")
        self.assertEqual(code, 1)
        self.assertIn("Unrecognized AMC model", output)

    def write_config(self, content):
        path = os.path.join(self.temp_dir, "config.json")
        with open(path, "w") as f:
            json.dump(content, f)
        return path

    def test_schema_invalid_config_file_exits(self):
        path = self.write_config({"channel": {"channel_model": "Rayleigh"}})
        code, output = self.run_main(f"--config={path}", f"--output-dir={self.temp_dir}")
        self.assertEqual(code, 1)
        self.assertIn("Error: Invalid configuration at channel.channel_model", output)
        self.assertNotIn("Starting GSoC NR Channel Models Example", output)

    def test_unreadable_config_files_exit(self):
        broken = os.path.join(self.temp_dir, "broken.json")
        with open(broken, "w") as f:
            f.write("{ invalid json }")
        for path in (broken, os.path.join(self.temp_dir, "missing.json")):
            code, output = self.run_main(f"--config={path}")
            self.assertEqual(code, 1)
            self.assertIn("Error:", output)

    def test_invalid_seed_exits_before_running(self):
        code, output = self.run_main("--seed=0", f"--output-dir={self.temp_dir}")
        self.assertEqual(code, 1)
        self.assertIn("Error: Seed must be a positive integer, got 0", output)
        self.assertNotIn("Starting GSoC NR Channel Models Example", output)

    def test_invalid_run_exits_before_running(self):
        code, output = self.run_main("--run=-1", f"--output-dir={self.temp_dir}")
        self.assertEqual(code, 1)
        self.assertIn("Error: Run number must be non-negative, got -1", output)

    def test_flags_override_file_values(self):
        path = self.write_config({"topology": {"num_ues": 3, "num_gnbs": 2},
                                  "channel": {"channel_model": "NYU"}})
        args = run_simulation.parse_arguments([f"--config={path}", "--ueNum=1"])
        config = run_simulation.build_config(args)
        self.assertEqual(config.num_ues, 1)
        self.assertEqual(config.num_gnbs, 2)
        self.assertEqual(config.channel_model, "NYU")

    def test_create_and_validate_config(self):
        path = os.path.join(self.temp_dir, "template.yaml")
        code, output = self.run_main(f"--create-config={path}")
        self.assertEqual(code, 0)
        self.assertTrue(os.path.isfile(path))
        code, output = self.run_main(f"--config={path}", "--validate-config")
        self.assertEqual(code, 0)
        self.assertIn("is valid", output)
        invalid = self.write_config({"topology": {"sectors": 2}})
        code, output = self.run_main(f"--config={invalid}", "--validate-config")
        self.assertEqual(code, 1)
        self.assertIn("is invalid", output)

    def test_flags_override_defaults(self):
        args = run_simulation.parse_arguments(["--seed=7", "--run=3", "--ueNum=2", "--logging=false",
                                               "--frequency=28e9", "--channelModel=Friis"])
        config = run_simulation.build_config(args)
        self.assertEqual((config.seed, config.run, config.num_ues), (7, 3, 2))
        self.assertFalse(config.logging)
        self.assertEqual(config.central_frequency, 28e9)
        self.assertEqual(config.channel_model, "Friis")
        # unset flags keep the defaults
        self.assertEqual(config.num_gnbs, 1)

    def test_parse_bool(self):
        self.assertTrue(run_simulation.parse_bool("true"))
        self.assertTrue(run_simulation.parse_bool("1"))
        self.assertFalse(run_simulation.parse_bool("False"))

    def test_short_run(self):
        code, output = self.run_main("--channelModel=Friis", "--ueNum=1", "--simTime=0.2",
                                     f"--output-dir={self.temp_dir}", "--logging=false")
        self.assertEqual(code, 0)
        self.assertIn("Starting GSoC NR Channel Models Example", output)
        self.assertIn("Simulation runtime:", output)
        self.assertTrue(os.path.isfile(os.path.join(self.temp_dir, "channels-example-flows.txt")))


class TestRunMultiSim(unittest.TestCase):
    """Test run_multi_sim.py argument handling."""

    def run_main(self, *argv):
        output = StringIO()
        with redirect_stdout(output), self.assertRaises(SystemExit) as ctx:
            run_multi_sim.main(list(argv))
        return ctx.exception.code, output.getvalue()

    def test_schema_invalid_config_file_exits(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            path = os.path.join(temp_dir, "campaign.json")
            with open(path, "w") as f:
                json.dump({"campaign": {"runs_per_seed": 0}}, f)
            code, output = self.run_main(f"--config={path}", f"--output-dir={temp_dir}")
            self.assertEqual(code, 1)
            self.assertIn("Error: Invalid configuration at campaign.runs_per_seed", output)
            self.assertEqual(os.listdir(temp_dir), ["campaign.json"])

    def test_invalid_seed_range_exits(self):
        code, output = self.run_main("--start-seed=0", "--end-seed=2")
        self.assertEqual(code, 1)
        self.assertIn("Error: Seeds must be positive integers", output)

    def test_unknown_channel_model_exits(self):
        code, output = self.run_main("--channelModel=Rayleigh")
        self.assertEqual(code, 1)
        self.assertIn("Invalid channel model: Rayleigh", output)

    def test_campaign_flags(self):
        args = run_multi_sim.parse_arguments(["--start-seed=5", "--end-seed=7", "--runs-per-seed=1",
                                              "--channelModel=NYU", "--output-dir=out"])
        config = run_multi_sim.build_campaign_config(args)
        self.assertEqual((config.start_seed, config.end_seed, config.runs_per_seed), (5, 7, 1))
        self.assertEqual(config.output_directory, "out")
        self.assertEqual(config.base_config.channel_model, "NYU")

    def test_defaults(self):
        config = run_multi_sim.build_campaign_config(run_multi_sim.parse_arguments([]))
        self.assertEqual((config.start_seed, config.end_seed, config.runs_per_seed), (100, 110, 3))
        self.assertEqual(config.output_directory, "./sim_results")


if __name__ == '__main__':
    unittest.main()
