#!/usr/bin/env python3
"""
Campaign runner: repeats the channel-model experiment over several seeds and
run numbers and collects each run's traces in its own folder.

Usage:
    python run_multi_sim.py
    python run_multi_sim.py --start-seed 100 --end-seed 102 --runs-per-seed 2
    python run_multi_sim.py --config scenarios/threegpp_nlos_campaign.json
"""

import argparse
import logging
import os
import sys
from dataclasses import replace

import jsonschema
import yaml

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from nrbench.core.config import CampaignConfig, ExperimentConfig
from nrbench.core.errors import ConfigurationError
from nrbench.simulation.campaign import Campaign
from nrbench.utils.config_parser import ConfigParser
from run_simulation import describe_error, validate_config


def parse_arguments(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description='Multi-seed NR channel-model campaign')
    parser.add_argument('--config', '-c', type=str,
                        help='Configuration file with an optional "campaign" section')
    parser.add_argument('--start-seed', type=int, help='First seed (inclusive)')
    parser.add_argument('--end-seed', type=int, help='Last seed (exclusive)')
    parser.add_argument('--runs-per-seed', type=int, help='Run numbers 1..N for every seed')
    parser.add_argument('--channelModel', type=str, help='Channel model for every run')
    parser.add_argument('--channelConditionModel', type=str,
                        help='Channel condition model for every run')
    parser.add_argument('--simTime', type=float, help='Simulation time in seconds')
    parser.add_argument('--output-dir', type=str, help='Root folder of the per-run results')
    return parser.parse_args(argv)


def build_campaign_config(args) -> CampaignConfig:
    campaign = ConfigParser.load_campaign_config(args.config) if args.config else CampaignConfig()
    base = campaign.base_config or ExperimentConfig()
    base = ConfigParser.apply_overrides(base, {
        'channel_model': args.channelModel,
        'channel_condition_model': args.channelConditionModel,
        'simulation_time': args.simTime,
    })

    overrides = {
        'start_seed': args.start_seed,
        'end_seed': args.end_seed,
        'runs_per_seed': args.runs_per_seed,
        'output_directory': args.output_dir,
    }
    values = {k: v for k, v in overrides.items() if v is not None}
    validate_config(base)
    return replace(campaign, base_config=base, **values)


def main(argv=None):
    """Main entry point."""
    args = parse_arguments(argv)
    logging.basicConfig(level=logging.WARNING,
                        format='%(asctime)s %(name)s %(levelname)s: %(message)s')

    try:
        campaign = Campaign(build_campaign_config(args))
    except (ConfigurationError, ValueError, FileNotFoundError, yaml.YAMLError,
            jsonschema.ValidationError) as e:
        print(f"Error: {describe_error(e)}")
        sys.exit(1)

    try:
        campaign.execute()
    except ConfigurationError as e:
        print(f"Error: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nCampaign interrupted by user")
        sys.exit(1)

    print(campaign.summary().to_string(index=False))
    print(f"\nAll simulations completed. Results are in {campaign.config.output_directory}/")


if __name__ == '__main__':
    main()
