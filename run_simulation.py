#!/usr/bin/env python3
"""
Main simulation runner for the NR channel-model comparison experiment.

This script builds one hexagonal deployment, selects a channel model and
condition model, drives gaming downlink traffic and writes the traces and
flow statistics to the output directory.

Usage:
    python run_simulation.py --channelModel=Friis --ueNum=2
    python run_simulation.py --create-scenarios scenarios
    python run_simulation.py --config scenarios/threegpp_default.json --seed=101 --run=2
    python run_simulation.py --help
"""

import argparse
import json
import logging
import os
import sys

import jsonschema
import yaml

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from nrbench.core.config import ExperimentConfig
from nrbench.core.errors import ConfigurationError
from nrbench.core.experiment import ExperimentPipeline
from nrbench.network.amc import lookup_error_model, parse_amc_model
from nrbench.network.channel import parse_channel_condition, parse_channel_model
from nrbench.utils.config_parser import ConfigParser
from nrbench.utils.visualization import plot_topology


def parse_bool(value: str) -> bool:
    """Accept the usual command-line spellings of a boolean"""
    lowered = str(value).strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    raise argparse.ArgumentTypeError(f"Invalid boolean value: {value}")


def parse_arguments(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description='NR channel-model comparison experiment',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s --channelModel=ThreeGpp --channelConditionModel=Default
  %(prog)s --channelModel=Friis --ueNum=2 --simTime=2
  %(prog)s --config scenarios/nyu_los.json --output-dir results/nyu
        """
    )

    parser.add_argument('--config', '-c', type=str,
                        help='Configuration file path (JSON or YAML)')

    # Experiment parameters, each overriding the configuration file
    parser.add_argument('--seed', type=int, help='Seed of the random number generators')
    parser.add_argument('--run', type=int, help='Run number of the random number generators')
    parser.add_argument('--channelModel', type=str,
                        help='Channel model: ThreeGpp, NYU, TwoRay or Friis')
    parser.add_argument('--channelConditionModel', type=str,
                        help='Channel condition model: Default, LOS, NLOS or Buildings')
    parser.add_argument('--ueNum', type=int, help='Number of UEs')
    parser.add_argument('--gNbNum', type=int, help='Number of gNBs')
    parser.add_argument('--frequency', type=float, help='Central frequency in Hz')
    parser.add_argument('--logging', type=parse_bool, help='Enable logging (true/false)')
    parser.add_argument('--errorModelType', type=str,
                        help='Error model type, e.g. ns3::NrEesmCcT1')
    parser.add_argument('--amcSelectionModel', type=str,
                        help='AMC selection: ErrorModel or ShannonModel')
    parser.add_argument('--simTime', type=float, help='Simulation time in seconds')
    parser.add_argument('--scenario', type=str, help='Deployment scenario: UMa or UMi')
    parser.add_argument('--output-dir', type=str, help='Directory for traces and reports')
    parser.add_argument('--plot-topology', action='store_true',
                        help='Also save the deployment as a PNG figure')
    parser.add_argument('--create-scenarios', type=str, metavar='DIR',
                        help='Write the predefined scenario files to DIR and exit')
    parser.add_argument('--create-config', type=str, metavar='PATH',
                        help='Write a configuration template (JSON or YAML) to PATH and exit')
    parser.add_argument('--validate-config', action='store_true',
                        help='Only validate the --config file and exit')

    return parser.parse_args(argv)


def build_config(args) -> ExperimentConfig:
    """Load the configuration file, if any, and apply the command-line overrides."""
    config = ConfigParser.load_config(args.config) if args.config else ExperimentConfig()
    return ConfigParser.apply_overrides(config, {
        'seed': args.seed,
        'run': args.run,
        'channel_model': args.channelModel,
        'channel_condition_model': args.channelConditionModel,
        'num_ues': args.ueNum,
        'num_gnbs': args.gNbNum,
        'central_frequency': args.frequency,
        'logging': args.logging,
        'error_model_type': args.errorModelType,
        'amc_selection_model': args.amcSelectionModel,
        'simulation_time': args.simTime,
        'scenario': args.scenario,
        'output_directory': args.output_dir,
    })


def validate_config(config: ExperimentConfig):
    """Reject unsupported selections before anything is built."""
    parse_channel_model(config.channel_model)
    parse_channel_condition(config.channel_condition_model)
    parse_amc_model(config.amc_selection_model)
    lookup_error_model(config.error_model_type)
    if config.seed < 1:
        raise ConfigurationError(f"Seed must be a positive integer, got {config.seed}")
    if config.run < 0:
        raise ConfigurationError(f"Run number must be non-negative, got {config.run}")
    if config.num_ues < 1 or config.num_gnbs < 1:
        raise ConfigurationError(f"Need at least one UE and one gNB, got {config.num_ues} UEs "
                                 f"and {config.num_gnbs} gNBs")


def describe_error(error) -> str:
    """One-line description of a configuration loading error"""
    if isinstance(error, jsonschema.ValidationError):
        location = ".".join(str(p) for p in error.absolute_path)
        return f"Invalid configuration{' at ' + location if location else ''}: {error.message}"
    return str(error)


def setup_logging(enabled: bool):
    logging.basicConfig(level=logging.WARNING,
                        format='%(asctime)s %(name)s %(levelname)s: %(message)s')
    logging.getLogger('nrbench').setLevel(logging.INFO if enabled else logging.WARNING)


def run_experiment(config: ExperimentConfig, plot: bool = False) -> bool:
    """Run one experiment with the given configuration."""
    print("Starting GSoC NR Channel Models Example")
    print(f"Channel model: {config.channel_model}")
    print(f"Channel condition model: {config.channel_condition_model}")
    print(f"Number of UEs: {config.num_ues}")
    print(f"Number of gNBs: {config.num_gnbs}")
    print(f"Central frequency: {config.central_frequency / 1e9} GHz")

    os.makedirs(config.output_directory, exist_ok=True)
    pipeline = ExperimentPipeline(config)
    try:
        pipeline.execute(until="traces")
        if plot:
            path = os.path.join(config.output_directory, "hexagonal-topology.png")
            plot_topology(pipeline.runner.scenario, path, config.simulation_time)
            print(f"Topology figure saved to: {path}")
        result = pipeline.execute()
    except ConfigurationError as e:
        print(f"Error: {e}")
        return False
    except KeyboardInterrupt:
        print("\nSimulation interrupted by user")
        return False

    print(f"Flows: {result.num_flows}")
    if result.num_flows:
        print(f"  Mean flow throughput: {result.flow_stats['throughput_mbps'].mean():.6f}")
        print(f"  Mean flow delay: {result.flow_stats['mean_delay_ms'].mean():.6f}")
    print(f"Results saved to: {config.output_directory}")
    return True


def main(argv=None):
    """Main entry point."""
    args = parse_arguments(argv)

    if args.create_scenarios:
        ConfigParser.create_scenario_configs(args.create_scenarios)
        print(f"Scenario configurations written to: {args.create_scenarios}")
        sys.exit(0)

    if args.create_config:
        ConfigParser.create_default_config(args.create_config)
        print(f"Configuration template written to: {args.create_config}")
        sys.exit(0)

    if args.validate_config:
        if not args.config:
            print("Error: --validate-config needs --config")
            sys.exit(1)
        valid = ConfigParser.validate_config_file(args.config)
        print(f"Configuration {args.config} is {'valid' if valid else 'invalid'}")
        sys.exit(0 if valid else 1)

    try:
        config = build_config(args)
        validate_config(config)
    except (ConfigurationError, FileNotFoundError, json.JSONDecodeError, yaml.YAMLError,
            jsonschema.ValidationError) as e:
        print(f"Error: {describe_error(e)}")
        sys.exit(1)

    setup_logging(config.logging)
    success = run_experiment(config, plot=args.plot_topology)
    sys.exit(0 if success else 1)


if __name__ == '__main__':
    main()
