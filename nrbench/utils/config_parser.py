"""
Configuration Parser for the NR channel-model experiment

This module handles loading and validation of experiment configuration files
(JSON or YAML) and turns them into ExperimentConfig / CampaignConfig objects.
"""

import json
import logging
from dataclasses import asdict, fields
from pathlib import Path
from typing import Any, Dict

import jsonschema
import yaml

from ..core.config import CampaignConfig, ExperimentConfig

logger = logging.getLogger(__name__)

# file section -> ExperimentConfig fields it may carry
SECTION_FIELDS = {
    "simulation": ("seed", "run", "random_stream", "simulation_time", "traffic_start", "logging",
                   "output_directory", "flow_report_file", "enabled_traces", "write_topology"),
    "topology": ("num_ues", "num_gnbs", "inter_site_distance", "ut_height", "bs_height", "sectors",
                 "ue_speed"),
    "channel": ("channel_model", "channel_condition_model", "scenario", "buildings",
                "ue_antenna_rows", "ue_antenna_columns", "gnb_antenna_rows", "gnb_antenna_columns"),
    "phy": ("central_frequency", "bandwidth", "num_component_carriers", "numerology", "ue_tx_power",
            "gnb_tx_power", "error_model_type", "amc_selection_model", "rlc_max_tx_buffer_size"),
    "traffic": ("dl_port",),
}


class ConfigParser:
    """
    Configuration parser and validator for experiment parameters
    """

    # JSON Schema for configuration validation
    CONFIG_SCHEMA = {
        "type": "object",
        "properties": {
            "simulation": {
                "type": "object",
                "properties": {
                    "seed": {"type": "integer", "minimum": 1},
                    "run": {"type": "integer", "minimum": 0},
                    "random_stream": {"type": "integer", "minimum": 1},
                    "simulation_time": {"type": "number", "exclusiveMinimum": 0},
                    "traffic_start": {"type": "number", "minimum": 0},
                    "logging": {"type": "boolean"},
                    "output_directory": {"type": "string"},
                    "flow_report_file": {"type": "string"},
                    "enabled_traces": {
                        "type": "array",
                        "items": {
                            "type": "string",
                            "enum": ["pathloss", "dl_data_phy", "dl_mac_sched", "gnb_mac_ctrl_msgs"]
                        },
                        "uniqueItems": True
                    },
                    "write_topology": {"type": "boolean"}
                },
                "additionalProperties": False
            },
            "topology": {
                "type": "object",
                "properties": {
                    "num_ues": {"type": "integer", "minimum": 1},
                    "num_gnbs": {"type": "integer", "minimum": 1},
                    "inter_site_distance": {"type": "number", "exclusiveMinimum": 0},
                    "ut_height": {"type": "number", "minimum": 1.0},
                    "bs_height": {"type": "number", "minimum": 1.0},
                    "sectors": {"type": "integer", "enum": [1, 3]},
                    "ue_speed": {"type": "number", "minimum": 0}
                },
                "additionalProperties": False
            },
            "channel": {
                "type": "object",
                "properties": {
                    "channel_model": {"type": "string", "enum": ["ThreeGpp", "NYU", "TwoRay", "Friis"]},
                    "channel_condition_model": {
                        "type": "string",
                        "enum": ["Default", "LOS", "NLOS", "Buildings"]
                    },
                    "scenario": {"type": "string", "enum": ["UMa", "UMi"]},
                    "buildings": {
                        "type": "array",
                        "items": {
                            "type": "array",
                            "items": {"type": "number"},
                            "minItems": 4,
                            "maxItems": 4
                        }
                    },
                    "ue_antenna_rows": {"type": "integer", "minimum": 1},
                    "ue_antenna_columns": {"type": "integer", "minimum": 1},
                    "gnb_antenna_rows": {"type": "integer", "minimum": 1},
                    "gnb_antenna_columns": {"type": "integer", "minimum": 1}
                },
                "additionalProperties": False
            },
            "phy": {
                "type": "object",
                "properties": {
                    "central_frequency": {"type": "number", "minimum": 1e8},
                    "bandwidth": {"type": "number", "minimum": 1e6},
                    "num_component_carriers": {"type": "integer", "minimum": 1},
                    "numerology": {"type": "integer", "minimum": 0, "maximum": 4},
                    "ue_tx_power": {"type": "number"},
                    "gnb_tx_power": {"type": "number"},
                    "error_model_type": {"type": "string"},
                    "amc_selection_model": {"type": "string", "enum": ["ErrorModel", "ShannonModel"]},
                    "rlc_max_tx_buffer_size": {"type": "integer", "minimum": 1}
                },
                "additionalProperties": False
            },
            "traffic": {
                "type": "object",
                "properties": {
                    "dl_port": {"type": "integer", "minimum": 1, "maximum": 65535}
                },
                "additionalProperties": False
            },
            "campaign": {
                "type": "object",
                "properties": {
                    "start_seed": {"type": "integer", "minimum": 1},
                    "end_seed": {"type": "integer", "minimum": 1},
                    "runs_per_seed": {"type": "integer", "minimum": 1},
                    "output_directory": {"type": "string"}
                },
                "additionalProperties": False
            }
        },
        "additionalProperties": False
    }

    @classmethod
    def read_file(cls, config_path: str) -> Dict[str, Any]:
        """
        Read and validate a JSON or YAML configuration file

        Raises:
            FileNotFoundError: If config file doesn't exist
            json.JSONDecodeError: If JSON is invalid
            yaml.YAMLError: If YAML is invalid
            jsonschema.ValidationError: If config doesn't match schema
        """
        config_file = Path(config_path)

        if not config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        logger.info(f"Loading configuration from {config_path}")

        with open(config_file, 'r') as f:
            if config_file.suffix in (".yaml", ".yml"):
                try:
                    config_data = yaml.safe_load(f) or {}
                except yaml.YAMLError as e:
                    logger.error(f"Invalid YAML in configuration file: {e}")
                    raise
            else:
                try:
                    config_data = json.load(f)
                except json.JSONDecodeError as e:
                    logger.error(f"Invalid JSON in configuration file: {e}")
                    raise

        cls.validate(config_data)
        logger.info("Configuration loaded and validated successfully")
        return config_data

    @classmethod
    def validate(cls, config_data: Dict[str, Any]):
        try:
            jsonschema.validate(config_data, cls.CONFIG_SCHEMA)
        except jsonschema.ValidationError as e:
            logger.error(f"Configuration validation error: {e.message}")
            raise

    @classmethod
    def load_config(cls, config_path: str) -> ExperimentConfig:
        """
        Load an experiment configuration

        Args:
            config_path: Path to a .json, .yaml or .yml file

        Returns:
            ExperimentConfig object; missing values keep their defaults
        """
        return cls.dict_to_config(cls.read_file(config_path))

    @classmethod
    def load_campaign_config(cls, config_path: str) -> CampaignConfig:
        config_data = cls.read_file(config_path)
        campaign = dict(config_data.get("campaign", {}))
        return CampaignConfig(base_config=cls.dict_to_config(config_data), **campaign)

    @classmethod
    def dict_to_config(cls, config_data: Dict[str, Any]) -> ExperimentConfig:
        """Convert a validated configuration dictionary to an ExperimentConfig"""
        values = {}
        for section, names in SECTION_FIELDS.items():
            section_data = config_data.get(section, {})
            for name in names:
                if name in section_data:
                    values[name] = section_data[name]

        # dataclass is frozen and hashable: sequences become tuples
        if "buildings" in values:
            values["buildings"] = tuple(tuple(float(v) for v in box) for box in values["buildings"])
        if "enabled_traces" in values:
            values["enabled_traces"] = tuple(values["enabled_traces"])
        return ExperimentConfig(**values)

    @classmethod
    def config_to_dict(cls, config: ExperimentConfig) -> Dict[str, Any]:
        """Inverse of dict_to_config, grouped by section"""
        flat = asdict(config)
        result = {}
        for section, names in SECTION_FIELDS.items():
            result[section] = {}
            for name in names:
                value = flat[name]
                if isinstance(value, tuple):
                    value = [list(v) if isinstance(v, tuple) else v for v in value]
                result[section][name] = value
        return result

    @classmethod
    def create_default_config(cls, output_path: str = "config_template.json"):
        """Create a default configuration file template"""
        default_config = cls.config_to_dict(ExperimentConfig())
        default_config["campaign"] = {
            "start_seed": 100,
            "end_seed": 110,
            "runs_per_seed": 3,
            "output_directory": "./sim_results"
        }

        try:
            with open(output_path, 'w') as f:
                if output_path.endswith((".yaml", ".yml")):
                    yaml.safe_dump(default_config, f, sort_keys=False)
                else:
                    json.dump(default_config, f, indent=2)
            logger.info(f"Default configuration template created: {output_path}")
        except IOError as e:
            logger.error(f"Failed to create configuration template: {e}")
            raise

    @classmethod
    def validate_config_file(cls, config_path: str) -> bool:
        """
        Validate configuration file without running anything

        Returns:
            True if valid, False otherwise
        """
        try:
            cls.load_config(config_path)
            return True
        except (OSError, ValueError, TypeError, yaml.YAMLError, jsonschema.ValidationError) as e:
            logger.error(f"Configuration validation failed: {e}")
            return False

    @classmethod
    def get_scenario_configs(cls) -> Dict[str, Dict]:
        """Predefined comparison scenarios"""
        scenarios = {
            "threegpp_default": {
                "simulation": {"simulation_time": 10.0, "output_directory": "results/threegpp_default"},
                "channel": {"channel_model": "ThreeGpp", "channel_condition_model": "Default"},
            },
            "threegpp_nlos_campaign": {
                "simulation": {"simulation_time": 10.0},
                "channel": {"channel_model": "ThreeGpp", "channel_condition_model": "NLOS"},
                "campaign": {"start_seed": 100, "end_seed": 110, "runs_per_seed": 3,
                             "output_directory": "./sim_results"},
            },
            "nyu_los": {
                "simulation": {"simulation_time": 10.0, "output_directory": "results/nyu_los"},
                "channel": {"channel_model": "NYU", "channel_condition_model": "LOS"},
            },
            "tworay_buildings": {
                "simulation": {"simulation_time": 10.0, "output_directory": "results/tworay_buildings"},
                "channel": {
                    "channel_model": "TwoRay",
                    "channel_condition_model": "Buildings",
                    "buildings": [[60.0, 80.0, -50.0, -10.0], [90.0, 110.0, 10.0, 50.0]]
                },
            },
            "friis_two_ues": {
                "simulation": {"simulation_time": 10.0, "output_directory": "results/friis_two_ues"},
                "topology": {"num_ues": 2, "num_gnbs": 1},
                "channel": {"channel_model": "Friis"},
            },
        }
        return scenarios

    @classmethod
    def create_scenario_configs(cls, output_dir: str = "scenarios"):
        """Create all predefined scenario configuration files"""
        output_path = Path(output_dir)
        output_path.mkdir(parents=True, exist_ok=True)

        for scenario_name, config in cls.get_scenario_configs().items():
            config_file = output_path / f"{scenario_name}.json"
            try:
                with open(config_file, 'w') as f:
                    json.dump(config, f, indent=2)
                logger.info(f"Created scenario config: {config_file}")
            except IOError as e:
                logger.error(f"Failed to create scenario {scenario_name}: {e}")
                raise

    @classmethod
    def merge_configs(cls, base_config: Dict, override_config: Dict) -> Dict:
        """Merge section by section; values of `override_config` win"""
        merged = dict(base_config)
        for key, value in override_config.items():
            if isinstance(value, dict) and isinstance(merged.get(key), dict):
                merged[key] = cls.merge_configs(merged[key], value)
            else:
                merged[key] = value
        return merged

    @classmethod
    def apply_overrides(cls, config: ExperimentConfig, overrides: Dict[str, Any]) -> ExperimentConfig:
        """Replace fields of `config` with the non-None values of `overrides` (e.g. CLI flags)"""
        known = {f.name for f in fields(ExperimentConfig)}
        unknown = set(overrides) - known
        if unknown:
            raise ValueError(f"Unknown configuration fields: {', '.join(sorted(unknown))}")
        override_sections = {}
        for section, names in SECTION_FIELDS.items():
            values = {name: overrides[name] for name in names if overrides.get(name) is not None}
            if values:
                override_sections[section] = values
        if not override_sections:
            return config
        merged = cls.merge_configs(cls.config_to_dict(config), override_sections)
        return cls.dict_to_config(merged)
