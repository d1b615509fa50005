"""
Multi-seed campaign: repeats the experiment over a grid of seeds and run
numbers, one output folder per (seed, run).
"""

import os
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import pandas as pd

from ..core.config import CampaignConfig, ExperimentConfig
from ..core.experiment import ExperimentPipeline, ExperimentResult

logger = logging.getLogger(__name__)


@dataclass
class CampaignRun:
    seed: int
    run: int
    folder: str
    result: Optional[ExperimentResult] = None
    missing_files: List[str] = field(default_factory=list)


class Campaign:
    """Loops seeds [start_seed, end_seed) and runs 1..runs_per_seed"""

    def __init__(self, config: CampaignConfig):
        if config.start_seed < 1:
            raise ValueError(f"Seeds must be positive integers, got start_seed={config.start_seed}")
        if config.end_seed <= config.start_seed:
            raise ValueError(f"Empty seed range [{config.start_seed}, {config.end_seed})")
        if config.runs_per_seed < 1:
            raise ValueError(f"runs_per_seed must be positive, got {config.runs_per_seed}")
        self.config = config
        self.base_config = config.base_config or ExperimentConfig()
        self.runs: List[CampaignRun] = []

    def grid(self) -> List[Tuple[int, int]]:
        return [(seed, run)
                for seed in range(self.config.start_seed, self.config.end_seed)
                for run in range(1, self.config.runs_per_seed + 1)]

    def run_folder(self, seed: int, run: int) -> str:
        return os.path.join(self.config.output_directory, f"seed{seed}_run{run}")

    def execute(self) -> List[CampaignRun]:
        os.makedirs(self.config.output_directory, exist_ok=True)
        for seed, run in self.grid():
            print(f">>> Running SEED={seed}, RUN={run}")
            folder = self.run_folder(seed, run)
            experiment_config = self.base_config.with_overrides(seed=seed, run=run,
                                                                output_directory=folder)
            result = ExperimentPipeline(experiment_config).execute()
            campaign_run = CampaignRun(seed=seed, run=run, folder=folder, result=result)
            campaign_run.missing_files = self.check_trace_files(folder)
            self.runs.append(campaign_run)
        return self.runs

    def check_trace_files(self, folder: str) -> List[str]:
        missing = []
        for name in self.config.trace_files:
            if os.path.isfile(os.path.join(folder, name)):
                print(f"  Collected {name} in {folder}/")
            else:
                print(f"  Warning: {name} not found")
                logger.warning(f"{name} missing in {folder}")
                missing.append(name)
        return missing

    def summary(self) -> pd.DataFrame:
        """Mean flow throughput and delay of every (seed, run)"""
        rows = []
        for campaign_run in self.runs:
            df = campaign_run.result.flow_stats if campaign_run.result else pd.DataFrame()
            rows.append({
                'seed': campaign_run.seed,
                'run': campaign_run.run,
                'flows': len(df),
                'mean_throughput_mbps': df['throughput_mbps'].mean() if not df.empty else 0.0,
                'mean_delay_ms': df['mean_delay_ms'].mean() if not df.empty else 0.0,
                'missing_files': len(campaign_run.missing_files),
            })
        return pd.DataFrame(rows)
