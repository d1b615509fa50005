#!/usr/bin/env python3
"""
Basic channel-model comparison example

Runs the same two-UE deployment once with the Friis model and once with the
3GPP model and compares the resulting flow throughput and delay.
"""

import sys
import os
import logging

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from nrbench.core.config import ExperimentConfig
from nrbench.core.experiment import ExperimentPipeline


def main():
    """Run basic comparison example"""

    # Setup logging
    logging.basicConfig(level=logging.INFO)
    logger = logging.getLogger(__name__)

    logger.info("Starting basic channel-model comparison example")

    base = ExperimentConfig(
        seed=42,
        run=1,
        simulation_time=2.0,  # seconds
        num_ues=2,
        num_gnbs=1,
        write_topology=False
    )

    summary = {}
    for model in ("Friis", "ThreeGpp"):
        config = base.with_overrides(channel_model=model,
                                     output_directory=os.path.join("examples", "results", model))
        result = ExperimentPipeline(config).execute()
        df = result.flow_stats
        summary[model] = (df['throughput_mbps'].mean(), df['mean_delay_ms'].mean())

        logger.info(f"{model}: {result.num_flows} flows, runtime {result.runtime_ms:.0f} ms")
        for _, row in df.iterrows():
            logger.info(f"  Flow {row['flow_id']} -> {row['destination']}: "
                        f"{row['rx_packets']}/{row['tx_packets']} packets, "
                        f"{row['mean_delay_ms']:.3f} ms")

    logger.info("Comparison:")
    for model, (throughput, delay) in summary.items():
        logger.info(f"  {model:>8}: throughput {throughput:.4f} Mbps, delay {delay:.3f} ms")

    logger.info("Basic comparison example completed successfully!")


if __name__ == "__main__":
    main()
