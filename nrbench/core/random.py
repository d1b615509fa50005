"""
Seeded random-number streams for reproducible experiments.

A single (seed, run) pair is split into independent per-entity sub-streams.
Each sub-stream is addressed by an integer index handed out in a fixed order
by a RandomStreamAllocator, so identical seed, run and entity counts always
produce identical draws.
"""

import logging
from typing import Dict, Optional

import numpy as np

from .errors import ConfigurationError, SimulationPhaseError

logger = logging.getLogger(__name__)

TOPOLOGY_STREAM = 0


class RngSeedManager:
    """Holds the global seed and run number and hands out per-stream generators."""

    def __init__(self):
        self.seed: Optional[int] = None
        self.run: Optional[int] = None
        self._generators: Dict[int, np.random.Generator] = {}

    @property
    def is_seeded(self) -> bool:
        return self.seed is not None and self.run is not None

    def set_seed(self, seed: int, run: int):
        """Apply seed and run number. Allowed exactly once."""
        if self.is_seeded:
            raise SimulationPhaseError(
                f"Seed already applied (seed={self.seed}, run={self.run})")
        if seed < 1:
            raise ConfigurationError(f"Seed must be a positive integer, got {seed}")
        if run < 0:
            raise ConfigurationError(f"Run number must be non-negative, got {run}")
        self.seed = seed
        self.run = run
        logger.info(f"RNG seeded with seed={seed}, run={run}")

    def generator(self, stream: int) -> np.random.Generator:
        """Return the generator bound to a stream index (created on first use)."""
        if not self.is_seeded:
            raise SimulationPhaseError("Random streams requested before seeding")
        if stream < 0:
            raise ValueError(f"Stream index must be non-negative, got {stream}")

        if stream not in self._generators:
            sequence = np.random.SeedSequence(entropy=self.seed, spawn_key=(self.run, stream))
            self._generators[stream] = np.random.Generator(np.random.PCG64(sequence))
        return self._generators[stream]

    def reset(self):
        """Forget all generators (used at teardown)."""
        self._generators.clear()


class RandomStreamAllocator:
    """
    Monotonically increasing stream-offset counter.

    Entities claim a contiguous block of stream indices; the allocator never
    hands out the same index twice.
    """

    def __init__(self, start: int = 1):
        if start <= TOPOLOGY_STREAM:
            raise ValueError(f"Stream {TOPOLOGY_STREAM} is reserved for topology placement")
        self.next_stream = start
        self.assignments: Dict[str, int] = {}

    def allocate(self, owner: str, count: int = 1) -> int:
        """Reserve `count` consecutive streams for `owner` and return the first one."""
        if count < 1:
            raise ValueError("At least one stream must be allocated")
        first = self.next_stream
        self.next_stream += count
        self.assignments[owner] = first
        return first
