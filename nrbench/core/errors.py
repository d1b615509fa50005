"""
Error types raised by the experiment setup and lifecycle.
"""


class ConfigurationError(ValueError):
    """Invalid or unsupported experiment configuration detected during setup."""


class SimulationPhaseError(RuntimeError):
    """An operation was attempted in the wrong phase of the experiment lifecycle."""
