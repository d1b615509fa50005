"""
Setup/run phase separation shared by the experiment components.
"""

from .errors import SimulationPhaseError


class SetupPhase:
    """Open while the experiment is being assembled; closed once the clock starts."""

    def __init__(self):
        self.closed = False

    def close(self):
        self.closed = True

    def check(self, operation: str):
        if self.closed:
            raise SimulationPhaseError(f"{operation} is a setup operation and the simulation already started")
