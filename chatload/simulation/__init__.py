"""Session simulation engine: state machine, batch scheduler, room provisioning."""

from .provisioner import RoomProvisioner
from .runner import LoadTestRunner, RunResult
from .scheduler import BatchScheduler, partition_batches
from .session import TERMINAL_STATES, SessionState, SimulatedSession

__all__ = [
    "TERMINAL_STATES",
    "BatchScheduler",
    "LoadTestRunner",
    "RoomProvisioner",
    "RunResult",
    "SessionState",
    "SimulatedSession",
    "partition_batches",
]
