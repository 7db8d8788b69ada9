"""
Error types raised at the service boundary.
The scheduling engine itself returns empty results instead of raising.
"""

from typing import List, Optional


class DispatchError(Exception):
    """Base error for dispatch operations."""


class JobNotFoundError(DispatchError):
    def __init__(self, job_id: str):
        super().__init__(f"Job {job_id} not found")
        self.job_id = job_id


class TechnicianNotFoundError(DispatchError):
    def __init__(self, tech_id: str):
        super().__init__(f"Technician {tech_id} not found")
        self.tech_id = tech_id


class InvalidTransitionError(DispatchError):
    def __init__(self, job_id: str, current: str, target: str):
        super().__init__(f"Job {job_id} cannot move from {current} to {target}")
        self.job_id = job_id
        self.current = current
        self.target = target


class AssignmentConflictError(DispatchError):
    """Raised when a commit is blocked by hard conflicts."""

    def __init__(self, job_id: str, conflicts: Optional[List] = None):
        self.job_id = job_id
        self.conflicts = conflicts or []
        messages = "; ".join(c.message for c in self.conflicts) or "hard conflict"
        super().__init__(f"Cannot assign job {job_id}: {messages}")


class ConfigurationError(DispatchError):
    """Raised when a runtime override would leave the configuration invalid."""
