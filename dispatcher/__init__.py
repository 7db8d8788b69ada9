"""
Field Dispatch package.
Appointment suggestions, conflict detection and technician assignment for field service.
"""

__version__ = "0.1.0"

from .service import DispatchService
from .models import *
from .schemas import *

__all__ = [
    "DispatchService"
]
