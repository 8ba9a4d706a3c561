"""
HTTP control service that supervises the relay and client processes.
"""

from __future__ import annotations

from .process import ManagedProcess
from .server import ProcessSupervisor, create_app

__all__ = ["ManagedProcess", "ProcessSupervisor", "create_app"]
