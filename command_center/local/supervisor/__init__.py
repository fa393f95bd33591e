"""
The Supervisor package.
Manages the lifecycle of the managed service processes.

This package contains the Supervisor class and its helper modules, which together
handle spawning, liveness probing, PID persistence and termination.
"""
from .supervisor import Supervisor, ServiceStatus, OperationResult
from .persistence import ProcessRegistry
from .process_utils import SpawnSpec

__all__ = ['Supervisor', 'ServiceStatus', 'OperationResult', 'ProcessRegistry', 'SpawnSpec']
