"""
The Supervisor package.
Starts the backend and frontend children of a development environment and
manages their lifecycle.

This package contains the central Supervisor class and its helper modules,
which together handle setup commands, spawning, health gating, output
relaying and the shutdown of both children.
"""
from .supervisor import LauncherState, Supervisor

__all__ = ['LauncherState', 'Supervisor']
