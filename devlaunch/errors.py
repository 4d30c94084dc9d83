"""
Exceptions raised by the launcher.

Fatal errors (InstallError, SpawnFailure) abort the launch with exit code 1.
CommandError and HealthCheckTimeout are logged and the startup continues.
"""
from pathlib import Path
from typing import Optional


class LauncherError(Exception):
    """Base class for all launcher errors."""


def _describe_exit(code: Optional[int], signal: Optional[str]) -> str:
    if signal:
        return f"signal {signal}"
    return f"code {code}"


class InstallError(LauncherError):
    """The dependency install command exited unsuccessfully."""

    def __init__(self, directory: Path, code: Optional[int], signal: Optional[str] = None) -> None:
        self.directory = directory
        self.code = code
        self.signal = signal
        super().__init__(f"install failed in {directory} with {_describe_exit(code, signal)}")


class CommandError(LauncherError):
    """A named one-shot command exited unsuccessfully."""

    def __init__(self, name: str, code: Optional[int], signal: Optional[str] = None) -> None:
        self.name = name
        self.code = code
        self.signal = signal
        super().__init__(f"{name} failed with {_describe_exit(code, signal)}")


class HealthCheckTimeout(LauncherError):
    """The health endpoint did not answer acceptably within the window."""

    def __init__(self, url: str, timeout: float, attempts: int) -> None:
        self.url = url
        self.timeout = timeout
        self.attempts = attempts
        super().__init__(
            f"Timed out waiting for health endpoint {url} after {timeout:g}s ({attempts} attempts)"
        )


class SpawnFailure(LauncherError):
    """The operating system could not create the child process."""

    def __init__(self, name: str, command_line: str, reason: str) -> None:
        self.name = name
        self.command_line = command_line
        super().__init__(f"could not start {name} ({command_line}): {reason}")
