import asyncio
import logging
from pathlib import Path
from typing import IO, Optional, Sequence, Union

from devlaunch.config import LauncherSettings, load_settings, split_command
from devlaunch.errors import CommandError, InstallError, LauncherError
from devlaunch.supervisor.process_utils import platform_command, spawn_process

log = logging.getLogger(__name__)

INSTALLER_NAME = "installer"


def marker_exists(directory: Union[str, Path], marker: Union[str, Path]) -> bool:
    """Checks whether a setup step's completion marker exists in `directory`."""
    return (Path(directory) / marker).exists()


async def run_command_await(
    command: str,
    args: Sequence[object],
    cwd: Union[str, Path],
    name: str,
    stdout: Optional[IO[str]] = None,
    stderr: Optional[IO[str]] = None,
) -> None:
    """
    Runs one named command to completion.

    :raises CommandError: If the command exits with a non-zero code or a signal.
    :raises SpawnFailure: If the command could not be started.
    """
    handle = await spawn_process(platform_command(command), args, cwd, name, stdout, stderr)
    try:
        status = await handle.wait()
    except asyncio.CancelledError:
        handle.terminate()
        raise
    if status.code != 0:
        raise CommandError(name, status.code, status.signal)


async def ensure_installed(
    directory: Union[str, Path],
    settings: Optional[LauncherSettings] = None,
    stdout: Optional[IO[str]] = None,
    stderr: Optional[IO[str]] = None,
) -> None:
    """
    Installs the dependencies of `directory` unless its install marker exists.

    The install command runs once, with no retry. The marker is produced by
    the install command itself and never written here.

    :param directory: The project directory to prepare.
    :param settings: Launcher settings providing INSTALL_MARKER and INSTALL_COMMAND.
    :raises InstallError: If the install command exits unsuccessfully.
    """
    settings = settings or load_settings()
    directory = Path(directory)
    if marker_exists(directory, settings.INSTALL_MARKER):
        log.debug(f"Dependencies already installed in {directory}, skipping install.")
        return

    log.info(f"installing dependencies in {directory} ...", extra={"tag": INSTALLER_NAME})
    command, args = split_command(settings.INSTALL_COMMAND)
    try:
        await run_command_await(command, args, directory, INSTALLER_NAME, stdout, stderr)
    except CommandError as e:
        raise InstallError(directory, e.code, e.signal) from e


async def ensure_generated(
    directory: Union[str, Path],
    settings: Optional[LauncherSettings] = None,
    stdout: Optional[IO[str]] = None,
    stderr: Optional[IO[str]] = None,
) -> bool:
    """
    Runs the code generation step of `directory` unless its artifact exists.

    Failures are logged and never raised: the server may still start against
    a previously generated artifact.

    :return: True if the generated artifact exists afterwards.
    """
    settings = settings or load_settings()
    directory = Path(directory)
    if marker_exists(directory, settings.GENERATED_MARKER):
        log.debug(f"Generated artifact {settings.GENERATED_MARKER} present, skipping generation.")
        return True

    step = settings.GENERATE_STEP_NAME
    command, args = split_command(settings.GENERATE_COMMAND)
    log.info(f"{settings.GENERATED_MARKER} not found, running `{' '.join(settings.GENERATE_COMMAND)}`...",
             extra={"tag": INSTALLER_NAME})
    try:
        await run_command_await(command, args, directory, step, stdout, stderr)
    except LauncherError as e:
        log.warning(f"{step} failed or was skipped: {e}", extra={"tag": INSTALLER_NAME})
        return marker_exists(directory, settings.GENERATED_MARKER)

    log.info(f"{step} finished", extra={"tag": INSTALLER_NAME})
    return marker_exists(directory, settings.GENERATED_MARKER)
