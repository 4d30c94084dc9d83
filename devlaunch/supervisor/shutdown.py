import asyncio
import logging
from typing import Iterable, List

from devlaunch.supervisor.process_utils import ProcessHandle

log = logging.getLogger(__name__)


def terminate_processes(handles: Iterable[ProcessHandle]) -> List[ProcessHandle]:
    """
    Sends a termination request to every child that is still running.

    :param handles: The children to stop.
    :return: The children that were sent a request.
    """
    signalled = []
    for handle in handles:
        if not handle.is_running:
            continue
        log.debug(f"Sending SIGTERM to {handle.name} (PID {handle.pid})")
        if handle.terminate():
            signalled.append(handle)
    return signalled


async def wait_for_exit(handles: Iterable[ProcessHandle], timeout: float) -> List[ProcessHandle]:
    """
    Waits up to `timeout` seconds for the given children to exit.

    :return: The children still running when the timeout expired.
    """
    handles = list(handles)
    pending = [handle.exited for handle in handles if handle.is_running]
    if pending:
        await asyncio.wait(pending, timeout=timeout)
    return [handle for handle in handles if handle.is_running]


async def graceful_shutdown_sequence(handles: Iterable[ProcessHandle], grace_period: float) -> None:
    """
    Runs the shutdown sequence for the given children.

    Every running child gets one termination request, then the children are
    given `grace_period` seconds to exit. Children still running afterwards
    are reported and left alone; the launcher exits regardless.

    :param handles: The children to shut down.
    :param grace_period: Seconds to wait for the children to exit.
    """
    handles = list(handles)
    terminate_processes(handles)

    alive = await wait_for_exit(handles, grace_period)
    for handle in alive:
        log.warning(
            f"{handle.name} (PID {handle.pid}) did not exit within {grace_period:g}s. Exiting anyway."
        )
