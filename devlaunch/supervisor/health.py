import asyncio
import logging
import requests
from devlaunch.errors import HealthCheckTimeout

log = logging.getLogger(__name__)

# Anything that routes the request counts as up, including 4xx answers.
HEALTHY_STATUS_MIN = 200
HEALTHY_STATUS_MAX = 500  # exclusive
MIN_ATTEMPT_TIMEOUT = 0.05  # seconds


def is_healthy_status(status_code: int) -> bool:
    """Returns True for status codes in [200, 500)."""
    return HEALTHY_STATUS_MIN <= status_code < HEALTHY_STATUS_MAX


def _probe_once(url: str, timeout: float) -> int:
    """Issues a single GET request on its own session and returns the status code."""
    with requests.Session() as session:
        # The probe always targets the local machine.
        session.trust_env = False
        with session.get(url, timeout=timeout) as response:
            return response.status_code


async def wait_for_health(
    url: str,
    timeout: float = 30.0,
    interval: float = 1.0,
    attempt_timeout: float = 2.0,
) -> int:
    """
    Polls a health endpoint until it answers with a status in [200, 500).

    Failed attempts (bad status, connection error, no answer within the
    per-attempt timeout) are retried every `interval` seconds until `timeout`
    seconds have passed since the first attempt. Each attempt is capped at
    `attempt_timeout` and at the time left in the window, so a hung connection
    cannot hold the wait open past the window.

    Requests run in the default executor so the event loop keeps serving the
    children's output while the probe waits. Every attempt uses its own
    session, since a timed-out attempt may still be running in its thread.

    :param url: The endpoint to poll.
    :param timeout: Overall window in seconds.
    :param interval: Delay between attempts in seconds.
    :param attempt_timeout: Upper bound for a single request in seconds.
    :return: The number of attempts made.
    :raises HealthCheckTimeout: If the window elapsed without a healthy answer.
    """
    loop = asyncio.get_running_loop()
    start = loop.time()
    attempts = 0
    while True:
        attempts += 1
        remaining = timeout - (loop.time() - start)
        per_attempt = max(min(attempt_timeout, remaining), MIN_ATTEMPT_TIMEOUT)
        try:
            status_code = await asyncio.wait_for(
                loop.run_in_executor(None, _probe_once, url, per_attempt),
                timeout=per_attempt,
            )
        except asyncio.TimeoutError:
            reason = f"no answer within {per_attempt:.2f}s"
        except requests.RequestException as e:
            reason = f"{type(e).__name__}: {e}"
        else:
            if is_healthy_status(status_code):
                log.debug(f"Health endpoint {url} answered {status_code} after {attempts} attempt(s).")
                return attempts
            reason = f"status {status_code}"

        if loop.time() - start >= timeout:
            raise HealthCheckTimeout(url, timeout, attempts)

        log.debug(f"Health probe attempt {attempts} failed ({reason}). Retrying in {interval:g}s...")
        await asyncio.sleep(interval)
