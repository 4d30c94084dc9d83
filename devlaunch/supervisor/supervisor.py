import enum
import signal
import asyncio
import logging
from pathlib import Path
from typing import IO, Dict, List, Optional, Tuple

from devlaunch.config import LauncherSettings, load_settings, split_command
from devlaunch.errors import HealthCheckTimeout, LauncherError
from devlaunch.supervisor.health import wait_for_health
from devlaunch.supervisor.process_utils import ProcessHandle, platform_command, spawn_process
from devlaunch.supervisor.setup_runner import ensure_generated, ensure_installed
from devlaunch.supervisor.shutdown import graceful_shutdown_sequence

log = logging.getLogger(__name__)

EXIT_SUCCESS = 0
EXIT_FAILURE = 1

SERVER = "server"
WEB = "web"
HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM)


async def _cancel(task: "asyncio.Future[None]") -> None:
    """Cancels a pending task and waits until it has unwound."""
    if not task.done():
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)


class LauncherState(enum.Enum):
    IDLE = "idle"
    PREPARING_BACKEND = "preparing_backend"
    BACKEND_STARTING = "backend_starting"
    WAITING_HEALTH = "waiting_health"
    PREPARING_FRONTEND = "preparing_frontend"
    FRONTEND_STARTING = "frontend_starting"
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"
    TERMINATED = "terminated"


class Supervisor:
    """
    Starts the backend and frontend of a development environment and keeps
    them alive as a pair.

    The backend is prepared and started first; the frontend follows once the
    backend's health endpoint answers or the health window runs out. From the
    moment the backend runs, an interrupt/terminate signal to the launcher or
    the exit of either child shuts both children down, and run() returns the
    exit code to leave with.
    """

    def __init__(
        self,
        settings: Optional[LauncherSettings] = None,
        stdout: Optional[IO[str]] = None,
        stderr: Optional[IO[str]] = None,
    ) -> None:
        self.settings = settings or load_settings()
        self.stdout = stdout
        self.stderr = stderr
        self.state = LauncherState.IDLE
        self.children: Dict[str, ProcessHandle] = {}
        self.shutdown_signal: Optional[str] = None
        self._shutdown_requested = asyncio.Event()
        self._installed_signals: List[Tuple[signal.Signals, bool, object]] = []
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def server(self) -> Optional[ProcessHandle]:
        return self.children.get(SERVER)

    @property
    def web(self) -> Optional[ProcessHandle]:
        return self.children.get(WEB)

    def _transition(self, state: LauncherState) -> None:
        log.debug(f"State {self.state.name} -> {state.name}")
        self.state = state

    #* --- Lifecycle ---
    async def run(self) -> int:
        """
        Runs the launch sequence and supervises the children until shutdown.

        :return: The exit code for the launcher process.
        """
        try:
            return await self._run()
        except Exception as e:
            log.critical(f"Launcher failed due to an unexpected error: {e}", exc_info=True)
            return await self._shutdown(exit_code=EXIT_FAILURE)
        finally:
            self._remove_signal_handlers()

    async def _run(self) -> int:
        self._transition(LauncherState.PREPARING_BACKEND)
        server_dir = self.settings.SERVER_DIR
        log.info(f"Preparing server in {server_dir}")
        try:
            await ensure_installed(server_dir, self.settings, self.stdout, self.stderr)
            await ensure_generated(server_dir, self.settings, self.stdout, self.stderr)

            self._transition(LauncherState.BACKEND_STARTING)
            log.info(f"Starting server in {server_dir}")
            await self._spawn(SERVER, self.settings.SERVER_COMMAND, server_dir)
        except LauncherError as e:
            log.error(f"Failed to start both services: {e}")
            self._transition(LauncherState.TERMINATED)
            return EXIT_FAILURE

        self._install_signal_handlers()
        startup = asyncio.ensure_future(self._start_frontend())
        try:
            return await self._supervise(startup)
        finally:
            await _cancel(startup)

    async def _start_frontend(self) -> None:
        """Waits for the backend's health, then prepares and starts the frontend."""
        self._transition(LauncherState.WAITING_HEALTH)
        url = self.settings.HEALTH_URL
        log.info(f"Waiting for server health at {url} ...")
        try:
            await wait_for_health(
                url,
                timeout=self.settings.HEALTH_TIMEOUT,
                interval=self.settings.HEALTH_INTERVAL,
                attempt_timeout=self.settings.HEALTH_ATTEMPT_TIMEOUT,
            )
            log.info("Server is healthy, starting web")
        except HealthCheckTimeout as e:
            log.warning(f"Server did not become healthy in time: {e}")
            log.warning("Proceeding to start web anyway. You may want to check the server logs.")

        self._transition(LauncherState.PREPARING_FRONTEND)
        web_dir = self.settings.WEB_DIR
        log.info(f"Preparing web in {web_dir}")
        await ensure_installed(web_dir, self.settings, self.stdout, self.stderr)

        self._transition(LauncherState.FRONTEND_STARTING)
        log.info(f"Starting web in {web_dir}")
        await self._spawn(WEB, self.settings.WEB_COMMAND, web_dir)
        self._transition(LauncherState.RUNNING)

    async def _spawn(self, name: str, command: List[str], cwd: Path) -> ProcessHandle:
        existing = self.children.get(name)
        if existing is not None and existing.is_running:
            raise RuntimeError(f"{name} is already running (PID {existing.pid}).")
        program, args = split_command(command)
        handle = await spawn_process(platform_command(program), args, cwd, name, self.stdout, self.stderr)
        self.children[name] = handle
        return handle

    async def _supervise(self, startup: "asyncio.Future[None]") -> int:
        """
        Waits for the first shutdown trigger: a signal, a child's exit, or a
        fatal error while the frontend is being started.
        """
        shutdown_wait = asyncio.ensure_future(self._shutdown_requested.wait())
        try:
            while True:
                watched = {shutdown_wait, *(child.exited for child in self.children.values())}
                if not startup.done():
                    watched.add(startup)
                done, _ = await asyncio.wait(watched, return_when=asyncio.FIRST_COMPLETED)

                if self._shutdown_requested.is_set():
                    await _cancel(startup)
                    return await self._shutdown(exit_code=EXIT_SUCCESS)

                exited = self._first_exited_child()
                if exited is not None:
                    await _cancel(startup)
                    return await self._shutdown(triggered_by=exited)

                if startup in done:
                    error = startup.exception()
                    if isinstance(error, LauncherError):
                        log.error(f"Failed to start both services: {error}")
                        return await self._shutdown(exit_code=EXIT_FAILURE)
                    if error is not None:
                        raise error
        finally:
            shutdown_wait.cancel()

    def _first_exited_child(self) -> Optional[ProcessHandle]:
        for child in self.children.values():
            if not child.is_running:
                return child
        return None

    async def _shutdown(
        self, triggered_by: Optional[ProcessHandle] = None, exit_code: int = EXIT_SUCCESS
    ) -> int:
        """
        Sends every live child a termination request and waits out the grace window.

        :param triggered_by: The child whose exit started the shutdown, if any.
        :param exit_code: The exit code when no child triggered the shutdown.
        :return: The triggering child's exit code, or `exit_code`.
        """
        self._transition(LauncherState.SHUTTING_DOWN)
        if triggered_by is not None:
            others = [name for name, child in self.children.items() if child is not triggered_by]
            if others:
                log.info(f"exit detected, shutting down {', '.join(others)} (if running)",
                         extra={"tag": triggered_by.name})
            exit_code = triggered_by.exited.result().exit_code

        await graceful_shutdown_sequence(self.children.values(), self.settings.SHUTDOWN_GRACE_PERIOD)
        self._transition(LauncherState.TERMINATED)
        return exit_code

    #* --- Signal Handling ---
    def request_shutdown(self, signal_name: str = "SIGTERM") -> None:
        """Starts a graceful shutdown of both children. Bound to SIGINT/SIGTERM."""
        if self._shutdown_requested.is_set() or self.state in (LauncherState.SHUTTING_DOWN, LauncherState.TERMINATED):
            log.info(f"Received {signal_name} while shutting down, ignoring.")
            return
        log.info(f"Received {signal_name}, shutting down children...")
        self.shutdown_signal = signal_name
        self._shutdown_requested.set()

    def _handle_signal(self, signum: int, frame: object) -> None:
        """signal.signal() fallback for event loops without add_signal_handler (Windows)."""
        self._loop.call_soon_threadsafe(self.request_shutdown, signal.Signals(signum).name)

    def _install_signal_handlers(self) -> None:
        self._loop = asyncio.get_running_loop()
        for sig in HANDLED_SIGNALS:
            try:
                self._loop.add_signal_handler(sig, self.request_shutdown, sig.name)
                self._installed_signals.append((sig, True, None))
            except (NotImplementedError, RuntimeError):
                try:
                    previous = signal.signal(sig, self._handle_signal)
                except ValueError as e:
                    log.debug(f"Cannot handle {sig.name} outside the main thread: {e}")
                    continue
                self._installed_signals.append((sig, False, previous))

    def _remove_signal_handlers(self) -> None:
        while self._installed_signals:
            sig, on_loop, previous = self._installed_signals.pop()
            if on_loop:
                self._loop.remove_signal_handler(sig)
            else:
                signal.signal(sig, previous if previous is not None else signal.SIG_DFL)
