import sys
import codecs
import signal
import asyncio
import logging
import psutil
from pathlib import Path
from typing import IO, NamedTuple, Optional, Sequence, Union

from devlaunch.errors import SpawnFailure

log = logging.getLogger(__name__)

READ_CHUNK_SIZE = 4096
MAX_PARTIAL_LINE = READ_CHUNK_SIZE * 16
STREAM_LIMIT = 2 ** 16
RELAY_DRAIN_TIMEOUT = 0.5  # seconds to wait for buffered output after exit


#* --- Output Relay ---
class OutputRelay:
    """
    Writes each line of a child's output stream to a sink, prefixed with
    '[<name>] '.

    Chunks are split on '\\n' (a trailing '\\r' is dropped, so '\\r\\n' works
    too) and empty lines are skipped. A trailing partial line is kept until the
    next chunk or until flush(), so a line split across two reads is written once.
    A partial line longer than MAX_PARTIAL_LINE (progress output redrawn with
    bare '\\r') is written as it stands.
    """

    def __init__(self, name: str, sink: IO[str]) -> None:
        self.name = name
        self.sink = sink
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._partial = ""

    def feed(self, chunk: Union[bytes, str]) -> None:
        """Consumes a chunk of output and writes every completed line."""
        text = self._decoder.decode(chunk) if isinstance(chunk, bytes) else chunk
        *lines, self._partial = (self._partial + text).split("\n")
        for line in lines:
            self._write_line(line)
        if len(self._partial) > MAX_PARTIAL_LINE:
            self._write_line(self._partial)
            self._partial = ""

    def flush(self) -> None:
        """Writes the buffered partial line, if any. Called at end of stream."""
        remainder = self._partial + self._decoder.decode(b"", final=True)
        self._partial = ""
        self._write_line(remainder)

    def _write_line(self, line: str) -> None:
        if line.endswith("\r"):
            line = line[:-1]
        if not line:
            return
        try:
            self.sink.write(f"[{self.name}] {line}\n")
            self.sink.flush()
        except (OSError, ValueError) as e:
            # Sink closed or broken, e.g. the launcher's stdout pipe went away.
            log.debug(f"Dropping output line from {self.name}: {e}")


async def relay_stream(stream: Optional[asyncio.StreamReader], relay: OutputRelay) -> None:
    """Reads a child's pipe until EOF, feeding every chunk to the relay."""
    if stream is None:
        return
    try:
        while True:
            chunk = await stream.read(READ_CHUNK_SIZE)
            if not chunk:
                break
            relay.feed(chunk)
    finally:
        relay.flush()


#* --- Process Status ---
class ExitStatus(NamedTuple):
    """How a child ended: exactly one of `code` and `signal` is set."""
    code: Optional[int]
    signal: Optional[str]

    @classmethod
    def from_returncode(cls, returncode: int) -> "ExitStatus":
        """Builds a status from an asyncio returncode (negative for signals)."""
        if returncode < 0:
            try:
                name = signal.Signals(-returncode).name
            except ValueError:
                name = f"SIG{-returncode}"
            return cls(None, name)
        return cls(returncode, None)

    @property
    def exit_code(self) -> int:
        """The code to propagate: the exit code, or 0 for a signalled child."""
        return self.code if self.code is not None else 0

    def describe(self) -> str:
        if self.signal is not None:
            return f"exited by signal {self.signal}"
        return f"exited with code {self.code}"


class ExitWatchProtocol(asyncio.subprocess.SubprocessStreamProtocol):
    """
    Stream protocol that resolves `returncode` as soon as the child exits.

    Process.wait() only returns once every pipe is closed, which a grandchild
    holding stdout/stderr can postpone indefinitely.
    """

    def __init__(self, limit: int, loop: asyncio.AbstractEventLoop) -> None:
        super().__init__(limit=limit, loop=loop)
        self.returncode: "asyncio.Future[int]" = loop.create_future()
        self._subprocess_transport: Optional[asyncio.SubprocessTransport] = None

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        super().connection_made(transport)
        self._subprocess_transport = transport

    def process_exited(self) -> None:
        # Read before the base class closes the transport.
        if not self.returncode.done():
            self.returncode.set_result(self._subprocess_transport.get_returncode())
        super().process_exited()


class ProcessHandle:
    """
    A spawned child process together with its output relays.

    `exited` is a future resolved exactly once with the child's ExitStatus
    when the child itself exits, after its remaining output has been relayed
    (for at most RELAY_DRAIN_TIMEOUT seconds).
    """

    def __init__(
        self,
        name: str,
        process: asyncio.subprocess.Process,
        protocol: ExitWatchProtocol,
        cwd: Path,
        command_line: str,
        stdout_relay: OutputRelay,
        stderr_relay: OutputRelay,
    ) -> None:
        self.name = name
        self.process = process
        self.protocol = protocol
        self.cwd = cwd
        self.command_line = command_line
        self.exited: "asyncio.Future[ExitStatus]" = asyncio.get_running_loop().create_future()
        self._relay_tasks = [
            asyncio.ensure_future(relay_stream(process.stdout, stdout_relay)),
            asyncio.ensure_future(relay_stream(process.stderr, stderr_relay)),
        ]
        self._watcher = asyncio.ensure_future(self._watch())

    def __repr__(self) -> str:
        return f"<ProcessHandle {self.name} pid={self.pid} running={self.is_running}>"

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def is_running(self) -> bool:
        return not self.exited.done()

    async def _watch(self) -> None:
        returncode = await self.protocol.returncode
        # Grandchildren may keep the pipes open after the child itself is gone.
        await asyncio.wait(self._relay_tasks, timeout=RELAY_DRAIN_TIMEOUT)
        status = ExitStatus.from_returncode(returncode)
        log.info(status.describe(), extra={"tag": self.name})
        if not self.exited.done():
            self.exited.set_result(status)

    async def wait(self) -> ExitStatus:
        """Waits for the child to exit and returns how it ended."""
        return await asyncio.shield(self.exited)

    def terminate(self) -> bool:
        """
        Sends SIGTERM to the child and to every process it spawned.

        Safe to call repeatedly and after the child has exited: errors from a
        redundant request are logged at DEBUG and never raised.

        :return: True if a termination request was delivered to the child.
        """
        if self.process.returncode is not None:
            log.debug(f"{self.name} (PID {self.pid}) already exited, skipping termination.")
            return False

        # The shell may have forked the real tool; collect its tree first.
        try:
            descendants = psutil.Process(self.pid).children(recursive=True)
        except psutil.Error:
            descendants = []

        try:
            self.process.terminate()
        except ProcessLookupError:
            log.debug(f"{self.name} (PID {self.pid}) no longer exists, skipping termination.")
            return False

        for proc in descendants:
            try:
                proc.terminate()
            except psutil.NoSuchProcess:
                continue
            except psutil.Error as e:
                log.debug(f"Could not terminate descendant {proc.pid} of {self.name}: {e}")
        log.debug(f"Sent SIGTERM to {self.name} (PID {self.pid}) and {len(descendants)} descendants.")
        return True


#* --- Process Creation ---
def platform_command(command: str) -> str:
    """Returns the platform-specific name for a command: 'yarn' is 'yarn.cmd' on Windows."""
    if sys.platform == "win32" and not Path(command).suffix:
        return f"{command}.cmd"
    return command


def build_command_line(command: str, args: Sequence[object]) -> str:
    """Joins a command and its arguments into one shell command line."""
    return " ".join([command, *(str(arg) for arg in args)])


async def spawn_process(
    command: str,
    args: Sequence[object],
    cwd: Union[str, Path],
    name: str,
    stdout: Optional[IO[str]] = None,
    stderr: Optional[IO[str]] = None,
) -> ProcessHandle:
    """
    Starts a child through the system shell and relays its output.

    The child inherits the launcher's environment. Its stdout and stderr are
    relayed line by line, prefixed with its name, to the launcher's own
    stdout and stderr (or the given sinks).

    :param command: The program to run. Shell syntax is honored.
    :param args: Arguments appended to the command line.
    :param cwd: Working directory of the child.
    :param name: The logical name used as output prefix (e.g. 'server').
    :raises SpawnFailure: If the operating system could not create the process.
    """
    cwd = Path(cwd)
    command_line = build_command_line(command, args)
    log.debug(f"Starting process: {name} ({command_line}) in {cwd}")
    loop = asyncio.get_running_loop()
    try:
        transport, protocol = await loop.subprocess_shell(
            lambda: ExitWatchProtocol(limit=STREAM_LIMIT, loop=loop),
            command_line,
            cwd=str(cwd),
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        log.critical(f"Failed to start process '{name}': {e}")
        raise SpawnFailure(name, command_line, str(e)) from e

    handle = ProcessHandle(
        name,
        asyncio.subprocess.Process(transport, protocol, loop),
        protocol,
        cwd,
        command_line,
        OutputRelay(name, stdout or sys.stdout),
        OutputRelay(name, stderr or sys.stderr),
    )
    log.debug(f"{name} started with PID: {handle.pid}")
    return handle
