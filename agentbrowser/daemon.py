# daemon.py
"""Session daemon: one live browser per session name, reachable over local IPC.

Requests and responses are newline-delimited JSON objects.  Commands on one
connection run strictly in arrival order; separate connections interleave at
whole-command granularity.
"""
import asyncio
import enum
import logging
import os
import signal
import socket
import tempfile
from typing import Any, Dict, Optional, Set

from .constants import SOCKET_PREFIX, TCP_HOST, TCP_PORT_BASE, TCP_PORT_SPAN
from .errors import DaemonError, LifecycleError, transform_error
from .executor import ActionExecutor
from .manager import BrowserManager
from .protocol import LIFECYCLE_ACTIONS, Response, error_response, parse_command, serialize_response
from .state import SessionState

logger = logging.getLogger(__name__)

# Large enough for screenshots and page HTML on a single line
STREAM_LIMIT = 64 * 1024 * 1024


# ---------------------------------------------------------------------------
# Session addressing
# ---------------------------------------------------------------------------

def resolve_socket_dir(socket_dir: Optional[str] = None) -> str:
    return socket_dir or tempfile.gettempdir()


def get_socket_path(session: str, socket_dir: Optional[str] = None) -> str:
    return os.path.join(resolve_socket_dir(socket_dir), f'{SOCKET_PREFIX}-{session}.sock')


def get_pid_file(session: str, socket_dir: Optional[str] = None) -> str:
    return os.path.join(resolve_socket_dir(socket_dir), f'{SOCKET_PREFIX}-{session}.pid')


def get_log_file(session: str, socket_dir: Optional[str] = None) -> str:
    return os.path.join(resolve_socket_dir(socket_dir), f'{SOCKET_PREFIX}-{session}.log')


def string_hash(value: str) -> int:
    """32-bit signed rolling hash, ``h = h * 31 + ord(c)``."""
    h = 0
    for char in value:
        h = ((h << 5) - h + ord(char)) & 0xFFFFFFFF
    return h - 0x100000000 if h & 0x80000000 else h


def get_port_for_session(session: str) -> int:
    return TCP_PORT_BASE + abs(string_hash(session)) % TCP_PORT_SPAN


def use_unix_socket() -> bool:
    return hasattr(socket, 'AF_UNIX')


# ---------------------------------------------------------------------------
# Liveness
# ---------------------------------------------------------------------------

def _remove(path: str):
    try:
        os.remove(path)
    except FileNotFoundError:
        pass


def cleanup_session_files(session: str, socket_dir: Optional[str] = None):
    _remove(get_socket_path(session, socket_dir))
    _remove(get_pid_file(session, socket_dir))


def is_process_alive(pid: int) -> bool:
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists but belongs to someone else
        return True
    except OSError:
        return False
    return True


def read_pid(session: str, socket_dir: Optional[str] = None) -> Optional[int]:
    try:
        with open(get_pid_file(session, socket_dir), 'r') as f:
            return int(f.read().strip())
    except (OSError, ValueError):
        return None


def is_daemon_running(session: str, socket_dir: Optional[str] = None) -> bool:
    """True when the session's pid file names a live process.

    A missing process or an unreadable pid file is stale: both the pid file
    and the channel are removed so the next start is clean.
    """
    pid_file = get_pid_file(session, socket_dir)
    if not os.path.exists(pid_file):
        return False
    pid = read_pid(session, socket_dir)
    if pid is not None and is_process_alive(pid):
        return True
    logger.info(f"Removing stale daemon files for session '{session}' (pid={pid})")
    cleanup_session_files(session, socket_dir)
    return False


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------

class DaemonState(enum.Enum):
    UNLAUNCHED = 'unlaunched'
    LAUNCHED = 'launched'
    CLOSING = 'closing'
    TERMINATED = 'terminated'


TRANSITIONS = {
    DaemonState.UNLAUNCHED: {DaemonState.LAUNCHED, DaemonState.CLOSING},
    DaemonState.LAUNCHED: {DaemonState.CLOSING},
    DaemonState.CLOSING: {DaemonState.TERMINATED},
    DaemonState.TERMINATED: set(),
}


class DaemonLifecycle:
    def __init__(self):
        self.state = DaemonState.UNLAUNCHED

    def can_transition(self, target: DaemonState) -> bool:
        return target in TRANSITIONS[self.state]

    def transition(self, target: DaemonState):
        if not self.can_transition(target):
            raise LifecycleError(f'Illegal daemon transition: {self.state.value} -> {target.value}')
        logger.debug(f"Daemon state {self.state.value} -> {target.value}")
        self.state = target

    @property
    def accepting_commands(self) -> bool:
        return self.state in (DaemonState.UNLAUNCHED, DaemonState.LAUNCHED)


# ---------------------------------------------------------------------------
# Server
# ---------------------------------------------------------------------------

class SessionDaemon:
    def __init__(self, config: Dict[str, Any], browser: Optional[BrowserManager] = None,
                 executor: Optional[ActionExecutor] = None):
        self.config = config
        self.session = config['session']
        self.socket_dir = resolve_socket_dir(config.get('socket_dir'))
        self.state = browser.state if browser is not None else SessionState()
        self.browser = browser or BrowserManager(self.state, config)
        self.executor = executor or ActionExecutor(self.browser, self.state)
        self.lifecycle = DaemonLifecycle()
        self.server: Optional[asyncio.AbstractServer] = None
        self.address: Optional[str] = None
        self._writers: Set[asyncio.StreamWriter] = set()
        self._launch_lock = asyncio.Lock()
        self._closing = asyncio.Event()
        self._terminated = asyncio.Event()

    @property
    def socket_path(self) -> str:
        return get_socket_path(self.session, self.socket_dir)

    @property
    def pid_file(self) -> str:
        return get_pid_file(self.session, self.socket_dir)

    async def start(self):
        if is_daemon_running(self.session, self.socket_dir):
            raise DaemonError(f"Session '{self.session}' is already running")
        os.makedirs(self.socket_dir, exist_ok=True)

        # Liveness marker goes down before the channel opens
        with open(self.pid_file, 'w') as f:
            f.write(str(os.getpid()))

        try:
            if use_unix_socket():
                _remove(self.socket_path)
                self.server = await asyncio.start_unix_server(
                    self._handle_connection, path=self.socket_path, limit=STREAM_LIMIT)
                self.address = self.socket_path
            else:
                port = get_port_for_session(self.session)
                self.server = await asyncio.start_server(
                    self._handle_connection, host=TCP_HOST, port=port, limit=STREAM_LIMIT)
                self.address = f'{TCP_HOST}:{port}'
        except OSError:
            _remove(self.pid_file)
            raise

        self._install_signal_handlers()
        logger.info(f"Daemon for session '{self.session}' listening on {self.address} (pid={os.getpid()})")

    def _install_signal_handlers(self):
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.request_shutdown)
            except (NotImplementedError, RuntimeError, ValueError):
                logger.debug(f"Signal handler for {sig} not installed")

    def request_shutdown(self):
        if not self._closing.is_set():
            logger.info("Shutdown requested")
            self._closing.set()

    async def run(self):
        await self.start()
        await self._closing.wait()
        await self.shutdown()

    async def wait_terminated(self):
        await self._terminated.wait()

    async def ensure_launched(self):
        # Re-checked under the lock so concurrent first commands share one browser
        async with self._launch_lock:
            if self.browser.is_launched():
                return
            logger.info("Auto-launching browser")
            await self.browser.launch(**self.browser.launch_defaults())
        if self.lifecycle.state is DaemonState.UNLAUNCHED:
            self.lifecycle.transition(DaemonState.LAUNCHED)

    async def process_line(self, line: str) -> Response:
        """Parse, auto-launch if needed, and execute one request line."""
        parsed = parse_command(line)
        if not parsed.success:
            logger.warning(f"Rejected request: {parsed.error}")
            return error_response(parsed.id or 'unknown', parsed.error)

        command = parsed.command
        if self._closing.is_set() or not self.lifecycle.accepting_commands:
            return error_response(command.id, 'Daemon is shutting down')

        if command.action not in LIFECYCLE_ACTIONS:
            try:
                await self.ensure_launched()
            except Exception as e:
                error = transform_error(e, action='launch')
                logger.warning(f"Auto-launch failed: {error.describe()}")
                return error_response(command.id, error.describe())

        if command.action == 'launch':
            async with self._launch_lock:
                response = await self.executor.execute(command)
        else:
            response = await self.executor.execute(command)

        if command.action == 'launch' and response.success:
            if self.lifecycle.state is DaemonState.UNLAUNCHED:
                self.lifecycle.transition(DaemonState.LAUNCHED)
        elif command.action == 'close':
            self.request_shutdown()
        return response

    async def _handle_connection(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        self._writers.add(writer)
        logger.debug("Client connected")
        try:
            while not reader.at_eof():
                try:
                    line = await reader.readline()
                except ValueError as e:
                    # readline reports an over-limit line as ValueError
                    logger.warning(f"Request too large: {e}")
                    response = error_response('unknown', f'Request exceeds {STREAM_LIMIT} bytes')
                    writer.write((serialize_response(response) + '\n').encode('utf-8'))
                    await writer.drain()
                    break
                if not line:
                    break
                text = line.decode('utf-8', errors='replace').strip()
                if not text:
                    continue
                response = await self.process_line(text)
                writer.write((serialize_response(response) + '\n').encode('utf-8'))
                await writer.drain()
                if self._closing.is_set():
                    break
        except (ConnectionError, asyncio.IncompleteReadError) as e:
            logger.debug(f"Client connection dropped: {e}")
        finally:
            self._writers.discard(writer)
            writer.close()
            try:
                await writer.wait_closed()
            except (ConnectionError, OSError):
                pass

    async def shutdown(self):
        """Stop listening, release the browser, drop clients, remove the channel and marker.

        Cleanup always runs to the end.  A failure to release the browser is
        raised afterwards as DaemonError.
        """
        if self.lifecycle.state in (DaemonState.CLOSING, DaemonState.TERMINATED):
            await self._terminated.wait()
            return
        self._closing.set()
        self.lifecycle.transition(DaemonState.CLOSING)

        if self.server is not None:
            self.server.close()
            logger.info("Stopped accepting connections")

        release_error = None
        try:
            await self.browser.close()
        except Exception as e:
            logger.exception("Failed to release browser")
            release_error = e

        for writer in list(self._writers):
            writer.close()
        self._writers.clear()

        if self.server is not None:
            try:
                await asyncio.wait_for(self.server.wait_closed(), timeout=5)
            except asyncio.TimeoutError:
                logger.warning("Timed out waiting for connections to close")

        if use_unix_socket():
            _remove(self.socket_path)
        _remove(self.pid_file)
        logger.info("Removed socket and pid file")

        self.lifecycle.transition(DaemonState.TERMINATED)
        self._terminated.set()
        logger.info(f"Daemon for session '{self.session}' terminated")

        if release_error is not None:
            raise DaemonError(f'Browser could not be released: {release_error}') from release_error


def configure_daemon_logging(config: Dict[str, Any], debug: bool = False):
    """Add the per-session log file next to the socket."""
    path = config.get('log_file') or get_log_file(config['session'], config.get('socket_dir'))
    handler = logging.FileHandler(path, encoding='utf-8')
    handler.setFormatter(logging.Formatter('%(asctime)s %(levelname)-5s %(message)s', datefmt='%Y-%m-%d %H:%M:%S'))
    root = logging.getLogger()
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if debug else logging.INFO)
    return path


def run_daemon(config: Dict[str, Any]):
    daemon = SessionDaemon(config)
    asyncio.run(daemon.run())
