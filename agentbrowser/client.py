# client.py
import asyncio
import itertools
import json
import logging
import os
import subprocess
import sys
from typing import Any, Dict, List, Optional, Union

from .constants import CLIENT_TIMEOUT, DAEMON_POLL_INTERVAL, DAEMON_START_TIMEOUT, READY_PROBE_TIMEOUT, TCP_HOST
from .daemon import STREAM_LIMIT, get_port_for_session, get_socket_path, is_daemon_running, use_unix_socket
from .errors import DaemonError

logger = logging.getLogger(__name__)

_ids = itertools.count(1)


def next_id() -> str:
    return f'{os.getpid()}-{next(_ids)}'


async def _open_connection(session: str, socket_dir: Optional[str] = None):
    if use_unix_socket():
        return await asyncio.open_unix_connection(get_socket_path(session, socket_dir), limit=STREAM_LIMIT)
    return await asyncio.open_connection(TCP_HOST, get_port_for_session(session), limit=STREAM_LIMIT)


async def send_command(payload: Union[Dict[str, Any], str], session: str, socket_dir: Optional[str] = None,
                       timeout: float = CLIENT_TIMEOUT) -> Dict[str, Any]:
    """Send one request line and wait for its response line."""
    line = payload if isinstance(payload, str) else json.dumps(payload)
    try:
        reader, writer = await _open_connection(session, socket_dir)
    except OSError as e:
        raise DaemonError(f"Cannot connect to session '{session}': {e}") from e

    try:
        writer.write((line.strip() + '\n').encode('utf-8'))
        await writer.drain()
        raw = await asyncio.wait_for(reader.readline(), timeout=timeout / 1000)
    except asyncio.TimeoutError as e:
        raise DaemonError(f'No response from daemon within {timeout}ms') from e
    except OSError as e:
        raise DaemonError(f'Connection to daemon failed: {e}') from e
    finally:
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass

    if not raw:
        raise DaemonError('Daemon closed the connection without responding')
    return json.loads(raw)


async def is_daemon_ready(session: str, socket_dir: Optional[str] = None) -> bool:
    """True once the daemon accepts connections.  Sends nothing, so no browser is launched."""
    try:
        _, writer = await asyncio.wait_for(_open_connection(session, socket_dir), timeout=READY_PROBE_TIMEOUT / 1000)
    except (OSError, asyncio.TimeoutError):
        return False
    writer.close()
    try:
        await writer.wait_closed()
    except OSError:
        pass
    return True


def daemon_command(config: Dict[str, Any]) -> List[str]:
    args = [sys.executable, '-m', 'agentbrowser.main',
            '--session', config['session'],
            '--browser', config['browser']]
    if config.get('socket_dir'):
        args += ['--socket-dir', config['socket_dir']]
    if config.get('headed'):
        args.append('--headed')
    if config.get('executable_path'):
        args += ['--executable-path', config['executable_path']]
    if config.get('extensions'):
        args += ['--extensions', ','.join(config['extensions'])]
    if config.get('config_file'):
        args += ['--config', config['config_file']]
    args.append('daemon')
    return args


def spawn_daemon(config: Dict[str, Any]) -> subprocess.Popen:
    command = daemon_command(config)
    logger.debug(f"Spawning daemon: {' '.join(command)}")
    return subprocess.Popen(
        command,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        start_new_session=True,
    )


async def ensure_daemon(config: Dict[str, Any]):
    """Start a detached daemon for the session unless a live one answers."""
    session = config['session']
    socket_dir = config.get('socket_dir')
    running = is_daemon_running(session, socket_dir)
    if running and await is_daemon_ready(session, socket_dir):
        return

    # A live pid that is not listening yet is still starting up
    process = None if running else spawn_daemon(config)
    loop = asyncio.get_running_loop()
    deadline = loop.time() + DAEMON_START_TIMEOUT / 1000
    while loop.time() < deadline:
        if process is not None and process.poll() is not None:
            raise DaemonError(f'Daemon exited during startup (code {process.returncode})')
        if await is_daemon_ready(session, socket_dir):
            logger.debug(f"Daemon for session '{session}' is ready")
            return
        await asyncio.sleep(DAEMON_POLL_INTERVAL / 1000)
    raise DaemonError(f"Daemon for session '{session}' did not become ready within {DAEMON_START_TIMEOUT}ms")
