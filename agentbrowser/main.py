# main.py
import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Dict, List, Optional

from .client import ensure_daemon, next_id, send_command
from .config import load_config
from .constants import SUPPORTED_BROWSERS
from .daemon import configure_daemon_logging, get_pid_file, get_socket_path, is_daemon_running, read_pid, run_daemon
from .errors import ConfigError, DaemonError

logger = logging.getLogger(__name__)

GET_TARGETS = ('text', 'html', 'value', 'title', 'url')
_GET_ACTIONS = {
    'text': 'getText',
    'html': 'getHtml',
    'value': 'getValue',
    'title': 'getTitle',
    'url': 'getUrl',
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='agentbrowser', description='Drive a persistent browser session from the command line')
    parser.add_argument('--session', help='Session name (default: "default")')
    parser.add_argument('--headed', action='store_true', help='Show the browser window')
    parser.add_argument('--browser', choices=SUPPORTED_BROWSERS, help='Browser engine')
    parser.add_argument('--executable-path', dest='executable_path', help='Custom browser executable')
    parser.add_argument('--extensions', help='Comma separated extension directories')
    parser.add_argument('--socket-dir', dest='socket_dir', help='Directory for socket, pid and log files')
    parser.add_argument('--timeout', type=int, help='Client read timeout in ms')
    parser.add_argument('--config', help='YAML config file')
    parser.add_argument('--json', action='store_true', help='Print the raw JSON response')
    parser.add_argument('--debug', action='store_true', help='Verbose logging')

    sub = parser.add_subparsers(dest='command', metavar='<command>')
    sub.required = True

    p = sub.add_parser('open', aliases=['goto', 'navigate'], help='Navigate to a URL')
    p.add_argument('url')

    p = sub.add_parser('click', help='Click an element (selector or @ref)')
    p.add_argument('selector')

    p = sub.add_parser('fill', help='Fill an input')
    p.add_argument('selector')
    p.add_argument('text')

    p = sub.add_parser('type', help='Type into an element key by key')
    p.add_argument('selector')
    p.add_argument('text')

    p = sub.add_parser('press', help='Press a key')
    p.add_argument('key')

    p = sub.add_parser('snapshot', help='Accessibility snapshot with refs')
    p.add_argument('-i', '--interactive', action='store_true', help='Interactive elements only')
    p.add_argument('-c', '--compact', action='store_true', help='Single-line output')
    p.add_argument('-d', '--depth', type=int, help='Maximum depth')
    p.add_argument('-s', '--selector', help='Scope to a selector')

    p = sub.add_parser('screenshot', help='Capture a screenshot')
    p.add_argument('path', nargs='?')
    p.add_argument('--full-page', dest='full_page', action='store_true')

    p = sub.add_parser('get', help='Read text, html, value, title or url')
    p.add_argument('what', choices=GET_TARGETS)
    p.add_argument('selector', nargs='?')

    p = sub.add_parser('wait', help='Wait for milliseconds or for a selector')
    p.add_argument('target', nargs='?', default='1000')

    sub.add_parser('back', help='Go back')
    sub.add_parser('forward', help='Go forward')
    sub.add_parser('reload', help='Reload the page')
    sub.add_parser('close', help='Close the browser and stop the daemon')

    p = sub.add_parser('eval', help='Evaluate JavaScript in the page')
    p.add_argument('script')

    p = sub.add_parser('raw', help='Send a raw JSON command')
    p.add_argument('payload')

    sub.add_parser('daemon', help='Run the session daemon in the foreground')
    sub.add_parser('status', help='Show whether the session daemon is running')
    return parser


def normalize_url(url: str) -> str:
    if '://' in url or url.startswith(('about:', 'data:', 'file:')):
        return url
    return f'https://{url}'


def build_command(args) -> Dict[str, Any]:
    """Translate parsed CLI words into a protocol request."""
    command = args.command
    payload: Dict[str, Any]

    if command in ('open', 'goto', 'navigate'):
        payload = {'action': 'navigate', 'url': normalize_url(args.url)}
    elif command == 'click':
        payload = {'action': 'click', 'selector': args.selector}
    elif command == 'fill':
        payload = {'action': 'fill', 'selector': args.selector, 'value': args.text}
    elif command == 'type':
        payload = {'action': 'type', 'selector': args.selector, 'text': args.text}
    elif command == 'press':
        payload = {'action': 'press', 'key': args.key}
    elif command == 'snapshot':
        payload = {'action': 'snapshot'}
        if args.interactive:
            payload['interactive'] = True
        if args.compact:
            payload['compact'] = True
        if args.depth is not None:
            payload['depth'] = args.depth
        if args.selector:
            payload['selector'] = args.selector
    elif command == 'screenshot':
        payload = {'action': 'screenshot'}
        if args.path:
            payload['path'] = args.path
        if args.full_page:
            payload['fullPage'] = True
    elif command == 'get':
        payload = {'action': _GET_ACTIONS[args.what]}
        if args.what in ('text', 'value') and not args.selector:
            raise ConfigError(f'get {args.what} needs a selector')
        if args.selector and args.what in ('text', 'value', 'html'):
            payload['selector'] = args.selector
    elif command == 'wait':
        if args.target.isdigit():
            payload = {'action': 'wait', 'timeout': int(args.target)}
        else:
            payload = {'action': 'waitForSelector', 'selector': args.target}
    elif command in ('back', 'forward', 'reload', 'close'):
        payload = {'action': command}
    elif command == 'eval':
        payload = {'action': 'evaluate', 'script': args.script}
    elif command == 'raw':
        try:
            payload = json.loads(args.payload)
        except ValueError as e:
            raise ConfigError(f'Invalid JSON: {e}') from e
        if not isinstance(payload, dict):
            raise ConfigError('Raw command must be a JSON object')
    else:
        raise ConfigError(f'Unknown command: {command}')

    payload.setdefault('id', next_id())
    return payload


def render_result(result: Any) -> str:
    if not isinstance(result, dict):
        return '' if result is None else json.dumps(result, indent=2)
    if 'tree' in result and isinstance(result['tree'], str):
        lines = [result['tree'], '']
        if result.get('url'):
            lines.append(f"URL: {result['url']}")
        if result.get('title'):
            lines.append(f"Title: {result['title']}")
        return '\n'.join(lines)
    if 'path' in result and result['path']:
        return f"Saved to: {result['path']}"
    if 'data' in result:
        return 'Captured (base64 data available with --json)'
    for key in ('url', 'title', 'text', 'html'):
        if isinstance(result.get(key), str):
            return result[key]
    for key in ('value', 'result', 'count', 'visible', 'enabled', 'checked', 'editable', 'hidden'):
        if key in result:
            value = result[key]
            return value if isinstance(value, str) else json.dumps(value)
    return json.dumps(result, indent=2)


def print_response(response: Dict[str, Any], as_json: bool) -> int:
    if as_json:
        print(json.dumps(response, indent=2))
    elif response.get('success'):
        text = render_result(response.get('result'))
        if text:
            print(text)
    else:
        print(f"Error: {response.get('error', 'Unknown error')}", file=sys.stderr)
    return 0 if response.get('success') else 1


def print_status(config: Dict[str, Any]) -> int:
    session, socket_dir = config['session'], config['socket_dir']
    if not is_daemon_running(session, socket_dir):
        print(f"Session '{session}': not running")
        return 1
    print(f"Session '{session}': running (pid {read_pid(session, socket_dir)})")
    print(f"  socket: {get_socket_path(session, socket_dir)}")
    print(f"  pid file: {get_pid_file(session, socket_dir)}")
    return 0


async def run_client(args, config: Dict[str, Any]) -> int:
    payload = build_command(args)
    if payload.get('action') == 'close' and not is_daemon_running(config['session'], config['socket_dir']):
        print(f"Session '{config['session']}' is not running")
        return 0
    await ensure_daemon(config)
    response = await send_command(payload, config['session'], config['socket_dir'], timeout=config['timeout'])
    return print_response(response, args.json)


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format='%(asctime)s %(levelname)-5s %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
    )

    try:
        config = load_config(args)
        config['config_file'] = args.config
        if args.command == 'daemon':
            log_path = configure_daemon_logging(config, debug=args.debug)
            logger.info(f"Logging to {log_path}")
            run_daemon(config)
            return 0
        if args.command == 'status':
            return print_status(config)
        return asyncio.run(run_client(args, config))
    except (ConfigError, DaemonError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == '__main__':
    sys.exit(main())
