"""
Command-line front end tests
"""
import json
import pytest
from unittest.mock import AsyncMock, patch
import sys
import os

# Make the project root importable
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from agentbrowser.client import daemon_command, next_id
from agentbrowser.errors import ConfigError
from agentbrowser.main import build_command, build_parser, main, normalize_url, print_response, render_result
from agentbrowser.protocol import parse_command


def command_for(*argv):
    return build_command(build_parser().parse_args(list(argv)))


class TestBuildCommand:
    """CLI words to protocol requests"""

    def test_open_normalizes_url(self):
        payload = command_for('open', 'example.com')

        assert payload['action'] == 'navigate'
        assert payload['url'] == 'https://example.com'

    @pytest.mark.parametrize("alias", ['goto', 'navigate'])
    def test_open_aliases(self, alias):
        assert command_for(alias, 'https://a.b')['action'] == 'navigate'

    def test_click_ref(self):
        payload = command_for('click', '@e2')

        assert payload['action'] == 'click'
        assert payload['selector'] == '@e2'

    def test_fill(self):
        payload = command_for('fill', '#email', 'a@b.c')

        assert payload['value'] == 'a@b.c'

    def test_snapshot_flags(self):
        payload = command_for('snapshot', '-i', '-c', '-d', '3', '-s', '#main')

        assert payload['interactive'] is True
        assert payload['compact'] is True
        assert payload['depth'] == 3
        assert payload['selector'] == '#main'

    def test_wait_milliseconds(self):
        assert command_for('wait', '500')['timeout'] == 500

    def test_wait_selector(self):
        payload = command_for('wait', '#ready')

        assert payload['action'] == 'waitForSelector'
        assert payload['selector'] == '#ready'

    def test_get_title(self):
        assert command_for('get', 'title')['action'] == 'getTitle'

    def test_get_text_needs_selector(self):
        with pytest.raises(ConfigError):
            command_for('get', 'text')

    def test_raw(self):
        payload = command_for('raw', '{"id": "x", "action": "getUrl"}')

        assert payload == {'id': 'x', 'action': 'getUrl'}

    def test_raw_invalid(self):
        with pytest.raises(ConfigError):
            command_for('raw', '{broken')

    def test_raw_not_object(self):
        with pytest.raises(ConfigError):
            command_for('raw', '[1]')

    @pytest.mark.parametrize("argv", [
        ['open', 'example.com'],
        ['click', '@e1'],
        ['type', '#q', 'hello'],
        ['press', 'Enter'],
        ['snapshot', '-i'],
        ['screenshot', 'out.png', '--full-page'],
        ['get', 'html', '#main'],
        ['wait', '250'],
        ['back'],
        ['close'],
        ['eval', 'document.title'],
    ])
    def test_requests_are_valid(self, argv):
        result = parse_command(json.dumps(command_for(*argv)))

        assert result.success, result.error


class TestHelpers:
    """Small helpers"""

    @pytest.mark.parametrize("url,expected", [
        ('example.com', 'https://example.com'),
        ('http://a.b', 'http://a.b'),
        ('about:blank', 'about:blank'),
        ('file:///tmp/x.html', 'file:///tmp/x.html'),
    ])
    def test_normalize_url(self, url, expected):
        assert normalize_url(url) == expected

    def test_ids_are_unique(self):
        first, second = next_id(), next_id()

        assert first != second
        assert first.startswith(f'{os.getpid()}-')

    def test_daemon_command(self):
        config = {'session': 'work', 'browser': 'firefox', 'socket_dir': '/tmp/ab', 'headed': True,
                  'extensions': ['/e1', '/e2']}

        command = daemon_command(config)

        assert command[:3] == [sys.executable, '-m', 'agentbrowser.main']
        assert command[-1] == 'daemon'
        assert command[command.index('--session') + 1] == 'work'
        assert command[command.index('--extensions') + 1] == '/e1,/e2'
        assert '--headed' in command


class TestOutput:
    """Rendering responses"""

    def test_render_snapshot(self):
        text = render_result({'tree': '- button "OK" [ref=e1]', 'refs': {}, 'url': 'https://a.b/', 'title': 'A'})

        assert text.splitlines() == ['- button "OK" [ref=e1]', '', 'URL: https://a.b/', 'Title: A']

    def test_render_scalar_values(self):
        assert render_result({'url': 'https://a.b/'}) == 'https://a.b/'
        assert render_result({'count': 3}) == '3'
        assert render_result({'visible': True}) == 'true'

    def test_print_error(self, capsys):
        code = print_response({'id': '1', 'success': False, 'error': 'nope'}, as_json=False)

        assert code == 1
        assert 'Error: nope' in capsys.readouterr().err

    def test_print_json(self, capsys):
        code = print_response({'id': '1', 'success': True, 'result': {'url': 'x'}}, as_json=True)

        assert code == 0
        assert json.loads(capsys.readouterr().out)['result'] == {'url': 'x'}


class TestMain:
    """Entry point wiring"""

    def test_close_when_not_running(self, tmp_path, capsys):
        code = main(['--socket-dir', str(tmp_path), '--session', 'idle', 'close'])

        assert code == 0
        assert 'not running' in capsys.readouterr().out

    def test_status_not_running(self, tmp_path):
        assert main(['--socket-dir', str(tmp_path), 'status']) == 1

    def test_sends_through_daemon(self, tmp_path, capsys):
        response = {'id': '1', 'success': True, 'result': {'url': 'https://example.com/', 'status': 200}}

        with patch('agentbrowser.main.ensure_daemon', new=AsyncMock()) as ensure, \
                patch('agentbrowser.main.send_command', new=AsyncMock(return_value=response)) as send:
            code = main(['--socket-dir', str(tmp_path), 'open', 'example.com'])

        assert code == 0
        ensure.assert_awaited_once()
        payload = send.await_args.args[0]
        assert payload['action'] == 'navigate'
        assert 'https://example.com/' in capsys.readouterr().out

    def test_config_error(self, capsys):
        code = main(['--session', 'bad name!', 'status'])

        assert code == 1
        assert 'Invalid session name' in capsys.readouterr().err
