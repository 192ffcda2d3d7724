"""
Action dispatcher tests with a mocked page
"""
import pytest
from unittest.mock import AsyncMock, MagicMock, patch
import sys
import os

# Make the project root importable
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from agentbrowser.executor import ActionExecutor
from agentbrowser.manager import BrowserManager
from agentbrowser.protocol import COMMAND_TYPES, build_command
from agentbrowser.state import SessionState


@pytest.fixture
def page():
    page = MagicMock()
    page.url = 'https://example.com/'
    page.title = AsyncMock(return_value='Example')
    page.goto = AsyncMock(return_value=MagicMock(status=200))
    return page


@pytest.fixture
def frame(page):
    return page.main_frame


@pytest.fixture
def executor(page):
    manager = BrowserManager(SessionState())
    manager._track_page(page)
    return ActionExecutor(manager)


def set_aria(frame, text):
    frame.locator.return_value.aria_snapshot = AsyncMock(return_value=text)


class TestRegistry:
    """Handler coverage"""

    def test_every_action_has_a_handler(self):
        assert set(ActionExecutor.handlers) == set(COMMAND_TYPES)


class TestNavigation:
    """navigate and friends"""

    @pytest.mark.asyncio
    async def test_navigate(self, executor, page):
        response = await executor.execute(build_command('navigate', id='n1', url='https://example.com'))

        assert response.success
        assert response.id == 'n1'
        assert response.result == {'url': 'https://example.com/', 'status': 200}
        page.goto.assert_awaited_once_with('https://example.com', wait_until='load', timeout=None)

    @pytest.mark.asyncio
    async def test_navigate_without_response(self, executor, page):
        page.goto = AsyncMock(return_value=None)

        response = await executor.execute(build_command('navigate', url='about:blank'))

        assert response.result['status'] is None

    @pytest.mark.asyncio
    async def test_navigation_timeout(self, executor, page):
        page.goto = AsyncMock(side_effect=Exception(
            'Timeout 30000ms exceeded.\nCall log:\n  - navigating to "https://slow.example/"'))

        response = await executor.execute(build_command('navigate', id='n2', url='https://slow.example/'))

        assert not response.success
        assert response.id == 'n2'
        assert 'took too long to load' in response.error

    @pytest.mark.asyncio
    async def test_wait_for_url_timeout(self, executor, page):
        page.wait_for_url = AsyncMock(side_effect=Exception(
            'Timeout 5000ms exceeded.\nwaiting for navigation to "https://example.com/done" until "load"'))

        response = await executor.execute(build_command('waitForUrl', id='w1', url='https://example.com/done'))

        assert not response.success
        assert response.error.startswith('Page "https://example.com/done" took too long to load')
        assert 'not found' not in response.error


class TestSnapshotAndRefs:
    """Snapshots install refs used by later commands"""

    @pytest.mark.asyncio
    async def test_snapshot_result(self, executor, frame):
        set_aria(frame, '- button "OK"\n- button "OK"')

        response = await executor.execute(build_command('snapshot', id='s1'))

        assert response.success
        assert response.result['tree'] == '- button "OK" [ref=e1]\n- button "OK" [ref=e2] [nth=1]'
        assert response.result['refs'] == {
            'e1': {'selector': 'role=button[name="OK"]', 'role': 'button', 'name': 'OK', 'nth': 0},
            'e2': {'selector': 'role=button[name="OK"]', 'role': 'button', 'name': 'OK', 'nth': 1},
        }
        assert response.result['url'] == 'https://example.com/'
        assert response.result['title'] == 'Example'
        assert set(executor.state.refs) == {'e1', 'e2'}

    @pytest.mark.asyncio
    async def test_click_by_ref(self, executor, frame):
        set_aria(frame, '- button "OK"\n- button "OK"')
        target = frame.get_by_role.return_value.nth.return_value
        target.click = AsyncMock()

        await executor.execute(build_command('snapshot'))
        response = await executor.execute(build_command('click', id='c1', selector='@e2'))

        assert response.success
        assert response.result == {'clicked': '@e2'}
        frame.get_by_role.assert_called_with('button', name='OK', exact=True)
        frame.get_by_role.return_value.nth.assert_called_with(1)
        target.click.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_ref_before_snapshot(self, executor):
        response = await executor.execute(build_command('click', id='c2', selector='@e99'))

        assert not response.success
        assert response.id == 'c2'
        assert 'Invalid or expired ref "@e99"' in response.error
        assert 'snapshot' in response.error

    @pytest.mark.asyncio
    async def test_new_snapshot_invalidates_refs(self, executor, frame):
        set_aria(frame, '- button "A"\n- button "B"')
        await executor.execute(build_command('snapshot'))
        set_aria(frame, '- button "A"')
        await executor.execute(build_command('snapshot'))

        response = await executor.execute(build_command('click', selector='@e2'))

        assert not response.success
        assert 'Invalid or expired ref' in response.error

    @pytest.mark.asyncio
    async def test_interactive_snapshot(self, executor, frame):
        set_aria(frame, '- heading "Title"\n- link "Home"')

        response = await executor.execute(build_command('snapshot', interactive=True))

        assert response.result['tree'] == '- link "Home" [ref=e1]'


class TestInteraction:
    """Locator-based actions"""

    @pytest.mark.asyncio
    async def test_click_selector(self, executor, frame):
        frame.locator.return_value.click = AsyncMock()

        response = await executor.execute(build_command('click', selector='#go', click_count=2))

        assert response.success
        frame.locator.assert_called_with('#go')
        kwargs = frame.locator.return_value.click.await_args.kwargs
        assert kwargs['click_count'] == 2

    @pytest.mark.asyncio
    async def test_fill(self, executor, frame):
        frame.locator.return_value.fill = AsyncMock()

        response = await executor.execute(build_command('fill', selector='#email', value='a@b.c'))

        assert response.result == {'filled': 'a@b.c'}

    @pytest.mark.asyncio
    async def test_strict_mode_translated(self, executor, frame):
        frame.locator.return_value.click = AsyncMock(side_effect=Exception(
            "strict mode violation: locator('button') resolved to 4 elements"))

        response = await executor.execute(build_command('click', id='c3', selector='button'))

        assert not response.success
        assert response.error.startswith('Selector "button" matched 4 elements')

    @pytest.mark.asyncio
    async def test_unexpected_error_is_reported(self, executor, frame):
        frame.locator.return_value.hover = AsyncMock(side_effect=KeyError('boom'))

        response = await executor.execute(build_command('hover', id='h1', selector='#x'))

        assert not response.success
        assert response.id == 'h1'
        assert 'boom' in response.error

    @pytest.mark.asyncio
    async def test_press_without_selector(self, executor, page):
        page.keyboard.press = AsyncMock()

        response = await executor.execute(build_command('press', key='Enter'))

        assert response.result == {'pressed': 'Enter'}
        page.keyboard.press.assert_awaited_once_with('Enter', delay=None)


class TestInformation:
    """Reads and captures"""

    @pytest.mark.asyncio
    async def test_screenshot_base64(self, executor, page):
        page.screenshot = AsyncMock(return_value=b'png')

        response = await executor.execute(build_command('screenshot'))

        assert response.result == {'data': 'cG5n'}

    @pytest.mark.asyncio
    async def test_screenshot_to_path(self, executor, page):
        page.screenshot = AsyncMock(return_value=b'png')

        response = await executor.execute(build_command('screenshot', path='/tmp/shot.png'))

        assert response.result == {'path': '/tmp/shot.png'}

    @pytest.mark.asyncio
    async def test_get_text(self, executor, frame):
        frame.locator.return_value.text_content = AsyncMock(return_value=None)

        response = await executor.execute(build_command('getText', selector='h1'))

        assert response.result == {'text': ''}

    @pytest.mark.asyncio
    async def test_get_console(self, executor):
        executor.state.record_console('warning', 'careful')
        executor.state.record_console('log', 'hi')

        response = await executor.execute(build_command('getConsole', type='warning'))

        assert response.result == {'messages': [{'type': 'warning', 'text': 'careful'}]}

    @pytest.mark.asyncio
    async def test_evaluate_with_args(self, executor, frame):
        frame.evaluate = AsyncMock(return_value=3)

        response = await executor.execute(build_command('evaluate', script='(a) => a + 1', args=[2]))

        assert response.result == {'result': 3}
        frame.evaluate.assert_awaited_once_with('(a) => a + 1', [2])

    @pytest.mark.asyncio
    async def test_frame_not_found(self, executor, page):
        page.frame.return_value = None

        response = await executor.execute(build_command('switchToFrame', name='payment'))

        assert not response.success
        assert 'Frame "payment" not found' in response.error

    @pytest.mark.asyncio
    async def test_wait(self, executor):
        with patch('agentbrowser.executor.asyncio.sleep', new=AsyncMock()) as sleep:
            response = await executor.execute(build_command('wait', timeout=1500))

        sleep.assert_awaited_once_with(1.5)
        assert response.result == {'waited': 1500}


class TestNotLaunched:
    """Commands before any page exists"""

    @pytest.mark.asyncio
    async def test_browser_not_launched(self):
        executor = ActionExecutor(BrowserManager(SessionState()))

        response = await executor.execute(build_command('getUrl', id='u1'))

        assert not response.success
        assert response.id == 'u1'
        assert 'Browser not launched' in response.error
