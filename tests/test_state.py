"""
Session state and browser manager tests (no real browser)
"""
import pytest
from unittest.mock import AsyncMock, MagicMock
import sys
import os

# Make the project root importable
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from agentbrowser.constants import MAX_CONSOLE_MESSAGES
from agentbrowser.errors import BrowserError, BrowserNotLaunchedError, InvalidRefError, PageNotFoundError
from agentbrowser.manager import BrowserManager
from agentbrowser.models import RefEntry
from agentbrowser.snapshots import process_aria_tree
from agentbrowser.state import SessionState


def make_page(url='https://example.com/', title='Example'):
    page = MagicMock()
    page.url = url
    page.title = AsyncMock(return_value=title)
    page.close = AsyncMock()
    return page


def make_manager(*pages):
    state = SessionState()
    manager = BrowserManager(state, {'browser': 'chromium'})
    for page in pages:
        manager._track_page(page)
    return manager


class TestRefTable:
    """Ref table replacement and lookup"""

    def test_lookup(self):
        state = SessionState()
        state.replace_refs(process_aria_tree('- button "OK"\n- link "Help"').refs)

        assert state.lookup_ref('@e2') == RefEntry(selector='role=link[name="Help"]', role='link', name='Help')
        assert state.lookup_ref('ref=e1').role == 'button'

    def test_plain_selector_is_not_a_ref(self):
        state = SessionState()

        assert state.lookup_ref('#submit') is None

    def test_unknown_ref_raises(self):
        state = SessionState()

        with pytest.raises(InvalidRefError) as exc_info:
            state.lookup_ref('@e99')

        assert '"@e99"' in exc_info.value.describe()
        assert 'snapshot' in exc_info.value.describe()

    def test_new_snapshot_invalidates_old_refs(self):
        state = SessionState()
        state.replace_refs(process_aria_tree('- button "A"\n- button "B"').refs)
        state.replace_refs(process_aria_tree('- button "C"').refs)

        assert state.lookup_ref('@e1').name == 'C'
        with pytest.raises(InvalidRefError):
            state.lookup_ref('@e2')

    def test_replace_copies_table(self):
        state = SessionState()
        refs = process_aria_tree('- button "A"').refs
        state.replace_refs(refs)
        refs.clear()

        assert 'e1' in state.refs


class TestRecorders:
    """Console, error and request buffers"""

    def test_console_filter_and_clear(self):
        state = SessionState()
        state.record_console('log', 'hello')
        state.record_console('error', 'boom')

        assert state.console('error') == [{'type': 'error', 'text': 'boom'}]
        assert len(state.console()) == 2
        state.console(clear=True)
        assert state.console() == []

    def test_console_bounded(self):
        state = SessionState()
        for i in range(MAX_CONSOLE_MESSAGES + 5):
            state.record_console('log', str(i))

        messages = state.console()
        assert len(messages) == MAX_CONSOLE_MESSAGES
        assert messages[0]['text'] == '5'

    def test_requests_filter(self):
        state = SessionState()
        state.record_request({'url': 'https://a.com/api/users', 'method': 'GET', 'resourceType': 'fetch'})
        state.record_request({'url': 'https://a.com/logo.png', 'method': 'GET', 'resourceType': 'image'})

        assert [r['url'] for r in state.requests('/api/')] == ['https://a.com/api/users']
        assert len(state.requests()) == 2

    def test_reset(self):
        state = SessionState()
        state.replace_refs(process_aria_tree('- button "A"').refs)
        state.record_error('x')
        state.active_page_index = 2
        state.launched = True

        state.reset()

        assert state.refs == {}
        assert state.errors() == []
        assert state.active_page_index == 0
        assert not state.launched


class TestManagerPages:
    """Page tracking without a real browser"""

    def test_not_launched(self):
        manager = make_manager()

        assert not manager.is_launched()
        with pytest.raises(BrowserNotLaunchedError):
            manager.get_page()

    def test_active_page(self):
        first, second = make_page(), make_page('https://b.com/')
        manager = make_manager(first, second)
        manager.state.active_page_index = 1

        assert manager.get_page() is second
        assert manager.get_active_frame() is second.main_frame

    def test_closed_page_before_active_shifts_index(self):
        pages = [make_page(), make_page(), make_page()]
        manager = make_manager(*pages)
        manager.state.active_page_index = 2

        manager._forget_page(pages[0])

        assert manager.get_page() is pages[2]

    def test_closed_last_page_clamps_index(self):
        pages = [make_page(), make_page()]
        manager = make_manager(*pages)
        manager.state.active_page_index = 1

        manager._forget_page(pages[1])

        assert manager.state.active_page_index == 0

    @pytest.mark.asyncio
    async def test_switch_page_by_url(self):
        manager = make_manager(make_page('https://a.com/'), make_page('https://b.com/docs'))

        await manager.switch_page(url='b.com')

        assert manager.state.active_page_index == 1

    @pytest.mark.asyncio
    async def test_switch_page_by_title(self):
        manager = make_manager(make_page(title='Inbox'), make_page(title='Settings'))

        await manager.switch_page(title='Sett')

        assert manager.state.active_page_index == 1

    @pytest.mark.asyncio
    async def test_switch_page_out_of_range(self):
        manager = make_manager(make_page())

        with pytest.raises(PageNotFoundError):
            await manager.switch_page(index=3)

    @pytest.mark.asyncio
    async def test_get_pages(self):
        manager = make_manager(make_page('https://a.com/', 'A'), make_page('https://b.com/', 'B'))

        pages = await manager.get_pages()

        assert pages == [
            {'index': 0, 'url': 'https://a.com/', 'title': 'A', 'active': True},
            {'index': 1, 'url': 'https://b.com/', 'title': 'B', 'active': False},
        ]

    @pytest.mark.asyncio
    async def test_new_window_needs_browser(self):
        manager = make_manager(make_page())

        with pytest.raises(BrowserError):
            await manager.new_window()


class TestManagerLocators:
    """Selector and ref resolution"""

    def test_plain_selector(self):
        page = make_page()
        manager = make_manager(page)

        locator = manager.get_locator('#submit')

        page.main_frame.locator.assert_called_once_with('#submit')
        assert locator is page.main_frame.locator.return_value

    def test_ref_uses_role_locator(self):
        page = make_page()
        manager = make_manager(page)
        manager.state.replace_refs(process_aria_tree('- button "Delete"\n- button "Delete"').refs)

        manager.get_locator('@e2')

        page.main_frame.get_by_role.assert_called_once_with('button', name='Delete', exact=True)
        page.main_frame.get_by_role.return_value.nth.assert_called_once_with(1)

    def test_unknown_ref_never_falls_back(self):
        page = make_page()
        manager = make_manager(page)

        with pytest.raises(InvalidRefError):
            manager.get_locator('@e99')

        page.main_frame.locator.assert_not_called()

    def test_active_frame_scope(self):
        page = make_page()
        frame = MagicMock()
        manager = make_manager(page)
        manager.state.active_frame = frame

        manager.get_locator('button')

        frame.locator.assert_called_once_with('button')


class TestManagerClose:
    """Browser release"""

    @pytest.mark.asyncio
    async def test_close_when_not_launched(self):
        manager = make_manager()

        await manager.close()

        assert not manager.is_launched()

    @pytest.mark.asyncio
    async def test_close_resets_state(self):
        manager = make_manager(make_page())
        manager.browser = MagicMock(close=AsyncMock())
        playwright = MagicMock(stop=AsyncMock())
        manager.playwright = playwright
        manager.state.replace_refs(process_aria_tree('- button "A"').refs)

        await manager.close()

        playwright.stop.assert_awaited_once()
        assert manager.browser is None
        assert manager.pages == []
        assert manager.state.refs == {}

    @pytest.mark.asyncio
    async def test_close_stops_playwright_on_failure(self):
        manager = make_manager(make_page())
        manager.browser = MagicMock(close=AsyncMock(side_effect=RuntimeError('crashed')))
        playwright = MagicMock(stop=AsyncMock())
        manager.playwright = playwright

        with pytest.raises(RuntimeError):
            await manager.close()

        playwright.stop.assert_awaited_once()
        assert not manager.is_launched()
