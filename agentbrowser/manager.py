# manager.py
import json
import logging
from typing import Any, Dict, List, Optional

from playwright.async_api import Browser, BrowserContext, Frame, Locator, Page, async_playwright

from .constants import DEFAULT_BROWSER, DEFAULT_VIEWPORT, HIGHLIGHT_ATTRIBUTE, SUPPORTED_BROWSERS
from .errors import BrowserError, BrowserNotLaunchedError, FrameNotFoundError, PageNotFoundError
from .snapshots import locator_for_ref
from .state import SessionState

logger = logging.getLogger(__name__)

_HIGHLIGHT_SCRIPT = f'''el => {{
    el.setAttribute('{HIGHLIGHT_ATTRIBUTE}', el.style.outline || '');
    el.style.outline = '3px solid #ff4f4f';
}}'''

_CLEAR_HIGHLIGHTS_SCRIPT = f'''() => {{
    const marked = document.querySelectorAll('[{HIGHLIGHT_ATTRIBUTE}]');
    marked.forEach(el => {{
        el.style.outline = el.getAttribute('{HIGHLIGHT_ATTRIBUTE}');
        el.removeAttribute('{HIGHLIGHT_ATTRIBUTE}');
    }});
    return marked.length;
}}'''


class BrowserManager:
    """Owns the one Playwright browser of a session, its pages and frame focus."""

    def __init__(self, state: SessionState, config: Optional[Dict[str, Any]] = None):
        self.state = state
        self.config = config or {}
        self.playwright = None
        self.browser: Optional[Browser] = None
        self.context: Optional[BrowserContext] = None
        self.contexts: List[BrowserContext] = []
        self.pages: List[Page] = []
        self.browser_type = DEFAULT_BROWSER
        self.persistent = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def launch_defaults(self) -> Dict[str, Any]:
        """Launch options taken from the daemon configuration (used for auto-launch)."""
        return {
            'browser': self.config.get('browser', DEFAULT_BROWSER),
            'headless': not self.config.get('headed', False),
            'viewport': self.config.get('viewport'),
            'executable_path': self.config.get('executable_path'),
            'extensions': self.config.get('extensions') or None,
        }

    async def launch(self, browser: str = DEFAULT_BROWSER, headless: bool = True,
                     viewport: Optional[Dict[str, int]] = None, cdp_port: Optional[int] = None,
                     executable_path: Optional[str] = None, extensions: Optional[List[str]] = None,
                     headers: Optional[Dict[str, str]] = None, proxy: Optional[Dict[str, Any]] = None,
                     user_data_dir: Optional[str] = None, slow_mo: Optional[float] = None,
                     timeout: Optional[float] = None):
        if self.is_launched():
            raise BrowserError('Browser already launched', "Run 'close' first to relaunch with new options.")
        if browser not in SUPPORTED_BROWSERS:
            raise BrowserError(f'Unsupported browser: {browser}')

        self.browser_type = browser
        args = []
        if browser == 'chromium':
            if cdp_port:
                args.append(f'--remote-debugging-port={cdp_port}')
            if extensions:
                joined = ','.join(extensions)
                args.append(f'--disable-extensions-except={joined}')
                args.append(f'--load-extension={joined}')

        viewport = viewport or dict(DEFAULT_VIEWPORT)
        self.playwright = await async_playwright().start()
        browser_type = getattr(self.playwright, browser)

        try:
            if user_data_dir:
                self.persistent = True
                self.context = await browser_type.launch_persistent_context(
                    user_data_dir,
                    headless=headless,
                    viewport=viewport,
                    executable_path=executable_path,
                    args=args or None,
                    proxy=proxy,
                    slow_mo=slow_mo,
                    extra_http_headers=headers,
                    timeout=timeout,
                )
            else:
                self.browser = await browser_type.launch(
                    headless=headless,
                    executable_path=executable_path,
                    args=args or None,
                    slow_mo=slow_mo,
                    timeout=timeout,
                )
                self.context = await self.browser.new_context(
                    viewport=viewport,
                    proxy=proxy,
                    extra_http_headers=headers,
                )
        except Exception:
            await self.playwright.stop()
            self.playwright = None
            self.browser = None
            self.context = None
            self.persistent = False
            raise

        self._watch_context(self.context)
        for page in self.context.pages:
            self._track_page(page)
        if not self.pages:
            self._track_page(await self.context.new_page())

        self.state.active_page_index = 0
        self.state.active_frame = None
        self.state.launched = True
        logger.info(f"Browser launched: {browser} (headless={headless})")

    async def close(self):
        """Release the browser.  Safe to call when nothing was launched."""
        if not self.is_launched() and self.playwright is None:
            return
        try:
            if self.persistent and self.context is not None:
                await self.context.close()
            elif self.browser is not None:
                await self.browser.close()
        finally:
            try:
                if self.playwright is not None:
                    await self.playwright.stop()
            finally:
                self.playwright = None
                self.browser = None
                self.context = None
                self.contexts = []
                self.pages = []
                self.persistent = False
                self.state.reset()
                logger.info("Browser closed")

    def is_launched(self) -> bool:
        return self.browser is not None or self.persistent

    # ------------------------------------------------------------------
    # Page tracking and recorders
    # ------------------------------------------------------------------

    def _watch_context(self, context: BrowserContext):
        self.contexts.append(context)
        context.on('page', self._track_page)

    def _track_page(self, page: Page):
        if page in self.pages:
            return
        self.pages.append(page)
        page.on('console', lambda message: self.state.record_console(message.type, message.text))
        page.on('pageerror', lambda error: self.state.record_error(str(error)))
        page.on('request', lambda request: self.state.record_request({
            'url': request.url,
            'method': request.method,
            'resourceType': request.resource_type,
        }))
        page.on('close', self._forget_page)

    def _forget_page(self, page: Page):
        if page not in self.pages:
            return
        index = self.pages.index(page)
        self.pages.remove(page)
        if index < self.state.active_page_index:
            self.state.active_page_index -= 1
        if self.state.active_page_index >= len(self.pages):
            self.state.active_page_index = max(0, len(self.pages) - 1)
        self.state.active_frame = None

    def get_page(self) -> Page:
        if not self.pages:
            raise BrowserNotLaunchedError()
        index = min(self.state.active_page_index, len(self.pages) - 1)
        return self.pages[index]

    def get_context(self) -> BrowserContext:
        if self.context is None:
            raise BrowserNotLaunchedError()
        return self.context

    def get_active_frame(self) -> Frame:
        return self.state.active_frame or self.get_page().main_frame

    async def new_page(self, url: Optional[str] = None) -> Page:
        page = await self.get_context().new_page()
        self._track_page(page)
        self.state.active_page_index = self.pages.index(page)
        self.state.active_frame = None
        if url:
            await page.goto(url)
        return page

    async def new_window(self, url: Optional[str] = None) -> Page:
        """Open a page in a fresh, isolated browser context."""
        if self.browser is None:
            raise BrowserError('New windows need a non-persistent browser', "Relaunch without 'userDataDir'.")
        context = await self.browser.new_context(viewport=dict(DEFAULT_VIEWPORT))
        self._watch_context(context)
        page = await context.new_page()
        self._track_page(page)
        self.state.active_page_index = self.pages.index(page)
        self.state.active_frame = None
        if url:
            await page.goto(url)
        return page

    async def close_page(self, index: Optional[int] = None):
        idx = self.state.active_page_index if index is None else index
        if idx < 0 or idx >= len(self.pages):
            raise PageNotFoundError(str(idx))
        page = self.pages[idx]
        await page.close()
        self._forget_page(page)
        if not self.pages:
            self._track_page(await self.get_context().new_page())
            self.state.active_page_index = 0
        self.state.active_frame = None

    async def switch_page(self, index: Optional[int] = None, url: Optional[str] = None,
                          title: Optional[str] = None):
        if index is not None:
            if index < 0 or index >= len(self.pages):
                raise PageNotFoundError(str(index))
            target = index
        elif url:
            matches = [i for i, page in enumerate(self.pages) if url in page.url]
            if not matches:
                raise PageNotFoundError(f'with URL containing "{url}"')
            target = matches[0]
        elif title:
            target = None
            for i, page in enumerate(self.pages):
                if title in await page.title():
                    target = i
                    break
            if target is None:
                raise PageNotFoundError(f'with title containing "{title}"')
        else:
            raise BrowserError('switchPage needs an index, url or title')
        self.state.active_page_index = target
        self.state.active_frame = None

    async def get_pages(self) -> List[Dict[str, Any]]:
        pages = []
        for index, page in enumerate(self.pages):
            pages.append({
                'index': index,
                'url': page.url,
                'title': await page.title(),
                'active': index == self.state.active_page_index,
            })
        return pages

    # ------------------------------------------------------------------
    # Frames
    # ------------------------------------------------------------------

    async def switch_to_frame(self, selector: Optional[str] = None, name: Optional[str] = None,
                              url: Optional[str] = None):
        page = self.get_page()
        if selector:
            handle = await page.query_selector(selector)
            if handle is None:
                raise FrameNotFoundError(selector)
            frame = await handle.content_frame()
            if frame is None:
                raise BrowserError(f'Element "{selector}" is not a frame', "Run 'getFrames' to see available frames.")
        elif name:
            frame = page.frame(name=name)
            if frame is None:
                raise FrameNotFoundError(name)
        elif url:
            frame = page.frame(url=url)
            if frame is None:
                raise FrameNotFoundError(url)
        else:
            raise BrowserError('switchToFrame needs a selector, name or url')
        self.state.active_frame = frame

    def switch_to_main_frame(self):
        self.state.active_frame = None

    def get_frames(self) -> List[Dict[str, str]]:
        return [{'name': frame.name, 'url': frame.url} for frame in self.get_page().frames]

    # ------------------------------------------------------------------
    # Locators
    # ------------------------------------------------------------------

    def get_locator(self, selector_or_ref: str) -> Locator:
        """Locator for a ref from the current table, or for a plain selector.

        A ref the table does not hold raises InvalidRefError; it is never
        retried as a selector.
        """
        entry = self.state.lookup_ref(selector_or_ref)
        frame = self.get_active_frame()
        if entry is not None:
            return locator_for_ref(frame, entry)
        return frame.locator(selector_or_ref)

    async def highlight(self, selector: str):
        await self.get_locator(selector).evaluate(_HIGHLIGHT_SCRIPT)

    async def clear_highlights(self) -> int:
        return await self.get_active_frame().evaluate(_CLEAR_HIGHLIGHTS_SCRIPT)

    # ------------------------------------------------------------------
    # Storage state
    # ------------------------------------------------------------------

    async def save_storage_state(self, path: str):
        await self.get_context().storage_state(path=path)
        logger.info(f"Storage state saved to {path}")

    async def load_storage_state(self, path: str) -> Dict[str, int]:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)

        cookies = data.get('cookies') or []
        if cookies:
            await self.get_context().add_cookies(cookies)

        page = self.get_page()
        origin = await page.evaluate('() => window.location.origin')
        items = {}
        for entry in data.get('origins') or []:
            if entry.get('origin') == origin:
                items.update({item['name']: item['value'] for item in entry.get('localStorage') or []})
        if items:
            await page.evaluate(
                'items => { for (const [k, v] of Object.entries(items)) localStorage.setItem(k, v); }',
                items,
            )
        logger.info(f"Storage state loaded from {path}")
        return {'cookies': len(cookies), 'localStorage': len(items)}

