# executor.py
"""Action dispatcher: runs one validated command against the browser.

Handlers are registered per action with ``@handles``.  The registry is checked
against the protocol's command set at import time, so adding a command
without a handler fails immediately instead of at dispatch.
"""
import asyncio
import base64
import logging
import re
import sys
from typing import Any, Awaitable, Callable, Dict, Optional

from playwright.async_api import Error as PlaywrightError

from .errors import BrowserError, transform_error
from .manager import BrowserManager
from .models import SnapshotOptions
from .protocol import COMMAND_TYPES, BaseCommand, Response, error_response, success_response
from .snapshots import get_enhanced_snapshot, get_full_dom_tree
from .state import SessionState

logger = logging.getLogger(__name__)

Handler = Callable[['ActionExecutor', Any], Awaitable[Any]]

_HANDLERS: Dict[str, Handler] = {}

_SCROLL_DELTAS = {
    'up': (0, -1),
    'down': (0, 1),
    'left': (-1, 0),
    'right': (1, 0),
}


def handles(*actions: str):
    def register(fn: Handler) -> Handler:
        for action in actions:
            if action in _HANDLERS:
                raise RuntimeError(f'Duplicate handler for action: {action}')
            _HANDLERS[action] = fn
        return fn
    return register


def _position(position) -> Optional[Dict[str, float]]:
    if position is None:
        return None
    return {'x': position.x, 'y': position.y}


def _shortcut(key: str) -> str:
    modifier = 'Meta' if sys.platform == 'darwin' else 'Control'
    return f'{modifier}+{key}'


def _error_target(command: BaseCommand, *attrs: str) -> str:
    """The first non-empty string field among ``attrs`` an error message should name."""
    for attr in attrs:
        value = getattr(command, attr, None)
        if isinstance(value, str) and value:
            return value
    return ''


def _storage_scripts(area: str) -> Dict[str, str]:
    return {
        'get': f'key => window.{area}.getItem(key)',
        'all': f'() => Object.fromEntries(Object.entries(window.{area}))',
        'set': f'([key, value]) => window.{area}.setItem(key, value)',
        'clear': f'() => window.{area}.clear()',
    }


_LOCAL_STORAGE = _storage_scripts('localStorage')
_SESSION_STORAGE = _storage_scripts('sessionStorage')


class ActionExecutor:
    handlers = _HANDLERS

    def __init__(self, browser: BrowserManager, state: Optional[SessionState] = None):
        self.browser = browser
        self.state = state if state is not None else browser.state

    async def execute(self, command: BaseCommand) -> Response:
        """Run ``command`` and wrap the outcome.  Never raises."""
        logger.debug(f"Executing {command.action} (id={command.id})")
        try:
            result = await self.dispatch(command)
        except Exception as e:
            error = transform_error(e, _error_target(command, 'selector', 'source'), command.action,
                                    url=_error_target(command, 'url'))
            if isinstance(e, (BrowserError, PlaywrightError, asyncio.TimeoutError, OSError)):
                logger.warning(f"{command.action} failed (id={command.id}): {error.describe()}")
            else:
                logger.exception(f"Unexpected error in {command.action} (id={command.id})")
            return error_response(command.id, error.describe())
        return success_response(command.id, result)

    async def dispatch(self, command: BaseCommand) -> Any:
        handler = self.handlers.get(command.action)
        if handler is None:
            raise NotImplementedError(f'No handler for action: {command.action}')
        return await handler(self, command)

    @property
    def page(self):
        return self.browser.get_page()

    @property
    def frame(self):
        return self.browser.get_active_frame()

    def locator(self, selector: str):
        return self.browser.get_locator(selector)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @handles('launch')
    async def _launch(self, cmd):
        await self.browser.launch(
            browser=cmd.browser,
            headless=cmd.headless,
            viewport=cmd.viewport.model_dump() if cmd.viewport else None,
            cdp_port=cmd.cdp_port,
            executable_path=cmd.executable_path,
            extensions=cmd.extensions,
            headers=cmd.headers,
            proxy=cmd.proxy.model_dump(exclude_none=True) if cmd.proxy else None,
            user_data_dir=cmd.user_data_dir,
            slow_mo=cmd.slow_mo,
            timeout=cmd.timeout,
        )
        return {'launched': True}

    @handles('close')
    async def _close(self, cmd):
        await self.browser.close()
        return {'closed': True}

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    @handles('navigate')
    async def _navigate(self, cmd):
        response = await self.page.goto(cmd.url, wait_until=cmd.wait_until or 'load', timeout=cmd.timeout)
        return {'url': self.page.url, 'status': response.status if response else None}

    @handles('back')
    async def _back(self, cmd):
        await self.page.go_back(wait_until=cmd.wait_until)
        return {'url': self.page.url}

    @handles('forward')
    async def _forward(self, cmd):
        await self.page.go_forward(wait_until=cmd.wait_until)
        return {'url': self.page.url}

    @handles('reload')
    async def _reload(self, cmd):
        await self.page.reload(wait_until=cmd.wait_until)
        return {'url': self.page.url}

    # ------------------------------------------------------------------
    # Interaction
    # ------------------------------------------------------------------

    @handles('click')
    async def _click(self, cmd):
        await self.locator(cmd.selector).click(
            button=cmd.button,
            click_count=cmd.click_count,
            delay=cmd.delay,
            position=_position(cmd.position),
            modifiers=cmd.modifiers,
            force=cmd.force,
            no_wait_after=cmd.no_wait_after,
            timeout=cmd.timeout,
        )
        return {'clicked': cmd.selector}

    @handles('dblclick')
    async def _dblclick(self, cmd):
        await self.locator(cmd.selector).dblclick(
            button=cmd.button,
            delay=cmd.delay,
            position=_position(cmd.position),
            modifiers=cmd.modifiers,
            force=cmd.force,
            timeout=cmd.timeout,
        )
        return {'doubleClicked': cmd.selector}

    @handles('type')
    async def _type(self, cmd):
        await self.locator(cmd.selector).press_sequentially(cmd.text, delay=cmd.delay, timeout=cmd.timeout)
        return {'typed': cmd.text}

    @handles('fill')
    async def _fill(self, cmd):
        await self.locator(cmd.selector).fill(cmd.value, force=cmd.force, timeout=cmd.timeout)
        return {'filled': cmd.value}

    @handles('clear')
    async def _clear(self, cmd):
        await self.locator(cmd.selector).clear(force=cmd.force, timeout=cmd.timeout)
        return {'cleared': cmd.selector}

    @handles('check')
    async def _check(self, cmd):
        await self.locator(cmd.selector).check(force=cmd.force, position=_position(cmd.position), timeout=cmd.timeout)
        return {'checked': cmd.selector}

    @handles('uncheck')
    async def _uncheck(self, cmd):
        await self.locator(cmd.selector).uncheck(force=cmd.force, position=_position(cmd.position), timeout=cmd.timeout)
        return {'unchecked': cmd.selector}

    @handles('select')
    async def _select(self, cmd):
        selected = await self.locator(cmd.selector).select_option(
            value=cmd.value,
            label=cmd.label,
            index=cmd.index,
            force=cmd.force,
            timeout=cmd.timeout,
        )
        return {'selected': selected}

    @handles('hover')
    async def _hover(self, cmd):
        await self.locator(cmd.selector).hover(
            position=_position(cmd.position),
            modifiers=cmd.modifiers,
            force=cmd.force,
            timeout=cmd.timeout,
        )
        return {'hovered': cmd.selector}

    @handles('focus')
    async def _focus(self, cmd):
        await self.locator(cmd.selector).focus(timeout=cmd.timeout)
        return {'focused': cmd.selector}

    @handles('press')
    async def _press(self, cmd):
        if cmd.selector:
            await self.locator(cmd.selector).press(cmd.key, delay=cmd.delay, timeout=cmd.timeout)
        else:
            await self.page.keyboard.press(cmd.key, delay=cmd.delay)
        return {'pressed': cmd.key}

    @handles('scroll')
    async def _scroll(self, cmd):
        if cmd.selector:
            await self.locator(cmd.selector).scroll_into_view_if_needed()
        elif cmd.position is not None:
            await self.frame.evaluate(
                '({x, y, behavior}) => window.scrollTo({left: x, top: y, behavior})',
                {'x': cmd.position.x, 'y': cmd.position.y, 'behavior': cmd.behavior or 'auto'},
            )
        else:
            dx, dy = _SCROLL_DELTAS[cmd.direction]
            await self.frame.evaluate(
                '([dx, dy]) => window.scrollBy(dx, dy)',
                [dx * cmd.amount, dy * cmd.amount],
            )
        return {'scrolled': True}

    @handles('scrollIntoView')
    async def _scroll_into_view(self, cmd):
        locator = self.locator(cmd.selector)
        await locator.scroll_into_view_if_needed()
        if cmd.block or cmd.inline:
            await locator.evaluate(
                '(el, opts) => el.scrollIntoView({block: opts.block, inline: opts.inline})',
                {'block': cmd.block or 'start', 'inline': cmd.inline or 'nearest'},
            )
        return {'scrolled': cmd.selector}

    @handles('drag')
    async def _drag(self, cmd):
        await self.locator(cmd.source).drag_to(
            self.locator(cmd.target),
            force=cmd.force,
            no_wait_after=cmd.no_wait_after,
            timeout=cmd.timeout,
        )
        return {'dragged': {'from': cmd.source, 'to': cmd.target}}

    @handles('upload')
    async def _upload(self, cmd):
        await self.locator(cmd.selector).set_input_files(cmd.files, timeout=cmd.timeout)
        return {'uploaded': cmd.files}

    # ------------------------------------------------------------------
    # Information
    # ------------------------------------------------------------------

    @handles('snapshot')
    async def _snapshot(self, cmd):
        options = SnapshotOptions(
            selector=cmd.selector,
            interactive=bool(cmd.interactive),
            depth=cmd.depth,
            include_hidden=bool(cmd.include_hidden),
            compact=bool(cmd.compact),
        )
        snapshot = await get_enhanced_snapshot(self.frame, options)
        self.state.replace_refs(snapshot.refs)
        return {
            'tree': snapshot.tree,
            'refs': snapshot.refs_to_dict(),
            'url': self.page.url,
            'title': await self.page.title(),
        }

    @handles('domTree')
    async def _dom_tree(self, cmd):
        options = SnapshotOptions(depth=cmd.depth, include_hidden=bool(cmd.include_hidden))
        tree = await get_full_dom_tree(self.page, options)
        return {'tree': tree.to_dict(), 'url': self.page.url, 'title': await self.page.title()}

    @handles('screenshot')
    async def _screenshot(self, cmd):
        image_type = cmd.type or 'png'
        quality = cmd.quality if image_type == 'jpeg' else None
        if cmd.selector:
            data = await self.locator(cmd.selector).screenshot(
                path=cmd.path, type=image_type, quality=quality,
                omit_background=cmd.omit_background, timeout=cmd.timeout,
            )
        else:
            data = await self.page.screenshot(
                path=cmd.path, type=image_type, quality=quality, full_page=cmd.full_page,
                omit_background=cmd.omit_background, timeout=cmd.timeout,
            )
        if cmd.path:
            return {'path': cmd.path}
        return {'data': base64.b64encode(data).decode('ascii')}

    @handles('getText')
    async def _get_text(self, cmd):
        text = await self.locator(cmd.selector).text_content(timeout=cmd.timeout)
        return {'text': text or ''}

    @handles('getHtml')
    async def _get_html(self, cmd):
        if not cmd.selector:
            return {'html': await self.frame.content()}
        locator = self.locator(cmd.selector)
        if cmd.outer:
            return {'html': await locator.evaluate('el => el.outerHTML')}
        return {'html': await locator.inner_html()}

    @handles('getAttribute')
    async def _get_attribute(self, cmd):
        return {'value': await self.locator(cmd.selector).get_attribute(cmd.name, timeout=cmd.timeout)}

    @handles('getValue')
    async def _get_value(self, cmd):
        return {'value': await self.locator(cmd.selector).input_value(timeout=cmd.timeout)}

    @handles('getBoundingBox')
    async def _get_bounding_box(self, cmd):
        return {'box': await self.locator(cmd.selector).bounding_box(timeout=cmd.timeout)}

    @handles('getTitle')
    async def _get_title(self, cmd):
        return {'title': await self.page.title()}

    @handles('getUrl')
    async def _get_url(self, cmd):
        return {'url': self.page.url}

    @handles('getCount')
    async def _get_count(self, cmd):
        return {'count': await self.locator(cmd.selector).count()}

    # ------------------------------------------------------------------
    # State checks
    # ------------------------------------------------------------------

    @handles('isVisible')
    async def _is_visible(self, cmd):
        return {'visible': await self.locator(cmd.selector).is_visible()}

    @handles('isEnabled')
    async def _is_enabled(self, cmd):
        return {'enabled': await self.locator(cmd.selector).is_enabled()}

    @handles('isChecked')
    async def _is_checked(self, cmd):
        return {'checked': await self.locator(cmd.selector).is_checked()}

    @handles('isEditable')
    async def _is_editable(self, cmd):
        return {'editable': await self.locator(cmd.selector).is_editable()}

    @handles('isHidden')
    async def _is_hidden(self, cmd):
        return {'hidden': await self.locator(cmd.selector).is_hidden()}

    # ------------------------------------------------------------------
    # Waits
    # ------------------------------------------------------------------

    @handles('wait')
    async def _wait(self, cmd):
        await asyncio.sleep(cmd.timeout / 1000)
        return {'waited': cmd.timeout}

    @handles('waitForSelector')
    async def _wait_for_selector(self, cmd):
        await self.locator(cmd.selector).wait_for(state=cmd.state, timeout=cmd.timeout)
        return {'found': cmd.selector}

    @handles('waitForNavigation')
    async def _wait_for_navigation(self, cmd):
        await self.page.wait_for_url(cmd.url or re.compile('.*'), wait_until=cmd.wait_until, timeout=cmd.timeout)
        return {'url': self.page.url}

    @handles('waitForLoadState')
    async def _wait_for_load_state(self, cmd):
        state = cmd.state or 'load'
        await self.page.wait_for_load_state(state, timeout=cmd.timeout)
        return {'state': state}

    @handles('waitForUrl')
    async def _wait_for_url(self, cmd):
        await self.page.wait_for_url(cmd.url, timeout=cmd.timeout)
        return {'url': self.page.url}

    @handles('waitForText')
    async def _wait_for_text(self, cmd):
        if cmd.selector:
            await self.locator(cmd.selector).filter(has_text=cmd.text).wait_for(timeout=cmd.timeout)
        else:
            await self.frame.get_by_text(cmd.text).first.wait_for(timeout=cmd.timeout)
        return {'found': cmd.text}

    @handles('waitForFunction')
    async def _wait_for_function(self, cmd):
        await self.frame.wait_for_function(cmd.expression, timeout=cmd.timeout, polling=cmd.polling)
        return {'evaluated': True}

    # ------------------------------------------------------------------
    # Frames and pages
    # ------------------------------------------------------------------

    @handles('switchToFrame')
    async def _switch_to_frame(self, cmd):
        await self.browser.switch_to_frame(selector=cmd.selector, name=cmd.name, url=cmd.url)
        return {'switched': True}

    @handles('switchToMainFrame')
    async def _switch_to_main_frame(self, cmd):
        self.browser.switch_to_main_frame()
        return {'switched': True}

    @handles('getFrames')
    async def _get_frames(self, cmd):
        return {'frames': self.browser.get_frames()}

    @handles('newPage')
    async def _new_page(self, cmd):
        await self.browser.new_page(cmd.url)
        return {'created': True, 'url': cmd.url, 'index': self.state.active_page_index}

    @handles('switchPage')
    async def _switch_page(self, cmd):
        await self.browser.switch_page(index=cmd.index, url=cmd.url, title=cmd.title)
        return {'switched': True, 'index': self.state.active_page_index, 'url': self.page.url}

    @handles('closePage')
    async def _close_page(self, cmd):
        await self.browser.close_page(cmd.index)
        return {'closed': True}

    @handles('getPages')
    async def _get_pages(self, cmd):
        return {'pages': await self.browser.get_pages()}

    @handles('bringToFront')
    async def _bring_to_front(self, cmd):
        await self.page.bring_to_front()
        return {'focused': True}

    @handles('newWindow')
    async def _new_window(self, cmd):
        await self.browser.new_window(cmd.url)
        return {'created': True, 'url': cmd.url, 'index': self.state.active_page_index}

    # ------------------------------------------------------------------
    # Script
    # ------------------------------------------------------------------

    @handles('evaluate')
    async def _evaluate(self, cmd):
        if cmd.args is None:
            return {'result': await self.frame.evaluate(cmd.script)}
        return {'result': await self.frame.evaluate(cmd.script, cmd.args)}

    @handles('evaluateHandle')
    async def _evaluate_handle(self, cmd):
        if cmd.args is None:
            handle = await self.frame.evaluate_handle(cmd.script)
        else:
            handle = await self.frame.evaluate_handle(cmd.script, cmd.args)
        try:
            return {'result': await handle.json_value()}
        finally:
            await handle.dispose()

    # ------------------------------------------------------------------
    # Network
    # ------------------------------------------------------------------

    @handles('setExtraHeaders')
    async def _set_extra_headers(self, cmd):
        await self.page.set_extra_http_headers(cmd.headers)
        return {'set': True}

    @handles('setOffline')
    async def _set_offline(self, cmd):
        await self.browser.get_context().set_offline(cmd.offline)
        return {'offline': cmd.offline}

    @handles('route')
    async def _route(self, cmd):
        response = cmd.response

        async def handle_route(route):
            if cmd.handler == 'abort':
                await route.abort()
            elif cmd.handler == 'continue':
                await route.continue_()
            else:
                await route.fulfill(
                    status=response.status if response else None,
                    headers=response.headers if response else None,
                    body=response.body if response else None,
                )

        await self.page.route(cmd.url, handle_route)
        return {'routed': cmd.url}

    @handles('unroute')
    async def _unroute(self, cmd):
        if cmd.url:
            await self.page.unroute(cmd.url)
        else:
            await self.page.unroute_all()
        return {'unrouted': True}

    @handles('getRequests')
    async def _get_requests(self, cmd):
        return {'requests': self.state.requests(cmd.url_pattern, bool(cmd.clear))}

    # ------------------------------------------------------------------
    # Cookies and storage
    # ------------------------------------------------------------------

    @handles('getCookies')
    async def _get_cookies(self, cmd):
        return {'cookies': await self.browser.get_context().cookies(cmd.urls)}

    @handles('setCookies')
    async def _set_cookies(self, cmd):
        cookies = [cookie.model_dump(by_alias=True, exclude_none=True) for cookie in cmd.cookies]
        await self.browser.get_context().add_cookies(cookies)
        return {'set': True}

    @handles('clearCookies')
    async def _clear_cookies(self, cmd):
        await self.browser.get_context().clear_cookies()
        return {'cleared': True}

    async def _storage_get(self, scripts, key):
        if key:
            return {'value': await self.frame.evaluate(scripts['get'], key)}
        return {'storage': await self.frame.evaluate(scripts['all'])}

    @handles('getLocalStorage')
    async def _get_local_storage(self, cmd):
        return await self._storage_get(_LOCAL_STORAGE, cmd.key)

    @handles('setLocalStorage')
    async def _set_local_storage(self, cmd):
        await self.frame.evaluate(_LOCAL_STORAGE['set'], [cmd.key, cmd.value])
        return {'set': True}

    @handles('clearLocalStorage')
    async def _clear_local_storage(self, cmd):
        await self.frame.evaluate(_LOCAL_STORAGE['clear'])
        return {'cleared': True}

    @handles('getSessionStorage')
    async def _get_session_storage(self, cmd):
        return await self._storage_get(_SESSION_STORAGE, cmd.key)

    @handles('setSessionStorage')
    async def _set_session_storage(self, cmd):
        await self.frame.evaluate(_SESSION_STORAGE['set'], [cmd.key, cmd.value])
        return {'set': True}

    @handles('clearSessionStorage')
    async def _clear_session_storage(self, cmd):
        await self.frame.evaluate(_SESSION_STORAGE['clear'])
        return {'cleared': True}

    @handles('saveState')
    async def _save_state(self, cmd):
        await self.browser.save_storage_state(cmd.path)
        return {'saved': cmd.path}

    @handles('loadState')
    async def _load_state(self, cmd):
        counts = await self.browser.load_storage_state(cmd.path)
        return {'loaded': cmd.path, **counts}

    # ------------------------------------------------------------------
    # Dialogs, viewport and emulation
    # ------------------------------------------------------------------

    @handles('handleDialog')
    async def _handle_dialog(self, cmd):
        async def on_dialog(dialog):
            if cmd.accept:
                await dialog.accept(cmd.prompt_text)
            else:
                await dialog.dismiss()

        # Applies to the next dialog only
        self.page.once('dialog', on_dialog)
        return {'handler': 'set'}

    @handles('setViewport')
    async def _set_viewport(self, cmd):
        viewport = cmd.viewport.model_dump()
        await self.page.set_viewport_size(viewport)
        return {'viewport': viewport}

    @handles('emulateDevice')
    async def _emulate_device(self, cmd):
        device = self.browser.playwright.devices.get(cmd.device) if self.browser.playwright else None
        if device is None:
            raise BrowserError(f'Unknown device: {cmd.device}', 'Use a Playwright device name such as "iPhone 13".')
        await self.page.set_viewport_size(device['viewport'])
        return {'device': cmd.device, 'viewport': device['viewport']}

    @handles('setGeolocation')
    async def _set_geolocation(self, cmd):
        geolocation = {'latitude': cmd.latitude, 'longitude': cmd.longitude}
        if cmd.accuracy is not None:
            geolocation['accuracy'] = cmd.accuracy
        await self.browser.get_context().set_geolocation(geolocation)
        return {'geolocation': geolocation}

    @handles('setPermissions')
    async def _set_permissions(self, cmd):
        await self.browser.get_context().grant_permissions(cmd.permissions, origin=cmd.origin)
        return {'granted': cmd.permissions, 'origin': cmd.origin}

    @handles('emulateMedia')
    async def _emulate_media(self, cmd):
        await self.page.emulate_media(
            media=cmd.media,
            color_scheme=cmd.color_scheme,
            reduced_motion=cmd.reduced_motion,
            forced_colors=cmd.forced_colors,
        )
        return {'emulated': True}

    @handles('pdf')
    async def _pdf(self, cmd):
        data = await self.page.pdf(
            path=cmd.path,
            format=cmd.format,
            landscape=cmd.landscape,
            print_background=cmd.print_background,
            scale=cmd.scale,
            margin=cmd.margin.model_dump(exclude_none=True) if cmd.margin else None,
        )
        if cmd.path:
            return {'path': cmd.path}
        return {'data': base64.b64encode(data).decode('ascii')}

    # ------------------------------------------------------------------
    # Debugging and recorders
    # ------------------------------------------------------------------

    @handles('pause')
    async def _pause(self, cmd):
        await self.page.pause()
        return {'paused': True}

    @handles('highlight')
    async def _highlight(self, cmd):
        await self.browser.highlight(cmd.selector)
        return {'highlighted': cmd.selector}

    @handles('clearHighlights')
    async def _clear_highlights(self, cmd):
        return {'cleared': await self.browser.clear_highlights()}

    @handles('getConsole')
    async def _get_console(self, cmd):
        return {'messages': self.state.console(cmd.type, bool(cmd.clear))}

    @handles('getErrors')
    async def _get_errors(self, cmd):
        return {'errors': self.state.errors(bool(cmd.clear))}

    @handles('startTrace')
    async def _start_trace(self, cmd):
        await self.browser.get_context().tracing.start(
            screenshots=cmd.screenshots,
            snapshots=cmd.snapshots,
            sources=cmd.sources,
        )
        return {'started': True}

    @handles('stopTrace')
    async def _stop_trace(self, cmd):
        await self.browser.get_context().tracing.stop(path=cmd.path)
        return {'stopped': True, 'path': cmd.path}

    # ------------------------------------------------------------------
    # Clipboard
    # ------------------------------------------------------------------

    async def _press_shortcut(self, selector: Optional[str], key: str):
        if selector:
            await self.locator(selector).focus()
        await self.page.keyboard.press(_shortcut(key))

    @handles('clipboardCopy')
    async def _clipboard_copy(self, cmd):
        await self._press_shortcut(cmd.selector, 'c')
        return {'copied': True}

    @handles('clipboardPaste')
    async def _clipboard_paste(self, cmd):
        await self._press_shortcut(cmd.selector, 'v')
        return {'pasted': True}

    @handles('clipboardRead')
    async def _clipboard_read(self, cmd):
        return {'text': await self.page.evaluate('() => navigator.clipboard.readText()')}

    @handles('selectAll')
    async def _select_all(self, cmd):
        await self._press_shortcut(cmd.selector, 'a')
        return {'selected': True}

    # ------------------------------------------------------------------
    # Semantic locators
    # ------------------------------------------------------------------

    @handles('findByRole')
    async def _find_by_role(self, cmd):
        locator = self.frame.get_by_role(cmd.role, name=cmd.name, exact=cmd.exact, include_hidden=cmd.include_hidden)
        count = await locator.count()
        elements = []
        for i in range(min(count, 10)):
            element = locator.nth(i)
            elements.append({
                'text': await element.text_content(),
                'visible': await element.is_visible(),
            })
        return {'found': count, 'elements': elements}

    @handles('findByText')
    async def _find_by_text(self, cmd):
        return {'found': await self.frame.get_by_text(cmd.text, exact=cmd.exact).count()}

    @handles('findByLabel')
    async def _find_by_label(self, cmd):
        return {'found': await self.frame.get_by_label(cmd.label, exact=cmd.exact).count()}

    @handles('findByPlaceholder')
    async def _find_by_placeholder(self, cmd):
        return {'found': await self.frame.get_by_placeholder(cmd.placeholder, exact=cmd.exact).count()}

    @handles('findByAlt')
    async def _find_by_alt(self, cmd):
        return {'found': await self.frame.get_by_alt_text(cmd.alt, exact=cmd.exact).count()}

    @handles('findByTitle')
    async def _find_by_title(self, cmd):
        return {'found': await self.frame.get_by_title(cmd.title, exact=cmd.exact).count()}

    @handles('findByTestId')
    async def _find_by_test_id(self, cmd):
        return {'found': await self.frame.get_by_test_id(cmd.test_id).count()}


_missing = set(COMMAND_TYPES) - set(_HANDLERS)
if _missing:
    raise RuntimeError(f"Actions without a handler: {', '.join(sorted(_missing))}")
