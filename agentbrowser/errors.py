# errors.py
import re
from typing import Callable, List, Optional, Pattern, Tuple


class BrowserError(Exception):
    """Failure reported back to the caller with a recovery hint."""

    code = 'UNKNOWN_ERROR'

    def __init__(self, message: str, suggestion: Optional[str] = None, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.suggestion = suggestion
        if code:
            self.code = code

    def describe(self) -> str:
        if not self.suggestion:
            return self.message
        return f"{self.message.rstrip('.')}. {self.suggestion}"

    def to_dict(self):
        return {'code': self.code, 'message': self.message, 'suggestion': self.suggestion}


class InvalidRefError(BrowserError):
    code = 'INVALID_REF'

    def __init__(self, ref: str):
        super().__init__(
            f'Invalid or expired ref "{ref}"',
            "Run 'snapshot' to get updated refs. Refs are replaced by every new snapshot.",
        )
        self.ref = ref


class MultipleElementsError(BrowserError):
    code = 'MULTIPLE_ELEMENTS'

    def __init__(self, selector: str, count):
        super().__init__(
            f'Selector "{selector}" matched {count} elements',
            "Run 'snapshot' to get unique refs, or narrow the selector.",
        )
        self.count = count


class ElementBlockedError(BrowserError):
    code = 'ELEMENT_BLOCKED'

    def __init__(self, selector: str):
        super().__init__(
            f'Element "{selector}" is blocked by another element (likely a modal or overlay)',
            'Dismiss any modals, cookie banners or overlays first.',
        )


class ElementNotVisibleError(BrowserError):
    code = 'ELEMENT_NOT_VISIBLE'

    def __init__(self, selector: str):
        super().__init__(
            f'Element "{selector}" is not visible',
            "Scroll it into view, or check whether it is hidden.",
        )


class ElementNotFoundError(BrowserError):
    code = 'ELEMENT_NOT_FOUND'

    def __init__(self, selector: str):
        super().__init__(
            f'Element "{selector}" not found or not visible',
            "Run 'snapshot' to see current page elements, or retry with a longer timeout.",
        )


class ElementDetachedError(BrowserError):
    code = 'ELEMENT_DETACHED'

    def __init__(self, selector: str):
        super().__init__(
            f'Element "{selector}" was removed from the page',
            "The page may have updated. Run 'snapshot' to get current elements.",
        )


class NavigationTimeoutError(BrowserError):
    code = 'NAVIGATION_TIMEOUT'

    def __init__(self, target: str = ''):
        where = f' "{target}"' if target else ''
        super().__init__(
            f'Page{where} took too long to load',
            'Wait for a specific element instead, or retry with a longer timeout.',
        )


class OperationTimeoutError(BrowserError):
    code = 'TIMEOUT'

    def __init__(self, operation: str, timeout=None):
        limit = f' after {timeout}ms' if timeout is not None else ''
        super().__init__(
            f'Operation "{operation}" timed out{limit}',
            'Retry with a longer timeout or wait for a more specific condition.',
        )


class FrameNotFoundError(BrowserError):
    code = 'FRAME_NOT_FOUND'

    def __init__(self, identifier: str):
        super().__init__(
            f'Frame "{identifier}" not found',
            "Run 'getFrames' to see available frames.",
        )


class PageNotFoundError(BrowserError):
    code = 'PAGE_NOT_FOUND'

    def __init__(self, identifier: str):
        super().__init__(
            f'Page {identifier} not found',
            "Run 'getPages' to see open pages.",
        )


class BrowserNotLaunchedError(BrowserError):
    code = 'BROWSER_NOT_LAUNCHED'

    def __init__(self):
        super().__init__(
            'Browser not launched',
            "Launch the browser first with 'launch', or navigate to a URL.",
        )


class ConfigError(Exception):
    pass


class DaemonError(Exception):
    pass


class LifecycleError(Exception):
    pass


_Factory = Callable[[re.Match, str, str, str], BrowserError]


def _timeout(match: re.Match, selector: str, action: str, url: str) -> BrowserError:
    if selector:
        return ElementNotFoundError(selector)
    if url:
        return NavigationTimeoutError(url)
    return OperationTimeoutError(action or 'command', int(match.group(1)) if match.group(1) else None)


# Order matters: the first matching signature wins.
ERROR_PATTERNS: List[Tuple[Pattern, _Factory]] = [
    (re.compile(r'strict mode violation.*?resolved to (\d+) elements', re.I | re.S),
     lambda m, sel, act, url: MultipleElementsError(sel, int(m.group(1)))),
    (re.compile(r'intercepts pointer events', re.I),
     lambda m, sel, act, url: ElementBlockedError(sel)),
    (re.compile(r'^(?!.*timeout).*not visible', re.I | re.S),
     lambda m, sel, act, url: ElementNotVisibleError(sel)),
    (re.compile(r'not attached to the dom', re.I),
     lambda m, sel, act, url: ElementDetachedError(sel)),
    (re.compile(r'navigation timeout|timeout \d+ms exceeded.*(?:navigating to|waiting for navigation)', re.I | re.S),
     lambda m, sel, act, url: NavigationTimeoutError(url or sel)),
    (re.compile(r'timeout (\d+)ms exceeded|waiting for .*to be visible', re.I | re.S),
     _timeout),
    (re.compile(r'frame not found', re.I),
     lambda m, sel, act, url: FrameNotFoundError(sel)),
]


def transform_error(error: BaseException, selector: str = '', action: str = '', url: str = '') -> BrowserError:
    """Map a raw engine failure onto the caller-facing error taxonomy.

    ``selector`` names an element target and ``url`` a page target; a timeout
    is only blamed on an element when a selector is given.
    Known signatures are rewritten into a message plus a concrete next step.
    Anything unrecognised is an engine fault and keeps its original message.
    """
    if isinstance(error, BrowserError):
        return error

    message = str(error).strip() or error.__class__.__name__
    for pattern, create in ERROR_PATTERNS:
        match = pattern.search(message)
        if match:
            return create(match, selector, action, url)

    return BrowserError(message)
