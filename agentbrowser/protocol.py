# protocol.py
"""Command protocol: the closed set of operations that may cross the IPC boundary.

Each command is a frozen pydantic model tagged by ``action``.  Wire names are
camelCase, attribute names are snake_case.  Validation runs in strict mode, so
a value of the wrong type is always rejected instead of being coerced.
"""
import json
import logging
from dataclasses import dataclass
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)

WaitUntil = Literal['load', 'domcontentloaded', 'networkidle']
MouseButton = Literal['left', 'right', 'middle']
Modifier = Literal['Alt', 'Control', 'Meta', 'Shift']
ScrollAlign = Literal['start', 'center', 'end', 'nearest']

Positive = Annotated[float, Field(gt=0)]
NonNegative = Annotated[float, Field(ge=0)]
PositiveInt = Annotated[int, Field(gt=0)]
NonNegativeInt = Annotated[int, Field(ge=0)]


class WireModel(BaseModel):
    model_config = ConfigDict(
        strict=True,
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


def _check_url(value: str) -> str:
    parsed = urlparse(value)
    if not parsed.scheme:
        raise ValueError('must be an absolute URL')
    if parsed.scheme in ('http', 'https', 'ws', 'wss', 'ftp') and not parsed.netloc:
        raise ValueError('must include a host')
    return value


# ---------------------------------------------------------------------------
# Shared value shapes
# ---------------------------------------------------------------------------

class Position(WireModel):
    x: NonNegative
    y: NonNegative


class Viewport(WireModel):
    width: PositiveInt
    height: PositiveInt


class ProxyConfig(WireModel):
    server: str
    bypass: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None


class RouteResponse(WireModel):
    status: Optional[Annotated[int, Field(ge=100, le=599)]] = None
    headers: Optional[Dict[str, str]] = None
    body: Optional[str] = None


class Cookie(WireModel):
    name: str
    value: str
    url: Optional[str] = None
    domain: Optional[str] = None
    path: Optional[str] = None
    expires: Optional[float] = None
    http_only: Optional[bool] = None
    secure: Optional[bool] = None
    same_site: Optional[Literal['Strict', 'Lax', 'None']] = None


class PdfMargin(WireModel):
    top: Optional[str] = None
    right: Optional[str] = None
    bottom: Optional[str] = None
    left: Optional[str] = None


# ---------------------------------------------------------------------------
# Base command
# ---------------------------------------------------------------------------

class BaseCommand(WireModel):
    id: str


class SelectorCommand(BaseCommand):
    selector: str
    timeout: Optional[Positive] = None


class UrlCommand(BaseCommand):
    """Mixin-style base for commands whose ``url`` must be absolute."""

    @field_validator('url', check_fields=False)
    @classmethod
    def _absolute_url(cls, value):
        if value is None:
            return value
        return _check_url(value)


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------

class LaunchCommand(BaseCommand):
    action: Literal['launch'] = 'launch'
    headless: bool = True
    viewport: Optional[Viewport] = None
    browser: Literal['chromium', 'firefox', 'webkit'] = 'chromium'
    cdp_port: Optional[Annotated[int, Field(gt=0, le=65535)]] = None
    executable_path: Optional[str] = None
    extensions: Optional[List[str]] = None
    headers: Optional[Dict[str, str]] = None
    proxy: Optional[ProxyConfig] = None
    user_data_dir: Optional[str] = None
    slow_mo: Optional[NonNegative] = None
    timeout: Optional[Positive] = None


class CloseCommand(BaseCommand):
    action: Literal['close'] = 'close'


# ---------------------------------------------------------------------------
# Navigation
# ---------------------------------------------------------------------------

class NavigateCommand(UrlCommand):
    action: Literal['navigate'] = 'navigate'
    url: str
    wait_until: Optional[WaitUntil] = None
    timeout: Optional[Positive] = None


class BackCommand(BaseCommand):
    action: Literal['back'] = 'back'
    wait_until: Optional[WaitUntil] = None


class ForwardCommand(BaseCommand):
    action: Literal['forward'] = 'forward'
    wait_until: Optional[WaitUntil] = None


class ReloadCommand(BaseCommand):
    action: Literal['reload'] = 'reload'
    wait_until: Optional[WaitUntil] = None


# ---------------------------------------------------------------------------
# Interaction
# ---------------------------------------------------------------------------

class ClickCommand(SelectorCommand):
    action: Literal['click'] = 'click'
    button: Optional[MouseButton] = None
    click_count: Optional[PositiveInt] = None
    delay: Optional[NonNegative] = None
    position: Optional[Position] = None
    modifiers: Optional[List[Modifier]] = None
    force: Optional[bool] = None
    no_wait_after: Optional[bool] = None


class DoubleClickCommand(SelectorCommand):
    action: Literal['dblclick'] = 'dblclick'
    button: Optional[MouseButton] = None
    delay: Optional[NonNegative] = None
    position: Optional[Position] = None
    modifiers: Optional[List[Modifier]] = None
    force: Optional[bool] = None


class TypeCommand(SelectorCommand):
    action: Literal['type'] = 'type'
    text: str
    delay: Optional[NonNegative] = None
    no_wait_after: Optional[bool] = None


class FillCommand(SelectorCommand):
    action: Literal['fill'] = 'fill'
    value: str
    force: Optional[bool] = None
    no_wait_after: Optional[bool] = None


class ClearCommand(SelectorCommand):
    action: Literal['clear'] = 'clear'
    force: Optional[bool] = None


class CheckCommand(SelectorCommand):
    action: Literal['check'] = 'check'
    force: Optional[bool] = None
    position: Optional[Position] = None


class UncheckCommand(SelectorCommand):
    action: Literal['uncheck'] = 'uncheck'
    force: Optional[bool] = None
    position: Optional[Position] = None


class SelectCommand(SelectorCommand):
    action: Literal['select'] = 'select'
    value: Optional[Union[str, List[str]]] = None
    label: Optional[Union[str, List[str]]] = None
    index: Optional[Union[NonNegativeInt, List[NonNegativeInt]]] = None
    force: Optional[bool] = None

    @model_validator(mode='after')
    def _one_choice(self):
        given = [name for name in ('value', 'label', 'index') if getattr(self, name) is not None]
        if len(given) != 1:
            raise ValueError('exactly one of value, label or index is required')
        return self


class HoverCommand(SelectorCommand):
    action: Literal['hover'] = 'hover'
    position: Optional[Position] = None
    modifiers: Optional[List[Modifier]] = None
    force: Optional[bool] = None


class FocusCommand(SelectorCommand):
    action: Literal['focus'] = 'focus'


class PressCommand(BaseCommand):
    action: Literal['press'] = 'press'
    key: str
    selector: Optional[str] = None
    delay: Optional[NonNegative] = None
    no_wait_after: Optional[bool] = None
    timeout: Optional[Positive] = None


class ScrollCommand(BaseCommand):
    action: Literal['scroll'] = 'scroll'
    selector: Optional[str] = None
    direction: Optional[Literal['up', 'down', 'left', 'right']] = None
    amount: Optional[Positive] = None
    position: Optional[Position] = None
    behavior: Optional[Literal['auto', 'smooth', 'instant']] = None

    @model_validator(mode='after')
    def _has_target(self):
        if self.selector is None and self.position is None and (self.direction is None or self.amount is None):
            raise ValueError('one of selector, position, or direction with amount is required')
        return self


class ScrollIntoViewCommand(BaseCommand):
    action: Literal['scrollIntoView'] = 'scrollIntoView'
    selector: str
    block: Optional[ScrollAlign] = None
    inline: Optional[ScrollAlign] = None


class DragCommand(BaseCommand):
    action: Literal['drag'] = 'drag'
    source: str
    target: str
    force: Optional[bool] = None
    no_wait_after: Optional[bool] = None
    timeout: Optional[Positive] = None


class UploadCommand(SelectorCommand):
    action: Literal['upload'] = 'upload'
    files: Union[str, List[str]]
    no_wait_after: Optional[bool] = None


# ---------------------------------------------------------------------------
# Information
# ---------------------------------------------------------------------------

class SnapshotCommand(BaseCommand):
    action: Literal['snapshot'] = 'snapshot'
    selector: Optional[str] = None
    interactive: Optional[bool] = None
    depth: Optional[PositiveInt] = None
    include_hidden: Optional[bool] = None
    compact: Optional[bool] = None


class DomTreeCommand(BaseCommand):
    action: Literal['domTree'] = 'domTree'
    depth: Optional[PositiveInt] = None
    include_hidden: Optional[bool] = None


class ScreenshotCommand(BaseCommand):
    action: Literal['screenshot'] = 'screenshot'
    selector: Optional[str] = None
    path: Optional[str] = None
    full_page: Optional[bool] = None
    quality: Optional[Annotated[int, Field(ge=0, le=100)]] = None
    type: Optional[Literal['png', 'jpeg']] = None
    omit_background: Optional[bool] = None
    timeout: Optional[Positive] = None


class GetTextCommand(SelectorCommand):
    action: Literal['getText'] = 'getText'


class GetHtmlCommand(BaseCommand):
    action: Literal['getHtml'] = 'getHtml'
    selector: Optional[str] = None
    outer: Optional[bool] = None


class GetAttributeCommand(SelectorCommand):
    action: Literal['getAttribute'] = 'getAttribute'
    name: str


class GetValueCommand(SelectorCommand):
    action: Literal['getValue'] = 'getValue'


class GetBoundingBoxCommand(SelectorCommand):
    action: Literal['getBoundingBox'] = 'getBoundingBox'


class GetTitleCommand(BaseCommand):
    action: Literal['getTitle'] = 'getTitle'


class GetUrlCommand(BaseCommand):
    action: Literal['getUrl'] = 'getUrl'


class GetCountCommand(BaseCommand):
    action: Literal['getCount'] = 'getCount'
    selector: str


# ---------------------------------------------------------------------------
# State checks
# ---------------------------------------------------------------------------

class IsVisibleCommand(BaseCommand):
    action: Literal['isVisible'] = 'isVisible'
    selector: str


class IsEnabledCommand(BaseCommand):
    action: Literal['isEnabled'] = 'isEnabled'
    selector: str


class IsCheckedCommand(BaseCommand):
    action: Literal['isChecked'] = 'isChecked'
    selector: str


class IsEditableCommand(BaseCommand):
    action: Literal['isEditable'] = 'isEditable'
    selector: str


class IsHiddenCommand(BaseCommand):
    action: Literal['isHidden'] = 'isHidden'
    selector: str


# ---------------------------------------------------------------------------
# Waits
# ---------------------------------------------------------------------------

class WaitCommand(BaseCommand):
    action: Literal['wait'] = 'wait'
    timeout: Positive


class WaitForSelectorCommand(SelectorCommand):
    action: Literal['waitForSelector'] = 'waitForSelector'
    state: Optional[Literal['attached', 'detached', 'visible', 'hidden']] = None


class WaitForNavigationCommand(BaseCommand):
    action: Literal['waitForNavigation'] = 'waitForNavigation'
    url: Optional[str] = None
    wait_until: Optional[WaitUntil] = None
    timeout: Optional[Positive] = None


class WaitForLoadStateCommand(BaseCommand):
    action: Literal['waitForLoadState'] = 'waitForLoadState'
    state: Optional[WaitUntil] = None
    timeout: Optional[Positive] = None


class WaitForUrlCommand(BaseCommand):
    action: Literal['waitForUrl'] = 'waitForUrl'
    url: str
    timeout: Optional[Positive] = None


class WaitForTextCommand(BaseCommand):
    action: Literal['waitForText'] = 'waitForText'
    text: str
    selector: Optional[str] = None
    timeout: Optional[Positive] = None


class WaitForFunctionCommand(BaseCommand):
    action: Literal['waitForFunction'] = 'waitForFunction'
    expression: str
    timeout: Optional[Positive] = None
    polling: Optional[Union[Literal['raf'], Positive]] = None


# ---------------------------------------------------------------------------
# Frames and pages
# ---------------------------------------------------------------------------

class SwitchToFrameCommand(BaseCommand):
    action: Literal['switchToFrame'] = 'switchToFrame'
    selector: Optional[str] = None
    name: Optional[str] = None
    url: Optional[str] = None

    @model_validator(mode='after')
    def _one_target(self):
        given = [n for n in ('selector', 'name', 'url') if getattr(self, n) is not None]
        if len(given) != 1:
            raise ValueError('exactly one of selector, name or url is required')
        return self


class SwitchToMainFrameCommand(BaseCommand):
    action: Literal['switchToMainFrame'] = 'switchToMainFrame'


class GetFramesCommand(BaseCommand):
    action: Literal['getFrames'] = 'getFrames'


class NewPageCommand(UrlCommand):
    action: Literal['newPage'] = 'newPage'
    url: Optional[str] = None


class SwitchPageCommand(BaseCommand):
    action: Literal['switchPage'] = 'switchPage'
    index: Optional[NonNegativeInt] = None
    url: Optional[str] = None
    title: Optional[str] = None

    @model_validator(mode='after')
    def _one_target(self):
        given = [n for n in ('index', 'url', 'title') if getattr(self, n) is not None]
        if len(given) != 1:
            raise ValueError('exactly one of index, url or title is required')
        return self


class ClosePageCommand(BaseCommand):
    action: Literal['closePage'] = 'closePage'
    index: Optional[NonNegativeInt] = None


class GetPagesCommand(BaseCommand):
    action: Literal['getPages'] = 'getPages'


class BringToFrontCommand(BaseCommand):
    action: Literal['bringToFront'] = 'bringToFront'


class NewWindowCommand(UrlCommand):
    action: Literal['newWindow'] = 'newWindow'
    url: Optional[str] = None


# ---------------------------------------------------------------------------
# Script
# ---------------------------------------------------------------------------

class EvaluateCommand(BaseCommand):
    action: Literal['evaluate'] = 'evaluate'
    script: str
    args: Optional[List[Any]] = None


class EvaluateHandleCommand(BaseCommand):
    action: Literal['evaluateHandle'] = 'evaluateHandle'
    script: str
    args: Optional[List[Any]] = None


# ---------------------------------------------------------------------------
# Network
# ---------------------------------------------------------------------------

class SetExtraHeadersCommand(BaseCommand):
    action: Literal['setExtraHeaders'] = 'setExtraHeaders'
    headers: Dict[str, str]


class SetOfflineCommand(BaseCommand):
    action: Literal['setOffline'] = 'setOffline'
    offline: bool


class RouteCommand(BaseCommand):
    action: Literal['route'] = 'route'
    url: str
    handler: Literal['abort', 'continue', 'fulfill']
    response: Optional[RouteResponse] = None


class UnrouteCommand(BaseCommand):
    action: Literal['unroute'] = 'unroute'
    url: Optional[str] = None


class GetRequestsCommand(BaseCommand):
    action: Literal['getRequests'] = 'getRequests'
    url_pattern: Optional[str] = None
    clear: Optional[bool] = None


# ---------------------------------------------------------------------------
# Cookies and storage
# ---------------------------------------------------------------------------

class GetCookiesCommand(BaseCommand):
    action: Literal['getCookies'] = 'getCookies'
    urls: Optional[List[str]] = None


class SetCookiesCommand(BaseCommand):
    action: Literal['setCookies'] = 'setCookies'
    cookies: List[Cookie]


class ClearCookiesCommand(BaseCommand):
    action: Literal['clearCookies'] = 'clearCookies'


class GetLocalStorageCommand(BaseCommand):
    action: Literal['getLocalStorage'] = 'getLocalStorage'
    key: Optional[str] = None


class SetLocalStorageCommand(BaseCommand):
    action: Literal['setLocalStorage'] = 'setLocalStorage'
    key: str
    value: str


class ClearLocalStorageCommand(BaseCommand):
    action: Literal['clearLocalStorage'] = 'clearLocalStorage'


class GetSessionStorageCommand(BaseCommand):
    action: Literal['getSessionStorage'] = 'getSessionStorage'
    key: Optional[str] = None


class SetSessionStorageCommand(BaseCommand):
    action: Literal['setSessionStorage'] = 'setSessionStorage'
    key: str
    value: str


class ClearSessionStorageCommand(BaseCommand):
    action: Literal['clearSessionStorage'] = 'clearSessionStorage'


class SaveStateCommand(BaseCommand):
    action: Literal['saveState'] = 'saveState'
    path: str


class LoadStateCommand(BaseCommand):
    action: Literal['loadState'] = 'loadState'
    path: str


# ---------------------------------------------------------------------------
# Dialogs, viewport and emulation
# ---------------------------------------------------------------------------

class HandleDialogCommand(BaseCommand):
    action: Literal['handleDialog'] = 'handleDialog'
    accept: bool
    prompt_text: Optional[str] = None


class SetViewportCommand(BaseCommand):
    action: Literal['setViewport'] = 'setViewport'
    viewport: Viewport


class EmulateDeviceCommand(BaseCommand):
    action: Literal['emulateDevice'] = 'emulateDevice'
    device: str


class SetGeolocationCommand(BaseCommand):
    action: Literal['setGeolocation'] = 'setGeolocation'
    latitude: Annotated[float, Field(ge=-90, le=90)]
    longitude: Annotated[float, Field(ge=-180, le=180)]
    accuracy: Optional[NonNegative] = None


class SetPermissionsCommand(BaseCommand):
    action: Literal['setPermissions'] = 'setPermissions'
    origin: str
    permissions: List[str]


class EmulateMediaCommand(BaseCommand):
    action: Literal['emulateMedia'] = 'emulateMedia'
    media: Optional[Literal['screen', 'print', 'null']] = None
    color_scheme: Optional[Literal['light', 'dark', 'no-preference', 'null']] = None
    reduced_motion: Optional[Literal['reduce', 'no-preference', 'null']] = None
    forced_colors: Optional[Literal['active', 'none', 'null']] = None


class PdfCommand(BaseCommand):
    action: Literal['pdf'] = 'pdf'
    path: Optional[str] = None
    format: Optional[Literal['Letter', 'Legal', 'Tabloid', 'Ledger', 'A0', 'A1', 'A2', 'A3', 'A4', 'A5', 'A6']] = None
    landscape: Optional[bool] = None
    print_background: Optional[bool] = None
    scale: Optional[Annotated[float, Field(ge=0.1, le=2)]] = None
    margin: Optional[PdfMargin] = None


# ---------------------------------------------------------------------------
# Debugging and recorders
# ---------------------------------------------------------------------------

class PauseCommand(BaseCommand):
    action: Literal['pause'] = 'pause'


class HighlightCommand(BaseCommand):
    action: Literal['highlight'] = 'highlight'
    selector: str


class ClearHighlightsCommand(BaseCommand):
    action: Literal['clearHighlights'] = 'clearHighlights'


class GetConsoleCommand(BaseCommand):
    action: Literal['getConsole'] = 'getConsole'
    clear: Optional[bool] = None
    type: Literal['log', 'warning', 'error', 'info', 'debug', 'all'] = 'all'


class GetErrorsCommand(BaseCommand):
    action: Literal['getErrors'] = 'getErrors'
    clear: Optional[bool] = None


class StartTraceCommand(BaseCommand):
    action: Literal['startTrace'] = 'startTrace'
    path: Optional[str] = None
    screenshots: bool = True
    snapshots: bool = True
    sources: bool = False


class StopTraceCommand(BaseCommand):
    action: Literal['stopTrace'] = 'stopTrace'
    path: Optional[str] = None


# ---------------------------------------------------------------------------
# Clipboard
# ---------------------------------------------------------------------------

class ClipboardCopyCommand(BaseCommand):
    action: Literal['clipboardCopy'] = 'clipboardCopy'
    selector: Optional[str] = None


class ClipboardPasteCommand(BaseCommand):
    action: Literal['clipboardPaste'] = 'clipboardPaste'
    selector: Optional[str] = None


class ClipboardReadCommand(BaseCommand):
    action: Literal['clipboardRead'] = 'clipboardRead'


class SelectAllCommand(BaseCommand):
    action: Literal['selectAll'] = 'selectAll'
    selector: Optional[str] = None


# ---------------------------------------------------------------------------
# Semantic locators
# ---------------------------------------------------------------------------

class FindByRoleCommand(BaseCommand):
    action: Literal['findByRole'] = 'findByRole'
    role: str
    name: Optional[str] = None
    exact: Optional[bool] = None
    include_hidden: Optional[bool] = None


class FindByTextCommand(BaseCommand):
    action: Literal['findByText'] = 'findByText'
    text: str
    exact: Optional[bool] = None


class FindByLabelCommand(BaseCommand):
    action: Literal['findByLabel'] = 'findByLabel'
    label: str
    exact: Optional[bool] = None


class FindByPlaceholderCommand(BaseCommand):
    action: Literal['findByPlaceholder'] = 'findByPlaceholder'
    placeholder: str
    exact: Optional[bool] = None


class FindByAltCommand(BaseCommand):
    action: Literal['findByAlt'] = 'findByAlt'
    alt: str
    exact: Optional[bool] = None


class FindByTitleCommand(BaseCommand):
    action: Literal['findByTitle'] = 'findByTitle'
    title: str
    exact: Optional[bool] = None


class FindByTestIdCommand(BaseCommand):
    action: Literal['findByTestId'] = 'findByTestId'
    test_id: str


# ---------------------------------------------------------------------------
# Tagged union
# ---------------------------------------------------------------------------

COMMAND_CLASSES = (
    LaunchCommand, CloseCommand,
    NavigateCommand, BackCommand, ForwardCommand, ReloadCommand,
    ClickCommand, DoubleClickCommand, TypeCommand, FillCommand, ClearCommand, CheckCommand,
    UncheckCommand, SelectCommand, HoverCommand, FocusCommand, PressCommand, ScrollCommand,
    ScrollIntoViewCommand, DragCommand, UploadCommand,
    SnapshotCommand, DomTreeCommand, ScreenshotCommand, GetTextCommand, GetHtmlCommand,
    GetAttributeCommand, GetValueCommand, GetBoundingBoxCommand, GetTitleCommand, GetUrlCommand,
    GetCountCommand,
    IsVisibleCommand, IsEnabledCommand, IsCheckedCommand, IsEditableCommand, IsHiddenCommand,
    WaitCommand, WaitForSelectorCommand, WaitForNavigationCommand, WaitForLoadStateCommand,
    WaitForUrlCommand, WaitForTextCommand, WaitForFunctionCommand,
    SwitchToFrameCommand, SwitchToMainFrameCommand, GetFramesCommand,
    NewPageCommand, SwitchPageCommand, ClosePageCommand, GetPagesCommand, BringToFrontCommand,
    NewWindowCommand,
    EvaluateCommand, EvaluateHandleCommand,
    SetExtraHeadersCommand, SetOfflineCommand, RouteCommand, UnrouteCommand, GetRequestsCommand,
    GetCookiesCommand, SetCookiesCommand, ClearCookiesCommand,
    GetLocalStorageCommand, SetLocalStorageCommand, ClearLocalStorageCommand,
    GetSessionStorageCommand, SetSessionStorageCommand, ClearSessionStorageCommand,
    SaveStateCommand, LoadStateCommand,
    HandleDialogCommand, SetViewportCommand, EmulateDeviceCommand, SetGeolocationCommand,
    SetPermissionsCommand, EmulateMediaCommand, PdfCommand,
    PauseCommand, HighlightCommand, ClearHighlightsCommand, GetConsoleCommand, GetErrorsCommand,
    StartTraceCommand, StopTraceCommand,
    ClipboardCopyCommand, ClipboardPasteCommand, ClipboardReadCommand, SelectAllCommand,
    FindByRoleCommand, FindByTextCommand, FindByLabelCommand, FindByPlaceholderCommand,
    FindByAltCommand, FindByTitleCommand, FindByTestIdCommand,
)

# action tag -> command class
COMMAND_TYPES: Dict[str, type] = {cls.model_fields['action'].default: cls for cls in COMMAND_CLASSES}

# Commands that drive the daemon lifecycle rather than the page
LIFECYCLE_ACTIONS = frozenset({'launch', 'close'})

Command = Annotated[Union[COMMAND_CLASSES], Field(discriminator='action')]

_command_adapter: TypeAdapter = TypeAdapter(Command)


@dataclass
class ParseResult:
    success: bool
    command: Optional[BaseCommand] = None
    error: Optional[str] = None
    id: Optional[str] = None


def _format_validation_error(exc: ValidationError, action: Optional[str]) -> str:
    problems = []
    for err in exc.errors():
        loc = [str(part) for part in err['loc']]
        # Discriminated unions prefix the location with the tag
        if loc and loc[0] == action:
            loc = loc[1:]
        message = err['msg']
        problems.append(f"{'.'.join(loc)}: {message}" if loc else message)
    return 'Validation error: ' + ', '.join(problems)


def parse_command(raw: Union[str, bytes]) -> ParseResult:
    """Decode and validate one command payload.

    Never raises.  On failure the ``id`` is recovered independently of
    validation so the caller can still correlate the error.
    """
    try:
        data = json.loads(raw)
    except (TypeError, ValueError):
        return ParseResult(success=False, error='Invalid JSON')

    command_id = None
    action = None
    if isinstance(data, dict):
        if 'id' in data and data['id'] is not None:
            command_id = str(data['id'])
        if isinstance(data.get('action'), str):
            action = data['action']

    try:
        command = _command_adapter.validate_json(raw)
    except ValidationError as e:
        return ParseResult(success=False, error=_format_validation_error(e, action), id=command_id)

    return ParseResult(success=True, command=command, id=command.id)


def command_to_dict(command: BaseCommand) -> Dict[str, Any]:
    return command.model_dump(mode='json', by_alias=True, exclude_none=True)


def serialize_command(command: BaseCommand) -> str:
    return json.dumps(command_to_dict(command))


def build_command(action: str, id: str = '1', **fields) -> BaseCommand:
    """Construct a command from snake_case keyword arguments."""
    try:
        cls = COMMAND_TYPES[action]
    except KeyError:
        raise ValueError(f'Unknown action: {action}') from None
    return cls.model_validate_json(json.dumps({"id": id, **fields}))


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

@dataclass
class Response:
    id: str
    success: bool
    result: Any = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {'id': self.id, 'success': self.success}
        if self.success:
            if self.result is not None:
                data['result'] = self.result
        else:
            data['error'] = self.error or 'Unknown error'
        return data


def success_response(id: str, result: Any = None) -> Response:
    return Response(id=id, success=True, result=result)


def error_response(id: str, error: str) -> Response:
    return Response(id=id, success=False, error=error)


def serialize_response(response: Response) -> str:
    return json.dumps(response.to_dict(), default=str)


def parse_response(raw: Union[str, bytes]) -> Response:
    data = json.loads(raw)
    if not isinstance(data, dict) or 'id' not in data or not isinstance(data.get('success'), bool):
        raise ValueError(f'Invalid response: {raw!r}')
    if data['success']:
        return Response(id=str(data['id']), success=True, result=data.get('result'))
    return Response(id=str(data['id']), success=False, error=data.get('error'))
