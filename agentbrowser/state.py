# state.py
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, List, Optional

from .constants import MAX_CONSOLE_MESSAGES, MAX_NETWORK_REQUESTS, MAX_PAGE_ERRORS
from .errors import InvalidRefError
from .models import RefEntry, RefMap
from .snapshots import parse_ref

logger = logging.getLogger(__name__)


def _buffer(limit: int) -> Deque[Dict[str, Any]]:
    return deque(maxlen=limit)


@dataclass
class SessionState:
    """Mutable state shared by every connection of one daemon.

    The ref table is replaced as a whole by each snapshot and never merged.
    Recorder buffers are bounded and only emptied when a caller asks for it.
    """
    refs: RefMap = field(default_factory=dict)
    active_page_index: int = 0
    active_frame: Optional[Any] = None
    launched: bool = False
    console_messages: Deque[Dict[str, Any]] = field(default_factory=lambda: _buffer(MAX_CONSOLE_MESSAGES))
    page_errors: Deque[Dict[str, Any]] = field(default_factory=lambda: _buffer(MAX_PAGE_ERRORS))
    network_requests: Deque[Dict[str, Any]] = field(default_factory=lambda: _buffer(MAX_NETWORK_REQUESTS))

    def replace_refs(self, refs: RefMap) -> None:
        self.refs = dict(refs)
        logger.debug(f"Ref table replaced ({len(self.refs)} refs)")

    def clear_refs(self) -> None:
        self.refs = {}

    def lookup_ref(self, arg: str) -> Optional[RefEntry]:
        """Resolve ``arg`` against the current ref table.

        Returns None when ``arg`` is not ref syntax at all.  Raises
        InvalidRefError when it is a ref the current table does not hold.
        """
        ref = parse_ref(arg)
        if ref is None:
            return None
        entry = self.refs.get(ref)
        if entry is None:
            raise InvalidRefError(arg)
        return entry

    def record_console(self, message_type: str, text: str) -> None:
        self.console_messages.append({'type': message_type, 'text': text})

    def record_error(self, message: str) -> None:
        self.page_errors.append({'message': message})

    def record_request(self, request: Dict[str, Any]) -> None:
        self.network_requests.append(request)

    def console(self, message_type: str = 'all', clear: bool = False) -> List[Dict[str, Any]]:
        messages = [m for m in self.console_messages if message_type == 'all' or m['type'] == message_type]
        if clear:
            self.console_messages.clear()
        return messages

    def errors(self, clear: bool = False) -> List[Dict[str, Any]]:
        errors = list(self.page_errors)
        if clear:
            self.page_errors.clear()
        return errors

    def requests(self, url_pattern: Optional[str] = None, clear: bool = False) -> List[Dict[str, Any]]:
        requests = [r for r in self.network_requests if not url_pattern or url_pattern in r.get('url', '')]
        if clear:
            self.network_requests.clear()
        return requests

    def reset(self) -> None:
        """Back to the unlaunched state."""
        self.refs = {}
        self.active_page_index = 0
        self.active_frame = None
        self.launched = False
        self.console_messages.clear()
        self.page_errors.clear()
        self.network_requests.clear()
