# constants.py
import logging

logger = logging.getLogger(__name__)

# Session / IPC
DEFAULT_SESSION = "default"
SOCKET_PREFIX = "agentbrowser"
TCP_HOST = "127.0.0.1"
TCP_PORT_BASE = 49152
TCP_PORT_SPAN = 16383

# Browser
DEFAULT_BROWSER = "chromium"
SUPPORTED_BROWSERS = ("chromium", "firefox", "webkit")
DEFAULT_VIEWPORT = {"width": 1280, "height": 720}

# Timeouts (ms)
CLIENT_TIMEOUT = 30000
READY_PROBE_TIMEOUT = 2000
DAEMON_START_TIMEOUT = 5000
DAEMON_POLL_INTERVAL = 100

# Recorder buffers
MAX_CONSOLE_MESSAGES = 1000
MAX_PAGE_ERRORS = 500
MAX_NETWORK_REQUESTS = 2000

# Snapshot
INTERACTIVE_ROLES = frozenset({
    "button",
    "checkbox",
    "combobox",
    "link",
    "listbox",
    "menuitem",
    "menuitemcheckbox",
    "menuitemradio",
    "option",
    "radio",
    "searchbox",
    "slider",
    "spinbutton",
    "switch",
    "tab",
    "textbox",
    "treeitem",
})

FUSION_COMPUTED_STYLES = ["display", "visibility", "opacity", "pointer-events"]

HIGHLIGHT_ATTRIBUTE = "data-agentbrowser-highlight"

# Environment variables
ENV_SESSION = "AGENT_BROWSER_SESSION"
ENV_HEADED = "AGENT_BROWSER_HEADED"
ENV_EXECUTABLE_PATH = "AGENT_BROWSER_EXECUTABLE_PATH"
ENV_EXTENSIONS = "AGENT_BROWSER_EXTENSIONS"
ENV_BROWSER = "AGENT_BROWSER_BROWSER"
ENV_SOCKET_DIR = "AGENT_BROWSER_SOCKET_DIR"
ENV_CONFIG = "AGENT_BROWSER_CONFIG"
