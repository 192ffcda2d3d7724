# config.py
"""Layered configuration.

Precedence, lowest first: module constants, an optional YAML file,
AGENT_BROWSER_* environment variables, then command-line flags.
"""
import logging
import os
import re
import tempfile
from typing import Any, Dict, Mapping, Optional

import yaml

from .constants import (
    CLIENT_TIMEOUT,
    DEFAULT_BROWSER,
    DEFAULT_SESSION,
    DEFAULT_VIEWPORT,
    ENV_BROWSER,
    ENV_CONFIG,
    ENV_EXECUTABLE_PATH,
    ENV_EXTENSIONS,
    ENV_HEADED,
    ENV_SESSION,
    ENV_SOCKET_DIR,
    SUPPORTED_BROWSERS,
)
from .errors import ConfigError

logger = logging.getLogger(__name__)

SESSION_NAME = re.compile(r'^[A-Za-z0-9_.-]+$')

CONFIG_KEYS = (
    'session',
    'headed',
    'browser',
    'executable_path',
    'extensions',
    'socket_dir',
    'viewport',
    'timeout',
    'log_file',
)

_TRUTHY = ('1', 'true', 'yes', 'on')


def default_config() -> Dict[str, Any]:
    return {
        'session': DEFAULT_SESSION,
        'headed': False,
        'browser': DEFAULT_BROWSER,
        'executable_path': None,
        'extensions': [],
        'socket_dir': tempfile.gettempdir(),
        'viewport': dict(DEFAULT_VIEWPORT),
        'timeout': CLIENT_TIMEOUT,
        'log_file': None,
    }


def load_yaml_config(path: str) -> Dict[str, Any]:
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f'Cannot read config file {path}: {e}') from e
    except yaml.YAMLError as e:
        raise ConfigError(f'Invalid YAML in {path}: {e}') from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f'Config file {path} must contain a mapping')
    unknown = sorted(set(data) - set(CONFIG_KEYS))
    if unknown:
        raise ConfigError(f"Unknown config keys in {path}: {', '.join(unknown)}")
    return data


def config_from_env(env: Mapping[str, str]) -> Dict[str, Any]:
    config: Dict[str, Any] = {}
    if env.get(ENV_SESSION):
        config['session'] = env[ENV_SESSION]
    if env.get(ENV_HEADED):
        config['headed'] = env[ENV_HEADED].strip().lower() in _TRUTHY
    if env.get(ENV_EXECUTABLE_PATH):
        config['executable_path'] = env[ENV_EXECUTABLE_PATH]
    if env.get(ENV_EXTENSIONS):
        config['extensions'] = [p.strip() for p in env[ENV_EXTENSIONS].split(',') if p.strip()]
    if env.get(ENV_BROWSER):
        config['browser'] = env[ENV_BROWSER]
    if env.get(ENV_SOCKET_DIR):
        config['socket_dir'] = env[ENV_SOCKET_DIR]
    return config


def config_from_args(args) -> Dict[str, Any]:
    """Pick the flags that were actually given on the command line."""
    config: Dict[str, Any] = {}
    for key in ('session', 'browser', 'executable_path', 'socket_dir', 'timeout'):
        value = getattr(args, key, None)
        if value is not None:
            config[key] = value
    if getattr(args, 'headed', False):
        config['headed'] = True
    extensions = getattr(args, 'extensions', None)
    if extensions:
        config['extensions'] = [p.strip() for p in extensions.split(',') if p.strip()]
    return config


def validate_config(config: Dict[str, Any]) -> Dict[str, Any]:
    session = config.get('session')
    if not isinstance(session, str) or not SESSION_NAME.match(session):
        raise ConfigError(f'Invalid session name: {session!r} (use letters, digits, ".", "_" or "-")')
    if config.get('browser') not in SUPPORTED_BROWSERS:
        raise ConfigError(f"Unsupported browser: {config.get('browser')!r}")
    timeout = config.get('timeout')
    if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
        raise ConfigError(f'Invalid timeout: {timeout!r}')
    viewport = config.get('viewport')
    if viewport is not None:
        if not isinstance(viewport, dict) or set(viewport) != {'width', 'height'}:
            raise ConfigError(f'Invalid viewport: {viewport!r}')
    if not isinstance(config.get('extensions') or [], list):
        raise ConfigError('extensions must be a list of paths')
    return config


def load_config(args=None, env: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    env = os.environ if env is None else env
    config = default_config()

    path = getattr(args, 'config', None) or env.get(ENV_CONFIG)
    if path:
        config.update(load_yaml_config(path))
        logger.debug(f"Loaded config file {path}")

    config.update(config_from_env(env))
    if args is not None:
        config.update(config_from_args(args))
    return validate_config(config)
