#!/usr/bin/env python3
# SPDX-License-Identifier: MIT
"""
Configuration lookup for pidlock.

Environment variables take precedence over the optional settings file at
$XDG_CONFIG_HOME/pidlock/settings.json, which looks like:

    {"baseDir": "/run/user/1000/pidlock", "debugLevel": 1}

A missing or malformed settings file is treated as empty.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional


BASE_ENV_VAR = "PIDLOCK_BASE"
DEBUG_ENV_VAR = "PIDLOCK_DEBUG"
STATE_ENV_VAR = "PIDLOCK_STATE"
SETTINGS_FILE_NAME = "settings.json"
APP_DIR_NAME = "pidlock"


def get_config_dir() -> Path:
    """Directory holding settings.json (XDG_CONFIG_HOME/pidlock)."""
    xdg_config = os.environ.get("XDG_CONFIG_HOME") or (Path.home() / ".config")
    return Path(xdg_config) / APP_DIR_NAME


def read_settings() -> Dict[str, Any]:
    """Read settings.json, returning {} if it is absent or unusable."""
    settings_path = get_config_dir() / SETTINGS_FILE_NAME
    try:
        with open(settings_path) as f:
            settings = json.load(f)
    except (OSError, json.JSONDecodeError, ValueError):
        return {}
    if not isinstance(settings, dict):
        return {}
    return settings


def get_base_dir(explicit: Optional[str] = None) -> Path:
    """
    Resolve the base directory that lock namespaces live under.

    Precedence: explicit argument, PIDLOCK_BASE, settings.json baseDir,
    XDG_RUNTIME_DIR/pidlock, then <tempdir>/pidlock.
    """
    if explicit:
        return Path(explicit)

    env_base = os.environ.get(BASE_ENV_VAR)
    if env_base:
        return Path(env_base)

    settings_base = read_settings().get("baseDir")
    if isinstance(settings_base, str) and settings_base:
        return Path(settings_base).expanduser()

    runtime_dir = os.environ.get("XDG_RUNTIME_DIR")
    if runtime_dir:
        return Path(runtime_dir) / APP_DIR_NAME
    return Path(tempfile.gettempdir()) / APP_DIR_NAME


def get_debug_level() -> int:
    """
    Get the configured debug level.

    Checks PIDLOCK_DEBUG first, then settings.json debugLevel. Defaults to 0
    (disabled); a library should not write logs nobody asked for.
    """
    env_level = os.environ.get(DEBUG_ENV_VAR)
    if env_level:
        try:
            return int(env_level)
        except ValueError:
            # Treat any non-numeric truthy value as level 1
            return 1 if env_level.lower() in ("true", "yes", "on") else 0

    level = read_settings().get("debugLevel")
    if level is not None:
        try:
            return int(level)
        except (ValueError, TypeError):
            return 0
    return 0


def get_state_dir() -> Path:
    """
    Directory for the debug log.

    Uses PIDLOCK_STATE if set, otherwise XDG_STATE_HOME/pidlock
    (~/.local/state/pidlock).
    """
    explicit_state = os.environ.get(STATE_ENV_VAR)
    if explicit_state:
        return Path(explicit_state)

    xdg_state = os.environ.get("XDG_STATE_HOME") or (Path.home() / ".local" / "state")
    return Path(xdg_state) / APP_DIR_NAME
