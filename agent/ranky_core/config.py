"""
Paths, logging setup, config load/save, safe_print.
"""

import os
import json
import sys
import logging
from pathlib import Path

from .constants import (
    DEFAULT_SERVER_URL, DEFAULT_TOKEN_ALGORITHMS, INACTIVITY_TIMEOUT_SEC,
)


# ─── Paths ───────────────────────────────────────────────────────
# One config/vault/log per user per machine.
_FOLDER_NAME = ".ranky"


def agent_home():
    """Agent home directory. RANKY_HOME overrides the per-user default."""
    override = os.environ.get("RANKY_HOME")
    if override:
        return Path(override)
    return Path.home() / _FOLDER_NAME


def config_file():
    return agent_home() / "config.json"


def vault_file():
    return agent_home() / "vault.json"


def log_file():
    return agent_home() / "agent.log"


# ─── Safe print (no crash when stdout is closed by the host) ─────

def safe_print(*args, **kwargs):
    try:
        print(*args, **kwargs)
    except Exception:
        pass


# ─── Logging ─────────────────────────────────────────────────────

log = logging.getLogger("ranky")

_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
_LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level=logging.INFO):
    """Attach file + stderr handlers to the shared logger. Idempotent."""
    if log.handlers:
        return log

    home = agent_home()
    home.mkdir(parents=True, exist_ok=True)
    path = log_file()

    try:
        if path.exists() and path.stat().st_size > 1_000_000:
            path.write_text("")
    except OSError:
        pass

    file_handler = logging.FileHandler(str(path), encoding="utf-8")
    file_handler.setFormatter(logging.Formatter(_LOG_FORMAT, datefmt=_LOG_DATEFMT))
    log.addHandler(file_handler)

    # stdout may carry host traffic, so the console copy goes to stderr
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    log.addHandler(console_handler)

    log.setLevel(level)
    return log


# ─── Config Management ──────────────────────────────────────────

DEFAULT_CONFIG = {
    "serverUrl": DEFAULT_SERVER_URL,
    "verificationKey": "",
    "tokenAlgorithms": list(DEFAULT_TOKEN_ALGORITHMS),
    "inactivityTimeoutSec": INACTIVITY_TIMEOUT_SEC,
    "accountProvisioned": False,
}


def with_defaults(config):
    """Return a copy of config with missing keys filled from DEFAULT_CONFIG."""
    merged = dict(DEFAULT_CONFIG)
    merged["tokenAlgorithms"] = list(DEFAULT_TOKEN_ALGORITHMS)
    if config:
        merged.update(config)
    merged["serverUrl"] = merged["serverUrl"].rstrip("/")
    return merged


def load_config():
    """Load config from disk. Returns dict or None."""
    path = config_file()
    if path.exists():
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (json.JSONDecodeError, IOError):
            return None
    return None


def save_config(config):
    """Save config dict to disk."""
    path = config_file()
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(config, f, indent=2)
    log.info("Config saved to %s", path)
