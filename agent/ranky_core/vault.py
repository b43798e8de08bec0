"""
Key-value secret vault: get/set/delete over opaque strings.

FileVault keeps values in a JSON file readable only by the owner.
Hosts with a real secret store pass their own object with the same
three methods.
"""

import json
import os

from .config import log


class FileVault:

    def __init__(self, path):
        self._path = path

    def _read(self):
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            log.warning("Vault unreadable, treating as empty: %s", e)
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data):
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(".tmp")
        fd = os.open(str(tmp), os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f)
        os.replace(tmp, self._path)

    def get(self, key):
        value = self._read().get(key)
        return value if isinstance(value, str) else None

    def set(self, key, value):
        data = self._read()
        data[key] = value
        self._write(data)

    def delete(self, key):
        data = self._read()
        if key in data:
            del data[key]
            self._write(data)
