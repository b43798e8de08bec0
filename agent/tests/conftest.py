"""Shared fakes and fixtures."""

import time

import jwt
import pytest

from ranky_core.config import with_defaults


SECRET = "test-verification-key-0123456789abcdef"


@pytest.fixture(autouse=True)
def _isolated_home(tmp_path, monkeypatch):
    monkeypatch.setenv("RANKY_HOME", str(tmp_path / "home"))


class FakeClock:
    """Manually advanced time source (seconds)."""

    def __init__(self, start=1000.0):
        self.t = start

    def __call__(self):
        return self.t

    def advance(self, seconds):
        self.t += seconds


class FakeResponse:

    def __init__(self, status_code=200, data=None, text=""):
        self.status_code = status_code
        self._data = data
        self.text = text

    def json(self):
        if self._data is None:
            raise ValueError("no json body")
        return self._data


class FakeSession:
    """
    Scripted stand-in for requests.Session. Responses are queued per path
    suffix; the last queued response repeats. Every call is recorded.
    """

    def __init__(self):
        self.calls = []
        self._responses = {}
        self.closed = False

    def queue(self, path, *responses):
        self._responses.setdefault(path, []).extend(responses)

    def respond(self, path, *responses):
        self._responses[path] = list(responses)

    def calls_to(self, path):
        return [c for c in self.calls if c["url"].endswith(path)]

    def post(self, url, json=None, headers=None, timeout=None):
        self.calls.append({"url": url, "json": json, "headers": headers or {}})
        for path, queued in self._responses.items():
            if url.endswith(path):
                item = queued.pop(0) if len(queued) > 1 else queued[0]
                if isinstance(item, Exception):
                    raise item
                return item
        return FakeResponse(404, text="not found")

    def close(self):
        self.closed = True


class FakeVault:

    def __init__(self, data=None):
        self.data = dict(data or {})

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value):
        self.data[key] = value

    def delete(self, key):
        self.data.pop(key, None)


class ScriptedCollector:
    """Token prompt that returns queued answers (None = cancel)."""

    def __init__(self, *answers):
        self.answers = list(answers)
        self.prompts = 0

    def __call__(self):
        self.prompts += 1
        if not self.answers:
            return None
        return self.answers.pop(0)


class RecordingNotifier:

    def __init__(self):
        self.infos = []
        self.errors = []

    def info(self, message):
        self.infos.append(message)

    def error(self, message):
        self.errors.append(message)


class FakeHandle:

    def __init__(self, scheduler, delay, callback):
        self._scheduler = scheduler
        self.delay = delay
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class FakeScheduler:
    """call_later replacement: timers fire only when the test says so."""

    def __init__(self):
        self.handles = []

    def call_later(self, delay, callback):
        handle = FakeHandle(self, delay, callback)
        self.handles.append(handle)
        return handle

    @property
    def live(self):
        return [h for h in self.handles if not h.cancelled]

    def fire_pending(self):
        for handle in self.live:
            handle.cancelled = True
            handle.callback()


def make_token(sub="user-42", secret=SECRET, **claims):
    payload = {
        "sub": sub,
        "email": "dev@example.com",
        "username": "dev",
        "name": "Dev Eloper",
        "iat": int(time.time()),
    }
    payload.update(claims)
    return jwt.encode(payload, secret, algorithm="HS256")


def ok(data=None):
    return FakeResponse(200, data if data is not None else {"success": True})


@pytest.fixture
def config():
    return with_defaults({
        "serverUrl": "http://collector.test/api/v1/users/",
        "verificationKey": SECRET,
    })


@pytest.fixture
def session():
    s = FakeSession()
    s.queue("/verify-auth", ok())
    s.queue("/create-account", ok())
    s.queue("/coding-stats", FakeResponse(201, {"ok": True}))
    return s
