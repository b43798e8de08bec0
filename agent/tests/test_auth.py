import asyncio
import json

import jwt
import pytest
import requests

from ranky_core import http_client
from ranky_core.api import CollectorApi
from ranky_core.auth import AuthState, CredentialManager, RetryPolicy, decode_token
from ranky_core.constants import VAULT_PROFILE_KEY, VAULT_TOKEN_KEY
from ranky_core.errors import (
    AuthenticationFailed, InvalidTokenFormat, Unauthorized, VerificationRejected,
)
from ranky_core.state import SessionContext

from conftest import (
    SECRET, FakeResponse, FakeVault, RecordingNotifier, ScriptedCollector, make_token, ok,
)


def _manager(config, session, vault=None, collector=None):
    ctx = SessionContext()
    notifier = RecordingNotifier()
    saved = []
    manager = CredentialManager(
        ctx,
        CollectorApi(config, http=session),
        vault if vault is not None else FakeVault(),
        collector or ScriptedCollector(),
        config,
        notifier,
        persist_config=lambda c: saved.append(dict(c)),
    )
    return ctx, manager, notifier, saved


def _cached_vault(token):
    claims = jwt.decode(token, SECRET, algorithms=["HS256"])
    profile = {"userId": claims["sub"], "email": claims["email"],
               "username": claims["username"], "displayName": claims["name"]}
    return FakeVault({VAULT_PROFILE_KEY: json.dumps(profile), VAULT_TOKEN_KEY: token})


# ─── decode_token ────────────────────────────────────────────────

def test_decode_valid_token():
    claims = decode_token(make_token(sub="abc"), SECRET, ["HS256"])
    assert claims["sub"] == "abc"


@pytest.mark.parametrize("raw", [
    "",
    "not-a-jwt",
    make_token(secret="another-secret-key-0123456789abcdef"),
    jwt.encode({"sub": "abc"}, None, algorithm="none"),
    jwt.encode({"email": "x@example.com"}, SECRET, algorithm="HS256"),
    make_token(exp=1),
])
def test_decode_rejects_bad_tokens(raw):
    with pytest.raises(InvalidTokenFormat):
        decode_token(raw, SECRET, ["HS256"])


def test_decode_without_key_fails():
    with pytest.raises(InvalidTokenFormat):
        decode_token(make_token(), "", ["HS256"])


# ─── process_token / provisioning ────────────────────────────────

def test_valid_token_persists_credential_and_provisions_once(config, session):
    vault = FakeVault()
    ctx, manager, _, saved = _manager(config, session, vault=vault)
    token = make_token()

    async def scenario():
        first = await manager.process_token(token)
        second = await manager.process_token(token)
        return first, second

    first, second = asyncio.run(scenario())

    assert first.user_id == "user-42"
    assert first.email == "dev@example.com"
    assert first.display_name == "Dev Eloper"
    assert ctx.credential == second
    assert manager.state is AuthState.AUTHENTICATED
    assert vault.get(VAULT_TOKEN_KEY) == token
    assert json.loads(vault.get(VAULT_PROFILE_KEY))["userId"] == "user-42"
    assert "token" not in json.loads(vault.get(VAULT_PROFILE_KEY))

    provisions = session.calls_to("/create-account")
    assert len(provisions) == 1
    assert provisions[0]["json"]["subjectId"] == "user-42"
    assert provisions[0]["json"]["name"] == "Dev Eloper"
    assert config["accountProvisioned"] is True
    assert saved and saved[-1]["accountProvisioned"] is True

    verify = session.calls_to("/verify-auth")
    assert verify[0]["json"] == {"subjectId": "user-42"}
    assert verify[0]["headers"]["Authorization"] == f"Bearer {token}"


def test_verification_rejected_clears_cache(config, session):
    session.respond("/verify-auth", FakeResponse(200, {"success": False}))
    token = make_token()
    vault = _cached_vault(token)
    ctx, manager, _, _ = _manager(config, session, vault=vault)

    with pytest.raises(VerificationRejected):
        asyncio.run(manager.process_token(token))

    assert vault.data == {}
    assert ctx.credential is None
    assert manager.state is AuthState.UNAUTHENTICATED


def test_verify_network_error_counts_as_rejection(config, session, monkeypatch):
    monkeypatch.setattr(http_client, "reset_session", lambda s: s)
    session.respond("/verify-auth", requests.ConnectionError("down"))
    ctx, manager, _, _ = _manager(config, session)

    with pytest.raises(VerificationRejected):
        asyncio.run(manager.process_token(make_token()))
    assert manager.state is AuthState.UNAUTHENTICATED


def test_provisioning_failure_keeps_identity_and_retries_later(config, session):
    session.respond("/create-account", FakeResponse(500, text="boom"), ok())
    ctx, manager, notifier, _ = _manager(config, session)
    token = make_token()

    asyncio.run(manager.process_token(token))
    assert manager.is_authenticated
    assert config["accountProvisioned"] is False
    assert any("refresh-authentication" in msg for msg in notifier.errors)

    asyncio.run(manager.process_token(token))
    assert config["accountProvisioned"] is True
    assert len(session.calls_to("/create-account")) == 2


# ─── activation ──────────────────────────────────────────────────

def test_activate_uses_cached_credential_without_prompt(config, session):
    config["accountProvisioned"] = True
    token = make_token()
    collector = ScriptedCollector()
    ctx, manager, _, _ = _manager(config, session, vault=_cached_vault(token), collector=collector)

    credential = asyncio.run(manager.activate())

    assert credential.token == token
    assert collector.prompts == 0
    assert len(session.calls_to("/verify-auth")) == 1
    assert session.calls_to("/create-account") == []


def test_activate_reprompts_after_invalid_token(config, session):
    collector = ScriptedCollector("garbage", make_token())
    ctx, manager, notifier, _ = _manager(config, session, collector=collector)

    credential = asyncio.run(manager.activate())

    assert credential is not None
    assert collector.prompts == 2
    assert len(notifier.errors) == 1
    assert manager.state is AuthState.AUTHENTICATED


def test_activate_gives_up_after_prompt_limit(config, session):
    collector = ScriptedCollector("bad", "worse", "worst", make_token())
    ctx, manager, notifier, _ = _manager(config, session, collector=collector)

    assert asyncio.run(manager.activate()) is None
    assert collector.prompts == 3
    assert manager.state is AuthState.UNAUTHENTICATED
    assert any("enter-token-manually" in msg for msg in notifier.errors)


def test_activate_cancelled(config, session):
    ctx, manager, _, _ = _manager(config, session, collector=ScriptedCollector())
    assert asyncio.run(manager.activate()) is None
    assert manager.state is AuthState.UNAUTHENTICATED
    assert session.calls == []


def test_corrupted_cache_is_cleared_then_prompted(config, session):
    vault = FakeVault({VAULT_PROFILE_KEY: "{not json", VAULT_TOKEN_KEY: make_token()})
    collector = ScriptedCollector(make_token(sub="fresh"))
    ctx, manager, _, _ = _manager(config, session, vault=vault, collector=collector)

    credential = asyncio.run(manager.activate())

    assert credential.user_id == "fresh"
    assert collector.prompts == 1
    assert json.loads(vault.get(VAULT_PROFILE_KEY))["userId"] == "fresh"


def test_cached_profile_subject_mismatch_is_cleared(config, session):
    vault = _cached_vault(make_token(sub="someone"))
    vault.set(VAULT_TOKEN_KEY, make_token(sub="someone-else"))
    ctx, manager, _, _ = _manager(config, session, vault=vault)

    assert asyncio.run(manager.activate()) is None
    assert vault.data == {}


def test_clear_removes_vault_entries(config, session):
    token = make_token()
    vault = _cached_vault(token)
    ctx, manager, _, _ = _manager(config, session, vault=vault)

    async def scenario():
        await manager.activate()
        await manager.clear()

    asyncio.run(scenario())
    assert vault.data == {}
    assert ctx.credential is None
    assert manager.state is AuthState.UNAUTHENTICATED


# ─── renewal ─────────────────────────────────────────────────────

def _send_stats(api):
    def send(credential):
        api.send_coding_stats(credential.token, {
            "date": "2026-10-19", "totalTimeMinutes": 1.0, "sessionEndReason": "shutdown",
        })
    return send


def test_single_401_triggers_one_renewal_and_one_retry(config, session):
    session.respond("/coding-stats", FakeResponse(401), FakeResponse(200))
    old, new = make_token(jti="old"), make_token(jti="new")
    collector = ScriptedCollector(new)
    ctx, manager, _, _ = _manager(config, session, vault=_cached_vault(old), collector=collector)
    api = CollectorApi(config, http=session)

    async def scenario():
        await manager.activate()
        await manager.call_with_renewal(_send_stats(api))

    asyncio.run(scenario())

    stats = session.calls_to("/coding-stats")
    assert len(stats) == 2
    assert stats[0]["headers"]["Authorization"] == f"Bearer {old}"
    assert stats[1]["headers"]["Authorization"] == f"Bearer {new}"
    assert collector.prompts == 1
    assert ctx.credential.token == new
    assert manager.state is AuthState.AUTHENTICATED


def test_second_401_raises_without_looping(config, session):
    session.respond("/coding-stats", FakeResponse(401))
    collector = ScriptedCollector(make_token(jti="renewed"), make_token(jti="extra"))
    vault = _cached_vault(make_token())
    ctx, manager, notifier, _ = _manager(config, session, vault=vault, collector=collector)
    api = CollectorApi(config, http=session)

    async def scenario():
        await manager.activate()
        await manager.call_with_renewal(_send_stats(api))

    with pytest.raises(AuthenticationFailed):
        asyncio.run(scenario())

    assert len(session.calls_to("/coding-stats")) == 2
    assert collector.prompts == 1
    assert ctx.credential is None
    assert manager.state is AuthState.UNAUTHENTICATED
    assert vault.data == {}
    assert notifier.errors


def test_renewal_cancelled_raises(config, session):
    collector = ScriptedCollector()
    ctx, manager, _, _ = _manager(config, session, vault=_cached_vault(make_token()),
                                  collector=collector)

    def always_unauthorized(credential):
        raise Unauthorized("401")

    async def scenario():
        await manager.activate()
        await manager.call_with_renewal(always_unauthorized)

    with pytest.raises(AuthenticationFailed):
        asyncio.run(scenario())
    assert collector.prompts == 1
    assert manager.state is AuthState.UNAUTHENTICATED


def test_zero_attempt_policy_never_renews(config, session):
    collector = ScriptedCollector(make_token())
    ctx, manager, _, _ = _manager(config, session, vault=_cached_vault(make_token()),
                                  collector=collector)
    calls = []

    def unauthorized(credential):
        calls.append(credential)
        raise Unauthorized("401")

    async def scenario():
        await manager.activate()
        await manager.call_with_renewal(unauthorized, policy=RetryPolicy(max_attempts=0))

    with pytest.raises(AuthenticationFailed):
        asyncio.run(scenario())
    assert len(calls) == 1
    assert collector.prompts == 0


def test_call_with_renewal_requires_credential(config, session):
    ctx, manager, _, _ = _manager(config, session)
    with pytest.raises(AuthenticationFailed):
        asyncio.run(manager.call_with_renewal(lambda c: None))


def test_malformed_manual_token_keeps_current_identity(config, session):
    token = make_token()
    vault = _cached_vault(token)
    collector = ScriptedCollector("typo-garbage")
    ctx, manager, notifier, _ = _manager(config, session, vault=vault, collector=collector)

    async def scenario():
        await manager.activate()
        return await manager.enter_token_manually()

    assert asyncio.run(scenario()) is ctx.credential
    assert ctx.credential.token == token
    assert manager.state is AuthState.AUTHENTICATED
    assert set(vault.data) == {VAULT_PROFILE_KEY, VAULT_TOKEN_KEY}
    assert len(notifier.errors) == 1


def test_exhausted_manual_entry_keeps_current_identity(config, session):
    token = make_token()
    collector = ScriptedCollector("bad", "worse", "worst")
    ctx, manager, notifier, _ = _manager(config, session, vault=_cached_vault(token),
                                         collector=collector)

    async def scenario():
        await manager.activate()
        return await manager.enter_token_manually()

    assert asyncio.run(scenario()) is None
    assert collector.prompts == 3
    assert ctx.credential.token == token
    assert manager.is_authenticated
    assert not any("enter-token-manually" in msg for msg in notifier.errors)
