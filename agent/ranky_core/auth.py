"""
Credential lifecycle: acquisition, local decode, remote verification,
first-run provisioning, 401-driven renewal, clearing.

  UNAUTHENTICATED → AUTHENTICATING → AUTHENTICATED ⇄ REAUTHENTICATING
                                                     → AUTHENTICATED | UNAUTHENTICATED

Every identity failure lands in UNAUTHENTICATED with no credential in
memory, except a malformed token entered while signed in, which is
rejected without touching the current identity. Vault and HTTP calls run
in the loop's default executor. The token prompt runs on its own daemon
thread so an open dialog never blocks interpreter exit. State is only
touched on the loop thread.
"""

import asyncio
import enum
import functools
import json
import threading
from dataclasses import dataclass

import jwt

from .config import log, save_config
from .constants import (
    MAX_TOKEN_PROMPTS, RENEWAL_MAX_ATTEMPTS, VAULT_PROFILE_KEY, VAULT_TOKEN_KEY,
    CMD_ENTER_TOKEN, CMD_REFRESH_AUTH,
)
from .errors import (
    AuthenticationFailed, InvalidTokenFormat, ProvisioningFailed,
    Unauthorized, VerificationRejected,
)
from .state import Credential, today_iso


class AuthState(enum.Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    REAUTHENTICATING = "reauthenticating"


@dataclass(frozen=True)
class RetryPolicy:
    """How many times a 401 may trigger reacquire-and-retry."""

    max_attempts: int = RENEWAL_MAX_ATTEMPTS


# ─── Token decoding ──────────────────────────────────────────────

def decode_token(raw, key, algorithms):
    """
    Verify the token signature and return its claims.
    Raises InvalidTokenFormat for anything malformed, unsigned, expired,
    or signed with another key.
    """
    token = (raw or "").strip()
    if not token:
        raise InvalidTokenFormat("empty token")
    if not key:
        raise InvalidTokenFormat("no verification key configured")
    try:
        claims = jwt.decode(
            token,
            key,
            algorithms=list(algorithms),
            options={"require": ["sub"], "verify_aud": False},
        )
    except jwt.PyJWTError as e:
        raise InvalidTokenFormat(f"token rejected: {e}") from e
    if not isinstance(claims.get("sub"), str) or not claims["sub"]:
        raise InvalidTokenFormat("token has no subject")
    return claims


def credential_from_claims(claims, token):
    email = str(claims.get("email") or "")
    username = str(
        claims.get("username")
        or claims.get("preferred_username")
        or email.split("@")[0]
        or claims["sub"]
    )
    return Credential(
        user_id=claims["sub"],
        email=email,
        username=username,
        display_name=str(claims.get("name") or username),
        token=token,
    )


# ─── Manager ─────────────────────────────────────────────────────

class CredentialManager:
    """
    Sole writer of the credential vault keys and of context.credential.

    collector: blocking callable returning a raw token string, or None
               when the user cancels.
    notifier:  object with info(msg) / error(msg) for user feedback.
    """

    def __init__(self, context, api, vault, collector, config, notifier,
                 persist_config=save_config, policy=None):
        self._ctx = context
        self._api = api
        self._vault = vault
        self._collector = collector
        self._config = config
        self._notifier = notifier
        self._persist_config = persist_config
        self._policy = policy or RetryPolicy()
        self._lock = asyncio.Lock()
        self.state = AuthState.UNAUTHENTICATED

    @property
    def credential(self):
        return self._ctx.credential

    @property
    def is_authenticated(self):
        return self.state is AuthState.AUTHENTICATED and self._ctx.credential is not None

    # ── plumbing ─────────────────────────────────────────────

    async def _run(self, fn, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(fn, *args))

    def _prompt(self):
        """Run the blocking collector on a daemon thread; returns a Future."""
        loop = asyncio.get_running_loop()
        future = loop.create_future()

        def settle(result, error):
            if future.done():
                return
            if error is not None:
                future.set_exception(error)
            else:
                future.set_result(result)

        def worker():
            try:
                result, error = self._collector(), None
            except Exception as e:
                result, error = None, e
            try:
                loop.call_soon_threadsafe(settle, result, error)
            except RuntimeError:
                log.info("Token prompt finished after shutdown, answer dropped")

        threading.Thread(target=worker, name="token-prompt", daemon=True).start()
        return future

    def _set_state(self, new_state):
        if new_state is not self.state:
            log.info("Auth state: %s → %s", self.state.value, new_state.value)
            self.state = new_state

    def _drop_identity(self):
        self._ctx.credential = None
        self._set_state(AuthState.UNAUTHENTICATED)

    async def _clear_vault(self):
        await self._run(self._vault.delete, VAULT_PROFILE_KEY)
        await self._run(self._vault.delete, VAULT_TOKEN_KEY)

    # ── public operations ────────────────────────────────────

    async def activate(self):
        """Cached credential if it still verifies, otherwise prompt."""
        async with self._lock:
            if self.is_authenticated:
                return self._ctx.credential
            self._set_state(AuthState.AUTHENTICATING)
            credential = await self._load_cached()
            if credential is not None:
                return credential
            return await self._acquire_interactive(MAX_TOKEN_PROMPTS)

    async def refresh(self):
        """Drop the in-memory identity and re-verify (or re-acquire)."""
        async with self._lock:
            self._ctx.credential = None
            self._set_state(AuthState.AUTHENTICATING)
            credential = await self._load_cached()
            if credential is not None:
                return credential
            return await self._acquire_interactive(MAX_TOKEN_PROMPTS)

    async def enter_token_manually(self):
        async with self._lock:
            return await self._acquire_interactive(MAX_TOKEN_PROMPTS)

    async def process_token(self, raw):
        async with self._lock:
            return await self._process_token(raw)

    async def clear(self):
        """Logout / corrupted-cache recovery: wipe vault and memory."""
        async with self._lock:
            await self._clear()

    async def _clear(self):
        await self._clear_vault()
        self._drop_identity()
        log.info("Authentication cleared")

    # ── acquisition ──────────────────────────────────────────

    async def _load_cached(self):
        profile_raw = await self._run(self._vault.get, VAULT_PROFILE_KEY)
        token = await self._run(self._vault.get, VAULT_TOKEN_KEY)
        if not profile_raw or not token:
            log.info("No cached credential")
            return None

        try:
            profile = json.loads(profile_raw)
            if not isinstance(profile, dict):
                raise ValueError("profile is not an object")
        except ValueError as e:
            log.warning("Cached profile corrupted (%s) — clearing", e)
            await self._clear()
            return None

        try:
            claims = decode_token(token, self._config.get("verificationKey"),
                                  self._config.get("tokenAlgorithms", []))
        except InvalidTokenFormat as e:
            log.warning("Cached token unusable (%s) — clearing", e)
            await self._clear()
            return None

        if profile.get("userId") != claims["sub"]:
            log.warning("Cached profile does not match token subject — clearing")
            await self._clear()
            return None

        try:
            return await self._verify_and_store(claims, token.strip(), persist=False)
        except VerificationRejected:
            return None

    async def _acquire_interactive(self, max_prompts, announce=True):
        for attempt in range(max_prompts):
            raw = await self._prompt()
            if raw is None:
                log.info("Token entry cancelled")
                if self._ctx.credential is None:
                    self._set_state(AuthState.UNAUTHENTICATED)
                return self._ctx.credential
            try:
                return await self._process_token(raw)
            except InvalidTokenFormat as e:
                log.warning("Invalid token (prompt %d/%d): %s", attempt + 1, max_prompts, e)
                self._notifier.error("That token is not valid. Please paste the full token.")
            except VerificationRejected as e:
                log.warning("Token rejected (prompt %d/%d): %s", attempt + 1, max_prompts, e)
                self._notifier.error("The server did not accept that token.")

        if self._ctx.credential is None:
            self._set_state(AuthState.UNAUTHENTICATED)
            if announce:
                self._notifier.error(f"Not signed in. Run '{CMD_ENTER_TOKEN}' to try again.")
        return None

    async def _process_token(self, raw):
        # decoded first: a bad entry must not cost the current identity
        claims = decode_token(raw, self._config.get("verificationKey"),
                              self._config.get("tokenAlgorithms", []))
        if self.state is not AuthState.REAUTHENTICATING:
            self._set_state(AuthState.AUTHENTICATING)
        return await self._verify_and_store(claims, raw.strip(), persist=True)

    async def _verify_and_store(self, claims, token, persist):
        credential = credential_from_claims(claims, token)
        ok = await self._run(self._api.verify_auth, credential.user_id, token)
        if not ok:
            await self._clear_vault()
            self._drop_identity()
            raise VerificationRejected(f"subject {credential.user_id} not confirmed")

        if persist:
            await self._run(self._vault.set, VAULT_PROFILE_KEY, json.dumps(credential.profile()))
            await self._run(self._vault.set, VAULT_TOKEN_KEY, token)

        self._ctx.credential = credential
        self._set_state(AuthState.AUTHENTICATED)
        log.info("Authenticated as %s", credential.username)

        await self._provision_once(credential)
        return credential

    async def _provision_once(self, credential):
        if self._config.get("accountProvisioned"):
            return
        try:
            await self._run(self._api.create_account, credential, today_iso())
        except ProvisioningFailed as e:
            log.error("Provisioning failed: %s", e)
            self._notifier.error(
                f"Account setup failed. Run '{CMD_REFRESH_AUTH}' to retry."
            )
            return

        self._config["accountProvisioned"] = True
        try:
            await self._run(self._persist_config, self._config)
        except OSError as e:
            # remote call succeeded; next run will provision again
            log.warning("Could not persist provisioning flag: %s", e)

    # ── renewal ──────────────────────────────────────────────

    async def call_with_renewal(self, fn, policy=None):
        """
        Run blocking fn(credential). On Unauthorized, reacquire once and
        retry once (per policy). Exhaustion raises AuthenticationFailed.
        """
        policy = policy or self._policy
        credential = self._ctx.credential
        if credential is None:
            raise AuthenticationFailed("not authenticated")

        renewals = 0
        while True:
            try:
                return await self._run(fn, credential)
            except Unauthorized as e:
                if renewals >= policy.max_attempts:
                    log.error("Still unauthorized after %d renewal(s): %s", renewals, e)
                    async with self._lock:
                        await self._clear()
                    self._notifier.error(
                        f"Sign-in expired. Run '{CMD_ENTER_TOKEN}' to sign in again."
                    )
                    raise AuthenticationFailed(str(e)) from e
                renewals += 1
                log.warning("Unauthorized (%s) — reauthenticating", e)
                credential = await self._renew()
                if credential is None:
                    self._notifier.error(
                        f"Sign-in expired. Run '{CMD_ENTER_TOKEN}' to sign in again."
                    )
                    raise AuthenticationFailed("reauthentication failed") from e

    async def _renew(self):
        async with self._lock:
            self._set_state(AuthState.REAUTHENTICATING)
            self._ctx.credential = None
            await self._clear_vault()
            return await self._acquire_interactive(1, announce=False)
