"""
Remote collector API calls — identity verification, account provisioning,
coding-stats delivery.

All methods are blocking (run in the loop's executor, never on the loop
thread). None of them retry: the caller owns retry policy.
"""

import threading

import requests

from .config import log
from .constants import (
    API_TIMEOUT_AUTH, API_TIMEOUT_STATS,
    VERIFY_AUTH_PATH, CREATE_ACCOUNT_PATH, CODING_STATS_PATH,
)
from .errors import DeliveryFailed, ProvisioningFailed, Unauthorized
from . import http_client


def _auth_headers(token):
    return {"Authorization": f"Bearer {token}"}


def _json_success(resp):
    try:
        data = resp.json()
    except ValueError:
        return False
    return isinstance(data, dict) and data.get("success") is True


class CollectorApi:
    """
    Thin wrapper over the collector endpoints. One pooled session, shared by
    executor threads; a failed request swaps it out under a lock, and only
    if no other thread already did.
    """

    def __init__(self, config, http=None):
        self._base = config["serverUrl"].rstrip("/")
        self.http = http if http is not None else http_client.create_session()
        self._reset_lock = threading.Lock()

    def _url(self, path):
        return f"{self._base}{path}"

    def _reset(self, failed):
        with self._reset_lock:
            if self.http is failed:
                self.http = http_client.reset_session(failed)

    # ─── Identity ────────────────────────────────────────────────

    def verify_auth(self, subject_id, token):
        """Ask the collector to confirm the subject. Returns True only on success."""
        url = self._url(VERIFY_AUTH_PATH)
        http = self.http
        payload = {"subjectId": subject_id}

        try:
            resp = http.post(url, json=payload, headers=_auth_headers(token),
                             timeout=API_TIMEOUT_AUTH)
        except requests.RequestException as e:
            log.warning("verify-auth network error: %s", e)
            self._reset(http)
            return False

        if 200 <= resp.status_code < 300 and _json_success(resp):
            log.info("verify-auth OK")
            return True
        if resp.status_code == 401:
            log.error("verify-auth REJECTED (401) — token not accepted")
        else:
            log.warning("verify-auth failed: HTTP %d — %s", resp.status_code, resp.text[:200])
        return False

    def create_account(self, credential, day):
        """First-run provisioning. Raises ProvisioningFailed."""
        url = self._url(CREATE_ACCOUNT_PATH)
        http = self.http
        payload = {
            "email": credential.email,
            "subjectId": credential.user_id,
            "date": day,
            "name": credential.display_name,
        }

        try:
            resp = http.post(url, json=payload, headers=_auth_headers(credential.token),
                             timeout=API_TIMEOUT_AUTH)
        except requests.RequestException as e:
            self._reset(http)
            raise ProvisioningFailed(f"create-account network error: {e}") from e

        if 200 <= resp.status_code < 300 and _json_success(resp):
            log.info("Account provisioned for subject %s", credential.user_id)
            return
        raise ProvisioningFailed(f"create-account failed: HTTP {resp.status_code}")

    # ─── Stats ───────────────────────────────────────────────────

    def send_coding_stats(self, token, payload):
        """
        POST the day's stats. Raises Unauthorized on 401, DeliveryFailed on
        anything else that is not 2xx.
        """
        url = self._url(CODING_STATS_PATH)
        http = self.http

        try:
            resp = http.post(url, json=payload, headers=_auth_headers(token),
                             timeout=API_TIMEOUT_STATS)
        except requests.RequestException as e:
            self._reset(http)
            raise DeliveryFailed(f"coding-stats network error: {e}") from e

        if 200 <= resp.status_code < 300:
            log.info("Coding stats sent | date=%s | minutes=%s | reason=%s",
                     payload["date"], payload["totalTimeMinutes"], payload["sessionEndReason"])
            return
        if resp.status_code == 401:
            raise Unauthorized("coding-stats rejected (401)")
        raise DeliveryFailed(f"coding-stats failed: HTTP {resp.status_code} — {resp.text[:200]}")
