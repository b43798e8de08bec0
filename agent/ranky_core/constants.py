"""
Constants, thresholds, endpoint paths, vault keys and dialog theme.
"""

AGENT_VERSION = "0.3.0"

# ─── Session thresholds ──────────────────────────────────────────
INACTIVITY_TIMEOUT_SEC = 1800  # 30 min without an edit → session closes

# ─── Network ─────────────────────────────────────────────────────
DEFAULT_SERVER_URL = "http://localhost:8000/api/v1/users"
API_TIMEOUT_AUTH = 15          # verify-auth / create-account
API_TIMEOUT_STATS = 20         # coding-stats (shutdown path, keep it short)

VERIFY_AUTH_PATH = "/verify-auth"
CREATE_ACCOUNT_PATH = "/create-account"
CODING_STATS_PATH = "/coding-stats"

# ─── Authentication ──────────────────────────────────────────────
DEFAULT_TOKEN_ALGORITHMS = ["HS256"]
MAX_TOKEN_PROMPTS = 3          # Collector re-prompts after a bad/rejected token
RENEWAL_MAX_ATTEMPTS = 1       # One reacquire + one retried call on 401

# Vault keys (only the credential manager writes these)
VAULT_PROFILE_KEY = "ranky.profile"
VAULT_TOKEN_KEY = "ranky.token"

# ─── Session end reasons ─────────────────────────────────────────
REASON_INACTIVITY = "inactivity"
REASON_SHUTDOWN = "shutdown"
SESSION_END_REASONS = frozenset({REASON_INACTIVITY, REASON_SHUTDOWN})

# ─── Commands exposed to the host ────────────────────────────────
CMD_SHOW_STATS = "show-current-stats"
CMD_REFRESH_AUTH = "refresh-authentication"
CMD_CLEAR_AUTH = "clear-authentication"
CMD_ENTER_TOKEN = "enter-token-manually"

# ─── Token dialog theme ──────────────────────────────────────────
THEME = {
    "bg_darkest":    "#020617",   # window background
    "bg_input":      "#0f172a",   # input field bg
    "header_bg":     "#0a2c54",   # header background
    "primary":       "#3b82f6",   # blue button
    "primary_hover": "#2563eb",   # button hover
    "text_primary":  "#f1f5f9",   # white text
    "text_secondary":"#cbd5e1",   # light gray
    "border":        "#374151",   # borders
    "error":         "#ef4444",   # red
}
