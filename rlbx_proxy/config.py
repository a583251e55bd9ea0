"""
RLBX proxy configuration. Values from the environment; no secrets in this file.
"""
import os

# OAuth app registered with Roblox (Creator Dashboard -> OAuth 2.0 apps)
CLIENT_ID = os.environ.get("ROBLOX_CLIENT_ID", "")
CLIENT_SECRET = os.environ.get("ROBLOX_CLIENT_SECRET", "")

# Callback URL where Roblox redirects after authorization; must be registered with the app
REDIRECT_URI = os.environ.get("ROBLOX_REDIRECT_URI", "http://127.0.0.1:3000/auth/callback")

# openid is required for /userinfo; profile adds name, nickname, picture
SCOPE = os.environ.get("ROBLOX_OAUTH_SCOPE", "openid profile")

# Per-operation URL overrides. RLBX_<OPERATION>_URL, e.g. RLBX_TOKEN_URL, RLBX_GAMES_API_URL.
# When set, the resolver uses the value as-is and never probes.
OVERRIDE_ENV_PREFIX = "RLBX_"
OVERRIDE_ENV_SUFFIX = "_URL"

# Reachability probes: per-request timeout and total budget per operation (seconds)
PROBE_TIMEOUT = float(os.environ.get("RLBX_PROBE_TIMEOUT", "3"))
PROBE_BUDGET = float(os.environ.get("RLBX_PROBE_BUDGET", "8"))

# Timeout for each upstream data call (seconds)
UPSTREAM_TIMEOUT = float(os.environ.get("RLBX_UPSTREAM_TIMEOUT", "10"))

LOG_LEVEL = os.environ.get("RLBX_LOG_LEVEL", "INFO").upper()


def override_env_name(operation: str) -> str:
    """Environment variable holding the override for an operation value ('games-api' -> RLBX_GAMES_API_URL)."""
    return f"{OVERRIDE_ENV_PREFIX}{operation.upper().replace('-', '_')}{OVERRIDE_ENV_SUFFIX}"


def overrides_from_env(operations) -> dict[str, str]:
    """Collect non-empty overrides for the given operation values."""
    found = {}
    for op in operations:
        value = os.environ.get(override_env_name(op), "").strip()
        if value:
            found[op] = value.rstrip("/")
    return found
