import base64
import hashlib
import json
import logging
import secrets
import string
import urllib.parse
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

import httpx

from .errors import AuthExchangeError
from .tokens import TokenSet

logger = logging.getLogger(__name__)

SPOTIFY_ACCOUNTS_BASE_URL = "https://accounts.spotify.com"
SPOTIFY_AUTHORIZE_URL = f"{SPOTIFY_ACCOUNTS_BASE_URL}/authorize"
SPOTIFY_TOKEN_URL = f"{SPOTIFY_ACCOUNTS_BASE_URL}/api/token"

# Public client id of the exporter app registered on the Spotify dashboard.
# PKCE needs no client secret, so shipping it is fine; users can override it.
DEFAULT_SPOTIFY_CLIENT_ID = "e174079272c149288253cceaaee0a069"
DEFAULT_REDIRECT_URI = "http://127.0.0.1:8888/callback"

# RFC 7636 section 4.1: unreserved characters, 43-128 of them.
VERIFIER_ALPHABET = string.ascii_letters + string.digits + "-._~"
VERIFIER_MIN_LENGTH = 43
VERIFIER_MAX_LENGTH = 128
DEFAULT_VERIFIER_LENGTH = 64


def _base64url_no_pad(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("utf-8").rstrip("=")


def generate_code_verifier(length: int = DEFAULT_VERIFIER_LENGTH) -> str:
    """Return a PKCE code_verifier drawn from the OS CSPRNG."""

    length = int(length)
    if not VERIFIER_MIN_LENGTH <= length <= VERIFIER_MAX_LENGTH:
        raise ValueError(f"PKCE verifier length must be {VERIFIER_MIN_LENGTH}-{VERIFIER_MAX_LENGTH}, got {length}")
    return "".join(secrets.choice(VERIFIER_ALPHABET) for _ in range(length))


def code_challenge_from_verifier(verifier: str) -> str:
    """Compute PKCE S256 code_challenge from code_verifier."""

    digest = hashlib.sha256((verifier or "").encode("utf-8")).digest()
    return _base64url_no_pad(digest)


def generate_state() -> str:
    return secrets.token_urlsafe(16).rstrip("=")


@dataclass(frozen=True)
class PKCEPair:
    code_verifier: str
    code_challenge: str

    def __repr__(self) -> str:
        return f"PKCEPair(code_challenge={self.code_challenge!r})"


def generate_pkce_pair(length: int = DEFAULT_VERIFIER_LENGTH) -> PKCEPair:
    """Generate a fresh PKCE verifier + challenge for one authorization attempt."""

    verifier = generate_code_verifier(length)
    return PKCEPair(code_verifier=verifier, code_challenge=code_challenge_from_verifier(verifier))


def get_effective_spotify_client_id(config: dict) -> str:
    """Return the Spotify Client ID to use (config value or built-in fallback)."""

    config = config or {}
    client_id = str(config.get("spotify_client_id", "")).strip()
    return client_id or DEFAULT_SPOTIFY_CLIENT_ID


def check_spotify_credentials(config: Dict[str, Any]) -> Dict[str, Any]:
    """Validate Spotify OAuth config fields and return a structured status dict."""

    config = config or {}
    redirect_uri = str(config.get("spotify_redirect_uri", "")).strip()
    scopes = list(config.get("spotify_scopes", []) or [])

    client_id_raw = str(config.get("spotify_client_id", "")).strip()
    client_id = get_effective_spotify_client_id(config)
    client_id_source = "config" if client_id_raw else "builtin_fallback"

    status: Dict[str, Any] = {
        "ok": True,
        "client_id": client_id,
        "client_id_source": client_id_source,
        "redirect_uri": redirect_uri,
        "scopes": scopes,
        "message": "Spotify credentials look OK.",
    }

    if not redirect_uri:
        status["ok"] = False
        status["message"] = (
            "Missing spotify_redirect_uri in config.json.\n"
            f"Recommended default: {DEFAULT_REDIRECT_URI}"
        )
    elif "user-library-read" not in scopes:
        status["ok"] = False
        status["message"] = "spotify_scopes must include 'user-library-read' to read Liked Songs."
    elif client_id_source == "builtin_fallback":
        status["message"] = (
            "spotify_client_id is not set. Falling back to the built-in public client id.\n"
            "If Spotify rejects it, create your own app and set spotify_client_id in config.json."
        )

    return status


def spotify_app_setup_instructions(*, redirect_uri: str = DEFAULT_REDIRECT_URI) -> str:
    """Return user-facing setup instructions for creating a Spotify Developer app."""

    redirect_uri = str(redirect_uri or "").strip() or DEFAULT_REDIRECT_URI
    return (
        "Spotify app setup:\n"
        "1) Go to https://developer.spotify.com/dashboard\n"
        "2) Create an app (or select an existing app)\n"
        f"3) Add this Redirect URI in the app settings: {redirect_uri}\n"
        "4) Copy the Client ID into config.json as spotify_client_id\n\n"
        "Notes:\n"
        "- This tool uses Authorization Code + PKCE (no client secret required).\n"
        "- Redirect URI must match *exactly* what you configure in the Spotify dashboard.\n"
    )


def build_authorization_url(
    client_id: str,
    redirect_uri: str,
    scopes: Iterable[str],
    code_challenge: str,
    *,
    state: Optional[str] = None,
    show_dialog: bool = False,
) -> str:
    """Build the Spotify /authorize URL for the PKCE flow.

    Scopes are space-joined in the order given.
    """

    scope_str = " ".join([str(s).strip() for s in (scopes or []) if str(s).strip()])

    params: Dict[str, str] = {
        "client_id": str(client_id),
        "response_type": "code",
        "redirect_uri": str(redirect_uri),
        "scope": scope_str,
        "code_challenge_method": "S256",
        "code_challenge": str(code_challenge),
    }
    if state:
        params["state"] = str(state)
    if show_dialog:
        params["show_dialog"] = "true"

    return f"{SPOTIFY_AUTHORIZE_URL}?{urllib.parse.urlencode(params, quote_via=urllib.parse.quote)}"


def _error_description(resp: httpx.Response) -> Optional[str]:
    try:
        payload = resp.json()
    except (json.JSONDecodeError, ValueError):
        return None
    if not isinstance(payload, dict):
        return None
    description = payload.get("error_description") or payload.get("error")
    return str(description) if description else None


def exchange_code_for_tokens(
    code: str,
    code_verifier: str,
    client_id: str,
    redirect_uri: str,
    *,
    http_client: Optional[httpx.Client] = None,
    timeout: float = 30.0,
) -> TokenSet:
    """Trade an authorization code + PKCE verifier for a TokenSet.

    The code is single-use, so a rejected exchange is never retried.
    """

    form = {
        "client_id": client_id,
        "grant_type": "authorization_code",
        "code": code,
        "redirect_uri": redirect_uri,
        "code_verifier": code_verifier,
    }

    owns_client = http_client is None
    client = http_client or httpx.Client(timeout=timeout, follow_redirects=False)
    try:
        resp = client.post(
            SPOTIFY_TOKEN_URL,
            data=form,
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
    except httpx.HTTPError as e:
        raise AuthExchangeError(f"Spotify token request failed: {e}") from e
    finally:
        if owns_client:
            client.close()

    if resp.status_code >= 400:
        message = _error_description(resp) or "Failed to get access token"
        logger.warning("Token exchange rejected (HTTP %s): %s", resp.status_code, message)
        raise AuthExchangeError(message, status_code=resp.status_code)

    try:
        payload = resp.json()
    except (json.JSONDecodeError, ValueError) as e:
        raise AuthExchangeError("Spotify token response was not JSON", status_code=resp.status_code) from e

    if not isinstance(payload, dict):
        raise AuthExchangeError("Spotify token response was not an object", status_code=resp.status_code)

    try:
        token = TokenSet.from_spotify_token_response(payload)
    except (TypeError, ValueError) as e:
        raise AuthExchangeError(f"Spotify token response was malformed: {e}", status_code=resp.status_code) from e
    if not token.access_token:
        raise AuthExchangeError("Spotify token response had no access_token", status_code=resp.status_code)

    return token
