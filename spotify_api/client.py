import json
import logging
import time
from typing import Any, Callable, Dict, Optional

import httpx

from .errors import SpotifyAPIError
from .tokens import TokenSet

logger = logging.getLogger(__name__)

SPOTIFY_API_BASE_URL = "https://api.spotify.com/v1"


class SpotifyClient:
    """Thin Spotify Web API client bound to one TokenSet.

    Retries are off by default (spotify_max_retries=0): any error status fails
    the call. When enabled:
    - 429: honors Retry-After (Spotify rate limiting)
    - 5xx and transport errors: exponential backoff
    """

    def __init__(
        self,
        config: Dict[str, Any],
        tokens: TokenSet,
        *,
        http_client: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config or {}
        self.tokens = tokens
        self._sleep = sleep
        self._owns_http = http_client is None
        self._http = http_client or httpx.Client(
            base_url=SPOTIFY_API_BASE_URL,
            timeout=float(self.config.get("spotify_request_timeout", 30.0)),
        )

    def close(self) -> None:
        if self._owns_http:
            self._http.close()

    def __enter__(self) -> "SpotifyClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # -----------------
    # HTTP helpers
    # -----------------

    def _retry_delay(self, resp: Optional[httpx.Response], attempt: int) -> float:
        backoff_base = float(self.config.get("spotify_backoff_base", 1.0))
        if resp is not None and resp.status_code == 429:
            try:
                return max(1.0, float(resp.headers.get("Retry-After", 1.0)))
            except ValueError:
                return 1.0
        return min(60.0, backoff_base * (2 ** max(0, attempt - 1)))

    @staticmethod
    def _error_message(resp: httpx.Response) -> str:
        # Spotify error shape: {"error": {"status": 429, "message": "..."}}
        try:
            payload = resp.json()
        except (json.JSONDecodeError, ValueError):
            return resp.text.strip() or resp.reason_phrase
        err = payload.get("error") if isinstance(payload, dict) else None
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
        if isinstance(err, str):
            return err
        return resp.reason_phrase

    def request_json(self, method: str, path: str, *, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Make a Spotify Web API request and return parsed JSON."""

        max_retries = int(self.config.get("spotify_max_retries", 0))
        query = {k: str(v) for k, v in (params or {}).items() if v is not None}

        attempt = 0
        while True:
            attempt += 1
            try:
                resp = self._http.request(
                    method.upper(),
                    path,
                    params=query,
                    headers={
                        "Authorization": self.tokens.authorization_header(),
                        "Accept": "application/json",
                    },
                )
            except httpx.HTTPError as e:
                if attempt <= max_retries:
                    delay = self._retry_delay(None, attempt)
                    logger.warning("Spotify request %s failed (%s); retrying in %.1fs", path, e, delay)
                    self._sleep(delay)
                    continue
                raise SpotifyAPIError(f"Spotify API request failed: {e}") from e

            status = resp.status_code
            if status >= 400:
                retryable = status == 429 or status >= 500
                if retryable and attempt <= max_retries:
                    delay = self._retry_delay(resp, attempt)
                    logger.warning("Spotify API %s on %s; retry %d/%d in %.1fs", status, path, attempt, max_retries, delay)
                    self._sleep(delay)
                    continue
                raise SpotifyAPIError(f"Spotify API error {status}: {self._error_message(resp)}", status_code=status)

            if not resp.content:
                return {}

            try:
                payload = resp.json()
            except (json.JSONDecodeError, ValueError) as e:
                raise SpotifyAPIError(f"Spotify API response was not JSON (status {status})", status_code=status) from e

            if not isinstance(payload, dict):
                raise SpotifyAPIError(f"Spotify API response was not an object (status {status})", status_code=status)
            return payload

    # -----------------
    # Endpoints
    # -----------------

    def current_user_saved_tracks(self, *, limit: int = 50, offset: int = 0) -> Dict[str, Any]:
        # Endpoint shape: {items: [{added_at, track: {...}}], total, limit, offset, next}
        return self.request_json("GET", "/me/tracks", params={"limit": limit, "offset": offset})
