import time
from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class TokenSet:
    """Tokens returned by the authorization-code exchange.

    Held in memory by the AuthorizationSession for the lifetime of the process.
    Nothing here is written to disk and nothing refreshes it automatically.
    """

    access_token: str
    refresh_token: Optional[str] = None
    token_type: str = "Bearer"
    expires_at: float = 0.0
    scope: Optional[str] = None

    @staticmethod
    def from_spotify_token_response(payload: Dict[str, Any], *, now: Optional[float] = None) -> "TokenSet":
        """Convert Spotify token response JSON into a TokenSet.

        Spotify returns:
        - access_token
        - token_type
        - expires_in (seconds)
        - refresh_token
        - scope (space-delimited string)
        """

        now_ts = float(time.time() if now is None else now)
        expires_in = float(payload.get("expires_in", 0) or 0)

        return TokenSet(
            access_token=str(payload.get("access_token", "") or ""),
            refresh_token=payload.get("refresh_token"),
            token_type=str(payload.get("token_type", "Bearer") or "Bearer"),
            expires_at=now_ts + expires_in,
            scope=payload.get("scope"),
        )

    def authorization_header(self) -> str:
        # Spotify sends "Bearer"; the header is case-insensitive on their side.
        return f"{self.token_type or 'Bearer'} {self.access_token}"

    def __repr__(self) -> str:
        return f"TokenSet(token_type={self.token_type!r}, expires_at={self.expires_at!r}, scope={self.scope!r})"
