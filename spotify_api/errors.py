from typing import Optional


class LikedSongsError(RuntimeError):
    """Base class for every error raised by the exporter core."""


# -----------------
# Authorization
# -----------------


class AuthorizationError(LikedSongsError):
    """An authorization attempt failed. Terminal for that attempt."""

    title = "Authentication Failed"


class AuthDenied(AuthorizationError):
    """Spotify redirected back with an ``error`` parameter (e.g. access_denied)."""

    def __init__(self, error: str):
        self.error = str(error or "unknown_error")
        super().__init__(f"Spotify returned an error: {self.error}")


class AuthMissingCode(AuthorizationError):
    def __init__(self, message: str = "No authorization code received"):
        super().__init__(message)


class AuthStateMismatch(AuthorizationError):
    def __init__(self, message: str = "OAuth state mismatch. Start the login again."):
        super().__init__(message)


class AuthTimeout(AuthorizationError):
    def __init__(self, timeout_seconds: float):
        self.timeout_seconds = float(timeout_seconds)
        super().__init__(f"No authorization callback received within {int(self.timeout_seconds)} seconds")


class AuthExchangeError(AuthorizationError):
    """The token endpoint rejected the code/verifier pair."""

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class NotAuthenticated(AuthorizationError):
    def __init__(self, message: str = "No Spotify token available. Log in first."):
        super().__init__(message)


# -----------------
# Fetching
# -----------------


class SpotifyAPIError(LikedSongsError):
    """A Spotify Web API request failed (HTTP error status or transport error)."""

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class FetchError(LikedSongsError):
    """A page request failed; the whole collection fetch is abandoned."""


class FetchAlreadyInProgress(LikedSongsError):
    def __init__(self, message: str = "A liked songs fetch is already in progress"):
        super().__init__(message)
