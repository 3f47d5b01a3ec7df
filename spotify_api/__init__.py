"""Spotify Web API integration: PKCE login and the Liked Songs fetch.

The web layer (web/) and the CLI (menus/) both drive an AuthorizationSession;
nothing in this package knows about HTTP routes or output formats.
"""

from .auth import build_authorization_url, code_challenge_from_verifier, exchange_code_for_tokens, generate_pkce_pair
from .client import SpotifyClient
from .data_loader import SavedTracksFetcher, fetch_all_saved_items
from .fetch_state import FetchStateCoordinator, FetchStatus
from .models import TrackItem
from .session import AuthorizationSession, SessionState
from .tokens import TokenSet

__all__ = [
    "AuthorizationSession",
    "FetchStateCoordinator",
    "FetchStatus",
    "SavedTracksFetcher",
    "SessionState",
    "SpotifyClient",
    "TokenSet",
    "TrackItem",
    "build_authorization_url",
    "code_challenge_from_verifier",
    "exchange_code_for_tokens",
    "fetch_all_saved_items",
    "generate_pkce_pair",
]
