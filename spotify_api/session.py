"""Authorization Session: the PKCE login state machine and fetch dispatcher.

    IDLE -> AWAITING_CALLBACK -> TOKENS_ACQUIRED -> FETCHING -> DONE
                     |                                 |
                     +------------> ERROR <------------+

There is exactly one session per process and it assumes a single user: one
live PKCE verifier, one TokenSet, one Fetch Session. A second person logging
in through the same server would replace the first person's tokens.
"""

import logging
import threading
import time
import webbrowser
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .auth import (
    PKCEPair,
    build_authorization_url,
    exchange_code_for_tokens,
    generate_pkce_pair,
    generate_state,
    get_effective_spotify_client_id,
)
from .data_loader import SavedTracksFetcher
from .errors import (
    AuthDenied,
    AuthExchangeError,
    AuthMissingCode,
    AuthorizationError,
    AuthStateMismatch,
    AuthTimeout,
    FetchAlreadyInProgress,
    NotAuthenticated,
)
from .fetch_state import FetchStateCoordinator
from .models import TrackItem
from .tokens import TokenSet

logger = logging.getLogger(__name__)

DEFAULT_AUTH_TIMEOUT_SECONDS = 120

TokenExchanger = Callable[[str, str, str, str], TokenSet]


class SessionState(str, Enum):
    IDLE = "idle"
    AWAITING_CALLBACK = "awaiting_callback"
    TOKENS_ACQUIRED = "tokens_acquired"
    FETCHING = "fetching"
    DONE = "done"
    ERROR = "error"


@dataclass(frozen=True)
class PendingAuthorization:
    pkce: PKCEPair
    state: str
    url: str
    deadline: float


class AuthorizationSession:
    def __init__(
        self,
        config: Dict[str, Any],
        *,
        fetch_state: Optional[FetchStateCoordinator] = None,
        fetcher: Optional[SavedTracksFetcher] = None,
        token_exchanger: TokenExchanger = exchange_code_for_tokens,
        browser_opener: Callable[[str], Any] = webbrowser.open,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or {}
        self.fetch_state = fetch_state or FetchStateCoordinator()
        self.fetcher = fetcher or SavedTracksFetcher(self.config)
        self._exchange = token_exchanger
        self._open_browser = browser_opener
        self._clock = clock

        self._lock = threading.RLock()
        self._state = SessionState.IDLE
        self._pending: Optional[PendingAuthorization] = None
        self._tokens: Optional[TokenSet] = None
        self._error: Optional[BaseException] = None
        self._timer: Optional[threading.Timer] = None
        self._callback_done = threading.Event()
        self._fetch_generation = 0
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="liked-songs-fetch")

    # -----------------
    # Introspection
    # -----------------

    @property
    def state(self) -> SessionState:
        with self._lock:
            return self._state

    @property
    def tokens(self) -> Optional[TokenSet]:
        with self._lock:
            return self._tokens

    @property
    def auth_timeout(self) -> float:
        return float(self.config.get("auth_timeout_seconds", DEFAULT_AUTH_TIMEOUT_SECONDS))

    @property
    def client_id(self) -> str:
        return get_effective_spotify_client_id(self.config)

    @property
    def redirect_uri(self) -> str:
        return str(self.config.get("spotify_redirect_uri", "")).strip()

    # -----------------
    # Authorization
    # -----------------

    def begin_authorization(self, *, open_browser: Optional[bool] = None) -> str:
        """IDLE -> AWAITING_CALLBACK. Returns the Spotify authorize URL."""

        with self._lock:
            if self._state == SessionState.FETCHING:
                raise FetchAlreadyInProgress("Wait for the current fetch to finish before logging in again")

            self._cancel_timer()
            pkce = generate_pkce_pair()
            state = generate_state()
            url = build_authorization_url(
                self.client_id,
                self.redirect_uri,
                self.config.get("spotify_scopes") or ["user-library-read"],
                pkce.code_challenge,
                state=state,
            )
            pending = PendingAuthorization(pkce=pkce, state=state, url=url, deadline=self._clock() + self.auth_timeout)

            self._pending = pending
            self._state = SessionState.AWAITING_CALLBACK
            self._error = None
            self._callback_done = threading.Event()

            self._timer = threading.Timer(self.auth_timeout, self._expire, args=(pending,))
            self._timer.daemon = True
            self._timer.start()

        logger.info("Starting authentication process (PKCE)")
        logger.debug("Authorize URL: %s", url)

        if open_browser is None:
            open_browser = bool(self.config.get("open_browser", True))
        if open_browser:
            try:
                self._open_browser(url)
            except webbrowser.Error as e:
                logger.warning("Could not open a browser (%s). Open this URL manually: %s", e, url)

        return url

    def handle_callback(self, *, code: Optional[str] = None, error: Optional[str] = None, state: Optional[str] = None) -> TokenSet:
        """AWAITING_CALLBACK -> TOKENS_ACQUIRED, or ERROR.

        The token exchange is only attempted for a timely callback that carries
        a code and no error.
        """

        with self._lock:
            pending = self._pending
            if self._state != SessionState.AWAITING_CALLBACK or pending is None:
                if self._state == SessionState.ERROR and isinstance(self._error, AuthTimeout):
                    raise self._error
                raise AuthorizationError("No authorization is in progress. Start the login again.")

            try:
                if self._clock() >= pending.deadline:
                    raise AuthTimeout(self.auth_timeout)
                if error:
                    raise AuthDenied(error)
                if not code:
                    raise AuthMissingCode()
                if state and state != pending.state:
                    raise AuthStateMismatch()
            except AuthorizationError as e:
                self._fail(e)
                raise

            # The verifier is single-use: a second callback finds nothing pending.
            self._pending = None
            self._cancel_timer()

        try:
            tokens = self._exchange(code, pending.pkce.code_verifier, self.client_id, self.redirect_uri)
        except AuthorizationError as e:
            with self._lock:
                self._fail(e)
            raise
        except Exception as e:
            failure = AuthExchangeError(f"Token exchange failed: {e}")
            with self._lock:
                self._fail(failure)
            raise failure from e

        with self._lock:
            self._tokens = tokens
            self._state = SessionState.TOKENS_ACQUIRED
            self._error = None
            self._callback_done.set()

        logger.info("Authentication successful")
        return tokens

    def wait_for_callback(self, timeout: Optional[float] = None) -> TokenSet:
        """Block until the callback has been handled; raise its error if it failed."""

        with self._lock:
            if self._state == SessionState.IDLE:
                raise NotAuthenticated("Authorization has not been started")
            done = self._callback_done

        if not done.wait(self.auth_timeout if timeout is None else timeout):
            with self._lock:
                if self._pending is not None:
                    self._fail(AuthTimeout(self.auth_timeout))
            # A code exchange may still be in flight; it is bounded by the HTTP timeout.
            done.wait()

        with self._lock:
            if self._state == SessionState.ERROR and isinstance(self._error, AuthorizationError):
                raise self._error
            if self._tokens is None:
                raise NotAuthenticated()
            return self._tokens

    def _expire(self, pending: PendingAuthorization) -> None:
        with self._lock:
            if self._pending is not pending or self._state != SessionState.AWAITING_CALLBACK:
                return
            self._fail(AuthTimeout(self.auth_timeout))
        logger.warning("Authorization timed out after %d seconds", int(self.auth_timeout))

    def _fail(self, error: BaseException) -> None:
        # Caller holds self._lock.
        self._state = SessionState.ERROR
        self._error = error
        self._pending = None
        self._cancel_timer()
        self._callback_done.set()
        logger.warning("Authorization failed: %s", error)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    # -----------------
    # Fetching
    # -----------------

    def start_fetch(self) -> "Future[List[TrackItem]]":
        """TOKENS_ACQUIRED/DONE -> FETCHING. Returns immediately with the fetch Future."""

        with self._lock:
            if self._tokens is None:
                raise NotAuthenticated()
            if self._state == SessionState.AWAITING_CALLBACK:
                raise NotAuthenticated("A login is still pending; finish it in the browser first")

            self.fetch_state.start_fetch()
            self._state = SessionState.FETCHING
            self._error = None
            self._fetch_generation += 1
            future = self._executor.submit(self._run_fetch, self._tokens, self._fetch_generation)

        logger.info("Liked songs fetch started")
        return future

    def refresh(self) -> "Optional[Future[List[TrackItem]]]":
        """Clear the Fetch Session and fetch again with the held tokens.

        Without tokens the session falls back to IDLE and None is returned.
        A pending login refuses the refresh and keeps the current results.
        """

        with self._lock:
            if self._tokens is None:
                self._state = SessionState.IDLE
                self._error = None
                return None
            if self._state == SessionState.AWAITING_CALLBACK:
                raise NotAuthenticated("A login is still pending; finish it in the browser first")
            self.fetch_state.clear_fetch()
            return self.start_fetch()

    def _run_fetch(self, tokens: TokenSet, generation: int) -> List[TrackItem]:
        try:
            items = self.fetcher.fetch_all_saved_items(tokens, on_progress=self.fetch_state.report_progress)
        except Exception as e:
            logger.error("Error fetching liked songs: %s", e)
            with self._lock:
                self.fetch_state.fail_fetch(e)
                # A newer fetch owns the session state from here on.
                if generation == self._fetch_generation:
                    self._state = SessionState.ERROR
                    self._error = e
            raise

        # Completing under the session lock keeps a refresh from slipping in
        # between READY and DONE.
        with self._lock:
            self.fetch_state.complete_fetch(items)
            if generation == self._fetch_generation:
                self._state = SessionState.DONE
        logger.info("Found %d liked songs", len(items))
        return items

    def close(self) -> None:
        with self._lock:
            self._cancel_timer()
        self._executor.shutdown(wait=False)
