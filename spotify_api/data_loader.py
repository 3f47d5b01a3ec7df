import logging
import time
from typing import Any, Callable, Dict, List, Optional

from .client import SpotifyClient
from .errors import FetchError, SpotifyAPIError
from .models import TrackItem
from .tokens import TokenSet

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 50
DEFAULT_PAGE_DELAY_MS = 100

ClientFactory = Callable[[Dict[str, Any], TokenSet], Any]
ProgressCallback = Callable[[int], None]


class SavedTracksFetcher:
    """Fetch the complete Liked Songs collection, one page at a time.

    Pages are requested strictly in order (offset 0, 50, 100, ...). The
    collection is exhausted when a page comes back shorter than the page size;
    the ``total`` field is ignored. A fixed pause separates consecutive page
    requests. Any page failure aborts the whole fetch with FetchError.
    """

    def __init__(
        self,
        config: Dict[str, Any],
        *,
        client_factory: ClientFactory = SpotifyClient,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config or {}
        self.client_factory = client_factory
        self._sleep = sleep

    @property
    def page_size(self) -> int:
        return max(1, min(MAX_PAGE_SIZE, int(self.config.get("fetch_page_size", MAX_PAGE_SIZE))))

    @property
    def delay_seconds(self) -> float:
        return max(0.0, float(self.config.get("fetch_delay_ms", DEFAULT_PAGE_DELAY_MS)) / 1000.0)

    def fetch_all_saved_items(self, tokens: TokenSet, *, on_progress: Optional[ProgressCallback] = None) -> List[TrackItem]:
        client = self.client_factory(self.config, tokens)
        try:
            return self._fetch_pages(client, on_progress)
        finally:
            close = getattr(client, "close", None)
            if callable(close):
                close()

    def _fetch_pages(self, client: Any, on_progress: Optional[ProgressCallback]) -> List[TrackItem]:
        limit = self.page_size
        offset = 0
        items: List[TrackItem] = []

        while True:
            try:
                page = client.current_user_saved_tracks(limit=limit, offset=offset)
            except SpotifyAPIError as e:
                raise FetchError(f"Failed to fetch liked songs at offset {offset}: {e}") from e

            raw_items = page.get("items") if isinstance(page, dict) else None
            if not isinstance(raw_items, list):
                raw_items = []

            for raw in raw_items:
                item = TrackItem.from_spotify(raw)
                if item is None:
                    logger.debug("Skipping saved item without a track object at offset %d", offset)
                    continue
                items.append(item)

            logger.debug("Fetched page offset=%d size=%d (total so far %d)", offset, len(raw_items), len(items))
            if on_progress is not None:
                on_progress(len(items))

            if len(raw_items) < limit:
                break

            offset += limit
            if self.delay_seconds:
                self._sleep(self.delay_seconds)

        logger.info("Fetched %d liked songs", len(items))
        return items


def fetch_all_saved_items(tokens: TokenSet, config: Optional[Dict[str, Any]] = None, **kwargs: Any) -> List[TrackItem]:
    """Convenience wrapper: fetch every saved track with a default SavedTracksFetcher."""

    return SavedTracksFetcher(config or {}, **kwargs).fetch_all_saved_items(tokens)
