import os
import unittest

import httpx

# Ensure local imports work when running this file directly.
THIS_DIR = os.path.dirname(os.path.abspath(__file__))
if THIS_DIR not in os.sys.path:
    os.sys.path.insert(0, THIS_DIR)

from spotify_api.client import SPOTIFY_API_BASE_URL, SpotifyClient
from spotify_api.data_loader import SavedTracksFetcher, fetch_all_saved_items
from spotify_api.errors import FetchError, SpotifyAPIError
from spotify_api.tokens import TokenSet

TOKENS = TokenSet(access_token="at", refresh_token="rt")


def _saved_item(idx: int) -> dict:
    return {
        "added_at": "2020-01-01T00:00:00Z",
        "track": {
            "id": f"liked{idx}",
            "uri": f"spotify:track:liked{idx}",
            "name": f"Liked Song {idx}",
            "artists": [{"name": "Artist"}],
            "album": {"name": "Album", "release_date": "2020-01-01"},
            "duration_ms": 180000,
            "popularity": 50,
            "external_urls": {"spotify": f"https://open.spotify.com/track/liked{idx}"},
        },
    }


class FakeSpotifyClient:
    """Serves pages of the given sizes in order, regardless of the offset asked for."""

    def __init__(self, page_sizes, *, fail_at_call=None):
        self.page_sizes = list(page_sizes)
        self.fail_at_call = fail_at_call
        self.calls = []
        self.closed = False
        self._next_idx = 0

    def current_user_saved_tracks(self, *, limit=50, offset=0):
        self.calls.append((limit, offset))
        if self.fail_at_call is not None and len(self.calls) == self.fail_at_call:
            raise SpotifyAPIError("Spotify API error 429: API rate limit exceeded", status_code=429)
        size = self.page_sizes[len(self.calls) - 1]
        items = [_saved_item(self._next_idx + i) for i in range(size)]
        self._next_idx += size
        # total deliberately wrong: exhaustion is detected by the short page only
        return {"items": items, "total": 999999, "limit": limit, "offset": offset}

    def close(self):
        self.closed = True


class TestSavedTracksFetcher(unittest.TestCase):
    def _fetcher(self, fake, config=None):
        sleeps = []
        fetcher = SavedTracksFetcher(config or {}, client_factory=lambda cfg, tokens: fake, sleep=sleeps.append)
        return fetcher, sleeps

    def test_stops_on_short_page(self):
        fake = FakeSpotifyClient([50, 50, 50, 13])
        fetcher, sleeps = self._fetcher(fake)

        items = fetcher.fetch_all_saved_items(TOKENS)

        self.assertEqual(len(fake.calls), 4)
        self.assertEqual([offset for _, offset in fake.calls], [0, 50, 100, 150])
        self.assertTrue(all(limit == 50 for limit, _ in fake.calls))
        self.assertEqual(len(items), 163)
        self.assertEqual([i.track.id for i in items], [f"liked{n}" for n in range(163)])
        # pause between pages only, never after the last one
        self.assertEqual(sleeps, [0.1, 0.1, 0.1])
        self.assertTrue(fake.closed)

    def test_empty_first_page(self):
        fake = FakeSpotifyClient([0])
        fetcher, sleeps = self._fetcher(fake)

        self.assertEqual(fetcher.fetch_all_saved_items(TOKENS), [])
        self.assertEqual(len(fake.calls), 1)
        self.assertEqual(sleeps, [])

    def test_exact_multiple_needs_one_more_empty_page(self):
        fake = FakeSpotifyClient([50, 50, 0])
        fetcher, _ = self._fetcher(fake)

        self.assertEqual(len(fetcher.fetch_all_saved_items(TOKENS)), 100)
        self.assertEqual([offset for _, offset in fake.calls], [0, 50, 100])

    def test_page_failure_aborts_whole_fetch(self):
        fake = FakeSpotifyClient([50, 50, 50], fail_at_call=2)
        fetcher, _ = self._fetcher(fake)

        with self.assertRaises(FetchError) as ctx:
            fetcher.fetch_all_saved_items(TOKENS)
        self.assertIn("rate limit", str(ctx.exception))
        self.assertIsInstance(ctx.exception.__cause__, SpotifyAPIError)
        self.assertEqual(len(fake.calls), 2)
        self.assertTrue(fake.closed)

    def test_progress_reports_running_total(self):
        fake = FakeSpotifyClient([50, 7])
        fetcher, _ = self._fetcher(fake)
        progress = []

        fetcher.fetch_all_saved_items(TOKENS, on_progress=progress.append)
        self.assertEqual(progress, [50, 57])

    def test_page_size_and_delay_come_from_config(self):
        fake = FakeSpotifyClient([20, 20, 5])
        fetcher, sleeps = self._fetcher(fake, {"fetch_page_size": 20, "fetch_delay_ms": 0})

        self.assertEqual(len(fetcher.fetch_all_saved_items(TOKENS)), 45)
        self.assertEqual([offset for _, offset in fake.calls], [0, 20, 40])
        self.assertEqual(sleeps, [])

    def test_page_size_is_capped_at_spotify_maximum(self):
        fetcher, _ = self._fetcher(FakeSpotifyClient([]), {"fetch_page_size": 500})
        self.assertEqual(fetcher.page_size, 50)

    def test_items_without_track_do_not_end_pagination(self):
        class GappyClient(FakeSpotifyClient):
            def current_user_saved_tracks(self, *, limit=50, offset=0):
                page = super().current_user_saved_tracks(limit=limit, offset=offset)
                if offset == 0:
                    page["items"][3] = {"added_at": "x", "track": None}
                return page

        fake = GappyClient([50, 10])
        fetcher, _ = self._fetcher(fake)

        self.assertEqual(len(fetcher.fetch_all_saved_items(TOKENS)), 59)
        self.assertEqual(len(fake.calls), 2)

    def test_module_level_helper(self):
        fake = FakeSpotifyClient([3])
        items = fetch_all_saved_items(TOKENS, {}, client_factory=lambda cfg, tokens: fake, sleep=lambda s: None)
        self.assertEqual(len(items), 3)


class TestSpotifyClient(unittest.TestCase):
    def _client(self, handler, config=None):
        sleeps = []
        http = httpx.Client(transport=httpx.MockTransport(handler), base_url=SPOTIFY_API_BASE_URL)
        return SpotifyClient(config or {}, TOKENS, http_client=http, sleep=sleeps.append), sleeps

    def test_saved_tracks_request_shape(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"items": [], "total": 0})

        client, _ = self._client(handler)
        self.assertEqual(client.current_user_saved_tracks(limit=50, offset=100), {"items": [], "total": 0})

        request = seen[0]
        self.assertEqual(request.url.path, "/v1/me/tracks")
        self.assertEqual(request.url.params["limit"], "50")
        self.assertEqual(request.url.params["offset"], "100")
        self.assertEqual(request.headers["Authorization"], "Bearer at")

    def test_rate_limit_is_not_retried_by_default(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(429, headers={"Retry-After": "2"}, json={"error": {"status": 429, "message": "API rate limit exceeded"}})

        client, sleeps = self._client(handler)
        with self.assertRaises(SpotifyAPIError) as ctx:
            client.current_user_saved_tracks()

        self.assertEqual(len(calls), 1)
        self.assertEqual(sleeps, [])
        self.assertEqual(ctx.exception.status_code, 429)
        self.assertIn("API rate limit exceeded", str(ctx.exception))

    def test_bounded_retry_when_enabled(self):
        responses = [
            httpx.Response(429, headers={"Retry-After": "3"}),
            httpx.Response(503),
            httpx.Response(200, json={"items": []}),
        ]

        def handler(request):
            return responses.pop(0)

        client, sleeps = self._client(handler, {"spotify_max_retries": 2, "spotify_backoff_base": 1.0})
        self.assertEqual(client.current_user_saved_tracks(), {"items": []})
        self.assertEqual(sleeps, [3.0, 2.0])

    def test_retries_are_bounded(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(500)

        client, sleeps = self._client(handler, {"spotify_max_retries": 2, "spotify_backoff_base": 0.5})
        with self.assertRaises(SpotifyAPIError):
            client.current_user_saved_tracks()
        self.assertEqual(len(calls), 3)
        self.assertEqual(sleeps, [0.5, 1.0])

    def test_client_errors_are_never_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(401, json={"error": {"status": 401, "message": "The access token expired"}})

        client, _ = self._client(handler, {"spotify_max_retries": 3})
        with self.assertRaises(SpotifyAPIError) as ctx:
            client.current_user_saved_tracks()
        self.assertEqual(len(calls), 1)
        self.assertIn("The access token expired", str(ctx.exception))


if __name__ == "__main__":
    unittest.main(verbosity=2)
