import os
import unittest
import urllib.parse

# Ensure local imports work when running this file directly.
THIS_DIR = os.path.dirname(os.path.abspath(__file__))
if THIS_DIR not in os.sys.path:
    os.sys.path.insert(0, THIS_DIR)

from spotify_api.errors import AuthExchangeError
from spotify_api.models import TrackItem
from spotify_api.session import AuthorizationSession, SessionState
from spotify_api.tokens import TokenSet
from web import create_app

CONFIG = {
    "spotify_client_id": "test-client",
    "spotify_redirect_uri": "http://127.0.0.1:8888/callback",
    "spotify_scopes": ["user-library-read"],
    "auth_timeout_seconds": 120,
    "open_browser": False,
    "auto_fetch_on_callback": False,
}

SAMPLE_ITEMS = [
    {
        "added_at": "2021-05-01T10:00:00Z",
        "track": {
            "id": "1",
            "uri": "spotify:track:1",
            "name": "Song One",
            "artists": [{"name": "A"}, {"name": "B"}],
            "album": {"name": "Album", "release_date": "2020-01-01"},
            "duration_ms": 185000,
            "popularity": 50,
            "external_urls": {"spotify": "https://open.spotify.com/track/1"},
        },
    },
    {
        "added_at": "2021-05-02T10:00:00Z",
        "track": {"id": "2", "uri": "spotify:track:2", "name": "Song Two", "artists": [{"name": "C"}]},
    },
]


class RecordingExchanger:
    def __init__(self, error=None):
        self.error = error
        self.calls = []

    def __call__(self, code, verifier, client_id, redirect_uri):
        self.calls.append(code)
        if self.error is not None:
            raise self.error
        return TokenSet(access_token="at")


class StaticFetcher:
    def fetch_all_saved_items(self, tokens, *, on_progress=None):
        return [TrackItem.from_spotify(item) for item in SAMPLE_ITEMS]


class WebRoutesTestCase(unittest.TestCase):
    def setUp(self):
        self.exchanger = RecordingExchanger()
        self.session = AuthorizationSession(
            dict(CONFIG),
            fetcher=StaticFetcher(),
            token_exchanger=self.exchanger,
            browser_opener=lambda url: None,
        )
        self.addCleanup(self.session.close)
        self.app = create_app(dict(CONFIG), self.session)
        self.app.testing = True
        self.client = self.app.test_client()

    def login(self):
        url = self.session.begin_authorization(open_browser=False)
        state = urllib.parse.parse_qs(urllib.parse.urlparse(url).query)["state"][0]
        return self.client.get("/callback", query_string={"code": "good", "state": state})

    def fetch(self):
        self.login()
        self.session.start_fetch().result(timeout=5)


class TestAuthRoutes(WebRoutesTestCase):
    def test_login_redirects_to_spotify(self):
        response = self.client.get("/login")
        self.assertEqual(response.status_code, 302)
        self.assertTrue(response.headers["Location"].startswith("https://accounts.spotify.com/authorize?"))
        self.assertEqual(self.session.state, SessionState.AWAITING_CALLBACK)

    def test_index_goes_to_login_until_songs_are_ready(self):
        response = self.client.get("/")
        self.assertEqual(response.status_code, 302)
        self.assertTrue(response.headers["Location"].endswith("/login"))

        self.fetch()
        response = self.client.get("/")
        self.assertTrue(response.headers["Location"].endswith("/results"))

    def test_successful_callback_shows_start_export(self):
        response = self.login()
        self.assertEqual(response.status_code, 200)
        self.assertIn(b"Authentication Successful", response.data)
        self.assertIn(b"/start-fetch", response.data)
        self.assertEqual(self.exchanger.calls, ["good"])

    def test_error_callback_renders_error_page(self):
        self.session.begin_authorization(open_browser=False)
        response = self.client.get("/callback", query_string={"error": "access_denied"})

        self.assertEqual(response.status_code, 400)
        self.assertIn(b"Authentication Failed", response.data)
        self.assertIn(b"access_denied", response.data)
        self.assertEqual(self.exchanger.calls, [])

    def test_callback_without_code(self):
        self.session.begin_authorization(open_browser=False)
        response = self.client.get("/callback")

        self.assertEqual(response.status_code, 400)
        self.assertIn(b"No authorization code received", response.data)

    def test_rejected_exchange_is_a_bad_gateway(self):
        self.exchanger.error = AuthExchangeError("Invalid authorization code", status_code=400)
        response = self.login()

        self.assertEqual(response.status_code, 502)
        self.assertIn(b"Invalid authorization code", response.data)
        self.assertFalse(self.client.get("/api/songs/status").get_json()["loaded"])

    def test_callback_auto_fetch_redirects_to_loading(self):
        self.app.extensions["liked_songs_config"]["auto_fetch_on_callback"] = True
        response = self.login()

        self.assertEqual(response.status_code, 302)
        self.assertTrue(response.headers["Location"].endswith("/loading"))

    def test_start_fetch_requires_login(self):
        response = self.client.get("/start-fetch")
        self.assertTrue(response.headers["Location"].endswith("/login"))

    def test_start_fetch_redirects_to_loading(self):
        self.login()
        response = self.client.get("/start-fetch")
        self.assertEqual(response.status_code, 302)
        self.assertTrue(response.headers["Location"].endswith("/loading"))

    def test_refresh_without_tokens_goes_to_login(self):
        response = self.client.get("/refresh")
        self.assertTrue(response.headers["Location"].endswith("/login"))
        self.assertEqual(self.session.state, SessionState.IDLE)

    def test_refresh_while_login_pending_keeps_results(self):
        self.fetch()
        self.client.get("/login")

        response = self.client.get("/refresh")
        self.assertEqual(response.status_code, 302)
        self.assertTrue(response.headers["Location"].endswith("/login"))

        data = self.client.get("/api/songs/status").get_json()
        self.assertEqual(data["loaded"], True)
        self.assertEqual(data["count"], 2)


class TestApiRoutes(WebRoutesTestCase):
    def test_status_before_fetch(self):
        data = self.client.get("/api/songs/status").get_json()
        self.assertEqual(data["loaded"], False)
        self.assertEqual(data["count"], 0)
        self.assertEqual(data["status"], "empty")

    def test_status_after_fetch(self):
        self.fetch()
        data = self.client.get("/api/songs/status").get_json()
        self.assertEqual(data["loaded"], True)
        self.assertEqual(data["count"], 2)

    def test_results_redirect_to_loading_until_ready(self):
        response = self.client.get("/results")
        self.assertEqual(response.status_code, 302)
        self.assertTrue(response.headers["Location"].endswith("/loading"))

    def test_results_lists_songs(self):
        self.fetch()
        response = self.client.get("/results")
        self.assertEqual(response.status_code, 200)
        self.assertIn(b"Song One", response.data)
        self.assertIn(b"2021-05-02", response.data)
        self.assertIn(b"/download/csv", response.data)

    def test_loading_page_polls_status(self):
        response = self.client.get("/loading")
        self.assertEqual(response.status_code, 200)
        self.assertIn(b"/api/songs/status", response.data)


class TestDownloadRoutes(WebRoutesTestCase):
    def test_download_without_songs(self):
        response = self.client.get("/download/csv")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data, b"No songs available")

    def test_unknown_format(self):
        self.fetch()
        self.assertEqual(self.client.get("/download/xml").status_code, 404)

    def test_download_csv_attachment(self):
        self.fetch()
        response = self.client.get("/download/csv")

        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.mimetype == "text/csv")
        disposition = response.headers["Content-Disposition"]
        self.assertIn("attachment", disposition)
        self.assertRegex(disposition, r'filename="spotify_liked_songs_\d{4}-\d{2}-\d{2}\.csv"')

        lines = response.data.decode("utf-8").splitlines()
        self.assertEqual(len(lines), 3)
        self.assertTrue(lines[0].startswith("Track Name,"))
        self.assertIn("A; B", lines[1])

    def test_download_uris(self):
        self.fetch()
        response = self.client.get("/download/uris")

        self.assertEqual(response.status_code, 200)
        body = response.data.decode("utf-8")
        self.assertIn("spotify:track:1\nspotify:track:2\n", body)
        self.assertIn("_uris_", response.headers["Content-Disposition"])


if __name__ == "__main__":
    unittest.main(verbosity=2)
