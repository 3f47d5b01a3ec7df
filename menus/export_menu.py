import threading

import questionary
from tqdm import tqdm
from werkzeug.serving import make_server

from config import server_address
from exporters import EXPORT_FORMATS, write_exports
from spotify_api.errors import AuthorizationError
from spotify_api.fetch_state import FetchStatus
from spotify_api.session import AuthorizationSession
from utils.logger import log_error, log_info, log_success, log_warning
from web import create_app

ALL_FORMATS = "all"


def ask_export_formats() -> list:
    """Ask which export format(s) to write. Returns a list of EXPORT_FORMATS keys (empty = cancelled)."""
    choices = [questionary.Choice(title=fmt.label, value=key) for key, fmt in EXPORT_FORMATS.items()]
    choices.append(questionary.Choice(title="All formats (creates multiple files)", value=ALL_FORMATS))

    choice = questionary.select("📝 Choose export format:", choices=choices, default=choices[0]).ask()
    if not choice:
        return []
    if choice == ALL_FORMATS:
        return list(EXPORT_FORMATS.keys())
    return [choice]


def wait_for_fetch(session: AuthorizationSession, poll_interval: float = 0.5) -> FetchStatus:
    """Block until the background fetch finishes, showing a running song count."""
    fetch_state = session.fetch_state
    with tqdm(desc="Fetching liked songs", unit="song") as pbar:
        while True:
            state = fetch_state.wait(timeout=poll_interval)
            fetched = fetch_state.status()["fetched"]
            pbar.update(max(0, fetched - pbar.n))
            if state != FetchStatus.IN_PROGRESS:
                return state


def run_cli_export(config: dict, session: AuthorizationSession) -> int:
    """
    Terminal flow: serve only the OAuth callback in the background, fetch with a
    progress bar, then ask for the format and write the export files.
    Returns a process exit code.
    """
    host, port = server_address(config)
    # The fetch is started here, never from the callback route.
    app = create_app(dict(config, auto_fetch_on_callback=False), session)
    server = make_server(host, port, app, threaded=True)
    server_thread = threading.Thread(target=server.serve_forever, name="callback-server", daemon=True)
    server_thread.start()

    try:
        url = session.begin_authorization()
        log_info("🔐 Log in to Spotify in your browser. If it did not open, visit:")
        log_info(url)

        try:
            session.wait_for_callback()
        except AuthorizationError as e:
            log_error(f"Spotify authentication failed: {e}")
            return 1
        log_success("Authentication successful!")

        session.start_fetch()

        state = wait_for_fetch(session)
        if state != FetchStatus.READY:
            log_error(f"Failed to fetch liked songs: {session.fetch_state.status()['error']}")
            return 1

        songs = session.fetch_state.items()
        log_success(f"Found {len(songs)} liked songs!")
        if not songs:
            log_warning("Nothing to export.")
            return 0

        formats = ask_export_formats()
        if not formats:
            log_warning("No export format selected. Cancelling.")
            return 0

        for path in write_exports(songs, formats, config.get("export_dir") or "exports"):
            log_success(f"Created: {path}")
        return 0
    finally:
        server.shutdown()
        session.close()
