import json
import sys

from config import CONFIG_PATH, default_config, load_config, save_config, server_address, validate_config
from spotify_api.auth import check_spotify_credentials, spotify_app_setup_instructions
from spotify_api.session import AuthorizationSession
from utils.logger import setup_logging, log_info, log_warning, log_error
from web import create_app


def _load_or_create_config() -> dict:
    try:
        return load_config()
    except FileNotFoundError:
        config = default_config()
        save_config(config)
        log_warning(f"{CONFIG_PATH} not found; created one with default settings.")
        return config


def _print_banner() -> None:
    log_info("═" * 51)
    log_info("     Spotify Liked Songs Exporter")
    log_info("     PKCE login - no client secret needed")
    log_info("═" * 51)


def run_web(config: dict, session: AuthorizationSession) -> int:
    host, port = server_address(config)
    app = create_app(config, session)

    log_info(f"🌐 Server running on http://{host}:{port}")
    log_info("🔐 Opening browser for authentication...")
    url = session.begin_authorization()
    log_info(f"If the browser did not open, visit: {url}")

    try:
        app.run(host=host, port=port, threaded=True, use_reloader=False)
    finally:
        session.close()
    return 0


def main() -> int:
    setup_logging()

    try:
        config = _load_or_create_config()
    except json.JSONDecodeError as e:
        log_error(f"Config file contains invalid JSON: {e}")
        return 1
    except (OSError, ValueError) as e:
        log_error(f"Error loading config: {e}")
        return 1

    setup_logging(config.get("log_level", "INFO"), config.get("log_dir") or None)

    is_valid, errors = validate_config(config)
    if not is_valid:
        for error in errors:
            log_error(f"Config error: {error}")
        return 1

    _print_banner()

    creds = check_spotify_credentials(config)
    if not creds["ok"]:
        log_error(creds["message"])
        log_info(spotify_app_setup_instructions(redirect_uri=creds["redirect_uri"]))
        return 1
    if creds["client_id_source"] != "config":
        log_warning(creds["message"])

    session = AuthorizationSession(config)

    if config.get("mode") == "cli":
        from menus.export_menu import run_cli_export

        return run_cli_export(config, session)

    return run_web(config, session)


if __name__ == "__main__":
    sys.exit(main())
