"""Local Flask server: OAuth callback, fetch triggers, status polling, results and downloads."""

import logging
from typing import Any, Dict

from flask import Flask

from spotify_api.session import AuthorizationSession
from web.routes import api_bp, auth_bp, downloads_bp

logger = logging.getLogger(__name__)


def create_app(config: Dict[str, Any], session: AuthorizationSession) -> Flask:
    app = Flask(__name__)
    app.config["JSON_SORT_KEYS"] = False

    # One session per process; handlers reach it through the app, not module globals.
    app.extensions["liked_songs_config"] = config
    app.extensions["auth_session"] = session

    app.register_blueprint(auth_bp)
    app.register_blueprint(api_bp)
    app.register_blueprint(downloads_bp)

    return app
