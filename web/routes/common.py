from flask import current_app

from spotify_api.fetch_state import FetchStateCoordinator
from spotify_api.session import AuthorizationSession


def get_session() -> AuthorizationSession:
    return current_app.extensions["auth_session"]


def get_fetch_state() -> FetchStateCoordinator:
    return get_session().fetch_state
