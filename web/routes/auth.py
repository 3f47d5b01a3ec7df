import logging

from flask import Blueprint, current_app, redirect, render_template, request, url_for

from spotify_api.errors import (
    AuthExchangeError,
    AuthorizationError,
    AuthTimeout,
    FetchAlreadyInProgress,
    NotAuthenticated,
)
from web.routes.common import get_fetch_state, get_session

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__)


def _error_status(error: AuthorizationError) -> int:
    if isinstance(error, AuthExchangeError):
        return 502
    if isinstance(error, AuthTimeout):
        return 408
    return 400


def render_auth_error(error: AuthorizationError):
    return (
        render_template("error.html", page_title=error.title, error_message=str(error)),
        _error_status(error),
    )


@auth_bp.route("/")
def index():
    if get_fetch_state().is_ready:
        return redirect(url_for("api.results"))
    return redirect(url_for("auth.login"))


@auth_bp.route("/login")
def login():
    try:
        authorize_url = get_session().begin_authorization(open_browser=False)
    except FetchAlreadyInProgress:
        return redirect(url_for("api.loading"))
    return redirect(authorize_url)


@auth_bp.route("/callback")
def callback():
    session = get_session()
    try:
        session.handle_callback(
            code=request.args.get("code"),
            error=request.args.get("error"),
            state=request.args.get("state"),
        )
    except AuthorizationError as e:
        return render_auth_error(e)

    if current_app.extensions["liked_songs_config"].get("auto_fetch_on_callback", False):
        try:
            session.start_fetch()
        except FetchAlreadyInProgress:
            logger.warning("Fetch already running; not starting another one")
        return redirect(url_for("api.loading"))

    logger.info("Waiting for user to start export...")
    return render_template("success.html", page_title="Authentication Successful")


@auth_bp.route("/start-fetch")
def start_fetch():
    logger.info("User initiated song fetch...")
    try:
        get_session().start_fetch()
    except FetchAlreadyInProgress:
        logger.warning("Fetch already running; sending the user to the loading view")
    except NotAuthenticated:
        return redirect(url_for("auth.login"))
    return redirect(url_for("api.loading"))


@auth_bp.route("/refresh")
def refresh():
    try:
        future = get_session().refresh()
    except FetchAlreadyInProgress:
        return redirect(url_for("api.loading"))
    except NotAuthenticated:
        return redirect(url_for("auth.login"))
    if future is None:
        return redirect(url_for("auth.login"))
    return redirect(url_for("api.loading"))
