from datetime import datetime

from flask import Blueprint, jsonify, redirect, render_template, url_for

from exporters import EXPORT_FORMATS
from exporters.formatters import format_added_date
from web.routes.common import get_fetch_state

api_bp = Blueprint("api", __name__)


@api_bp.route("/loading")
def loading():
    return render_template("loading.html", page_title="Loading Songs...")


@api_bp.route("/api/songs/status")
def songs_status():
    return jsonify(get_fetch_state().status())


@api_bp.route("/results")
def results():
    fetch_state = get_fetch_state()
    if not fetch_state.is_ready:
        return redirect(url_for("api.loading"))

    return render_template(
        "results.html",
        page_title="Your Liked Songs",
        songs=fetch_state.items(),
        formats=EXPORT_FORMATS.values(),
        export_date=datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
        added_date=format_added_date,
    )
