import logging

from flask import Blueprint, Response, abort

from exporters import EXPORT_FORMATS, download_filename
from web.routes.common import get_fetch_state

logger = logging.getLogger(__name__)

downloads_bp = Blueprint("downloads", __name__)


@downloads_bp.route("/download/<fmt>")
def download(fmt: str):
    export_format = EXPORT_FORMATS.get(fmt)
    if export_format is None:
        abort(404)

    songs = get_fetch_state().items()
    if not songs:
        return Response("No songs available", status=400, mimetype="text/plain")

    filename = download_filename(export_format)
    logger.info("Serving %s export (%d songs) as %s", fmt, len(songs), filename)
    return Response(
        export_format.render(songs),
        mimetype=export_format.mimetype,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
