import csv
import io
import os
from dataclasses import dataclass
from datetime import date, datetime
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from spotify_api.models import TrackItem

RULE = "═" * 51

CSV_HEADER = [
    "Track Name",
    "Artist(s)",
    "Album",
    "Release Date",
    "Duration",
    "Added Date",
    "Popularity",
    "Spotify URL",
    "Track URI",
]


def format_duration(ms: int) -> str:
    """Milliseconds -> m:ss."""
    ms = max(0, int(ms or 0))
    minutes, rest = divmod(ms, 60000)
    return f"{minutes}:{rest // 1000:02d}"


def format_added_date(added_at: str) -> str:
    """ISO timestamp from Spotify (2020-01-01T12:00:00Z) -> 2020-01-01. Unparseable values pass through."""
    if not added_at:
        return ""
    try:
        return datetime.fromisoformat(added_at.replace("Z", "+00:00")).date().isoformat()
    except ValueError:
        return added_at


def _exported_stamp(exported_at: Optional[datetime]) -> str:
    return (exported_at or datetime.now()).strftime("%Y-%m-%d %H:%M:%S")


def _header(title: str, count: int, exported_at: Optional[datetime]) -> str:
    return (
        f"{RULE}\n"
        f"          {title}\n"
        f"          Total: {count} songs\n"
        f"          Exported: {_exported_stamp(exported_at)}\n"
        f"{RULE}\n\n"
    )


def format_simple(items: Sequence[TrackItem], exported_at: Optional[datetime] = None) -> str:
    lines = [_header("MY SPOTIFY LIKED SONGS", len(items), exported_at)]
    for index, item in enumerate(items, start=1):
        lines.append(f"{index}. {item.track.name} - {', '.join(item.track.artist_names)}\n")
    return "".join(lines)


def format_detailed(items: Sequence[TrackItem], exported_at: Optional[datetime] = None) -> str:
    lines = [_header("MY SPOTIFY LIKED SONGS (DETAILED)", len(items), exported_at)]
    for index, item in enumerate(items, start=1):
        t = item.track
        lines.append(
            f"{index}.\n"
            f"   Track: {t.name}\n"
            f"   Artist(s): {', '.join(t.artist_names)}\n"
            f"   Album: {t.album.name}\n"
            f"   Release Date: {t.album.release_date}\n"
            f"   Duration: {format_duration(t.duration_ms)}\n"
            f"   Added: {format_added_date(item.added_at)}\n"
            f"   Popularity: {t.popularity}/100\n"
            f"   Spotify URL: {t.external_url}\n\n"
        )
    return "".join(lines)


def format_uris(items: Sequence[TrackItem], exported_at: Optional[datetime] = None) -> str:
    lines = [
        "# Spotify Track URIs - Use for playlist import\n",
        f"# Total: {len(items)} songs\n",
        f"# Exported: {_exported_stamp(exported_at)}\n\n",
    ]
    lines.extend(f"{item.track.uri}\n" for item in items)
    return "".join(lines)


def format_csv(items: Sequence[TrackItem], exported_at: Optional[datetime] = None) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for item in items:
        t = item.track
        writer.writerow(
            [
                t.name,
                "; ".join(t.artist_names),
                t.album.name,
                t.album.release_date,
                format_duration(t.duration_ms),
                format_added_date(item.added_at),
                t.popularity,
                t.external_url,
                t.uri,
            ]
        )
    return buf.getvalue()


@dataclass(frozen=True)
class ExportFormat:
    key: str
    label: str
    render: Callable[..., str]
    suffix: str
    extension: str
    mimetype: str

    def filename(self, stamp: str) -> str:
        return f"spotify_liked_songs{self.suffix}_{stamp}.{self.extension}"


EXPORT_FORMATS: Dict[str, ExportFormat] = {
    "txt": ExportFormat("txt", "Simple (Track - Artist)", format_simple, "", "txt", "text/plain"),
    "detailed": ExportFormat(
        "detailed", "Detailed (Track, Artist, Album, Release Date, Duration)", format_detailed, "_detailed", "txt", "text/plain"
    ),
    "uris": ExportFormat("uris", "Spotify URI (for playlist import)", format_uris, "_uris", "txt", "text/plain"),
    "csv": ExportFormat("csv", "CSV Format (spreadsheet compatible)", format_csv, "", "csv", "text/csv"),
}


def download_filename(fmt: ExportFormat, today: Optional[date] = None) -> str:
    return fmt.filename((today or date.today()).isoformat())


def write_exports(
    items: Sequence[TrackItem],
    formats: Iterable[str],
    export_dir: str,
    *,
    now: Optional[datetime] = None,
) -> List[str]:
    """Write one file per requested format into export_dir and return their paths."""
    now = now or datetime.now()
    stamp = now.strftime("%Y-%m-%dT%H-%M-%S")
    os.makedirs(export_dir, exist_ok=True)

    paths = []
    for key in formats:
        fmt = EXPORT_FORMATS.get(key)
        if fmt is None:
            raise ValueError(f"Unknown export format: {key}. Available: {list(EXPORT_FORMATS.keys())}")
        path = os.path.join(export_dir, fmt.filename(stamp))
        with open(path, "w", encoding="utf-8", newline="") as f:
            f.write(fmt.render(items, exported_at=now))
        paths.append(path)
    return paths
