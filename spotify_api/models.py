from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class Artist:
    name: str


@dataclass(frozen=True)
class Album:
    name: str
    release_date: str = ""


@dataclass(frozen=True)
class Track:
    id: str
    name: str
    artists: Tuple[Artist, ...]
    album: Album
    duration_ms: int = 0
    popularity: int = 0
    uri: str = ""
    external_url: str = ""

    @property
    def artist_names(self) -> Tuple[str, ...]:
        return tuple(a.name for a in self.artists)

    @classmethod
    def from_spotify(cls, track_obj: Dict[str, Any]) -> "Track":
        album = _as_dict(track_obj.get("album"))
        artists = track_obj.get("artists") if isinstance(track_obj.get("artists"), list) else []

        return cls(
            id=str(track_obj.get("id") or ""),
            name=str(track_obj.get("name") or ""),
            artists=tuple(Artist(name=str(a.get("name") or "")) for a in artists if isinstance(a, dict)),
            album=Album(name=str(album.get("name") or ""), release_date=str(album.get("release_date") or "")),
            duration_ms=max(0, _as_int(track_obj.get("duration_ms"))),
            popularity=min(100, max(0, _as_int(track_obj.get("popularity")))),
            uri=str(track_obj.get("uri") or ""),
            external_url=str(_as_dict(track_obj.get("external_urls")).get("spotify") or ""),
        )


@dataclass(frozen=True)
class TrackItem:
    """One entry of the saved-tracks collection: the track plus when it was liked."""

    track: Track
    added_at: str = ""

    @classmethod
    def from_spotify(cls, item: Any) -> Optional["TrackItem"]:
        """Parse one ``/me/tracks`` item; returns None when it carries no track object."""

        if not isinstance(item, dict) or not isinstance(item.get("track"), dict):
            return None
        return cls(track=Track.from_spotify(item["track"]), added_at=str(item.get("added_at") or ""))

