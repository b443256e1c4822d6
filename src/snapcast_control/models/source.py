"""Source model for audio streams."""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, cast

from snapcast_control.models._payload import require_dict, require_str

# Sample format has 3 parts: rate:bits:channels (e.g., "48000:16:2")
_SAMPLE_FORMAT_PARTS = 3


class SourceStatus(str, Enum):
    """Stream status as reported by the server."""

    IDLE = "idle"
    PLAYING = "playing"
    DISABLED = "disabled"
    UNKNOWN = "unknown"

    @classmethod
    def from_string(cls, value: Any) -> "SourceStatus":
        """Map a status string, falling back to UNKNOWN."""
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


def _metadata_fields(properties: dict[str, Any] | None) -> dict[str, str]:
    """Extract display metadata from stream properties."""
    fields = {"meta_title": "", "meta_artist": "", "meta_album": "", "meta_art_url": ""}
    if not properties:
        return fields
    metadata_raw = properties.get("metadata")
    if not isinstance(metadata_raw, dict):
        return fields
    metadata = cast(dict[str, Any], metadata_raw)

    title_val = metadata.get("title")
    if title_val is not None:
        fields["meta_title"] = str(title_val)

    # Artist (can be list or string)
    artist_val = metadata.get("artist")
    if isinstance(artist_val, list):
        fields["meta_artist"] = ", ".join(str(x) for x in cast(list[Any], artist_val))
    elif artist_val is not None:
        fields["meta_artist"] = str(artist_val)

    album_val = metadata.get("album")
    if album_val is not None:
        fields["meta_album"] = str(album_val)

    art_url_val = metadata.get("artUrl")
    if art_url_val is not None:
        fields["meta_art_url"] = str(art_url_val)
    return fields


@dataclass(frozen=True, slots=True)
class Source:
    """An audio source/stream in the Snapcast server.

    Attributes:
        id: Unique stream identifier from server.
        name: Human-readable stream name.
        status: Stream status.
        uri_raw: Raw URI string.
        uri_scheme: URI scheme (pipe, librespot, airplay, meta, etc.).
        uri_query: Query parameters of the stream URI.
        properties: Stream properties, or None until the server has sent them.
        codec: Audio codec (flac, pcm, opus, ogg, etc.).
        sample_format: Sample format string (e.g., "48000:16:2").
        meta_title: Current track title (if available).
        meta_artist: Current artist(s) (if available).
        meta_album: Current album (if available).
        meta_art_url: Album art URL (if available).
    """

    id: str
    name: str = ""
    status: SourceStatus = SourceStatus.IDLE
    uri_raw: str = ""
    uri_scheme: str = ""
    uri_query: dict[str, str] | None = None
    properties: dict[str, Any] | None = None
    codec: str = ""
    sample_format: str = ""
    meta_title: str = ""
    meta_artist: str = ""
    meta_album: str = ""
    meta_art_url: str = ""

    @classmethod
    def placeholder(cls, stream_id: str) -> "Source":
        """Return a stream whose details have not been fetched yet."""
        return cls(id=stream_id, name=stream_id, status=SourceStatus.UNKNOWN)

    @classmethod
    def from_dict(cls, data: Any) -> "Source":
        """Build a stream from its protocol object.

        Raises:
            PayloadError: If the object is not a stream.
        """
        raw = require_dict(data, "stream")
        stream_id = require_str(raw, "id", "stream")
        uri = require_dict(raw.get("uri", {}), "stream uri")
        query = require_dict(uri.get("query", {}), "stream uri query")
        properties_raw = raw.get("properties")
        properties = (
            None if properties_raw is None else require_dict(properties_raw, "stream properties")
        )
        props = properties or {}

        # Codec can come from properties (modern) or query (legacy)
        codec_raw = props.get("codec")
        codec = codec_raw.get("name", "") if isinstance(codec_raw, dict) else ""

        return cls(
            id=stream_id,
            name=str(query.get("name", stream_id)),
            status=SourceStatus.from_string(raw.get("status", "idle")),
            uri_raw=str(uri.get("raw", "")),
            uri_scheme=str(uri.get("scheme", "")),
            uri_query={str(k): str(v) for k, v in query.items()},
            properties=properties,
            codec=str(codec or query.get("codec", "")),
            sample_format=str(props.get("sampleFormat", query.get("sampleformat", ""))),
            **_metadata_fields(properties),
        )

    def with_properties(self, properties: dict[str, Any]) -> "Source":
        """Return a copy with new properties and recomputed metadata."""
        return replace(self, properties=properties, **_metadata_fields(properties))

    @property
    def is_playing(self) -> bool:
        """Return True if stream is currently playing."""
        return self.status == SourceStatus.PLAYING

    @property
    def is_idle(self) -> bool:
        """Return True if stream is idle."""
        return self.status == SourceStatus.IDLE

    @property
    def is_fetched(self) -> bool:
        """Return True once the server has reported the stream's properties."""
        return self.properties is not None

    @property
    def display_codec(self) -> str:
        """Return codec for display, with fallback."""
        return self.codec or self.uri_scheme or "unknown"

    @property
    def display_format(self) -> str:
        """Return sample format in human-readable form."""
        if not self.sample_format:
            return ""
        parts = self.sample_format.split(":")
        if len(parts) == _SAMPLE_FORMAT_PARTS and parts[0].isdigit():
            rate, bits, channels = parts
            ch_str = "stereo" if channels == "2" else f"{channels}ch"
            return f"{int(rate) // 1000}kHz/{bits}bit/{ch_str}"
        return self.sample_format

    @property
    def has_metadata(self) -> bool:
        """Return True if source has track metadata."""
        return bool(self.meta_title or self.meta_artist)

    @property
    def display_now_playing(self) -> str:
        """Return formatted 'Now Playing' string."""
        if not self.has_metadata:
            return ""
        parts: list[str] = []
        if self.meta_title:
            parts.append(self.meta_title)
        if self.meta_artist:
            parts.append(self.meta_artist)
        return " - ".join(parts)
