from .media import (
    MediaDescriptor,
    MediaKind,
    MediaQuery,
    MediaType,
    NotFound,
    ProviderStreams,
    RawStreamFile,
    ResolvedStreamSet,
    StreamDescriptor,
    SubtitleTrack,
)

__all__ = [
    "MediaDescriptor",
    "MediaKind",
    "MediaQuery",
    "MediaType",
    "NotFound",
    "ProviderStreams",
    "RawStreamFile",
    "ResolvedStreamSet",
    "StreamDescriptor",
    "SubtitleTrack",
]
