"""RTSP location validation shared by the launcher and the pipeline builder."""

from __future__ import annotations

from urllib.parse import urlparse

from rtsp_kvs.media.errors import ConfigurationError

RTSP_SCHEMES = frozenset({"rtsp", "rtsps", "rtspt", "rtspu"})


def validate_rtsp_uri(uri: str) -> str:
    """Return ``uri`` stripped, or raise ``ConfigurationError`` if it is not an RTSP URL."""

    candidate = (uri or "").strip()
    if not candidate:
        raise ConfigurationError("RTSP URI is empty")
    parsed = urlparse(candidate)
    if parsed.scheme.lower() not in RTSP_SCHEMES:
        raise ConfigurationError(f"Unsupported URI scheme {parsed.scheme!r}; expected one of {sorted(RTSP_SCHEMES)}")
    if not parsed.hostname:
        raise ConfigurationError(f"RTSP URI has no host: {candidate}")
    return candidate


__all__ = ["RTSP_SCHEMES", "validate_rtsp_uri"]
