"""Media type helpers shared by adapters and the output migrator."""

import base64
from typing import Any, Optional, Tuple
from urllib.parse import unquote_to_bytes

IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif", ".webp")
VIDEO_EXTENSIONS = (".mp4", ".webm", ".mov")
AUDIO_EXTENSIONS = (".mp3", ".wav", ".flac", ".ogg", ".aac", ".m4a")
MODEL_EXTENSIONS = (".glb", ".gltf", ".obj")

# Fallback content type per media type when the download gives none
MEDIA_MIME_TYPES = {
    "image": "image/png",
    "video": "video/mp4",
    "audio": "audio/mpeg",
    "3d": "model/gltf-binary",
}

KNOWN_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/svg+xml": "svg",
    "audio/mpeg": "mp3",
    "model/gltf-binary": "glb",
    "application/octet-stream": "bin",
}


def is_http_url(value: Any) -> bool:
    return isinstance(value, str) and (value.startswith("http://") or value.startswith("https://"))


def is_data_uri(value: Any) -> bool:
    return isinstance(value, str) and value.startswith("data:")


def infer_type_from_url(url: str) -> str:
    """Guess the media type of an output from its file extension."""
    path = url.lower().split("?", 1)[0]
    if path.endswith(IMAGE_EXTENSIONS):
        return "image"
    if path.endswith(VIDEO_EXTENSIONS):
        return "video"
    if path.endswith(AUDIO_EXTENSIONS):
        return "audio"
    if path.endswith(MODEL_EXTENSIONS):
        return "3d"
    return "image"


def mime_for_media_type(media_type: str) -> str:
    return MEDIA_MIME_TYPES.get(media_type, "application/octet-stream")


def decode_data_uri(value: str) -> Tuple[str, bytes]:
    """
    Split a data URI into its MIME type and raw bytes.

    Args:
        value: String of the form ``data:<mime>[;base64],<payload>``

    Returns:
        Tuple of (mime type, decoded bytes)

    Raises:
        ValueError: If the URI is malformed or its base64 payload is invalid
    """
    header, sep, data = value.partition(",")
    if not sep:
        raise ValueError("Malformed data URI")

    mime_type = header[len("data:"):]
    if mime_type.endswith(";base64"):
        mime_type = mime_type[: -len(";base64")]
        content = base64.b64decode(data, validate=True)
    else:
        content = unquote_to_bytes(data)

    # Drop parameters such as ";charset=utf-8"
    mime_type = mime_type.split(";", 1)[0]

    return mime_type or "text/plain", content


def file_extension(mime_type: str) -> Optional[str]:
    """Return the subtype of a MIME type, used as a file extension."""
    mime_type = mime_type.split(";", 1)[0].strip().lower()
    if mime_type in KNOWN_EXTENSIONS:
        return KNOWN_EXTENSIONS[mime_type]
    if "/" not in mime_type:
        return None
    subtype = mime_type.split("/", 1)[1]
    return subtype or None
