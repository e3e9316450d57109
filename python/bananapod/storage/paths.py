"""Blob key building utilities.

This module is the single point of logic for building media blob keys.

Key Invariant:
    {user_key}/{artifact_id}.{ext}

Rules:
    - No leading slash
    - Extension derived from the MIME type via extension_from_mime()
"""

MIME_TO_EXTENSION = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/webp": "webp",
    "video/mp4": "mp4",
}

DEFAULT_EXTENSION = "bin"


def extension_from_mime(mime_type: str) -> str:
    """Get the file extension for a MIME type.

    Parameters such as "; charset=..." are ignored. Unknown types map to "bin".
    """
    base = mime_type.split(";")[0].strip().lower()
    return MIME_TO_EXTENSION.get(base, DEFAULT_EXTENSION)


def build_blob_key(user_key: str, artifact_id: str, mime_type: str) -> str:
    """Build the blob key for a generated artifact.

    Example:
        >>> build_blob_key("alice", "4f1c...", "image/png")
        'alice/4f1c....png'
    """
    return f"{user_key.lstrip('/')}/{artifact_id}.{extension_from_mime(mime_type)}"
