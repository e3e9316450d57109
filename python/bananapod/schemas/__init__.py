"""Pydantic schemas for request/response models.

All schemas are re-exported here for convenient imports.
"""

from bananapod.schemas.auth import AuthCheckRequest
from bananapod.schemas.common import ApiModel, DataUrlRef, ImageRef, MediaIdRef, OkResponse
from bananapod.schemas.generation import (
    GeneratedItemOut,
    GenerateImageRequest,
    GenerateImageResponse,
    ImageConfigIn,
)
from bananapod.schemas.history import HistoryItemOut, HistoryPageOut
from bananapod.schemas.video import VideoStartOut, VideoStartRequest, VideoStatusOut

__all__ = [
    "ApiModel",
    "OkResponse",
    "DataUrlRef",
    "MediaIdRef",
    "ImageRef",
    "AuthCheckRequest",
    "ImageConfigIn",
    "GenerateImageRequest",
    "GeneratedItemOut",
    "GenerateImageResponse",
    "HistoryItemOut",
    "HistoryPageOut",
    "VideoStartRequest",
    "VideoStartOut",
    "VideoStatusOut",
]
