import logging

from fastapi import Request
from pydantic import ValidationError

from app.config import Settings
from app.errors import ValidationInputError
from app.orchestrator import SplitSession
from app.receipt.base import ImageSource

logger = logging.getLogger("splitter")


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_split_session(request: Request) -> SplitSession:
    """The process-wide session, built once at startup."""
    return request.app.state.split_session


def build_image_source(image_url: str | None, base64_image: str | None, max_bytes: int) -> ImageSource:
    """Turn raw body fields into an ImageSource, enforcing the upload limit."""
    if not (image_url or base64_image):
        raise ValidationInputError("Either imageUrl or base64Image is required")
    try:
        image = ImageSource(image_url=image_url, base64_image=base64_image)
    except ValidationError as e:
        message = e.errors()[0]["msg"].removeprefix("Value error, ")
        raise ValidationInputError(message) from e

    size = image.decoded_size()
    if size > max_bytes:
        logger.warning("Image rejected", extra={"extra_data": {"size": size, "max_bytes": max_bytes}})
        raise ValidationInputError(f"Image too large. Maximum size is {max_bytes // (1024 * 1024)} MB.")
    return image
