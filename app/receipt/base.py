import base64
import binascii
import hashlib
from typing import Protocol

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from app.inference import ValidationOutcome

# base64 prefixes of common image magic bytes
MEDIA_TYPE_PREFIXES = {
    "/9j/": "image/jpeg",
    "iVBORw0KGgo": "image/png",
    "R0lGOD": "image/gif",
    "UklGR": "image/webp",
}


class ReceiptItem(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True, allow_inf_nan=False)

    name: str
    price: float  # display units (e.g. 12.50 for $12.50)


class Receipt(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True, allow_inf_nan=False)

    currency: str | None = None  # passed through as read, never converted
    total: float | None = None
    subtotal: float | None = None
    tax: float | None = None
    tip: float | None = None
    items: list[ReceiptItem] = []


class ImageSource(BaseModel):
    """A receipt image given either as a URL or as inline base64."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    image_url: str | None = Field(default=None, alias="imageUrl")
    base64_image: str | None = Field(default=None, alias="base64Image")

    @field_validator("image_url", "base64_image")
    @classmethod
    def blank_is_missing(cls, value: str | None) -> str | None:
        if value is not None and not value.strip():
            return None
        return value

    @model_validator(mode="after")
    def exactly_one_source(self) -> "ImageSource":
        if (self.image_url is None) == (self.base64_image is None):
            raise ValueError("Exactly one of imageUrl or base64Image is required")
        if self.base64_image is not None:
            try:
                base64.b64decode(self._payload(), validate=True)
            except binascii.Error as e:
                raise ValueError(f"base64Image is not valid base64: {e}") from e
        return self

    def _split_data_url(self) -> tuple[str | None, str]:
        value = "".join(self.base64_image.split())
        if value.startswith("data:"):
            header, _, payload = value.partition(",")
            media_type = header[len("data:"):].split(";")[0] or None
            return media_type, payload
        return None, value

    def _payload(self) -> str:
        return self._split_data_url()[1]

    def media_type(self) -> str:
        declared, payload = self._split_data_url()
        if declared:
            return declared
        for prefix, media_type in MEDIA_TYPE_PREFIXES.items():
            if payload.startswith(prefix):
                return media_type
        return "image/jpeg"

    def decoded_size(self) -> int:
        if self.base64_image is None:
            return 0
        return len(base64.b64decode(self._payload()))

    def model_url(self) -> str:
        """URL handed to the vision model (remote URL or data URL)."""
        if self.image_url is not None:
            return self.image_url
        return f"data:{self.media_type()};base64,{self._payload()}"

    def fingerprint(self) -> str:
        source = self.image_url if self.image_url is not None else self._payload()
        return hashlib.sha256(source.encode("utf-8")).hexdigest()


class ReceiptExtraction(BaseModel):
    receipt: Receipt
    validation: ValidationOutcome


class ReceiptExtractor(Protocol):
    async def extract(self, image: ImageSource) -> ReceiptExtraction: ...

    async def aclose(self) -> None: ...
