import base64

from pydantic import BaseModel, Field


class OverlayQuery(BaseModel):
    background_url: str | None = None
    caption: str | None = None
    badge_name: str | None = None
    band_color: str | None = None
    text_color: str | None = None
    font_size: int | None = None


class CacheRecord(BaseModel):
    content_type: str
    data: str
    width: int = Field(gt=0)
    height: int = Field(gt=0)

    @classmethod
    def from_bytes(cls, content_type: str, image_bytes: bytes, width: int, height: int) -> "CacheRecord":
        return cls(
            content_type=content_type,
            data=base64.b64encode(image_bytes).decode(),
            width=width,
            height=height,
        )

    def image_bytes(self) -> bytes:
        return base64.b64decode(self.data)


class CacheWarmRequest(BaseModel):
    urls: list[str]


class CacheWarmResponse(BaseModel):
    warmed: list[str]
    failed: dict[str, str]
