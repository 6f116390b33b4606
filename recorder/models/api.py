"""Server response envelopes."""

from __future__ import annotations

from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ImageResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    upload_url: Optional[str] = Field(default=None, alias="uploadUrl")

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v):
        return str(v) if isinstance(v, int) else v

    @property
    def needs_upload(self) -> bool:
        return bool(self.upload_url)


class RunResponse(BaseModel):
    id: str

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v):
        # The server returns run ids as integers
        return str(v) if isinstance(v, int) else v


T = TypeVar("T")


class ApiResult(BaseModel, Generic[T]):
    """Envelope wrapping every API response: {success, response, error}."""

    success: bool = False
    response: Optional[T] = None
    error: Optional[str] = None
