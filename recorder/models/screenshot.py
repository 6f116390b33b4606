"""Screenshot, upload and run data structures."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ScreenshotDescriptor(BaseModel):
    """One screenshot as declared in the metadata file."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    tile_width: int = Field(default=1, ge=1)
    tile_height: int = Field(default=1, ge=1)
    # Display metadata, not used for reconstruction
    description: str = ""
    test_class: str = ""
    test_name: str = ""
    view_hierarchy: str = ""

    @property
    def tile_count(self) -> int:
        return self.tile_width * self.tile_height


class UploadRecord(BaseModel):
    """Pairs a screenshot name with the server's image id."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str
    image_id: str = Field(alias="imageId")

    def to_wire(self) -> dict[str, str]:
        return self.model_dump(by_alias=True)


class RunEnvironment(BaseModel):
    """Source-control and channel context submitted alongside a run."""

    channel: str
    branch: Optional[str] = None
    commit: Optional[str] = None
    is_clean: Optional[bool] = None
    is_production: bool = False
    github_repo: Optional[str] = None


class RunManifest(BaseModel):
    """Everything needed for the single run submission."""

    records: list[UploadRecord] = Field(default_factory=list)
    environment: RunEnvironment


class RunSummary(BaseModel):
    """What a completed run reports back to the caller."""

    run_id: str
    channel: str
    total: int = 0
    uploaded: int = 0
    reused: int = 0
    duration_seconds: float = 0.0
