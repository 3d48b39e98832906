from __future__ import annotations

from pydantic import BaseModel, Field


class ProcessedArtifact(BaseModel):
    """Metadata for a file the ingestion layer already processed for this conversation."""

    name: str = Field(..., min_length=1)
    size: int = Field(0, ge=0)
    file_type: str = "application/octet-stream"
    is_image: bool = False
    document_id: str | None = None
    converted_images: list[str] = Field(default_factory=list)

    @property
    def image_urls(self) -> list[str]:
        return list(self.converted_images)
