"""Result models for a harvest session."""

from datetime import datetime
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field


class DownloadedImage(BaseModel):
    """An image fetched by navigating to its URL and saved to disk."""
    url: str
    path: Path
    size: int


class SessionResult(BaseModel):
    """Everything one session extracted. Nothing here outlives the run except the files."""
    names: List[str] = Field(default_factory=list)
    names_file: Optional[Path] = None
    revealed_text: Optional[str] = None
    form_result: Optional[str] = None
    image_urls: List[str] = Field(default_factory=list)
    images: List[DownloadedImage] = Field(default_factory=list)
    screenshot: Optional[Path] = None
    started_at: datetime
    finished_at: Optional[datetime] = None

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()
