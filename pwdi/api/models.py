from __future__ import annotations

from pydantic import BaseModel, Field
from typing import List, Optional


class ApiError(BaseModel):
    """Standard API error payload."""

    error: str
    detail: Optional[str] = None


class PushOut(BaseModel):
    """Result of a push: the bundle was extracted into the served directory."""

    ok: bool = True
    detail: str = "pushed"


class StoredFileOut(BaseModel):
    """One uploaded file and the random name it was stored under."""

    filename: Optional[str] = None
    stored_as: str

    def render(self) -> str:
        if self.filename:
            return f"{self.filename} -> {self.stored_as}"
        return self.stored_as


class UploadOut(BaseModel):
    """Result of a file drop upload."""

    files: List[StoredFileOut] = Field(default_factory=list)
    text: str = ""
