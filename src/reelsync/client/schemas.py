"""Pydantic schemas for coordination payloads and the push manifest."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class CamelModel(BaseModel):
    """Base model accepting either field names or camelCase aliases."""

    model_config = ConfigDict(populate_by_name=True)


# === Coordination schemas ===


class ValidateResponse(CamelModel):
    """Response of the API key validation endpoint."""

    valid: bool
    editor_name: str | None = Field(default=None, alias="editorName")
    expires_at: str | None = Field(default=None, alias="expiresAt")
    error: str | None = None


class LockResponse(CamelModel):
    """Response of the lock and unlock endpoints."""

    success: bool
    error: str | None = None
    locked_by: str | None = Field(default=None, alias="lockedBy")
    locked_at: str | None = Field(default=None, alias="lockedAt")


class ProjectLock(BaseModel):
    """A lock row as listed by the coordination service."""

    project_name: str
    locked_by: str
    locked_at: str | None = None


class RegisteredFile(BaseModel):
    """A file entry sent when registering a pushed project."""

    name: str
    path: str = ""
    size: int = 0
    type: str = ""


class RegisterResponse(CamelModel):
    """Response of the project registration endpoint."""

    success: bool
    project_name: str | None = Field(default=None, alias="projectName")
    files_added: int = Field(default=0, alias="filesAdded")


# === Manifest schemas ===


class ManifestTotals(BaseModel):
    """Per-bucket counts of one push."""

    selected: int = 0
    uploaded: int = 0
    skipped: int = 0
    failed: int = 0
    cancelled: int = 0


class ManifestFile(CamelModel):
    """An uploaded file listed in the manifest."""

    name: str
    drive_name: str = Field(alias="driveName")
    drive_path: str = Field(alias="drivePath")
    path: str
    drive_id: str | None = Field(default=None, alias="driveId")
    size: int = 0


class Manifest(CamelModel):
    """Summary document written to the project folder after every push.

    Rewritten on every push; the last writer wins.
    """

    project_name: str = Field(alias="projectName")
    uploaded_by: str = Field(default="", alias="uploadedBy")
    uploaded_at: str = Field(alias="uploadedAt")
    path: str = ""
    totals: ManifestTotals
    files: list[ManifestFile] = Field(default_factory=list)

    def to_json(self) -> str:
        """Serialize with camelCase keys, indented."""
        return self.model_dump_json(by_alias=True, indent=2)
