"""HTTP client for the coordination service.

This module provides:
- CoordinationClient: async client for key validation, project locks,
  project registration and the activity log
- CoordinationError and InvalidAPIKeyError
"""

from __future__ import annotations

import logging
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from reelsync.client.schemas import (
    LockResponse,
    ProjectLock,
    RegisteredFile,
    RegisterResponse,
    ValidateResponse,
)
from reelsync.core.config import CoordinatorConfig

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class CoordinationError(Exception):
    """Base exception for coordination service errors."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class InvalidAPIKeyError(CoordinationError):
    """The API key is unknown or revoked, or admin credentials were rejected."""


class CoordinationClient:
    """Async HTTP client for the coordination service.

    Every editor call carries the API key in the JSON body. Lock contention
    is not an error: it comes back as a LockResponse with success=False and
    the holder's identity.

    Usage:
        async with CoordinationClient(config) as coordinator:
            response = await coordinator.lock("Promo_Cut")
    """

    def __init__(
        self,
        config: CoordinatorConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            config: Coordination service configuration.
            transport: Optional custom transport (tests).
        """
        self._config = config
        self._client = httpx.AsyncClient(
            base_url=config.server_url,
            timeout=config.timeout,
            transport=transport,
        )

    @property
    def config(self) -> CoordinatorConfig:
        """Get the client configuration."""
        return self._config

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> CoordinationClient:
        """Async context manager entry."""
        return self

    async def __aexit__(self, *args: object) -> None:
        """Async context manager exit."""
        await self.close()

    def _handle_response(self, response: httpx.Response) -> Any:
        """Raise for error statuses and return the decoded JSON body."""
        if response.status_code == 401:
            raise InvalidAPIKeyError(self._error_detail(response, "Invalid API key"), 401)
        if response.status_code >= 400:
            detail = self._error_detail(response, "Unknown error")
            raise CoordinationError(detail, response.status_code)
        try:
            return response.json()
        except ValueError as e:
            raise CoordinationError("Malformed response from coordination service", response.status_code) from e

    @staticmethod
    def _parse(model: type[ModelT], data: Any) -> ModelT:
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise CoordinationError(f"Malformed response from coordination service: {e}") from e

    @staticmethod
    def _error_detail(response: httpx.Response, default: str) -> str:
        try:
            return str(response.json().get("error", default))
        except (ValueError, AttributeError):
            return default

    async def _post(self, path: str, payload: dict[str, Any], **kwargs: Any) -> Any:
        try:
            response = await self._client.post(path, json=payload, **kwargs)
        except httpx.RequestError as e:
            raise CoordinationError(f"Coordination service unreachable: {e}") from e
        return self._handle_response(response)

    async def _editor_post(self, path: str, **fields: Any) -> Any:
        return await self._post(path, {"apiKey": self._config.api_key, **fields})

    # === Identity ===

    async def validate(self) -> ValidateResponse:
        """Validate the API key.

        Returns:
            ValidateResponse with the editor name when valid.
        """
        data = await self._editor_post("/api/validate")
        return self._parse(ValidateResponse, data)

    # === Locks ===

    async def lock(self, project_name: str) -> LockResponse:
        """Try to acquire the lock of a project."""
        data = await self._editor_post("/api/projects/lock", projectName=project_name)
        return self._parse(LockResponse, data)

    async def unlock(self, project_name: str) -> LockResponse:
        """Release a project lock held by this editor."""
        data = await self._editor_post("/api/projects/unlock", projectName=project_name)
        return self._parse(LockResponse, data)

    async def list_locks(self) -> list[ProjectLock]:
        """List every lock currently held."""
        try:
            response = await self._client.get("/api/projects/locks")
        except httpx.RequestError as e:
            raise CoordinationError(f"Coordination service unreachable: {e}") from e
        data = self._handle_response(response)
        try:
            return [ProjectLock.model_validate(item) for item in data]
        except (TypeError, ValidationError) as e:
            raise CoordinationError(f"Malformed lock list: {e}") from e

    async def force_unlock(self, project_name: str, admin_user: str, admin_password: str) -> bool:
        """Delete a lock regardless of holder (administrator credentials)."""
        data = await self._post(
            "/api/projects/force-unlock",
            {"projectName": project_name},
            auth=(admin_user, admin_password),
        )
        return bool(data.get("success"))

    # === Projects and activity ===

    async def register_project(
        self,
        project_name: str,
        project_path: str,
        files: list[RegisteredFile],
    ) -> RegisterResponse:
        """Record a pushed project and its files."""
        data = await self._editor_post(
            "/api/projects/register",
            projectName=project_name,
            projectPath=project_path,
            files=[f.model_dump() for f in files],
        )
        return self._parse(RegisterResponse, data)

    async def log_activity(self, action: str, project_name: str) -> None:
        """Append an entry to the activity log."""
        await self._editor_post("/api/activity", action=action, projectName=project_name)
