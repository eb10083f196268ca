"""Async HTTP client for the project management server API."""

import json
from typing import Any

import httpx

from surveycam import __version__

# Classification of the update record that anchors queued photos
UPDATE_TYPE = "PHOTO"
UPDATE_CATEGORY = "PROGRESS"
UPDATE_PRIORITY = "MEDIUM"


class ApiError(Exception):
    """Server answered with a non-2xx status or an unusable body."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class ProjectApiClient:
    """Async client for the project update and survey photo endpoints.

    Uses a single httpx.AsyncClient for connection pooling. Every request
    carries the configured timeout; there is no retry here, retry policy
    belongs to the upload queue.
    """

    def __init__(
        self,
        server_url: str,
        api_token: str | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            server_url: Base URL of the server (e.g., https://studio.example.com)
            api_token: Bearer token for the Authorization header
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.server_url = server_url.rstrip("/")
        self.timeout = timeout

        headers = {"User-Agent": f"surveycam-agent/{__version__}"}
        if api_token:
            headers["Authorization"] = f"Bearer {api_token}"

        self._client = httpx.AsyncClient(
            base_url=self.server_url,
            timeout=httpx.Timeout(timeout),
            headers=headers,
            transport=transport,
        )

    async def create_update(
        self,
        project_id: str,
        title: str,
        description: str,
        room_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """Create a photo/progress update record on a project.

        Args:
            project_id: Owning project
            title: Update title
            description: Update description
            room_id: Room the update belongs to, if any
            metadata: Extra metadata stored with the update

        Returns:
            Id of the created update

        Raises:
            ApiError: Non-2xx response or a body without an id
            httpx.HTTPError: Transport failure
        """
        payload: dict[str, Any] = {
            "type": UPDATE_TYPE,
            "category": UPDATE_CATEGORY,
            "priority": UPDATE_PRIORITY,
            "title": title,
            "description": description,
            "metadata": metadata or {},
        }
        if room_id:
            payload["roomId"] = room_id

        response = await self._client.post(
            f"/api/projects/{project_id}/updates",
            json=payload,
        )
        self._raise_for_status(response, "Failed to create update")

        body = self._json(response)
        if isinstance(body, dict) and isinstance(body.get("update"), dict):
            body = body["update"]
        if not isinstance(body, dict) or not body.get("id"):
            raise ApiError(response.status_code, "Update response missing id")
        return str(body["id"])

    async def upload_survey_photo(
        self,
        project_id: str,
        update_id: str,
        filename: str,
        content: bytes,
        content_type: str,
        fields: dict[str, str],
    ) -> dict[str, Any]:
        """Upload one photo as multipart form data.

        Args:
            project_id: Owning project
            update_id: Update record the photo attaches to
            filename: File name sent with the image part
            content: Image bytes
            content_type: MIME type of the image
            fields: Additional form fields, already string-encoded

        Returns:
            Parsed JSON body, or an empty dict when the body isn't JSON

        Raises:
            ApiError: Non-2xx response
            httpx.HTTPError: Transport failure
        """
        response = await self._client.post(
            f"/api/projects/{project_id}/updates/{update_id}/survey-photos",
            files={"file": (filename, content, content_type)},
            data=fields,
        )
        self._raise_for_status(response, "Failed to upload photo")

        body = self._json(response)
        return body if isinstance(body, dict) else {}

    async def get_project(self, project_id: str) -> dict[str, Any]:
        """Fetch a project summary (id, name, ...).

        Raises:
            ApiError: Non-2xx response
        """
        response = await self._client.get(f"/api/mobile/projects/{project_id}")
        self._raise_for_status(response, "Failed to load project")

        body = self._json(response)
        if isinstance(body, dict) and isinstance(body.get("project"), dict):
            body = body["project"]
        if not isinstance(body, dict):
            raise ApiError(response.status_code, "Unexpected project response")
        return body

    async def get_project_rooms(self, project_id: str) -> list[dict[str, Any]]:
        """Fetch the rooms of a project.

        Raises:
            ApiError: Non-2xx response
        """
        response = await self._client.get(f"/api/mobile/projects/{project_id}/rooms")
        self._raise_for_status(response, "Failed to load rooms")

        body = self._json(response)
        if isinstance(body, dict):
            body = body.get("rooms") or []
        return [room for room in body if isinstance(room, dict)] if isinstance(body, list) else []

    async def check_server(self) -> bool:
        """Check if the server is available.

        Returns:
            True if server responds to health check, False otherwise
        """
        try:
            response = await self._client.get(
                "/health/ready",
                timeout=httpx.Timeout(5.0),
            )
            return response.status_code == 200
        except httpx.HTTPError:
            return False

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except json.JSONDecodeError:
            return None

    @classmethod
    def _raise_for_status(cls, response: httpx.Response, fallback: str) -> None:
        """Raise ApiError for non-2xx responses.

        The server reports failures as {"error": "..."}; that text becomes
        the error message when present.
        """
        if response.is_success:
            return

        body = cls._json(response)
        message = None
        if isinstance(body, dict) and isinstance(body.get("error"), str):
            message = body["error"]
        raise ApiError(
            response.status_code,
            message or f"{fallback} (HTTP {response.status_code})",
        )

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        await self._client.aclose()

    async def __aenter__(self) -> "ProjectApiClient":
        """Enter async context manager."""
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        """Exit async context manager."""
        await self.close()
