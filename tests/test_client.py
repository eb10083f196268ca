"""Tests for the project API client against a mocked transport."""

import json

import httpx
import pytest

from surveycam.sync.client import ApiError, ProjectApiClient


def make_client(handler, token: str | None = "secret") -> ProjectApiClient:
    return ProjectApiClient(
        server_url="https://studio.example.com/",
        api_token=token,
        timeout=5.0,
        transport=httpx.MockTransport(handler),
    )


class TestCreateUpdate:
    @pytest.mark.asyncio
    async def test_posts_classification_and_returns_id(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(201, json={"id": "upd_42", "title": "Site Survey"})

        async with make_client(handler) as client:
            update_id = await client.create_update(
                "proj_1",
                title="Site Survey - 2026-10-19",
                description="1 photo from site survey",
                room_id="room_7",
                metadata={"isInternal": True},
            )

        assert update_id == "upd_42"
        request = requests[0]
        assert request.method == "POST"
        assert request.url.path == "/api/projects/proj_1/updates"
        assert request.headers["Authorization"] == "Bearer secret"
        assert request.headers["User-Agent"].startswith("surveycam-agent/")
        body = json.loads(request.content)
        assert body["type"] == "PHOTO"
        assert body["category"] == "PROGRESS"
        assert body["priority"] == "MEDIUM"
        assert body["roomId"] == "room_7"
        assert body["metadata"] == {"isInternal": True}

    @pytest.mark.asyncio
    async def test_accepts_update_envelope(self):
        def handler(request):
            return httpx.Response(201, json={"update": {"id": "upd_7"}})

        async with make_client(handler) as client:
            assert await client.create_update("p", title="t", description="d") == "upd_7"

    @pytest.mark.asyncio
    async def test_room_omitted_when_not_given(self):
        bodies = []

        def handler(request):
            bodies.append(json.loads(request.content))
            return httpx.Response(201, json={"id": "u"})

        async with make_client(handler, token=None) as client:
            await client.create_update("p", title="t", description="d")

        assert "roomId" not in bodies[0]

    @pytest.mark.asyncio
    async def test_server_error_message_is_used(self):
        def handler(request):
            return httpx.Response(404, json={"error": "Project not found"})

        async with make_client(handler) as client:
            with pytest.raises(ApiError) as exc_info:
                await client.create_update("p", title="t", description="d")

        assert exc_info.value.status_code == 404
        assert str(exc_info.value) == "Project not found"

    @pytest.mark.asyncio
    async def test_non_json_error_gets_fallback_message(self):
        def handler(request):
            return httpx.Response(502, text="<html>Bad gateway</html>")

        async with make_client(handler) as client:
            with pytest.raises(ApiError) as exc_info:
                await client.create_update("p", title="t", description="d")

        assert exc_info.value.message == "Failed to create update (HTTP 502)"

    @pytest.mark.asyncio
    async def test_missing_id_is_an_error(self):
        def handler(request):
            return httpx.Response(200, json={"ok": True})

        async with make_client(handler) as client:
            with pytest.raises(ApiError, match="missing id"):
                await client.create_update("p", title="t", description="d")


class TestUploadSurveyPhoto:
    @pytest.mark.asyncio
    async def test_sends_multipart_with_fields(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"success": True})

        async with make_client(handler) as client:
            body = await client.upload_survey_photo(
                "proj_1",
                "upd_42",
                filename="kitchen.jpg",
                content=b"\xff\xd8jpeg",
                content_type="image/jpeg",
                fields={"projectId": "proj_1", "updateId": "upd_42", "tags": '["demo"]'},
            )

        assert body == {"success": True}
        request = requests[0]
        assert request.url.path == "/api/projects/proj_1/updates/upd_42/survey-photos"
        assert request.headers["Content-Type"].startswith("multipart/form-data")
        raw = request.read()
        assert b'name="file"; filename="kitchen.jpg"' in raw
        assert b"\xff\xd8jpeg" in raw
        assert b'name="updateId"' in raw
        assert b'["demo"]' in raw

    @pytest.mark.asyncio
    async def test_empty_success_body_is_fine(self):
        def handler(request):
            return httpx.Response(204)

        async with make_client(handler) as client:
            body = await client.upload_survey_photo(
                "p", "u", filename="a.jpg", content=b"x", content_type="image/jpeg", fields={}
            )
        assert body == {}

    @pytest.mark.asyncio
    async def test_rejected_upload_raises(self):
        def handler(request):
            return httpx.Response(413, json={"error": "File too large"})

        async with make_client(handler) as client:
            with pytest.raises(ApiError, match="File too large"):
                await client.upload_survey_photo(
                    "p", "u", filename="a.jpg", content=b"x", content_type="image/jpeg", fields={}
                )


class TestLookups:
    @pytest.mark.asyncio
    async def test_get_project_and_rooms(self):
        def handler(request):
            if request.url.path.endswith("/rooms"):
                return httpx.Response(200, json={"rooms": [{"id": "r1", "name": "Kitchen"}]})
            return httpx.Response(200, json={"id": "proj_1", "name": "Smith Residence"})

        async with make_client(handler) as client:
            project = await client.get_project("proj_1")
            rooms = await client.get_project_rooms("proj_1")

        assert project["name"] == "Smith Residence"
        assert rooms == [{"id": "r1", "name": "Kitchen"}]

    @pytest.mark.asyncio
    async def test_check_server(self):
        def handler(request):
            assert request.url.path == "/health/ready"
            return httpx.Response(200)

        async with make_client(handler) as client:
            assert await client.check_server() is True

    @pytest.mark.asyncio
    async def test_check_server_unreachable(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        async with make_client(handler) as client:
            assert await client.check_server() is False
