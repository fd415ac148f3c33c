from http import HTTPStatus
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from mcp_imap_body.app import check_email_connection_tool, fetch_email_body_tool, get_store
from mcp_imap_body.emails.models import ConnectionTestResponse, FetchEmailBodyFailure
from mcp_imap_body.emails.store import JsonFileBodyStore


class TestGetStore:
    def test_no_store_configured(self):
        mock_settings = MagicMock()
        mock_settings.store_path = None

        with patch("mcp_imap_body.app.get_settings", return_value=mock_settings):
            assert get_store() is None

    def test_json_store(self, tmp_path):
        mock_settings = MagicMock()
        mock_settings.store_path = tmp_path / "bodies.json"

        with patch("mcp_imap_body.app.get_settings", return_value=mock_settings):
            store = get_store()

        assert isinstance(store, JsonFileBodyStore)
        assert store.path == tmp_path / "bodies.json"


class TestTools:
    @pytest.mark.asyncio
    async def test_fetch_email_body_tool_returns_payload(self):
        failure = FetchEmailBodyFailure(error="Email not found on server")
        mock_fetch = AsyncMock(return_value=(HTTPStatus.NOT_FOUND, failure))

        with (
            patch("mcp_imap_body.app.fetch_email_body", mock_fetch),
            patch("mcp_imap_body.app.get_store", return_value=None),
        ):
            result = await fetch_email_body_tool(
                imap_host="imap.example.com",
                email="me@example.com",
                email_password="secret",
                message_id="<x@y>",
                folder="Archive",
            )

        assert result == failure
        request = mock_fetch.await_args.args[0]
        assert request.folder == "Archive"
        assert request.imap_port == 993
        assert request.imap_secure is True

    @pytest.mark.asyncio
    async def test_check_email_connection_tool(self):
        response = ConnectionTestResponse(success=True, is_active=True)
        mock_check = AsyncMock(return_value=response)

        with patch("mcp_imap_body.app.check_email_connection", mock_check):
            result = await check_email_connection_tool(email="a@b.com", password="x", host="gmail")

        assert result == response
        request = mock_check.await_args.args[0]
        assert request.host == "gmail"

    @pytest.mark.asyncio
    async def test_fetch_email_body_tool_rejects_invalid_port(self):
        mock_fetch = AsyncMock()

        with patch("mcp_imap_body.app.fetch_email_body", mock_fetch):
            result = await fetch_email_body_tool(
                imap_host="imap.example.com",
                email="me@example.com",
                email_password="secret",
                message_id="<x@y>",
                imap_port=70000,
            )

        assert isinstance(result, FetchEmailBodyFailure)
        assert result.error.startswith("Invalid request: ")
        mock_fetch.assert_not_called()
