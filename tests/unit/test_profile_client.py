"""
Unit tests for ProfileClient

Tests request construction and response normalization with a mocked aiohttp session.
"""
import asyncio
import json
import pytest
import aiohttp
import pydantic
from core.config import Settings
from core.exceptions import DecodeError, MissingCredentialError, RequestError
from core.models import ProfileRecord
from providers.profile_client import ProfileClient


class TestProfileClientConstruction:
    """Credential handling"""

    @pytest.mark.parametrize("token", [None, ""])
    def test_missing_token_rejected(self, token):
        with pytest.raises(MissingCredentialError):
            ProfileClient(token)

    def test_from_settings_without_token(self, http_session):
        """No client can be built, so nothing reaches the network"""
        with pytest.raises(MissingCredentialError):
            ProfileClient.from_settings(Settings(token=None))
        http_session.session_cls.assert_not_called()

    def test_url_for(self):
        client = ProfileClient("token", api_base="https://api.test/users/")
        assert client.url_for("123") == "https://api.test/users/123"


class TestFetchProfile:
    """Test fetch_profile against a mocked endpoint"""

    @pytest.fixture
    def client(self):
        return ProfileClient("test-token", api_base="https://api.test/users", timeout=5)

    @pytest.mark.asyncio
    async def test_success(self, client, http_session, sample_user_payload):
        http_session.respond(200, body=json.dumps(sample_user_payload).encode())

        profile = await client.fetch_profile("123")

        assert profile.id == 123
        assert profile.username == "magnify"
        assert profile.global_name == "Magnify"
        assert profile.avatar_ref == "a_abc123"
        assert profile.banner_ref == "def456"
        assert profile.has_elevated_tier is True
        assert profile.created_at == 0
        assert http_session.requested_url == "https://api.test/users/123"

    @pytest.mark.asyncio
    async def test_sends_bot_authorization(self, client, http_session, sample_user_payload):
        http_session.respond(200, body=json.dumps(sample_user_payload).encode())

        await client.fetch_profile("123")

        kwargs = http_session.session_cls.call_args.kwargs
        assert kwargs["headers"] == {"Authorization": "Bot test-token"}
        assert kwargs["timeout"].total == 5

    @pytest.mark.asyncio
    async def test_nullable_fields_default_to_empty(self, client, http_session, sample_user_payload):
        sample_user_payload.update(
            {"global_name": None, "avatar": None, "banner": None, "premium_type": None}
        )
        http_session.respond(200, body=json.dumps(sample_user_payload).encode())

        profile = await client.fetch_profile("123")

        assert profile.global_name == ""
        assert profile.avatar_ref == ""
        assert profile.banner_ref == ""
        assert profile.has_elevated_tier is False

    @pytest.mark.asyncio
    async def test_non_success_status(self, client, http_session):
        http_session.respond(404, body=b'{"message": "Unknown User"}')

        with pytest.raises(RequestError) as exc_info:
            await client.fetch_profile("123")

        assert exc_info.value.status == 404
        assert exc_info.value.details["url"] == "https://api.test/users/123"

    @pytest.mark.asyncio
    async def test_connection_failure(self, client, http_session):
        http_session.fail_with(aiohttp.ClientConnectionError("connection refused"))

        with pytest.raises(RequestError) as exc_info:
            await client.fetch_profile("123")

        assert "connection refused" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_timeout(self, client, http_session):
        http_session.fail_with(asyncio.TimeoutError())

        with pytest.raises(RequestError) as exc_info:
            await client.fetch_profile("123")

        assert exc_info.value.details["reason"] == "timed out"

    @pytest.mark.asyncio
    async def test_invalid_json(self, client, http_session):
        http_session.respond(200, body=b"<html>bad gateway</html>")

        with pytest.raises(DecodeError) as exc_info:
            await client.fetch_profile("123")

        assert exc_info.value.details["reason"] == "invalid JSON"

    @pytest.mark.asyncio
    async def test_invalid_utf8_body(self, client, http_session):
        http_session.respond(200, body=b'{"id": "1", "username": "\xff\xfe"}')

        with pytest.raises(DecodeError):
            await client.fetch_profile("1")


class TestParseProfile:
    """Conversion from the raw user schema"""

    def test_schema_mismatch(self):
        with pytest.raises(DecodeError) as exc_info:
            ProfileClient.parse_profile("123", json.dumps({"id": "123"}))
        assert "schema mismatch" in exc_info.value.details["reason"]

    def test_unknown_fields_ignored(self, sample_user_payload):
        sample_user_payload["clan"] = {"tag": "MAG"}
        profile = ProfileClient.parse_profile("123", json.dumps(sample_user_payload))
        assert profile.id == 123

    def test_non_numeric_id_rejected(self, sample_user_payload):
        sample_user_payload["id"] = "not-a-number"
        with pytest.raises(DecodeError):
            ProfileClient.parse_profile("55", json.dumps(sample_user_payload))

    def test_non_numeric_id_allowed_for_explicit_zero(self, sample_user_payload):
        sample_user_payload["id"] = ""
        profile = ProfileClient.parse_profile("0", json.dumps(sample_user_payload))
        assert profile.id == 0

    @pytest.mark.parametrize("premium_type,expected", [(1, True), (2, False), (0, False)])
    def test_elevated_tier(self, sample_user_payload, premium_type, expected):
        sample_user_payload["premium_type"] = premium_type
        profile = ProfileClient.parse_profile("123", json.dumps(sample_user_payload))
        assert profile.has_elevated_tier is expected

    def test_id_above_64_bit_range_rejected(self, sample_user_payload):
        sample_user_payload["id"] = str(2**64)
        with pytest.raises(DecodeError) as exc_info:
            ProfileClient.parse_profile("123", json.dumps(sample_user_payload))
        assert "64-bit" in exc_info.value.details["reason"]

    def test_invalid_utf8_body(self):
        with pytest.raises(DecodeError):
            ProfileClient.parse_profile("1", b'{"id": "1", "username": "\xff\xfe"}')

    def test_profile_record_id_bounded(self):
        with pytest.raises(pydantic.ValidationError):
            ProfileRecord(id=2**64)
