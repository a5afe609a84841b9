import pytest
from unittest.mock import Mock, AsyncMock, MagicMock, patch
import os
import sys

# Add the parent directory to the path so we can import our modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.asset_cache import AssetCache
from core.exceptions import RequestError
from core.models import AssetKind, ProfileRecord
from services.fetch_service import FetchService


class HttpSessionStub:
    """Stands in for aiohttp.ClientSession used as nested async context managers."""

    def __init__(self, session_cls):
        self.session_cls = session_cls
        self.session = MagicMock()
        session_cls.return_value.__aenter__.return_value = self.session
        self.response = MagicMock()
        self.session.get.return_value.__aenter__.return_value = self.response
        self.respond()

    def respond(self, status: int = 200, body: bytes = b""):
        self.response.status = status
        self.response.read = AsyncMock(return_value=body)
        return self.response

    def fail_with(self, exc: BaseException):
        self.session.get.side_effect = exc

    @property
    def requested_url(self) -> str:
        return self.session.get.call_args.args[0]


@pytest.fixture
def http_session():
    """Patch aiohttp.ClientSession for the duration of a test."""
    with patch("aiohttp.ClientSession") as session_cls:
        yield HttpSessionStub(session_cls)


@pytest.fixture
def sample_user_payload():
    """Remote user record as returned by the users endpoint."""
    return {
        "id": "123",
        "username": "magnify",
        "discriminator": "0",
        "global_name": "Magnify",
        "avatar": "a_abc123",
        "banner": "def456",
        "accent_color": None,
        "premium_type": 1,
        "public_flags": 64,
        "avatar_decoration_data": None,
    }


@pytest.fixture
def sample_profile():
    return ProfileRecord(
        id=123,
        username="magnify",
        global_name="Magnify",
        avatar_ref="a_abc123",
        banner_ref="def456",
        has_elevated_tier=True,
    )


def asset_bytes(request) -> bytes:
    """Deterministic payload for a located asset."""
    return f"{request.kind.value}:{request.asset_ref}.{request.extension}".encode()


@pytest.fixture
def mock_client(sample_profile):
    client = Mock()
    client.fetch_profile = AsyncMock(return_value=sample_profile)
    return client


@pytest.fixture
def mock_downloader():
    downloader = Mock()
    downloader.download = AsyncMock(side_effect=asset_bytes)
    return downloader


@pytest.fixture
def failing_avatar_downloader():
    """Downloader whose avatar request fails while the banner succeeds."""

    def download(request):
        if request.kind is AssetKind.AVATAR:
            raise RequestError(request.remote_url, "unexpected status 500", 500)
        return asset_bytes(request)

    downloader = Mock()
    downloader.download = AsyncMock(side_effect=download)
    return downloader


@pytest.fixture
def asset_cache(tmp_path):
    return AssetCache(tmp_path / "cache")


@pytest.fixture
def fetch_service(mock_client, mock_downloader, asset_cache):
    return FetchService(mock_client, mock_downloader, asset_cache)


@pytest.fixture(autouse=True)
def setup_test_environment(monkeypatch):
    """Set up test environment variables."""
    monkeypatch.setenv("ENVIRONMENT", "test")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("DISCORD_BOT_TOKEN", "test-token")
