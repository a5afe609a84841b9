"""
Remote Profile Client

Issues the authenticated user lookup and converts the remote user schema into
a ProfileRecord. One outbound request per call, no retries.
"""

import asyncio
import json
import logging
import re
from typing import Optional, Union
import aiohttp
import pydantic
from core.config import DEFAULT_API_BASE, DEFAULT_REQUEST_TIMEOUT, Settings
from core.exceptions import DecodeError, MissingCredentialError, RequestError
from core.models import ELEVATED_TIER_CODE, MAX_USER_ID, ProfileRecord, RawUserRecord

logger = logging.getLogger(__name__)

_DIGITS = re.compile(r"[0-9]+")


class ProfileClient:
    """Fetches user profiles from the REST users endpoint"""

    def __init__(
        self,
        token: Optional[str],
        api_base: str = DEFAULT_API_BASE,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ):
        if not token:
            raise MissingCredentialError()
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self._headers = {"Authorization": f"Bot {token}"}

    @classmethod
    def from_settings(cls, settings: Settings) -> "ProfileClient":
        return cls(
            settings.require_token(),
            api_base=settings.api_base,
            timeout=settings.request_timeout,
        )

    def url_for(self, identifier: str) -> str:
        return f"{self.api_base}/{identifier}"

    async def fetch_profile(self, identifier: str) -> ProfileRecord:
        """
        Fetch and normalize the profile for a user identifier.

        Raises:
            RequestError: network failure, timeout or non-success status
            DecodeError: body is not a valid user record
        """
        url = self.url_for(identifier)
        logger.debug(f"Requesting profile {identifier}")

        try:
            timeout = aiohttp.ClientTimeout(total=self.timeout)
            async with aiohttp.ClientSession(
                timeout=timeout, headers=self._headers
            ) as session:
                async with session.get(url) as response:
                    if response.status < 200 or response.status >= 300:
                        raise RequestError(
                            url, f"unexpected status {response.status}", response.status
                        )
                    body = await response.read()
        except asyncio.TimeoutError:
            raise RequestError(url, "timed out")
        except aiohttp.ClientError as e:
            raise RequestError(url, str(e) or e.__class__.__name__)

        profile = self.parse_profile(identifier, body)
        logger.info(f"Fetched profile {profile.id} ({profile.username})")
        return profile

    @staticmethod
    def parse_profile(identifier: str, body: Union[str, bytes]) -> ProfileRecord:
        """Convert a raw response body into a ProfileRecord"""
        try:
            raw = RawUserRecord.model_validate_json(body)
        except pydantic.ValidationError as e:
            reason = "invalid JSON" if _is_json_error(body) else f"schema mismatch ({e.error_count()} errors)"
            raise DecodeError(identifier, reason)

        return ProfileRecord(
            id=_parse_user_id(identifier, raw.id),
            username=raw.username,
            global_name=raw.global_name or "",
            avatar_ref=raw.avatar or "",
            banner_ref=raw.banner or "",
            created_at=0,
            has_elevated_tier=(raw.premium_type or 0) == ELEVATED_TIER_CODE,
        )


def _parse_user_id(identifier: str, raw_id: str) -> int:
    if _DIGITS.fullmatch(raw_id):
        value = int(raw_id)
        if value > MAX_USER_ID:
            raise DecodeError(identifier, f"id {raw_id} exceeds the 64-bit range")
        return value
    # A non-numeric id is only acceptable when id 0 was asked for explicitly
    if _DIGITS.fullmatch(identifier.strip()) and int(identifier) == 0:
        return 0
    raise DecodeError(identifier, f"non-numeric id {raw_id!r}")


def _is_json_error(body: Union[str, bytes]) -> bool:
    try:
        json.loads(body)
    except ValueError:
        return True
    return False
