"""
Asset Locator and Downloader

Avatar and banner images live on a CDN under content-addressed names. The asset
reference doubles as the file name, and references carrying the animated marker
are served as GIFs while everything else is a PNG.
"""

import asyncio
import logging
from typing import Optional
import aiohttp
from core.config import DEFAULT_CDN_BASE, DEFAULT_REQUEST_TIMEOUT
from core.exceptions import RequestError
from core.models import (
    ANIMATED_EXTENSION,
    ANIMATED_MARKER,
    STATIC_EXTENSION,
    AssetKind,
    AssetRequest,
)

logger = logging.getLogger(__name__)


def asset_extension(asset_ref: str) -> str:
    """File extension the CDN serves for an asset reference"""
    return ANIMATED_EXTENSION if ANIMATED_MARKER in asset_ref else STATIC_EXTENSION


def locate(
    owner_id: int,
    asset_ref: Optional[str],
    kind: AssetKind,
    cdn_base: str = DEFAULT_CDN_BASE,
) -> Optional[AssetRequest]:
    """
    Build the download request for one asset kind.

    Returns None when the profile has no asset of this kind; callers skip the
    download in that case.
    """
    if not asset_ref:
        return None

    extension = asset_extension(asset_ref)
    remote_url = (
        f"{cdn_base.rstrip('/')}/{kind.remote_segment}/{owner_id}/{asset_ref}.{extension}"
    )
    return AssetRequest(
        owner_id=owner_id,
        asset_ref=asset_ref,
        kind=kind,
        extension=extension,
        remote_url=remote_url,
    )


class AssetDownloader:
    """Downloads raw asset bytes from the CDN (no authorization header)"""

    def __init__(self, timeout: float = DEFAULT_REQUEST_TIMEOUT):
        self.timeout = timeout

    async def download(self, request: AssetRequest) -> bytes:
        url = request.remote_url
        try:
            async with aiohttp.ClientSession() as session:
                async with session.get(
                    url, timeout=aiohttp.ClientTimeout(total=self.timeout)
                ) as response:
                    if response.status < 200 or response.status >= 300:
                        raise RequestError(
                            url, f"unexpected status {response.status}", response.status
                        )
                    data = await response.read()
        except asyncio.TimeoutError:
            raise RequestError(url, "timed out")
        except aiohttp.ClientError as e:
            raise RequestError(url, str(e) or e.__class__.__name__)

        logger.debug(
            f"Downloaded {request.kind.value} for {request.owner_id}: {len(data)} bytes"
        )
        return data
