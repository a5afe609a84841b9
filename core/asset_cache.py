"""
Local Asset Cache.

Downloaded avatars and banners are stored on disk under a scratch directory so
the presentation layer can display them by path. Files are partitioned by owner
id and named by asset kind, which makes every target path a pure function of
`(owner_id, kind, extension)`:

    {cache_dir}/{owner_id}/avatar.gif
    {cache_dir}/{owner_id}/banner.png

Writes replace the previous file atomically and remove the sibling with the
other extension, so resolving after a write always reports the extension that
was just written. Writes run in the default executor to keep the event loop
free; resolving is a plain stat probe.
"""

import asyncio
import os
import tempfile
from pathlib import Path
from typing import Optional, Union

from core.exceptions import StorageError
from core.logging_config import get_logger
from core.models import KNOWN_EXTENSIONS, AssetKind, CachedAsset

logger = get_logger(__name__)


class AssetCache:
    """Filesystem cache keyed by owner id and asset kind"""

    def __init__(self, cache_dir: Union[str, Path]):
        self.cache_dir = Path(cache_dir)

    def base_path(self, owner_id: int, kind: AssetKind) -> Path:
        """Path without extension for an owner's asset"""
        return self.cache_dir / str(owner_id) / kind.value

    def path_for(self, owner_id: int, kind: AssetKind, extension: str) -> Path:
        return self.base_path(owner_id, kind).with_suffix(f".{extension}")

    async def write(
        self, owner_id: int, kind: AssetKind, extension: str, data: bytes
    ) -> Path:
        """
        Store asset bytes, replacing any previous variant.

        Raises:
            StorageError: unknown extension or any filesystem failure
        """
        if extension not in KNOWN_EXTENSIONS:
            raise StorageError(
                str(self.base_path(owner_id, kind)), f"unsupported extension {extension!r}"
            )

        target = self.path_for(owner_id, kind, extension)
        await asyncio.to_thread(self._write_sync, target, data)
        logger.debug(f"Cached {kind.value} for {owner_id} at {target}")
        return target

    def _write_sync(self, target: Path, data: bytes) -> None:
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=target.parent, prefix=f".{target.name}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "wb") as fh:
                    fh.write(data)
                os.replace(tmp_name, target)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise

            for extension in KNOWN_EXTENSIONS:
                sibling = target.with_suffix(f".{extension}")
                if sibling != target:
                    sibling.unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(str(target), e.strerror or str(e))

    def resolve(self, owner_id: int, kind: AssetKind) -> Optional[CachedAsset]:
        """Return the cached variant for an owner's asset, png before gif"""
        for extension in KNOWN_EXTENSIONS:
            candidate = self.path_for(owner_id, kind, extension)
            if candidate.is_file():
                return CachedAsset(local_path=str(candidate), extension=extension)
        return None
