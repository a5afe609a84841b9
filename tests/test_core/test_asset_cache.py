import pytest
from core.asset_cache import AssetCache
from core.exceptions import StorageError
from core.models import AssetKind


class TestAssetCacheWrite:
    """Test writing assets to disk."""

    @pytest.mark.asyncio
    async def test_path_keyed_by_owner_and_kind(self, asset_cache):
        path = await asset_cache.write(123, AssetKind.BANNER, "png", b"banner")

        assert path == asset_cache.cache_dir / "123" / "banner.png"
        assert path.read_bytes() == b"banner"

    @pytest.mark.asyncio
    async def test_overwrite_same_path(self, asset_cache):
        first = await asset_cache.write(123, AssetKind.AVATAR, "gif", b"old")
        second = await asset_cache.write(123, AssetKind.AVATAR, "gif", b"new")

        assert first == second
        assert second.read_bytes() == b"new"
        assert sorted(p.name for p in second.parent.iterdir()) == ["avatar.gif"]

    @pytest.mark.asyncio
    async def test_new_extension_replaces_old_variant(self, asset_cache):
        await asset_cache.write(123, AssetKind.AVATAR, "png", b"static")
        await asset_cache.write(123, AssetKind.AVATAR, "gif", b"animated")

        cached = asset_cache.resolve(123, AssetKind.AVATAR)
        assert cached.extension == "gif"
        assert not asset_cache.path_for(123, AssetKind.AVATAR, "png").exists()

    @pytest.mark.asyncio
    async def test_owners_do_not_collide(self, asset_cache):
        a = await asset_cache.write(1, AssetKind.BANNER, "png", b"one")
        b = await asset_cache.write(2, AssetKind.BANNER, "png", b"two")

        assert a != b
        assert a.read_bytes() == b"one"
        assert b.read_bytes() == b"two"

    @pytest.mark.asyncio
    async def test_unknown_extension(self, asset_cache):
        with pytest.raises(StorageError):
            await asset_cache.write(123, AssetKind.AVATAR, "jpg", b"data")

    @pytest.mark.asyncio
    async def test_io_failure(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        cache = AssetCache(blocker)

        with pytest.raises(StorageError) as exc_info:
            await cache.write(123, AssetKind.AVATAR, "png", b"data")

        assert exc_info.value.error_code == "STORAGE_ERROR"


class TestAssetCacheResolve:
    """Test probing for cached variants."""

    def test_nothing_cached(self, asset_cache):
        assert asset_cache.resolve(123, AssetKind.AVATAR) is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("extension", ["png", "gif"])
    async def test_round_trip(self, asset_cache, extension):
        path = await asset_cache.write(7, AssetKind.AVATAR, extension, b"x")

        cached = asset_cache.resolve(7, AssetKind.AVATAR)

        assert cached.extension == extension
        assert cached.local_path == str(path)

    def test_png_probed_before_gif(self, asset_cache):
        base = asset_cache.base_path(9, AssetKind.BANNER)
        base.parent.mkdir(parents=True)
        base.with_suffix(".gif").write_bytes(b"gif")
        base.with_suffix(".png").write_bytes(b"png")

        assert asset_cache.resolve(9, AssetKind.BANNER).extension == "png"

    @pytest.mark.asyncio
    async def test_kinds_resolved_independently(self, asset_cache):
        await asset_cache.write(5, AssetKind.AVATAR, "gif", b"a")

        assert asset_cache.resolve(5, AssetKind.AVATAR) is not None
        assert asset_cache.resolve(5, AssetKind.BANNER) is None
