"""
Profile Fetch Orchestration.

This module defines the `FetchService`, the single-writer state machine the
presentation layer drives. One `begin_fetch` call schedules one asynchronous
unit of work on the running event loop and returns immediately; the unit of
work ends by posting exactly one `FetchCompleted` message back to the service.

Key Components:
- `FetchService`: Owns the `FetchView` the presentation layer reads. Its state
  moves `idle -> fetching -> {succeeded, partially_succeeded, failed}`. Only
  `begin_fetch`, `cancel_fetch` and `update` change it.
- `InFlightRegistry`: Maps identifiers to running pipeline tasks so concurrent
  requests for the same identifier share one network and cache pass.
- Pipeline: profile fetch first, then avatar and banner concurrently
  (locate -> download -> cache write -> resolve), each kind tracked on its own.

Sequencing rules:
- A newer `begin_fetch` supersedes the one in flight. Results are tagged with a
  generation number and `update` drops any result that is not current, so the
  view only ever reflects the most recent request.
- A failed profile fetch fails the whole fetch. A failed asset only fails its
  kind and the fetch reports partial success.
- Cache paths are resolved after the write for that kind has completed and are
  carried inside the result, so readers never probe the filesystem.
"""

import asyncio
import inspect
import logging
import re
import uuid
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional, Set, Union

from core.asset_cache import AssetCache
from core.config import DEFAULT_CDN_BASE, Settings
from core.exceptions import DecodeError, MagnifyError, StorageError, ValidationError
from core.logging_config import set_fetch_id
from core.models import (
    MAX_USER_ID,
    AssetKind,
    CachedAsset,
    ErrorInfo,
    FetchResult,
    FetchStatus,
    FetchView,
    ProfileRecord,
)
from providers.asset_provider import AssetDownloader, locate
from providers.profile_client import ProfileClient

logger = logging.getLogger(__name__)

_IDENTIFIER_PATTERN = re.compile(r"[0-9]+")


def parse_identifier(raw: Optional[str]) -> str:
    """
    Normalize a user-typed identifier.

    Raises:
        ValidationError: not a non-negative integer within the id range
    """
    candidate = (raw or "").strip()
    if not _IDENTIFIER_PATTERN.fullmatch(candidate):
        raise ValidationError("identifier", raw, "must be a non-negative integer")
    value = int(candidate)
    if value > MAX_USER_ID:
        raise ValidationError("identifier", raw, "exceeds the 64-bit id range")
    return str(value)


@dataclass(frozen=True)
class FetchCompleted:
    """Terminal message posted by a unit of work"""

    generation: int
    result: FetchResult


Subscriber = Callable[[FetchCompleted], Union[None, Awaitable[None]]]


@dataclass
class _AssetOutcome:
    kind: AssetKind
    asset: Optional[CachedAsset] = None
    error: Optional[MagnifyError] = None
    skipped: bool = False


@dataclass
class _RegistryEntry:
    task: asyncio.Task
    waiters: int = 0


class InFlightRegistry:
    """Registry of identifiers that currently have a pipeline running"""

    def __init__(self):
        self._entries: Dict[str, _RegistryEntry] = {}

    def __contains__(self, identifier: str) -> bool:
        entry = self._entries.get(identifier)
        return entry is not None and not entry.task.done()

    def __len__(self) -> int:
        return sum(1 for entry in self._entries.values() if not entry.task.done())

    def acquire(
        self, identifier: str, factory: Callable[[], Awaitable[FetchResult]]
    ) -> asyncio.Task:
        """Join the running pipeline for an identifier, starting one if needed"""
        entry = self._entries.get(identifier)
        if entry is None or entry.task.done():
            task = asyncio.get_running_loop().create_task(factory())
            entry = _RegistryEntry(task=task)
            self._entries[identifier] = entry
            task.add_done_callback(lambda t: self._discard(identifier, t))
        else:
            logger.debug(f"Joining in-flight fetch for {identifier}")
        entry.waiters += 1
        return entry.task

    def release(self, identifier: str, task: asyncio.Task) -> None:
        """Leave a pipeline; the last waiter cancels it if still running"""
        entry = self._entries.get(identifier)
        if entry is None or entry.task is not task:
            return
        entry.waiters -= 1
        if entry.waiters <= 0:
            del self._entries[identifier]
            if not task.done():
                logger.debug(f"Cancelling abandoned fetch for {identifier}")
                task.cancel()

    def _discard(self, identifier: str, task: asyncio.Task) -> None:
        entry = self._entries.get(identifier)
        if entry is not None and entry.task is task:
            del self._entries[identifier]


class FetchService:
    """Single-writer state machine for orchestrated profile fetches"""

    def __init__(
        self,
        client: ProfileClient,
        downloader: AssetDownloader,
        cache: AssetCache,
        cdn_base: str = DEFAULT_CDN_BASE,
        registry: Optional[InFlightRegistry] = None,
    ):
        self.client = client
        self.downloader = downloader
        self.cache = cache
        self.cdn_base = cdn_base
        self.registry = registry if registry is not None else InFlightRegistry()

        self._view = FetchView()
        self._view_before_fetch = self._view
        # Owners whose cancelled pipelines may still be writing to the cache
        self._interrupted: Set[str] = set()
        self._generation = 0
        self._current: Optional[asyncio.Task] = None
        self._current_identifier: Optional[str] = None
        self._subscribers: List[Subscriber] = []

    @property
    def view(self) -> FetchView:
        return self._view

    @property
    def status(self) -> FetchStatus:
        return self._view.status

    @property
    def is_fetching(self) -> bool:
        return self._current is not None and not self._current.done()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self, callback: Subscriber) -> None:
        self._subscribers.append(callback)

    def unsubscribe(self, callback: Subscriber) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def begin_fetch(self, identifier: str) -> asyncio.Task:
        """
        Start fetching a profile. Never blocks; must run on the event loop.

        Returns the task of the unit of work. A repeated request for the
        identifier already in flight returns the existing task.

        Raises:
            ValidationError: identifier is not a non-negative integer
        """
        normalized = parse_identifier(identifier)

        if self.is_fetching:
            if normalized == self._current_identifier:
                logger.debug(f"Fetch for {normalized} already in progress")
                return self._current
            logger.info(
                f"Superseding fetch for {self._current_identifier} with {normalized}"
            )
            self._interrupted.add(self._current_identifier)
            self._current.cancel()
        else:
            self._view_before_fetch = self._view
            self._interrupted = set()

        self._generation += 1
        generation = self._generation
        self._current_identifier = normalized
        self._view = FetchView(status=FetchStatus.FETCHING, identifier=normalized)
        self._current = asyncio.get_running_loop().create_task(
            self._deliver(generation, normalized)
        )
        logger.info(f"Fetch started for {normalized}")
        return self._current

    def cancel_fetch(self) -> bool:
        """Cancel the fetch in flight and restore the previous view"""
        if not self.is_fetching:
            return False

        logger.info(f"Fetch for {self._current_identifier} cancelled")
        self._interrupted.add(self._current_identifier)
        self._current.cancel()
        self._generation += 1
        self._current = None
        self._current_identifier = None
        self._view = self._restorable_view()
        return True

    def _restorable_view(self) -> FetchView:
        """
        The view from before the fetch, without cached paths a cancelled
        pipeline may still overwrite or remove.
        """
        view = self._view_before_fetch
        if view.assets and str(view.profile.id) in self._interrupted:
            logger.debug(f"Dropping cached paths for {view.profile.id} on restore")
            return view.model_copy(update={"assets": {}})
        return view

    def update(self, message: FetchCompleted) -> bool:
        """Apply a terminal message; stale generations are dropped"""
        if message.generation != self._generation:
            logger.debug(
                f"Dropping stale result for {message.result.identifier} "
                f"(generation {message.generation}, current {self._generation})"
            )
            return False

        self._view = FetchView.from_result(message.result)
        self._current_identifier = None
        logger.info(
            f"Fetch for {message.result.identifier} finished: {message.result.status.value}"
        )
        return True

    async def _deliver(self, generation: int, identifier: str) -> FetchResult:
        pipeline = self.registry.acquire(identifier, lambda: self._run_pipeline(identifier))
        try:
            result = await asyncio.shield(pipeline)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Unexpected error fetching {identifier}: {e}", exc_info=True)
            result = FetchResult(
                identifier=identifier,
                status=FetchStatus.FAILED,
                error=ErrorInfo(error_code="INTERNAL_ERROR", message=str(e)),
            )
        finally:
            self.registry.release(identifier, pipeline)

        message = FetchCompleted(generation=generation, result=result)
        if self.update(message):
            await self._notify(message)
        return result

    async def _notify(self, message: FetchCompleted) -> None:
        for callback in list(self._subscribers):
            try:
                outcome = callback(message)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                logger.error(f"Error in fetch subscriber {callback!r}: {e}")

    async def _run_pipeline(self, identifier: str) -> FetchResult:
        set_fetch_id(f"{identifier}-{uuid.uuid4().hex[:8]}")

        try:
            profile = await self.client.fetch_profile(identifier)
            if profile.id == 0 and int(identifier) != 0:
                raise DecodeError(identifier, "profile resolved to id 0")
        except MagnifyError as e:
            logger.error(f"Profile fetch for {identifier} failed: {e.message}")
            return FetchResult(
                identifier=identifier,
                status=FetchStatus.FAILED,
                error=ErrorInfo(**e.to_dict()),
            )

        outcomes = await asyncio.gather(
            *(self._fetch_asset(profile, kind) for kind in AssetKind)
        )

        assets: Dict[AssetKind, CachedAsset] = {}
        asset_errors: Dict[AssetKind, ErrorInfo] = {}
        skipped: List[AssetKind] = []
        for outcome in outcomes:
            if outcome.skipped:
                skipped.append(outcome.kind)
            elif outcome.error is not None:
                asset_errors[outcome.kind] = ErrorInfo(**outcome.error.to_dict())
            else:
                assets[outcome.kind] = outcome.asset

        status = (
            FetchStatus.PARTIALLY_SUCCEEDED if asset_errors else FetchStatus.SUCCEEDED
        )
        return FetchResult(
            identifier=identifier,
            status=status,
            profile=profile,
            assets=assets,
            failed_kinds=list(asset_errors),
            skipped_kinds=skipped,
            asset_errors=asset_errors,
        )

    async def _fetch_asset(self, profile: ProfileRecord, kind: AssetKind) -> _AssetOutcome:
        request = locate(profile.id, profile.asset_ref(kind), kind, self.cdn_base)
        if request is None:
            logger.debug(f"No {kind.value} for {profile.id}")
            return _AssetOutcome(kind=kind, skipped=True)

        try:
            data = await self.downloader.download(request)
            await self.cache.write(profile.id, kind, request.extension, data)
            cached = await asyncio.to_thread(self.cache.resolve, profile.id, kind)
            if cached is None:
                raise StorageError(
                    str(self.cache.base_path(profile.id, kind)), "missing after write"
                )
        except MagnifyError as e:
            logger.warning(f"{kind.value.capitalize()} for {profile.id} failed: {e.message}")
            return _AssetOutcome(kind=kind, error=e)

        return _AssetOutcome(kind=kind, asset=cached)


def build_fetch_service(
    settings: Settings, registry: Optional[InFlightRegistry] = None
) -> FetchService:
    """
    Wire a FetchService from process settings.

    Raises:
        MissingCredentialError: no API token configured
    """
    return FetchService(
        client=ProfileClient.from_settings(settings),
        downloader=AssetDownloader(timeout=settings.request_timeout),
        cache=AssetCache(settings.cache_dir),
        cdn_base=settings.cdn_base,
        registry=registry,
    )
