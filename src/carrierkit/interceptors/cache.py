"""Response caching for idempotent reference and lookup calls.

Only targets on an allow-list are cached (by default the carrier's
reference-data and address lookups). Cache keys are SHA-256 hashes of
``target|sorted_parameters`` so identical requests always resolve to the
same entry regardless of parameter ordering.

Expiry is lazy: an entry is checked against ``stored_at + ttl`` when it is
read, and evicted then. There is no background sweep.

Two storages are provided:

* :class:`MemoryCacheStorage` -- a per-process dict.
* :class:`DiskCacheStorage` -- a :mod:`diskcache` directory shared across
  processes (used by the CLI).
"""

from __future__ import annotations

import hashlib
import json
import logging
import time
from pathlib import Path
from typing import Any, Callable, Iterable, Optional, Protocol, Union

import diskcache

from carrierkit.interceptors.pipeline import Continue, Interceptor, Resolved
from carrierkit.models import CacheEntry, Envelope, TransportResponse

logger = logging.getLogger(__name__)

DEFAULT_CACHEABLE_TARGETS = frozenset(
    {
        # Reference data
        "CommonGeneral.getCargoTypes",
        "CommonGeneral.getServiceTypes",
        "CommonGeneral.getOwnershipFormsList",
        "CommonGeneral.getPalletsList",
        "CommonGeneral.getPackList",
        "CommonGeneral.getTiresWheelsList",
        "CommonGeneral.getCargoDescriptionList",
        "CommonGeneral.getMessageCodeText",
        "CommonGeneral.getBackwardDeliveryCargoTypes",
        "CommonGeneral.getTypesOfPayersForRedelivery",
        "CommonGeneral.getTimeIntervals",
        "CommonGeneral.getPickupTimeIntervals",
        # Address lookups
        "AddressGeneral.getCities",
        "AddressGeneral.getAreas",
        "AddressGeneral.getWarehouses",
        "AddressGeneral.getSettlementAreas",
        "AddressGeneral.getSettlementCountryRegion",
        "AddressGeneral.getStreet",
        "AddressGeneral.searchSettlements",
        "AddressGeneral.searchSettlementStreets",
    }
)


class CacheStorage(Protocol):
    """Key/value store for :class:`~carrierkit.models.CacheEntry` values."""

    def get(self, key: str) -> Optional[CacheEntry]: ...

    def set(self, key: str, entry: CacheEntry) -> None: ...

    def delete(self, key: str) -> None: ...

    def clear(self) -> None: ...


class MemoryCacheStorage:
    """In-process dict storage. Concurrent writers to one key: last writer wins."""

    def __init__(self) -> None:
        self._entries: dict[str, CacheEntry] = {}

    def get(self, key: str) -> Optional[CacheEntry]:
        return self._entries.get(key)

    def set(self, key: str, entry: CacheEntry) -> None:
        self._entries[key] = entry

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class DiskCacheStorage:
    """Disk-backed storage in a :class:`diskcache.Cache` directory.

    Entries are stored as plain dicts (``model_dump``) so the cache stays
    readable across package versions. Expiry is still decided by the
    interceptor; diskcache's own ``expire`` is not used.

    Args:
        cache_dir: Root directory; a ``responses/`` subdirectory is created.
    """

    def __init__(self, cache_dir: Union[str, Path]) -> None:
        self._directory = Path(cache_dir) / "responses"
        self._cache = diskcache.Cache(str(self._directory))

    def get(self, key: str) -> Optional[CacheEntry]:
        raw = self._cache.get(key)
        if raw is None:
            return None
        return CacheEntry.model_validate(raw)

    def set(self, key: str, entry: CacheEntry) -> None:
        self._cache.set(key, entry.model_dump(mode="json"))

    def delete(self, key: str) -> None:
        self._cache.delete(key)

    def clear(self) -> None:
        self._cache.clear()

    def stats(self) -> dict[str, Any]:
        return {"size": len(self._cache), "directory": str(self._directory)}

    def close(self) -> None:
        """Close the underlying :class:`diskcache.Cache` and release resources."""
        self._cache.close()


def make_cache_key(target: str, parameters: Optional[dict[str, Any]]) -> str:
    """Generate a cache key from the target and its sorted parameters."""
    raw = f"{target}|{json.dumps(parameters or {}, sort_keys=True, default=str)}"
    return hashlib.sha256(raw.encode()).hexdigest()


class CachingInterceptor(Interceptor):
    """Serve allow-listed calls from cache and store their successful responses.

    Args:
        storage: Where entries live. Defaults to a fresh
            :class:`MemoryCacheStorage`.
        ttl: Entry time-to-live in seconds.
        cacheable_targets: Targets eligible for caching.
        clock: Wall-clock time source (``time.time``); wall time rather than
            monotonic so disk entries stay meaningful across processes.

    Example::

        pipeline.use(CachingInterceptor(ttl=600))
    """

    name = "cache"

    def __init__(
        self,
        storage: Optional[CacheStorage] = None,
        ttl: float = 3600.0,
        cacheable_targets: Optional[Iterable[str]] = None,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self._storage: CacheStorage = storage if storage is not None else MemoryCacheStorage()
        self._ttl = ttl
        self._targets = frozenset(
            cacheable_targets if cacheable_targets is not None else DEFAULT_CACHEABLE_TARGETS
        )
        self._clock = clock or time.time

    @property
    def storage(self) -> CacheStorage:
        return self._storage

    def is_cacheable(self, envelope: Envelope) -> bool:
        return envelope.target in self._targets

    async def on_request(self, envelope: Envelope) -> Union[Continue, Resolved]:
        if not self.is_cacheable(envelope):
            return Continue(envelope)

        key = make_cache_key(envelope.target, envelope.parameters)
        entry = self._storage.get(key)
        if entry is None:
            return Continue(envelope)
        if entry.is_expired(self._clock()):
            logger.debug("Cache entry for %s expired, evicting", envelope.target)
            self._storage.delete(key)
            return Continue(envelope)

        logger.debug("Cache hit for %s", envelope.target)
        return Resolved(entry.value.model_copy(update={"from_cache": True}))

    async def on_response(
        self, response: TransportResponse, envelope: Envelope
    ) -> TransportResponse:
        if self.is_cacheable(envelope) and response.is_success and not response.from_cache:
            key = make_cache_key(envelope.target, envelope.parameters)
            self._storage.set(
                key, CacheEntry(value=response, stored_at=self._clock(), ttl=self._ttl)
            )
        return response

    def invalidate(self, target: str, parameters: Optional[dict[str, Any]] = None) -> None:
        """Remove the entry for *target* with *parameters*."""
        self._storage.delete(make_cache_key(target, parameters))

    def clear(self) -> None:
        self._storage.clear()
