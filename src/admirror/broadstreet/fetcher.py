"""
CollectionFetcher: retrieves one complete remote collection per entity type.

Flow for a child collection (e.g. advertisers):
  1. Read parent remote ids from the mirror (networks, already reconciled
     by the previous phase)
  2. One rate-limited request per parent, sequentially
  3. Normalize each payload and de-duplicate by remote_id (first wins)

The fetcher never writes to the mirror and never retries. Any API failure
turns the whole collection into a FetchError; the sequencer decides what
that means for the run. A single payload that cannot be normalized is only
recorded in FetchResult.rejected and the rest of the collection goes on.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from sqlmodel import Session

from admirror.broadstreet.client import BroadstreetAPIError
from admirror.broadstreet.normalizer import (
    NormalizationError,
    normalize_advertisement,
    normalize_advertiser,
    normalize_campaign,
    normalize_network,
    normalize_placement,
    normalize_zone,
)
from admirror.db.mirror import synced_remote_ids

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], Awaitable[None]]

# entity type -> (parent entity type, client method, normalizer)
_CHILD_COLLECTIONS = {
    "advertisers": ("networks", "get_advertisers", normalize_advertiser),
    "zones": ("networks", "get_zones", normalize_zone),
    "campaigns": ("advertisers", "get_campaigns_by_advertiser", normalize_campaign),
    "advertisements": ("networks", "get_advertisements", normalize_advertisement),
    "placements": ("campaigns", "get_placements", normalize_placement),
}

FETCHABLE_TYPES = ("networks",) + tuple(_CHILD_COLLECTIONS)


@dataclass
class FetchError:
    entity_type: str
    message: str

    def __str__(self) -> str:
        return self.message


@dataclass
class FetchResult:
    """Either the full remote collection or the reason it could not be read.

    `rejected` holds one message per payload the normalizer refused.
    """

    entity_type: str
    records: List[Dict[str, Any]] = field(default_factory=list)
    error: Optional[FetchError] = None
    rejected: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(
        cls,
        entity_type: str,
        records: List[Dict[str, Any]],
        rejected: Optional[List[str]] = None,
    ) -> "FetchResult":
        return cls(entity_type=entity_type, records=records, rejected=rejected or [])

    @classmethod
    def failure(cls, entity_type: str, message: str) -> "FetchResult":
        return cls(entity_type=entity_type, error=FetchError(entity_type, message))


class CollectionFetcher:
    """Reads whole Broadstreet collections through a rate-limited client."""

    def __init__(self, client, engine):
        """
        Args:
            client: BroadstreetClient instance (or AsyncMock in tests).
            engine: SQLAlchemy engine of the mirror (read-only use).
        """
        self.client = client
        self.engine = engine

    async def fetch(
        self, entity_type: str, on_progress: Optional[ProgressCallback] = None
    ) -> FetchResult:
        """
        Fetch the complete current remote collection for `entity_type`.

        Args:
            entity_type: One of FETCHABLE_TYPES.
            on_progress: Awaited with (parents_done, parents_total) after
                each parent request.

        Returns:
            FetchResult with normalized records, or with a FetchError.
        """
        if entity_type not in FETCHABLE_TYPES:
            return FetchResult.failure(entity_type, f"Unknown entity type '{entity_type}'")

        rejected: List[str] = []
        try:
            if entity_type == "networks":
                raw = await self.client.get_networks()
                records = _normalize_all(entity_type, raw, normalize_network, rejected)
            else:
                records = await self._fetch_children(entity_type, on_progress, rejected)
        except BroadstreetAPIError as exc:
            logger.warning("Fetching %s failed: %s", entity_type, exc)
            return FetchResult.failure(entity_type, str(exc))

        return FetchResult.success(entity_type, _dedupe(records), rejected)

    async def _fetch_children(
        self,
        entity_type: str,
        on_progress: Optional[ProgressCallback],
        rejected: List[str],
    ) -> List[Dict[str, Any]]:
        parent_type, method_name, normalize = _CHILD_COLLECTIONS[entity_type]
        with Session(self.engine) as s:
            parent_ids = synced_remote_ids(s, parent_type)

        fetch_page = getattr(self.client, method_name)
        records: List[Dict[str, Any]] = []
        for done, parent_id in enumerate(parent_ids, start=1):
            page = await fetch_page(parent_id)
            records.extend(_normalize_all(
                entity_type, page, lambda raw: normalize(raw, parent_id), rejected
            ))
            if on_progress is not None:
                await on_progress(done, len(parent_ids))

        logger.info(
            "Fetched %d %s across %d %s", len(records), entity_type,
            len(parent_ids), parent_type,
        )
        return records


def _normalize_all(
    entity_type: str, payloads, normalize, rejected: List[str]
) -> List[Dict[str, Any]]:
    records = []
    for raw in payloads:
        try:
            records.append(normalize(raw))
        except NormalizationError as exc:
            logger.warning("Skipping %s payload: %s", entity_type, exc)
            rejected.append(f"{entity_type} payload rejected: {exc}")
    return records


def _dedupe(records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Drop repeats of a remote_id; records without one are kept for validation."""
    seen = set()
    unique = []
    for rec in records:
        rid = rec.get("remote_id")
        if rid is not None:
            if rid in seen:
                continue
            seen.add(rid)
        unique.append(rec)
    return unique
