"""
EntityReconciler: merges a fresh remote collection into the mirror.

Remote is the source of truth for anything that has a remote_id.
Local-only rows are work not yet pushed upstream and survive every sync
unchanged.

reconcile(entity_type, records):
  1. Split current rows of that type into synced / local-only
  2. Delete every synced row
  3. Validate and insert each fresh record, keyed by remote_id
  4. Leave local-only rows alone

All of it happens in one transaction, so readers see either the old
collection or the new one for a given type.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List

from sqlmodel import Session, select

from admirror.db.mirror import model_for
from admirror.models.entities import ENTITY_MODELS, Placement, is_local_only, is_synced

logger = logging.getLogger(__name__)


@dataclass
class MergeSummary:
    entity_type: str
    written: int = 0
    rejected: int = 0
    removed: int = 0
    preserved: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def all_rejected(self) -> bool:
        return self.rejected > 0 and self.written == 0


def _is_set(value: Any) -> bool:
    return value is not None and value != ""


def validate_placement(fields: Dict[str, Any]) -> List[str]:
    """Return the reference-rule violations of a placement (empty if valid).

    Campaign and zone each need exactly one reference: remote or local,
    never both, never neither. The advertisement is always a remote ref.
    """
    problems = []
    if _is_set(fields.get("campaign_remote_ref")) == _is_set(fields.get("campaign_local_ref")):
        problems.append(
            "exactly one of campaign_remote_ref or campaign_local_ref must be set"
        )
    if _is_set(fields.get("zone_remote_ref")) == _is_set(fields.get("zone_local_ref")):
        problems.append("exactly one of zone_remote_ref or zone_local_ref must be set")
    if not _is_set(fields.get("advertisement_remote_ref")):
        problems.append("advertisement_remote_ref is required")
    return problems


class EntityReconciler:
    def __init__(self, engine):
        self.engine = engine

    def purge_synced(self) -> int:
        """Delete every synced row across all entity types.

        Runs as the cleanup phase so no stale synced row outlives the run,
        even for a type whose own phase later fails. Local-only rows stay.

        Returns:
            Number of rows deleted.
        """
        deleted = 0
        with Session(self.engine) as s:
            # Children first so placements never point at a purged parent mid-purge.
            for key in reversed(list(ENTITY_MODELS)):
                model = ENTITY_MODELS[key]
                rows = s.exec(select(model).where(model.remote_id.is_not(None))).all()
                for row in rows:
                    s.delete(row)
                deleted += len(rows)
                logger.debug("Cleanup: removed %d synced %s", len(rows), key)
            s.commit()
        logger.info("Cleanup removed %d synced records", deleted)
        return deleted

    def reconcile(
        self, entity_type: str, remote_records: List[Dict[str, Any]]
    ) -> MergeSummary:
        """Replace the synced rows of one type with `remote_records`.

        Raises:
            UnknownEntityTypeError: for a type outside ENTITY_MODELS.
        """
        model = model_for(entity_type)
        summary = MergeSummary(entity_type=entity_type)
        now = datetime.utcnow()

        with Session(self.engine) as s:
            existing = s.exec(select(model)).all()
            synced = [row for row in existing if is_synced(row)]
            summary.preserved = sum(1 for row in existing if is_local_only(row))

            for row in synced:
                s.delete(row)
            s.flush()
            summary.removed = len(synced)

            for fields in remote_records:
                problems = self._validate(model, fields)
                if problems:
                    summary.rejected += 1
                    summary.errors.append(
                        f"{entity_type} record {fields.get('remote_id')!r}: {'; '.join(problems)}"
                    )
                    continue
                s.add(model(**{**fields, "synced_at": now}))
                summary.written += 1
            s.commit()

        if summary.rejected:
            logger.warning(
                "%s: %d record(s) rejected during reconciliation",
                entity_type, summary.rejected,
            )
        logger.info(
            "Reconciled %s: %d written, %d removed, %d local-only kept",
            entity_type, summary.written, summary.removed, summary.preserved,
        )
        return summary

    @staticmethod
    def _validate(model, fields: Dict[str, Any]) -> List[str]:
        problems = []
        if model is Placement:
            problems.extend(validate_placement(fields))
        if fields.get("remote_id") is None and not problems:
            problems.append("remote record has no remote_id")
        return problems
