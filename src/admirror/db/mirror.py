"""Read helpers and local-only creation for the mirror tables.

Reads never wait on a running sync; callers may see some entity types
already reconciled and later ones not yet.
"""
from typing import Any, Dict, List, Optional

from sqlmodel import Session, func, select

from admirror.models.entities import (
    ENTITY_MODELS,
    MirrorEntity,
    Placement,
    new_local_id,
)


class UnknownEntityTypeError(KeyError):
    """Raised for an entity-type key outside ENTITY_MODELS."""


class InvalidEntityError(ValueError):
    """Raised when a local record would break an identity or reference rule."""


def model_for(entity_type: str):
    try:
        return ENTITY_MODELS[entity_type]
    except KeyError:
        raise UnknownEntityTypeError(entity_type) from None


def list_entities(
    session: Session, entity_type: str, origin: str = "all"
) -> List[MirrorEntity]:
    """List mirrored rows of one type.

    Args:
        origin: "synced" (has remote_id), "local" (local-only) or "all".
    """
    model = model_for(entity_type)
    stmt = select(model)
    if origin == "synced":
        stmt = stmt.where(model.remote_id.is_not(None))
    elif origin == "local":
        stmt = stmt.where(model.remote_id.is_(None))
    return list(session.exec(stmt.order_by(model.id)).all())


def synced_remote_ids(session: Session, entity_type: str) -> List[int]:
    """Remote ids of the synced rows of one type, in insertion order."""
    model = model_for(entity_type)
    rows = session.exec(
        select(model.remote_id).where(model.remote_id.is_not(None)).order_by(model.id)
    ).all()
    return list(rows)


def entity_counts(session: Session) -> Dict[str, Dict[str, int]]:
    counts: Dict[str, Dict[str, int]] = {}
    for key, model in ENTITY_MODELS.items():
        synced = session.exec(
            select(func.count()).select_from(model).where(model.remote_id.is_not(None))
        ).one()
        local = session.exec(
            select(func.count()).select_from(model).where(model.remote_id.is_(None))
        ).one()
        counts[key] = {"synced": synced, "local": local}
    return counts


def create_local(session: Session, entity_type: str, **fields: Any) -> MirrorEntity:
    """Insert a local-only record, assigning it a fresh local_id.

    Raises:
        InvalidEntityError: if fields carry a remote_id, or a placement
            breaks its reference rules.
    """
    from admirror.sync.reconciler import validate_placement

    if fields.get("remote_id") is not None:
        raise InvalidEntityError("local records cannot carry a remote_id")
    model = model_for(entity_type)
    if model is Placement:
        problems = validate_placement(fields)
        if problems:
            raise InvalidEntityError("; ".join(problems))

    entity = model(**fields)
    entity.local_id = fields.get("local_id") or new_local_id()
    session.add(entity)
    session.commit()
    session.refresh(entity)
    return entity


def find_by_local_id(
    session: Session, entity_type: str, local_id: str
) -> Optional[MirrorEntity]:
    model = model_for(entity_type)
    return session.exec(select(model).where(model.local_id == local_id)).first()
