"""Mirror read routes."""
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlmodel import Session

from admirror.db.engine import get_session
from admirror.db.mirror import UnknownEntityTypeError, entity_counts, list_entities

router = APIRouter()


@router.get("/counts")
def get_counts(session: Session = Depends(get_session)) -> Dict[str, Dict[str, int]]:
    """Synced and local-only row counts per entity type."""
    return entity_counts(session)


@router.get("/{entity_type}", response_model=List[Dict[str, Any]])
def get_entities(
    entity_type: str,
    origin: str = Query("all", pattern="^(synced|local|all)$"),
    session: Session = Depends(get_session),
):
    """List mirrored rows of one type, filtered by origin."""
    try:
        rows = list_entities(session, entity_type, origin=origin)
    except UnknownEntityTypeError:
        raise HTTPException(status_code=404, detail=f"Unknown entity type: {entity_type}")
    return [row.model_dump() for row in rows]
