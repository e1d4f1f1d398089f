"""Mirror models for the six Broadstreet entity types.

Every table shares the MirrorEntity identity base. A row is identified by
either space:

  remote_id  assigned by Broadstreet; set iff the record exists upstream
  local_id   assigned here at creation time; may linger after promotion

`id` is only the storage row key and belongs to neither identity space.
"""
import uuid
from datetime import datetime
from typing import Dict, Optional, Type

from sqlmodel import Field, SQLModel


def new_local_id() -> str:
    return uuid.uuid4().hex


class MirrorEntity(SQLModel):
    """Identity fields shared by every mirrored entity type."""

    id: Optional[int] = Field(default=None, primary_key=True)
    remote_id: Optional[int] = Field(default=None, unique=True, index=True)
    local_id: Optional[str] = Field(default=None, index=True)
    name: str
    synced_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


def is_synced(entity: MirrorEntity) -> bool:
    return entity.remote_id is not None


def is_local_only(entity: MirrorEntity) -> bool:
    return entity.remote_id is None and entity.local_id is not None


class Network(MirrorEntity, table=True):
    group_id: Optional[int] = None
    web_home_url: Optional[str] = None
    logo_url: Optional[str] = None
    valet_active: Optional[bool] = None
    path: Optional[str] = None
    advertiser_count: Optional[int] = None
    zone_count: Optional[int] = None


class Advertiser(MirrorEntity, table=True):
    network_id: Optional[int] = Field(default=None, index=True)
    web_home_url: Optional[str] = None
    logo_url: Optional[str] = None
    notes: Optional[str] = None


class Zone(MirrorEntity, table=True):
    network_id: Optional[int] = Field(default=None, index=True)
    alias: Optional[str] = None
    self_serve: Optional[bool] = None


class Campaign(MirrorEntity, table=True):
    advertiser_id: Optional[int] = Field(default=None, index=True)
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    max_impression_count: Optional[int] = None
    display_type: Optional[str] = None
    display_type_raw: Optional[str] = None
    active: Optional[bool] = None
    weight: Optional[float] = None
    weight_raw: Optional[str] = None  # "default", "remnant", ...
    paused: Optional[bool] = None
    archived: Optional[bool] = None
    pacing_type: Optional[str] = None
    impression_max_type: Optional[str] = None
    path: Optional[str] = None
    notes: Optional[str] = None
    raw_json: Optional[str] = None


class Advertisement(MirrorEntity, table=True):
    network_id: Optional[int] = Field(default=None, index=True)
    type: Optional[str] = None
    advertiser: Optional[str] = None
    active_url: Optional[str] = None
    active_placement: Optional[bool] = None
    preview_url: Optional[str] = None
    updated_at_remote: Optional[str] = None


class Placement(MirrorEntity, table=True):
    """Links an advertisement to a zone within a campaign.

    Campaign and zone may each be referenced through either identity space,
    but exactly one reference per pair must be set. Broadstreet placements
    have no id of their own, so remote_id is "<campaign>:<advertisement>:<zone>".
    """

    remote_id: Optional[str] = Field(default=None, unique=True, index=True)
    name: str = ""
    advertisement_remote_ref: Optional[int] = Field(default=None, index=True)
    campaign_remote_ref: Optional[int] = Field(default=None, index=True)
    campaign_local_ref: Optional[str] = None
    zone_remote_ref: Optional[int] = Field(default=None, index=True)
    zone_local_ref: Optional[str] = None
    restrictions_json: Optional[str] = None


def placement_remote_key(campaign_id: int, advertisement_id: int, zone_id: int) -> str:
    return f"{campaign_id}:{advertisement_id}:{zone_id}"


# Entity-type key -> model, in sync dependency order.
ENTITY_MODELS: Dict[str, Type[MirrorEntity]] = {
    "networks": Network,
    "advertisers": Advertiser,
    "zones": Zone,
    "campaigns": Campaign,
    "advertisements": Advertisement,
    "placements": Placement,
}
