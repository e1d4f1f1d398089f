"""
Broadstreet API response normalizer.

Converts raw dicts from BroadstreetClient into field dicts that map directly
onto the mirror models. No DB access here; the reconciler handles
persistence.

Broadstreet identifies every record by `id`; the mirror stores that value
as `remote_id`. Parent context the payload may omit (the network an
advertiser was listed under, the campaign a placement belongs to) is passed
in by the fetcher.
"""
import json
from typing import Any, Dict, Optional

from admirror.models.entities import placement_remote_key

DISPLAY_TYPES = (
    "no_repeat",
    "allow_repeat_campaign",
    "allow_repeat_advertisement",
    "force_repeat_campaign",
)

# Broadstreet may send campaign weight as a named tier instead of a number.
NAMED_WEIGHTS = {"default": 50.0, "remnant": 10.0}


class NormalizationError(ValueError):
    """Raised when a payload lacks the fields needed to mirror it."""


def _remote_id(raw: Dict[str, Any], kind: str) -> int:
    value = raw.get("id", raw.get("broadstreet_id"))
    if isinstance(value, bool) or not isinstance(value, int):
        raise NormalizationError(f"{kind} payload has no numeric id: {value!r}")
    return value


def _optional_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _logo_url(raw: Dict[str, Any]) -> Optional[str]:
    logo = raw.get("logo")
    if isinstance(logo, dict):
        return logo.get("url")
    return logo if isinstance(logo, str) else None


def normalize_weight(value: Any) -> Optional[float]:
    """Map a Broadstreet campaign weight to a number.

    "default" -> 50, "remnant" -> 10, numeric strings are parsed,
    anything else yields None.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        lower = value.strip().lower()
        if lower in NAMED_WEIGHTS:
            return NAMED_WEIGHTS[lower]
        try:
            return float(lower)
        except ValueError:
            return None
    return None


def normalize_network(raw: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "remote_id": _remote_id(raw, "network"),
        "name": raw.get("name") or "",
        "group_id": _optional_int(raw.get("group_id")),
        "web_home_url": raw.get("web_home_url"),
        "logo_url": _logo_url(raw),
        "valet_active": raw.get("valet_active"),
        "path": raw.get("path"),
        "advertiser_count": _optional_int(raw.get("advertiser_count")),
        "zone_count": _optional_int(raw.get("zone_count")),
    }


def normalize_advertiser(raw: Dict[str, Any], network_id: int) -> Dict[str, Any]:
    return {
        "remote_id": _remote_id(raw, "advertiser"),
        "name": raw.get("name") or "",
        "network_id": network_id,
        "web_home_url": raw.get("web_home_url"),
        "logo_url": _logo_url(raw),
        "notes": raw.get("notes"),
    }


def normalize_zone(raw: Dict[str, Any], network_id: int) -> Dict[str, Any]:
    return {
        "remote_id": _remote_id(raw, "zone"),
        "name": raw.get("name") or "",
        "network_id": _optional_int(raw.get("network_id")) or network_id,
        "alias": raw.get("alias"),
        "self_serve": raw.get("self_serve"),
    }


def normalize_campaign(raw: Dict[str, Any], advertiser_id: int) -> Dict[str, Any]:
    """Normalize a campaign, keeping raw values where we coerce them."""
    weight_raw = raw.get("weight")
    display_type_raw = raw.get("display_type")
    return {
        "remote_id": _remote_id(raw, "campaign"),
        "name": raw.get("name") or "",
        "advertiser_id": _optional_int(raw.get("advertiser_id")) or advertiser_id,
        "start_date": raw.get("start_date"),
        "end_date": raw.get("end_date"),
        "max_impression_count": _optional_int(raw.get("max_impression_count")),
        "display_type": display_type_raw if display_type_raw in DISPLAY_TYPES else None,
        "display_type_raw": display_type_raw,
        "active": raw.get("active"),
        "weight": normalize_weight(weight_raw),
        "weight_raw": weight_raw if isinstance(weight_raw, str) else None,
        "paused": raw.get("paused"),
        "archived": raw.get("archived"),
        "pacing_type": raw.get("pacing_type"),
        "impression_max_type": raw.get("impression_max_type"),
        "path": raw.get("path"),
        "notes": raw.get("notes"),
        "raw_json": json.dumps(raw, sort_keys=True),
    }


def normalize_advertisement(raw: Dict[str, Any], network_id: int) -> Dict[str, Any]:
    active = raw.get("active")
    return {
        "remote_id": _remote_id(raw, "advertisement"),
        "name": raw.get("name") or "",
        "network_id": network_id,
        "type": raw.get("type"),
        "advertiser": raw.get("advertiser"),
        "active_url": active.get("url") if isinstance(active, dict) else None,
        "active_placement": raw.get("active_placement"),
        "preview_url": raw.get("preview_url"),
        "updated_at_remote": raw.get("updated_at"),
    }


def normalize_placement(raw: Dict[str, Any], campaign_id: int) -> Dict[str, Any]:
    """Normalize a placement listed under `campaign_id`.

    Missing advertisement or zone ids are passed through as None so the
    reconciler can count the record as a validation failure instead of it
    vanishing here.
    """
    advertisement_id = _optional_int(raw.get("advertisement_id"))
    zone_id = _optional_int(raw.get("zone_id"))
    restrictions = raw.get("restrictions") or []
    remote_id = None
    if advertisement_id is not None and zone_id is not None:
        remote_id = placement_remote_key(campaign_id, advertisement_id, zone_id)
    return {
        "remote_id": remote_id,
        "advertisement_remote_ref": advertisement_id,
        "campaign_remote_ref": campaign_id,
        "campaign_local_ref": None,
        "zone_remote_ref": zone_id,
        "zone_local_ref": None,
        "restrictions_json": json.dumps(list(restrictions)),
    }
