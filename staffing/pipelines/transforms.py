"""Normalization of engineer payloads before they are written."""
from __future__ import annotations

import re
from typing import Any

from config.email_templates import DEFAULT_ENGINEER_STATUS, ENGINEER_STATUSES

LIST_FIELDS = ("skills", "technical_keywords", "certifications")

TEXT_FIELDS = (
    "japanese_level",
    "english_level",
    "availability",
    "remarks",
    "company_name",
    "self_promotion",
    "work_scope",
    "work_experience",
    "nationality",
    "age",
    "gender",
    "nearest_station",
    "education",
    "arrival_year_japan",
    "email",
    "phone",
    "manager_name",
    "manager_email",
    "recommendation",
    "resume_url",
    "resume_text",
    "resume_file_name",
)


def ensure_array(value: Any) -> list[str]:
    """List as-is, comma separated string split, anything else ``[]``."""
    if not value:
        return []
    if isinstance(value, list):
        return value
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return []


def empty_to_none(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, str) and not value.strip():
        return None
    return value


def to_int(value: Any) -> int:
    """Digits of ``value`` as an int; 0 when there are none."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    digits = re.sub(r"\D", "", str(value or ""))
    return int(digits) if digits else 0


def normalize_status(value: Any) -> str:
    if isinstance(value, list):
        value = value[0] if value else None
    if isinstance(value, str) and value in ENGINEER_STATUSES:
        return value
    return DEFAULT_ENGINEER_STATUS


def to_engineer_record(payload: dict[str, Any], *, partial: bool = False) -> dict[str, Any]:
    """Map an engineer payload to column values.

    Args:
        payload: Incoming fields; ``status`` (string or list) is accepted as
            an alias of ``current_status``
        partial: Only map the fields present in ``payload``

    Returns:
        Column → value dict with blank strings stored as NULL
    """
    def wanted(key: str) -> bool:
        return not partial or key in payload

    record: dict[str, Any] = {}
    if wanted("name"):
        record["name"] = payload.get("name")
    if wanted("experience"):
        record["experience"] = payload.get("experience")
    for key in LIST_FIELDS:
        if wanted(key):
            record[key] = ensure_array(payload.get(key))
    for key in TEXT_FIELDS:
        if wanted(key):
            record[key] = empty_to_none(payload.get(key))
    if wanted("desired_rate"):
        record["desired_rate"] = to_int(payload.get("desired_rate"))
    if not partial or "current_status" in payload or "status" in payload:
        record["current_status"] = normalize_status(payload.get("current_status") or payload.get("status"))
    return record
