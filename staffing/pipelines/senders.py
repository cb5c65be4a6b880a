"""Sender flattening for bulk e-mail: one row per case contact."""
from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass
class SenderRow:
    row_id: str
    case_id: str
    case_title: str
    company: str
    key_technologies: str
    sender: str
    email: str
    position: str = ""
    start_date: str = ""
    registration_type: str | None = None
    registered_at: str | None = None
    original_case: dict = field(default_factory=dict, repr=False)

    def to_dict(self, include_case: bool = False) -> dict:
        data = asdict(self)
        if not include_case:
            data.pop("original_case")
        return data


def _sender_email_key(sender: dict) -> str:
    if sender.get("email"):
        return sender["email"]
    name = re.sub(r"\s+", "", sender.get("name") or "").lower()
    return f"{name}@example.com"


def flatten_senders(cases: list[dict[str, Any]]) -> list[SenderRow]:
    """Expand cases into sender rows.

    A case with a non-empty ``senders`` list gives one row per sender.
    Any other case gives exactly one row built from the legacy single-sender
    fields (empty when absent).
    """
    rows: list[SenderRow] = []
    for case in cases:
        case_id = str(case.get("id") or "")
        key_technologies = case.get("key_technologies") or ", ".join(case.get("skills") or [])
        common = {
            "case_id": case_id,
            "case_title": case.get("title") or "",
            "company": case.get("company") or "",
            "key_technologies": key_technologies,
            "start_date": case.get("start_date") or "",
            "registration_type": case.get("registration_type"),
            "registered_at": case.get("registered_at"),
            "original_case": case,
        }

        senders = case.get("senders")
        if isinstance(senders, list) and senders:
            for index, sender in enumerate(senders):
                rows.append(SenderRow(
                    row_id=f"{case_id}-{_sender_email_key(sender)}-{index}",
                    sender=sender.get("name") or "",
                    email=sender.get("email") or "",
                    position=sender.get("position") or "",
                    **common,
                ))
        else:
            rows.append(SenderRow(
                row_id=f"{case_id}-{case.get('sender_email') or 'default'}-0",
                sender=case.get("sender") or case.get("sender_name") or "",
                email=case.get("sender_email") or "",
                **common,
            ))
    return rows


def mail_case_from_project(project: dict[str, Any]) -> dict[str, Any]:
    """Mail case for a project record, with its manager as the legacy sender."""
    created_at = project.get("created_at")
    return {
        "id": project.get("id"),
        "title": project.get("title") or "",
        "company": project.get("client_company") or project.get("partner_company") or "",
        "description": project.get("description") or "",
        "detail_description": project.get("detail_description") or "",
        "skills": project.get("skills") or [],
        "key_technologies": project.get("key_technologies") or "",
        "location": project.get("location") or "",
        "budget": project.get("budget") or "",
        "duration": project.get("duration") or "",
        "start_date": project.get("start_date") or "",
        "japanese_level": project.get("japanese_level") or "",
        "experience": project.get("experience") or "",
        "work_type": project.get("work_type") or "",
        "max_candidates": project.get("max_candidates"),
        "sender": project.get("manager_name") or "",
        "sender_name": project.get("manager_name") or "",
        "sender_email": project.get("manager_email") or "",
        "registration_type": project.get("source"),
        "registered_at": created_at.isoformat() if hasattr(created_at, "isoformat") else created_at,
    }
