"""E-mail template placeholder substitution.

Two token styles are in use: built-in templates use ``{{key}}``, tenant
templates use ``{key}``. Substitution is a single global pass; replaced
values are never re-scanned. Unmapped keys are replaced with ``""``.

The preview renderer is separate: it tags every ``{...}`` token without
looking values up.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from config.email_templates import EMAIL_TEMPLATES, MULTI_ENGINEER_CATEGORY, NO_TEMPLATE, SKILL_CATEGORY_KEYWORDS

logger = logging.getLogger(__name__)

SINGLE_TOKEN = re.compile(r"\{([^{}]+)\}")
DOUBLE_TOKEN = re.compile(r"\{\{([^{}]+)\}\}")
PREVIEW_TOKEN = re.compile(r"\{[^}]+\}")

COMPANY_CONTACT = "AI採用担当"


@dataclass
class PreviewSegment:
    kind: str  # "text" | "placeholder"
    value: str


def _pattern(style: str) -> re.Pattern:
    if style == "single":
        return SINGLE_TOKEN
    if style == "double":
        return DOUBLE_TOKEN
    raise ValueError(f"Unknown placeholder style: {style}")


def replace_placeholders(text: str, data: Mapping[str, Any], style: str = "single") -> str:
    """Replace ``{key}`` (or ``{{key}}``) tokens with values from ``data``.

    Args:
        text: Template text
        data: Flat key → value map; ``None`` values count as empty
        style: ``"single"`` for ``{key}``, ``"double"`` for ``{{key}}``

    Returns:
        Text with every token replaced; unmapped tokens become ``""``
    """
    if not text:
        return text or ""

    def substitute(match: re.Match) -> str:
        value = data.get(match.group(1))
        return "" if value is None else str(value)

    return _pattern(style).sub(substitute, text)


def render_text_with_tags(text: str) -> list[PreviewSegment]:
    """Split text into literal and placeholder segments for preview.

    Placeholders keep their name (braces stripped) and are never substituted.
    """
    segments: list[PreviewSegment] = []
    last = 0
    for match in PREVIEW_TOKEN.finditer(text or ""):
        if match.start() > last:
            segments.append(PreviewSegment("text", text[last:match.start()]))
        segments.append(PreviewSegment("placeholder", match.group(0)[1:-1]))
        last = match.end()
    if last < len(text or ""):
        segments.append(PreviewSegment("text", text[last:]))
    return segments


def extract_placeholders(text: str, style: str = "single") -> list[str]:
    """Unique placeholder names in order of first appearance."""
    return list(dict.fromkeys(_pattern(style).findall(text or "")))


def missing_required_placeholders(required: Iterable[str], data: Mapping[str, Any]) -> list[str]:
    return [key for key in required if data.get(key) in (None, "")]


def _join(values: Any, separator: str) -> str:
    if isinstance(values, (list, tuple)):
        return separator.join(str(v) for v in values)
    return values or ""


def build_placeholder_data(cases: list[dict], engineers: list[dict]) -> dict[str, str]:
    """Placeholder map for built-in templates from the first case and engineer."""
    case = cases[0] if cases else {}
    engineer = engineers[0] if engineers else {}
    description = case.get("description") or case.get("detail_description") or ""
    engineer_skills = _join(engineer.get("skills"), "、")
    max_candidates = case.get("max_candidates")

    return {
        # Legacy keys
        "title": case.get("title") or "",
        "sender": case.get("sender") or case.get("selected_sender_name") or "",
        "description": description,
        "company": case.get("company") or "",
        "companyContact": COMPANY_CONTACT,
        "engineerName": engineer.get("name") or "",
        "engineerYears": engineer.get("experience") or "",
        "engineerSkills": engineer_skills,
        # Standardized keys
        "project_title": case.get("title") or "",
        "project_description": description,
        "project_skills": _join(case.get("skills"), "、"),
        "project_location": case.get("location") or "",
        "project_budget": case.get("budget") or "",
        "project_duration": case.get("duration") or "",
        "project_start_date": case.get("start_date") or "",
        "project_japanese_level": case.get("japanese_level") or "",
        "project_experience": case.get("experience") or "",
        "project_key_technologies": case.get("key_technologies") or "",
        "project_work_type": case.get("work_type") or "",
        "project_max_candidates": str(max_candidates) if max_candidates else "",
        "engineer_name": engineer.get("name") or "",
        "engineer_email": engineer.get("email") or "",
        "engineer_skills": engineer_skills,
        "engineer_experience": engineer.get("experience") or "",
        "engineer_japanese_level": engineer.get("japanese_level") or "",
        "engineer_nearest_station": engineer.get("nearest_station") or "",
        "engineer_desired_rate": format_desired_rate(engineer),
        "engineer_availability": engineer.get("availability") or "",
        "engineer_nationality": engineer.get("nationality") or "",
        "engineer_education": engineer.get("education") or "",
        "engineer_certifications": _join(engineer.get("certifications"), "、"),
        "engineer_self_promotion": engineer.get("self_promotion") or "",
    }


def apply_template(template_id: str | None, cases: list[dict], engineers: list[dict]) -> dict[str, str]:
    """Fill a built-in template; unknown or empty ids give empty subject and body."""
    if not template_id or template_id == NO_TEMPLATE:
        return {"subject": "", "body": ""}

    template = next((t for t in EMAIL_TEMPLATES if t["id"] == template_id), None)
    if template is None:
        logger.warning(f"Template {template_id} not found")
        return {"subject": "", "body": ""}

    data = build_placeholder_data(cases, engineers)
    return {
        "subject": replace_placeholders(template["subject"], data, style="double"),
        "body": replace_placeholders(template["body"], data, style="double"),
    }


# -- multi-engineer templates ----------------------------------------------

def format_skills(skills: Any) -> str:
    return _join(skills, ", ") if isinstance(skills, (list, tuple)) else ""


def format_desired_rate(engineer: dict) -> str:
    rate = engineer.get("desired_rate")
    return f"{rate}万円" if rate else ""


def extract_main_skills(engineers: list[dict], limit: int = 5) -> str:
    skills: dict[str, None] = {}
    for engineer in engineers:
        for skill in engineer.get("skills") or []:
            skills.setdefault(skill, None)
    return ", ".join(list(skills)[:limit])


def extract_experience_range(engineers: list[dict]) -> str:
    """``"3年"`` or ``"2〜5年"`` from the first number in each experience text."""
    years = []
    for engineer in engineers:
        match = re.search(r"\d+", str(engineer.get("experience") or ""))
        if match and int(match.group(0)) > 0:
            years.append(int(match.group(0)))
    if not years:
        return ""
    low, high = min(years), max(years)
    return f"{low}年" if low == high else f"{low}〜{high}年"


def determine_skill_category(skill: str) -> str:
    lowered = skill.lower()
    for category, keywords in SKILL_CATEGORY_KEYWORDS:
        if any(k in lowered for k in keywords):
            return category
    return "その他"


def engineer_list_detailed(engineers: list[dict]) -> str:
    blocks = []
    for i, e in enumerate(engineers, start=1):
        blocks.append(
            f"【技術者{i}】\n"
            f"【技術者名】{e.get('name') or ''}\n"
            f"【スキル】{format_skills(e.get('skills'))}\n"
            f"【経験年数】{e.get('experience') or ''}\n"
            f"【日本語レベル】{e.get('japanese_level') or ''}\n"
            f"【最寄り駅】{e.get('nearest_station') or ''}\n"
            f"【希望単価】{format_desired_rate(e)}\n"
            f"【稼働可能日】{e.get('availability') or ''}"
        )
    return "\n\n".join(blocks)


def engineer_table(engineers: list[dict]) -> str:
    """Tab separated table with a header row."""
    rows = ["技術者名\tスキル\t経験年数\t日本語レベル\t希望単価"]
    for e in engineers:
        rows.append("\t".join([
            e.get("name") or "",
            format_skills(e.get("skills")),
            e.get("experience") or "",
            e.get("japanese_level") or "",
            format_desired_rate(e),
        ]))
    return "\n".join(rows)


def engineer_list_summary(engineers: list[dict]) -> str:
    blocks = []
    for e in engineers:
        blocks.append(
            f"・{e.get('name') or ''}\n"
            f"  スキル：{format_skills(e.get('skills'))}\n"
            f"  経験：{e.get('experience') or ''}、日本語：{e.get('japanese_level') or ''}\n"
            f"  最寄り駅：{e.get('nearest_station') or ''}、希望単価：{format_desired_rate(e)}\n"
            f"  稼働可能日：{e.get('availability') or ''}"
        )
    return "\n\n".join(blocks)


def engineer_categories(engineers: list[dict]) -> str:
    """Engineers grouped by the category of their first skill."""
    groups: dict[str, list[str]] = {}
    for e in engineers:
        skills = e.get("skills") or []
        category = determine_skill_category(skills[0] if skills else "その他")
        groups.setdefault(category, []).append(e.get("name") or "")
    return "\n\n".join(f"【{category}系エンジニア】\n{'、'.join(names)}" for category, names in groups.items())


def apply_template_with_engineers(
    template: dict,
    engineers: list[dict],
    additional_data: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Fill a tenant template (``{key}`` style) for one or more engineers.

    Multi-engineer keys are only produced for ``multi_engineer_introduction``
    templates with more than one engineer; otherwise the first engineer's
    fields are used.

    Returns:
        ``{"subject", "body", "signature"}``
    """
    data: dict[str, str] = {
        "engineer_count": str(len(engineers)),
        "engineer_names": "、".join(e.get("name") or "" for e in engineers),
        "main_skills": extract_main_skills(engineers),
        "experience_range": extract_experience_range(engineers),
        **(additional_data or {}),
    }

    if template.get("category") == MULTI_ENGINEER_CATEGORY and len(engineers) > 1:
        data["engineer_list_detailed"] = engineer_list_detailed(engineers)
        data["engineer_table"] = engineer_table(engineers)
        data["engineer_list_summary"] = engineer_list_summary(engineers)
        data["engineer_categories"] = engineer_categories(engineers)
    elif engineers:
        e = engineers[0]
        data.update({
            "engineer_name": e.get("name") or "",
            "engineer_email": e.get("email") or "",
            "engineer_skills": format_skills(e.get("skills")),
            "engineer_experience": e.get("experience") or "",
            "engineer_japanese_level": e.get("japanese_level") or "",
            "engineer_nearest_station": e.get("nearest_station") or "",
            "engineer_desired_rate": format_desired_rate(e),
            "engineer_availability": e.get("availability") or "",
            "engineer_nationality": e.get("nationality") or "",
            "engineer_education": e.get("education") or "",
            "engineer_certifications": format_skills(e.get("certifications")),
            "engineer_self_promotion": e.get("self_promotion") or "",
        })

    signature = template.get("signature_template")
    return {
        "subject": replace_placeholders(template.get("subject_template") or "", data),
        "body": replace_placeholders(template.get("body_template_text") or "", data),
        "signature": replace_placeholders(signature, data) if signature else "",
    }
