"""Batch matching aggregation: bulk match records → paginated result rows.

Each match is enriched with its project and engineer detail records. The two
lookups of a match run concurrently; fan-out across matches is capped by a
semaphore.
"""
from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import asdict, dataclass, field
from typing import Any, Awaitable, Callable, Sequence

from ai.matching import BulkMatchItem, format_match_score

from ..config import settings

logger = logging.getLogger(__name__)

NOT_SET = "未設定"

Lookup = Callable[[str, str], Awaitable[dict | None]]


@dataclass
class MatchingResultView:
    """One row of the batch matching result table."""
    id: str
    case_id: str
    candidate_id: str
    case_name: str
    candidate_name: str
    matching_rate: str
    matching_reason: str
    case_company: str
    candidate_company: str
    case_manager: str
    case_manager_email: str
    affiliation_manager: str
    affiliation_manager_email: str
    memo: str
    recommendation_comment: str
    skills: list[str] = field(default_factory=list)
    matched_skills: str = ""
    experience: str = NOT_SET
    nationality: str = NOT_SET
    age: str = NOT_SET
    gender: str = NOT_SET
    project_detail: dict | None = None
    engineer_detail: dict | None = None

    def to_dict(self) -> dict:
        return asdict(self)


def _join(values: Sequence[str] | None, separator: str = ", ") -> str:
    if not values or not isinstance(values, (list, tuple)):
        return ""
    return separator.join(str(v) for v in values)


def _first(*values: Any, default: Any = "") -> Any:
    for value in values:
        if value:
            return value
    return default


def build_result_view(
    match: BulkMatchItem,
    index: int,
    project: dict | None,
    engineer: dict | None,
) -> MatchingResultView:
    """Flatten one match and its detail records.

    Detail values win over the summary fields embedded in the match,
    except for the affiliation manager where the match payload is preferred.
    """
    project = project or {}
    engineer = engineer or {}
    skills = _first(engineer.get("skills"), match.matched_skills, default=[])

    return MatchingResultView(
        id=match.id or str(index + 1),
        case_id=match.project_id or "",
        candidate_id=match.engineer_id or "",
        case_name=_first(project.get("title"), match.project_title, default="案件名未設定"),
        candidate_name=_first(engineer.get("name"), match.engineer_name, default="候補者名未設定"),
        matching_rate=format_match_score(match.match_score or 0),
        matching_reason=_join(match.match_reasons),
        case_company=_first(project.get("client_company"), project.get("partner_company"), default=NOT_SET),
        candidate_company=_first(engineer.get("company_name"), match.engineer_company_name, default=NOT_SET),
        case_manager=_first(project.get("manager_name"), match.project_manager_name),
        case_manager_email=_first(project.get("manager_email"), match.project_manager_email),
        affiliation_manager=_first(match.engineer_manager_name, engineer.get("name")),
        affiliation_manager_email=_first(match.engineer_manager_email, engineer.get("email")),
        memo=_join(match.concerns),
        recommendation_comment=_join(match.match_reasons[:2]),
        skills=list(skills),
        matched_skills=_join(skills),
        experience=_first(engineer.get("experience"), default=NOT_SET),
        nationality=_first(engineer.get("nationality"), default=NOT_SET),
        age=_first(engineer.get("age"), default=NOT_SET),
        gender=_first(engineer.get("gender"), default=NOT_SET),
        project_detail=project or None,
        engineer_detail=engineer or None,
    )


async def _safe_lookup(lookup: Lookup, entity_id: str, tenant_id: str, kind: str) -> dict | None:
    if not entity_id:
        return None
    try:
        return await lookup(entity_id, tenant_id)
    except Exception as e:
        logger.warning(f"{kind} lookup for {entity_id} failed: {e}")
        return None


async def convert_bulk_matches_to_results(
    matches: Sequence[BulkMatchItem | dict],
    *,
    tenant_id: str | None,
    get_project: Lookup,
    get_engineer: Lookup,
    max_concurrency: int | None = None,
) -> list[MatchingResultView]:
    """Enrich bulk match records with detail lookups.

    Args:
        matches: Records from the bulk matching call
        tenant_id: Tenant used for lookups; no tenant yields ``[]``
        get_project: ``(project_id, tenant_id) -> record | None``
        get_engineer: ``(engineer_id, tenant_id) -> record | None``
        max_concurrency: Matches enriched at the same time
            (default ``settings.matching.detail_concurrency``)

    Returns:
        One view per match, in input order
    """
    if not tenant_id:
        logger.error("Cannot convert matches without a tenant")
        return []

    items = [m if isinstance(m, BulkMatchItem) else BulkMatchItem.model_validate(m) for m in matches]
    semaphore = asyncio.Semaphore(max_concurrency or settings.matching.detail_concurrency)

    async def convert(index: int, match: BulkMatchItem) -> MatchingResultView:
        async with semaphore:
            project, engineer = await asyncio.gather(
                _safe_lookup(get_project, match.project_id, tenant_id, "Project"),
                _safe_lookup(get_engineer, match.engineer_id, tenant_id, "Engineer"),
            )
        return build_result_view(match, index, project, engineer)

    results = await asyncio.gather(*(convert(i, m) for i, m in enumerate(items)))
    logger.info(f"Converted {len(results)} bulk matches for tenant {tenant_id}")
    return list(results)


def total_pages(results: Sequence[Any], page_size: int | None = None) -> int:
    page_size = page_size or settings.matching.page_size
    return math.ceil(len(results) / page_size)


def paginate(results: Sequence[Any], page: int, page_size: int | None = None) -> list[Any]:
    """1-based page slice."""
    page_size = page_size or settings.matching.page_size
    start = (max(page, 1) - 1) * page_size
    return list(results[start:start + page_size])


def build_case_detail(result: MatchingResultView) -> dict:
    """View model for the case detail dialog."""
    project = result.project_detail or {}
    return {
        "id": result.case_id,
        "name": result.case_name,
        "company": result.case_company,
        "location": project.get("location") or NOT_SET,
        "work_type": project.get("work_type") or NOT_SET,
        "budget": project.get("budget") or project.get("desired_budget") or NOT_SET,
        "experience_required": project.get("experience") or NOT_SET,
        "skills": project.get("skills") or result.skills or [],
        "manager": result.case_manager,
        "manager_email": result.case_manager_email,
        "priority": project.get("priority") or "medium",
        "detail_description": (
            project.get("detail_description")
            or project.get("description")
            or "案件の詳細情報が登録されていません。"
        ),
        "project_detail": result.project_detail,
    }


def build_candidate_detail(result: MatchingResultView) -> dict:
    """View model for the candidate detail dialog."""
    engineer = result.engineer_detail or {}
    return {
        "id": result.candidate_id,
        "name": result.candidate_name,
        "company": result.candidate_company,
        "skills": result.skills or [],
        "experience": engineer.get("experience") or result.experience,
        "japanese_level": engineer.get("japanese_level") or NOT_SET,
        "english_level": engineer.get("english_level") or NOT_SET,
        "current_status": engineer.get("current_status") or NOT_SET,
        "nearest_station": engineer.get("nearest_station") or NOT_SET,
        "company_type": engineer.get("company_type") or NOT_SET,
        "arrival_year_japan": engineer.get("arrival_year_japan") or NOT_SET,
        "manager": result.affiliation_manager,
        "manager_email": result.affiliation_manager_email,
        "nationality": result.nationality,
        "age": result.age,
        "gender": result.gender,
        "bio": (
            engineer.get("self_promotion")
            or engineer.get("work_experience")
            or "技術者の詳細情報が登録されていません。"
        ),
        "engineer_detail": result.engineer_detail,
    }
