"""Batch matching store: filter state, bulk search and result pagination."""
from __future__ import annotations

import logging

from ai.matching import AIMatchingService, ApiError, BulkMatchingRequest, BulkMatchingResponse

from ..client import BusinessClientManager
from ..config import settings
from ..notifications import Notifier
from ..pipelines.batch_matching import (
    MatchingResultView,
    build_candidate_detail,
    build_case_detail,
    convert_bulk_matches_to_results,
    paginate,
    total_pages,
)
from ..services.engineer_service import EngineerService
from ..services.project_service import ProjectService
from .base import Store, TenantContext

logger = logging.getLogger(__name__)

ALL = "all"
SEARCH_MAX_MATCHES = 100


class BatchMatchingStore(Store):
    """Runs a bulk match for the tenant and holds the enriched result rows."""

    def __init__(
        self,
        manager: BusinessClientManager,
        context: TenantContext,
        matching_service: AIMatchingService | None = None,
        notifier: Notifier | None = None,
    ) -> None:
        super().__init__(manager, context, notifier)
        self.matching_service = matching_service or AIMatchingService()
        self.projects = ProjectService(manager)
        self.engineers = EngineerService(manager)

        # Filters
        self.case_affiliation = ALL
        self.candidate_affiliation = ALL
        self.case_start_date = ""
        self.min_score = settings.matching.min_score

        # Results
        self.is_searched = False
        self.results: list[MatchingResultView] = []
        self.api_response: BulkMatchingResponse | None = None
        self.current_page = 1
        self.selected_match: MatchingResultView | None = None

    def _request(self) -> BulkMatchingRequest:
        return BulkMatchingRequest(
            tenant_id=self.tenant_id,
            min_score=self.min_score,
            max_matches=SEARCH_MAX_MATCHES,
            executed_by=self.context.user_id,
            engineer_company_type=None if self.candidate_affiliation == ALL else self.candidate_affiliation,
            project_company_type=None if self.case_affiliation == ALL else self.case_affiliation,
            project_start_date=self.case_start_date or None,
        )

    async def search(self) -> list[MatchingResultView]:
        """Run bulk matching with the current filters and enrich the matches."""
        if not self.context.tenant_id:
            self.failure = "auth"
            self.notifier.error("一括マッチング失敗", "テナントIDが見つかりません")
            return []

        self.failure = None
        self.loading = True
        self.is_searched = False
        try:
            response = await self.matching_service.perform_bulk_matching(self._request())
            results = await convert_bulk_matches_to_results(
                response.matches,
                tenant_id=self.tenant_id,
                get_project=self.projects.get_project_by_id,
                get_engineer=self.engineers.get_engineer_by_id,
            )
        except ApiError as e:
            logger.error(f"Bulk matching failed ({e.status}): {e.message}")
            self.failure = "remote"
            self.error = e.message
            self.notifier.error("一括マッチング失敗", e.message)
            return self.results
        except Exception as e:
            logger.error(f"Bulk matching failed: {e}", exc_info=True)
            self.failure = "remote"
            self.error = str(e)
            self.notifier.error("一括マッチング失敗", "マッチング処理中にエラーが発生しました")
            return self.results
        finally:
            self.loading = False

        self.api_response = response
        self.results = results
        self.is_searched = True
        self.current_page = 1
        self.notifier.success("一括マッチング完了", f"{response.total_matches}件のマッチが見つかりました")
        return self.results

    @property
    def total_pages(self) -> int:
        return total_pages(self.results, settings.matching.page_size)

    @property
    def paginated_results(self) -> list[MatchingResultView]:
        return paginate(self.results, self.current_page, settings.matching.page_size)

    def set_page(self, page: int) -> list[MatchingResultView]:
        self.current_page = max(page, 1)
        return self.paginated_results

    def select_match(self, match_id: str) -> MatchingResultView | None:
        self.selected_match = next((r for r in self.results if r.id == match_id), None)
        return self.selected_match

    def case_detail(self, match_id: str) -> dict | None:
        result = self.select_match(match_id)
        return build_case_detail(result) if result else None

    def candidate_detail(self, match_id: str) -> dict | None:
        result = self.select_match(match_id)
        return build_candidate_detail(result) if result else None
