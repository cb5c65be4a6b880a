"""FastAPI app exposing the staffing stores, matching and mail helpers.

Tenant and user come from the ``X-Tenant-ID`` / ``X-User-ID`` headers. Store
endpoints answer with the data plus the notifications the store produced.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Depends, FastAPI, File, Header, HTTPException, Query, UploadFile, status
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ai.matching import AIMatchingService, ApiError, get_match_score_label
from ai.resume_parser import ResumeParseError, ResumeParserClient

from . import db
from .client import AuthenticationError, BusinessClientManager, get_business_client_manager
from .config import settings
from .logging_config import setup_logging
from .notifications import Notifier
from .pipelines.batch_matching import MatchingResultView
from .pipelines.senders import flatten_senders, mail_case_from_project
from .pipelines.templating import apply_template, apply_template_with_engineers, render_text_with_tags
from .services import (
    AttachmentError,
    AttachmentService,
    ConfigService,
    ConfigServiceError,
    EmailTemplateError,
    EngineerService,
    EngineerServiceError,
    MatchingHistoryError,
    MatchingHistoryService,
    ProjectService,
    ProjectServiceError,
)
from .stores import (
    BatchMatchingStore,
    EmailTemplatesStore,
    EngineersStore,
    ProjectArchivesStore,
    ProjectsStore,
    Store,
    TenantContext,
)

logger = logging.getLogger(__name__)

FAILURE_STATUS = {
    "validation": status.HTTP_400_BAD_REQUEST,
    "auth": status.HTTP_401_UNAUTHORIZED,
    "remote": status.HTTP_502_BAD_GATEWAY,
}


# Pydantic request/response models
class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str
    authenticated: bool


class NotificationDTO(BaseModel):
    level: str
    title: str
    description: str = ""


class ErrorResponse(BaseModel):
    """Error response."""
    error: str
    detail: str | None = None
    notifications: list[NotificationDTO] = Field(default_factory=list)


class StoreResponse(BaseModel):
    """Data returned by a store operation plus its notifications."""
    data: Any = None
    notifications: list[NotificationDTO] = Field(default_factory=list)


class BatchUpdateRequest(BaseModel):
    ids: list[str] = Field(min_length=1)
    changes: dict[str, Any]


class ArchiveRequest(BaseModel):
    reason: str | None = None


class IdsRequest(BaseModel):
    ids: list[str] = Field(min_length=1)


class PreviewRequest(BaseModel):
    text: str


class ApplyTemplateRequest(BaseModel):
    engineers: list[dict[str, Any]] = Field(default_factory=list)
    additional_data: dict[str, str] = Field(default_factory=dict)


class ApplyBuiltinTemplateRequest(BaseModel):
    cases: list[dict[str, Any]] = Field(default_factory=list)
    engineers: list[dict[str, Any]] = Field(default_factory=list)


class BatchMatchingRequest(BaseModel):
    """Filters of the batch matching screen."""
    case_affiliation: str = "all"
    candidate_affiliation: str = "all"
    case_start_date: str = ""
    min_score: float = Field(default=settings.matching.min_score, ge=0.0, le=1.0)
    page: int = Field(default=1, ge=1)


class MatchingResultDTO(BaseModel):
    """One batch matching row, camelCase on the wire."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    case_id: str
    candidate_id: str
    case_name: str
    candidate_name: str
    matching_rate: str
    matching_label: str
    matching_reason: str
    case_company: str
    candidate_company: str
    case_manager: str
    case_manager_email: str
    affiliation_manager: str
    affiliation_manager_email: str
    memo: str
    recommendation_comment: str
    skills: list[str]
    matched_skills: str
    experience: str
    nationality: str
    age: str
    gender: str


class BatchMatchingResponse(BaseModel):
    results: list[MatchingResultDTO]
    page: int
    total_pages: int
    total_results: int
    total_matches: int
    high_quality_matches: int
    notifications: list[NotificationDTO] = Field(default_factory=list)


class SendMailRequest(BaseModel):
    to: list[str] = Field(min_length=1)
    subject: str = Field(min_length=1)
    body: str
    attachment_ids: list[str] = Field(default_factory=list)
    attachment_filenames: list[str] = Field(default_factory=list)
    cc: list[str] | None = None
    bcc: list[str] | None = None
    signature: str | None = None


# Dependencies
def tenant_context(
    x_tenant_id: str | None = Header(default=None),
    x_user_id: str | None = Header(default=None),
) -> TenantContext:
    return TenantContext(tenant_id=x_tenant_id, user_id=x_user_id)


def require_tenant(context: TenantContext = Depends(tenant_context)) -> str:
    if not context.tenant_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="テナント情報が見つかりません")
    return context.tenant_id


def get_matching_service() -> AIMatchingService:
    return AIMatchingService()


def get_resume_parser() -> ResumeParserClient:
    return ResumeParserClient()


def get_attachment_service() -> AttachmentService:
    return AttachmentService()


_config_service = ConfigService()


def get_config_service() -> ConfigService:
    return _config_service


def _notifications(store: Store) -> list[NotificationDTO]:
    return [NotificationDTO(**n.to_dict()) for n in store.notifier.drain()]


def _respond(store: Store, data: Any, ok: bool, status_code: int = status.HTTP_200_OK):
    """Turn a store result into a response.

    ``ok`` is decided by the caller from the operation's return value, so a
    failed refresh after a successful mutation still answers with success.
    """
    notifications = _notifications(store)
    if not ok:
        detail = next((n.description for n in reversed(notifications) if n.level == "error"), store.error)
        return JSONResponse(
            status_code=FAILURE_STATUS.get(store.failure or "", status.HTTP_404_NOT_FOUND),
            content=ErrorResponse(
                error=store.failure or "not_found",
                detail=detail,
                notifications=notifications,
            ).model_dump(),
        )
    return JSONResponse(
        status_code=status_code,
        content=StoreResponse(data=jsonable_encoder(data), notifications=notifications).model_dump(),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup/shutdown logic."""
    # Startup
    setup_logging()
    logger.info("Application starting up")

    manager = BusinessClientManager.get_instance()
    manager.configure(db.engine)
    if settings.auth.service_token:
        if await manager.initialize(settings.auth.service_token, settings.auth.refresh_token):
            logger.info("Business client authenticated with the service token")
        else:
            logger.warning("Service token rejected; store endpoints will answer 401")
    else:
        logger.warning("AUTH_SERVICE_TOKEN is not set; store endpoints will answer 401")

    yield

    # Shutdown
    manager.clear_auth()
    await db.engine.dispose()
    logger.info("Application shutting down")


app = FastAPI(
    title=settings.app_name,
    version=settings.version,
    description="Engineer staffing: cases, engineers, batch matching and bulk mail",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Exception handlers
def _error(status_code: int, error: str, exc: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=error, detail=str(exc)).model_dump(),
    )


@app.exception_handler(AuthenticationError)
async def authentication_error_handler(request, exc: AuthenticationError):
    """Handle missing or expired sessions."""
    logger.warning(f"Authentication error: {exc}")
    return _error(status.HTTP_401_UNAUTHORIZED, "authentication_error", exc)


@app.exception_handler(ApiError)
async def matching_api_error_handler(request, exc: ApiError):
    """Handle AI matching backend errors."""
    logger.error(f"Matching backend error ({exc.status}): {exc.message}")
    return _error(status.HTTP_502_BAD_GATEWAY, "matching_error", exc)


@app.exception_handler(ResumeParseError)
async def resume_parse_error_handler(request, exc: ResumeParseError):
    """Handle resume parsing errors."""
    logger.error(f"Resume parse error: {exc}")
    return _error(status.HTTP_400_BAD_REQUEST, "parse_error", exc)


@app.exception_handler(AttachmentError)
async def attachment_error_handler(request, exc: AttachmentError):
    logger.error(f"Mail API error: {exc}")
    return _error(status.HTTP_502_BAD_GATEWAY, "mail_error", exc)


@app.exception_handler(ConfigServiceError)
async def config_error_handler(request, exc: ConfigServiceError):
    logger.error(f"Runtime config error: {exc}")
    return _error(status.HTTP_502_BAD_GATEWAY, "config_error", exc)


@app.exception_handler(ProjectServiceError)
@app.exception_handler(EngineerServiceError)
@app.exception_handler(MatchingHistoryError)
@app.exception_handler(EmailTemplateError)
async def service_error_handler(request, exc: Exception):
    """Handle data service errors."""
    logger.error(f"Service error: {exc}")
    return _error(status.HTTP_502_BAD_GATEWAY, "service_error", exc)


@app.get("/health", response_model=HealthResponse)
async def health(manager: BusinessClientManager = Depends(get_business_client_manager)) -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(status="ok", version=settings.version, authenticated=manager.is_authenticated())


@app.get("/health/backend")
async def backend_health(config_service: ConfigService = Depends(get_config_service)) -> dict:
    """Health of the backend environment endpoint; never fails."""
    return await config_service.check_health()


@app.get("/runtime-config")
async def runtime_config(config_service: ConfigService = Depends(get_config_service)) -> dict:
    env = await config_service.get_frontend_env()
    applied = config_service.apply_env_to_runtime(env)
    return {"data": env, "count": len(env), "applied": applied}


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "app": settings.app_name,
        "version": settings.version,
        "endpoints": {
            "health": "/health",
            "engineers": "/engineers",
            "engineer_search": "/engineers/search",
            "projects": "/projects",
            "project_companies": "/projects/companies",
            "archives": "/archives",
            "templates": "/templates",
            "batch_matching": "/batch-matching/search",
            "bulk_email_senders": "/bulk-email/senders",
            "matching_history": "/matching-history",
            "resume_parse": "/resumes/parse",
            "docs": "/docs",
        },
    }


# Engineers
def _engineers_store(
    company_type: str,
    manager: BusinessClientManager,
    context: TenantContext,
) -> EngineersStore:
    if company_type not in ("own", "other"):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="company_type must be own or other")
    return EngineersStore(manager, context, company_type=company_type, notifier=Notifier())


@app.get("/engineers")
async def list_engineers(
    company_type: str = Query(default="own"),
    manager: BusinessClientManager = Depends(get_business_client_manager),
    context: TenantContext = Depends(tenant_context),
):
    store = _engineers_store(company_type, manager, context)
    items = await store.fetch()
    return _respond(store, items, ok=store.failure is None)


@app.post("/engineers")
async def create_engineer(
    payload: dict[str, Any],
    company_type: str = Query(default="own"),
    manager: BusinessClientManager = Depends(get_business_client_manager),
    context: TenantContext = Depends(tenant_context),
):
    store = _engineers_store(company_type, manager, context)
    created = await store.create(payload)
    return _respond(store, created, ok=created is not None, status_code=status.HTTP_201_CREATED)


@app.get("/engineers/search")
async def search_engineers(
    q: str | None = None,
    company_type: str | None = None,
    engineer_status: str | None = Query(default=None, alias="status"),
    skills: list[str] | None = Query(default=None),
    japanese_level: str | None = None,
    nationality: str | None = None,
    tenant_id: str = Depends(require_tenant),
    manager: BusinessClientManager = Depends(get_business_client_manager),
):
    rows = await EngineerService(manager).search_engineers(
        tenant_id, q, company_type, engineer_status, skills, japanese_level, nationality
    )
    return {"data": jsonable_encoder(rows)}


@app.get("/engineers/skills")
async def engineer_skills(
    tenant_id: str = Depends(require_tenant),
    manager: BusinessClientManager = Depends(get_business_client_manager),
):
    return {"data": await EngineerService(manager).get_skills_list(tenant_id)}


@app.get("/engineers/nationalities")
async def engineer_nationalities(
    tenant_id: str = Depends(require_tenant),
    manager: BusinessClientManager = Depends(get_business_client_manager),
):
    return {"data": await EngineerService(manager).get_nationality_list(tenant_id)}


@app.post("/engineers/{engineer_id}/resume-attachment", status_code=status.HTTP_201_CREATED)
async def attach_engineer_resume(
    engineer_id: str,
    tenant_id: str = Depends(require_tenant),
    manager: BusinessClientManager = Depends(get_business_client_manager),
    attachments: AttachmentService = Depends(get_attachment_service),
):
    """Re-upload the engineer's stored resume as a mail attachment."""
    engineer = await EngineerService(manager).get_engineer_by_id(engineer_id, tenant_id)
    if not engineer:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="エンジニアが見つかりません")
    if not engineer.get("resume_url"):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="履歴書が登録されていません")

    info = await attachments.upload_resume_from_url(
        tenant_id, engineer_id, engineer.get("name") or "", engineer["resume_url"]
    )
    return {"data": jsonable_encoder(info)}


@app.patch("/engineers/{engineer_id}")
async def update_engineer(
    engineer_id: str,
    payload: dict[str, Any],
    company_type: str = Query(default="own"),
    manager: BusinessClientManager = Depends(get_business_client_manager),
    context: TenantContext = Depends(tenant_context),
):
    store = _engineers_store(company_type, manager, context)
    ok = await store.update(engineer_id, payload)
    return _respond(store, {"id": engineer_id, "updated": ok}, ok=ok)


@app.delete("/engineers/{engineer_id}")
async def delete_engineer(
    engineer_id: str,
    permanent: bool = Query(default=False),
    company_type: str = Query(default="own"),
    manager: BusinessClientManager = Depends(get_business_client_manager),
    context: TenantContext = Depends(tenant_context),
):
    store = _engineers_store(company_type, manager, context)
    if permanent:
        ok = await store.permanently_delete(engineer_id)
    else:
        ok = await store.delete(engineer_id)
    return _respond(store, {"id": engineer_id, "deleted": ok}, ok=ok)


@app.post("/engineers/batch-update")
async def batch_update_engineers(
    request: BatchUpdateRequest,
    company_type: str = Query(default="own"),
    manager: BusinessClientManager = Depends(get_business_client_manager),
    context: TenantContext = Depends(tenant_context),
):
    store = _engineers_store(company_type, manager, context)
    ok = await store.batch_update(request.ids, request.changes)
    return _respond(store, {"updated": len(request.ids) if ok else 0}, ok=ok)


# Projects
@app.get("/projects")
async def list_projects(
    manager: BusinessClientManager = Depends(get_business_client_manager),
    context: TenantContext = Depends(tenant_context),
):
    store = ProjectsStore(manager, context, Notifier())
    items = await store.fetch()
    return _respond(store, items, ok=store.failure is None)


@app.get("/projects/search")
async def search_projects(
    q: str | None = None,
    company_type: str | None = None,
    project_status: str | None = Query(default=None, alias="status"),
    skills: list[str] | None = Query(default=None),
    tenant_id: str = Depends(require_tenant),
    manager: BusinessClientManager = Depends(get_business_client_manager),
):
    rows = await ProjectService(manager).search_projects(tenant_id, q, company_type, project_status, skills)
    return {"data": jsonable_encoder(rows)}


@app.get("/projects/companies")
async def project_companies(
    tenant_id: str = Depends(require_tenant),
    manager: BusinessClientManager = Depends(get_business_client_manager),
):
    return {"data": await ProjectService(manager).get_company_list(tenant_id)}


@app.post("/projects")
async def create_project(
    payload: dict[str, Any],
    manager: BusinessClientManager = Depends(get_business_client_manager),
    context: TenantContext = Depends(tenant_context),
):
    store = ProjectsStore(manager, context, Notifier())
    created = await store.create(payload)
    return _respond(store, created, ok=created is not None, status_code=status.HTTP_201_CREATED)


@app.patch("/projects/{project_id}")
async def update_project(
    project_id: str,
    payload: dict[str, Any],
    manager: BusinessClientManager = Depends(get_business_client_manager),
    context: TenantContext = Depends(tenant_context),
):
    store = ProjectsStore(manager, context, Notifier())
    ok = await store.update(project_id, payload)
    return _respond(store, {"id": project_id, "updated": ok}, ok=ok)


@app.delete("/projects/{project_id}")
async def delete_project(
    project_id: str,
    manager: BusinessClientManager = Depends(get_business_client_manager),
    context: TenantContext = Depends(tenant_context),
):
    store = ProjectsStore(manager, context, Notifier())
    ok = await store.delete(project_id)
    return _respond(store, {"id": project_id, "deleted": ok}, ok=ok)


@app.post("/projects/{project_id}/archive")
async def archive_project(
    project_id: str,
    request: ArchiveRequest = ArchiveRequest(),
    manager: BusinessClientManager = Depends(get_business_client_manager),
    context: TenantContext = Depends(tenant_context),
):
    store = ProjectsStore(manager, context, Notifier())
    ok = await store.archive(project_id, request.reason)
    return _respond(store, {"id": project_id, "archived": ok}, ok=ok)


# Project archives
@app.get("/archives")
async def list_archives(
    manager: BusinessClientManager = Depends(get_business_client_manager),
    context: TenantContext = Depends(tenant_context),
):
    store = ProjectArchivesStore(manager, context, Notifier())
    items = await store.fetch()
    return _respond(store, items, ok=store.failure is None)


@app.post("/archives/{archive_id}/restore")
async def restore_archive(
    archive_id: str,
    manager: BusinessClientManager = Depends(get_business_client_manager),
    context: TenantContext = Depends(tenant_context),
):
    store = ProjectArchivesStore(manager, context, Notifier())
    ok = await store.restore(archive_id)
    return _respond(store, {"id": archive_id, "restored": ok}, ok=ok)


@app.delete("/archives/{archive_id}")
async def delete_archive(
    archive_id: str,
    manager: BusinessClientManager = Depends(get_business_client_manager),
    context: TenantContext = Depends(tenant_context),
):
    store = ProjectArchivesStore(manager, context, Notifier())
    ok = await store.delete_archive(archive_id)
    return _respond(store, {"id": archive_id, "deleted": ok}, ok=ok)


@app.post("/archives/batch-delete")
async def delete_archives(
    request: IdsRequest,
    manager: BusinessClientManager = Depends(get_business_client_manager),
    context: TenantContext = Depends(tenant_context),
):
    store = ProjectArchivesStore(manager, context, Notifier())
    ok = await store.delete_batch_archives(request.ids)
    return _respond(store, {"deleted": len(request.ids) if ok else 0}, ok=ok)


# E-mail templates
def _templates_store(
    manager: BusinessClientManager,
    context: TenantContext,
    category: str | None = None,
) -> EmailTemplatesStore:
    return EmailTemplatesStore(manager, context, category=category, notifier=Notifier())


@app.get("/templates")
async def list_templates(
    category: str | None = None,
    manager: BusinessClientManager = Depends(get_business_client_manager),
    context: TenantContext = Depends(tenant_context),
):
    store = _templates_store(manager, context, category)
    items = await store.refresh()
    return _respond(store, items, ok=store.error is None)


@app.get("/templates/categories")
async def template_categories(
    manager: BusinessClientManager = Depends(get_business_client_manager),
    context: TenantContext = Depends(tenant_context),
):
    store = _templates_store(manager, context)
    categories = await store.get_available_categories()
    return _respond(store, categories, ok=store.failure is None)


@app.get("/templates/search")
async def search_templates(
    q: str = "",
    category: str | None = None,
    manager: BusinessClientManager = Depends(get_business_client_manager),
    context: TenantContext = Depends(tenant_context),
):
    store = _templates_store(manager, context)
    items = await store.search(q, category)
    return _respond(store, items, ok=store.failure is None)


@app.get("/templates/default")
async def default_template(
    category: str,
    manager: BusinessClientManager = Depends(get_business_client_manager),
    context: TenantContext = Depends(tenant_context),
):
    store = _templates_store(manager, context)
    template = await store.get_default_template_by_category(category)
    return _respond(store, template, ok=template is not None)


@app.post("/templates/preview")
async def preview_template(request: PreviewRequest) -> dict:
    """Split text into literal and placeholder segments for highlighting."""
    return {"segments": [jsonable_encoder(s) for s in render_text_with_tags(request.text)]}


@app.post("/templates/builtin/{template_id}/apply")
async def apply_builtin_template(template_id: str, request: ApplyBuiltinTemplateRequest) -> dict:
    return apply_template(template_id, request.cases, request.engineers)


@app.get("/templates/{template_id}")
async def get_template(
    template_id: str,
    manager: BusinessClientManager = Depends(get_business_client_manager),
    context: TenantContext = Depends(tenant_context),
):
    store = _templates_store(manager, context)
    template = await store.get_template_by_id(template_id)
    return _respond(store, template, ok=template is not None)


@app.post("/templates")
async def create_template(
    payload: dict[str, Any],
    manager: BusinessClientManager = Depends(get_business_client_manager),
    context: TenantContext = Depends(tenant_context),
):
    store = _templates_store(manager, context)
    created = await store.create(payload)
    return _respond(store, created, ok=created is not None, status_code=status.HTTP_201_CREATED)


@app.patch("/templates/{template_id}")
async def update_template(
    template_id: str,
    payload: dict[str, Any],
    manager: BusinessClientManager = Depends(get_business_client_manager),
    context: TenantContext = Depends(tenant_context),
):
    store = _templates_store(manager, context)
    updated = await store.update(template_id, payload)
    return _respond(store, updated, ok=updated is not None)


@app.delete("/templates/{template_id}")
async def delete_template(
    template_id: str,
    manager: BusinessClientManager = Depends(get_business_client_manager),
    context: TenantContext = Depends(tenant_context),
):
    store = _templates_store(manager, context)
    ok = await store.delete(template_id)
    return _respond(store, {"id": template_id, "deleted": ok}, ok=ok)


@app.post("/templates/{template_id}/apply")
async def apply_tenant_template(
    template_id: str,
    request: ApplyTemplateRequest,
    manager: BusinessClientManager = Depends(get_business_client_manager),
    context: TenantContext = Depends(tenant_context),
):
    """Fill a tenant template for the given engineers and count the use."""
    store = _templates_store(manager, context)
    template = await store.get_template_by_id(template_id)
    if template is None:
        return _respond(store, None, ok=False)

    rendered = apply_template_with_engineers(template, request.engineers, request.additional_data)
    await store.increment_usage_count(template_id)
    return _respond(store, rendered, ok=True)


# Batch matching
def _result_dto(result: MatchingResultView) -> MatchingResultDTO:
    data = result.to_dict()
    data.pop("project_detail")
    data.pop("engineer_detail")
    data["age"] = str(data["age"])
    score = int(result.matching_rate.rstrip("%") or 0) / 100
    return MatchingResultDTO(matching_label=get_match_score_label(score), **data)


@app.post("/batch-matching/search", response_model=BatchMatchingResponse, response_model_by_alias=True)
async def batch_matching_search(
    request: BatchMatchingRequest,
    manager: BusinessClientManager = Depends(get_business_client_manager),
    context: TenantContext = Depends(tenant_context),
    matching_service: AIMatchingService = Depends(get_matching_service),
):
    """Run bulk matching and return one page of enriched results."""
    store = BatchMatchingStore(manager, context, matching_service, Notifier())
    store.case_affiliation = request.case_affiliation
    store.candidate_affiliation = request.candidate_affiliation
    store.case_start_date = request.case_start_date
    store.min_score = request.min_score

    await store.search()
    if not store.is_searched:
        return _respond(store, None, ok=False)

    page = store.set_page(request.page)
    response = store.api_response
    return BatchMatchingResponse(
        results=[_result_dto(r) for r in page],
        page=store.current_page,
        total_pages=store.total_pages,
        total_results=len(store.results),
        total_matches=response.total_matches,
        high_quality_matches=response.high_quality_matches,
        notifications=_notifications(store),
    )


# Bulk e-mail
@app.get("/bulk-email/senders")
async def bulk_email_senders(
    tenant_id: str = Depends(require_tenant),
    manager: BusinessClientManager = Depends(get_business_client_manager),
) -> dict:
    """One row per case contact across active projects."""
    projects = await ProjectService(manager).get_active_projects(tenant_id)
    rows = flatten_senders([mail_case_from_project(p) for p in projects])
    return {"data": [row.to_dict() for row in rows], "count": len(rows)}


@app.post("/bulk-email/send")
async def send_bulk_email(
    request: SendMailRequest,
    tenant_id: str = Depends(require_tenant),
    attachments: AttachmentService = Depends(get_attachment_service),
) -> dict:
    return await attachments.send_email_with_attachments(
        tenant_id,
        request.to,
        request.subject,
        request.body,
        request.attachment_ids,
        request.attachment_filenames,
        cc=request.cc,
        bcc=request.bcc,
        signature=request.signature,
    )


# Matching history
@app.get("/matching-history")
async def matching_history(
    tenant_id: str = Depends(require_tenant),
    manager: BusinessClientManager = Depends(get_business_client_manager),
) -> dict:
    rows = await MatchingHistoryService(manager).get_saved_matching_history(tenant_id)
    return {"data": jsonable_encoder(rows)}


@app.get("/matching-history/{match_id}")
async def matching_history_item(
    match_id: str,
    tenant_id: str = Depends(require_tenant),
    manager: BusinessClientManager = Depends(get_business_client_manager),
) -> dict:
    row = await MatchingHistoryService(manager).get_matching_history_by_id(match_id, tenant_id)
    if row is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Matching history {match_id} not found")
    return {"data": jsonable_encoder(row)}


@app.delete("/matching-history/{match_id}")
async def delete_matching_history(
    match_id: str,
    tenant_id: str = Depends(require_tenant),
    manager: BusinessClientManager = Depends(get_business_client_manager),
) -> dict:
    await MatchingHistoryService(manager).delete_matching_history(match_id, tenant_id)
    return {"id": match_id, "deleted": True}


# Resumes
@app.post("/resumes/parse")
async def parse_resume(
    file: UploadFile = File(..., description="Resume file"),
    validate_first: bool = Query(default=False),
    tenant_id: str = Depends(require_tenant),
    authorization: str | None = Header(default=None),
    parser: ResumeParserClient = Depends(get_resume_parser),
) -> dict:
    """Parse a resume into engineer fields via the resume parsing service."""
    if not file.filename:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Filename is required")

    access_token = authorization.removeprefix("Bearer ").strip() if authorization else None
    logger.info(f"Received resume upload: {file.filename}")
    try:
        content = await file.read()
        content_type = file.content_type or "application/octet-stream"
        if validate_first:
            await parser.validate(
                file.filename, content, content_type, tenant_id=tenant_id, access_token=access_token
            )
        parsed = await parser.parse(
            file.filename, content, content_type, tenant_id=tenant_id, access_token=access_token
        )
    finally:
        await file.close()

    return {"data": parsed.model_dump(), "filename": file.filename}
