"""Data services: one method per table filter chain."""

from .attachment_service import AttachmentError, AttachmentService
from .config_service import ConfigService, ConfigServiceError
from .email_template_service import EmailTemplateError, EmailTemplateService
from .engineer_service import EngineerService, EngineerServiceError
from .matching_history_service import MatchingHistoryError, MatchingHistoryService
from .project_service import ProjectService, ProjectServiceError

__all__ = [
    "AttachmentError",
    "AttachmentService",
    "ConfigService",
    "ConfigServiceError",
    "EmailTemplateError",
    "EmailTemplateService",
    "EngineerService",
    "EngineerServiceError",
    "MatchingHistoryError",
    "MatchingHistoryService",
    "ProjectService",
    "ProjectServiceError",
]
