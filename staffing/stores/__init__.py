"""Per-entity state containers: items, loading and error plus CRUD callbacks."""

from .base import Store, TenantContext, ValidationError, require_fields
from .batch_matching import BatchMatchingStore
from .email_templates import EmailTemplatesStore
from .engineers import EngineersStore
from .project_archives import ProjectArchivesStore
from .projects import ProjectsStore

__all__ = [
    "BatchMatchingStore",
    "EmailTemplatesStore",
    "EngineersStore",
    "ProjectArchivesStore",
    "ProjectsStore",
    "Store",
    "TenantContext",
    "ValidationError",
    "require_fields",
]
