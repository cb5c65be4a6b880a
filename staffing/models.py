"""Core SQLAlchemy models (2.x style) for the business tables.

Every table is partitioned by ``tenant_id``. String-list columns are
``text[]`` on PostgreSQL and JSON elsewhere.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import JSON, Boolean, Float, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import ARRAY
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

StringList = JSON().with_variant(ARRAY(String), "postgresql")


def new_id() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class Project(Base):
    """Client cases (案件)."""
    __tablename__ = "projects"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    tenant_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    client_company: Mapped[str | None] = mapped_column(String(255))
    partner_company: Mapped[str | None] = mapped_column(String(255))
    description: Mapped[str | None] = mapped_column(Text)
    detail_description: Mapped[str | None] = mapped_column(Text)
    status: Mapped[str | None] = mapped_column(String(50))
    priority: Mapped[str | None] = mapped_column(String(20), default="medium")
    manager_name: Mapped[str | None] = mapped_column(String(255))
    manager_email: Mapped[str | None] = mapped_column(String(255))
    skills: Mapped[list[str] | None] = mapped_column(StringList, default=list)
    experience: Mapped[str | None] = mapped_column(String(255))
    key_technologies: Mapped[str | None] = mapped_column(Text)
    location: Mapped[str | None] = mapped_column(String(255))
    budget: Mapped[str | None] = mapped_column(String(255))
    desired_budget: Mapped[str | None] = mapped_column(String(255))
    work_type: Mapped[str | None] = mapped_column(String(100))
    duration: Mapped[str | None] = mapped_column(String(100))
    start_date: Mapped[str | None] = mapped_column(String(50))
    application_deadline: Mapped[str | None] = mapped_column(String(50))
    japanese_level: Mapped[str | None] = mapped_column(String(50))
    processes: Mapped[list[str] | None] = mapped_column(StringList, default=list)
    interview_count: Mapped[str | None] = mapped_column(String(20))
    max_candidates: Mapped[int | None] = mapped_column(Integer)
    foreigner_accepted: Mapped[bool | None] = mapped_column(Boolean, default=False)
    freelancer_accepted: Mapped[bool | None] = mapped_column(Boolean, default=False)
    company_type: Mapped[str | None] = mapped_column(String(50))
    source: Mapped[str | None] = mapped_column(String(50))
    created_by: Mapped[str | None] = mapped_column(String(36))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    __table_args__ = (
        Index("ix_projects_tenant_active", "tenant_id", "is_active"),
        Index("ix_projects_created_at", "created_at"),
    )


class Engineer(Base):
    """Candidate engineers (人材)."""
    __tablename__ = "engineers"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    tenant_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255))
    phone: Mapped[str | None] = mapped_column(String(50))
    gender: Mapped[str | None] = mapped_column(String(20))
    age: Mapped[str | None] = mapped_column(String(20))
    nationality: Mapped[str | None] = mapped_column(String(100))
    nearest_station: Mapped[str | None] = mapped_column(String(255))
    education: Mapped[str | None] = mapped_column(String(255))
    arrival_year_japan: Mapped[str | None] = mapped_column(String(20))
    certifications: Mapped[list[str] | None] = mapped_column(StringList, default=list)
    skills: Mapped[list[str] | None] = mapped_column(StringList, default=list)
    technical_keywords: Mapped[list[str] | None] = mapped_column(StringList, default=list)
    experience: Mapped[str | None] = mapped_column(String(255))
    work_scope: Mapped[str | None] = mapped_column(Text)
    work_experience: Mapped[str | None] = mapped_column(Text)
    japanese_level: Mapped[str | None] = mapped_column(String(50))
    english_level: Mapped[str | None] = mapped_column(String(50))
    availability: Mapped[str | None] = mapped_column(String(100))
    current_status: Mapped[str | None] = mapped_column(String(50))
    company_type: Mapped[str | None] = mapped_column(String(50))
    company_name: Mapped[str | None] = mapped_column(String(255))
    manager_name: Mapped[str | None] = mapped_column(String(255))
    manager_email: Mapped[str | None] = mapped_column(String(255))
    self_promotion: Mapped[str | None] = mapped_column(Text)
    remarks: Mapped[str | None] = mapped_column(Text)
    recommendation: Mapped[str | None] = mapped_column(Text)
    resume_url: Mapped[str | None] = mapped_column(String(1024))
    resume_text: Mapped[str | None] = mapped_column(Text)
    resume_file_name: Mapped[str | None] = mapped_column(String(255))
    desired_rate: Mapped[int | None] = mapped_column(Integer)
    source: Mapped[str | None] = mapped_column(String(50))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    __table_args__ = (
        Index("ix_engineers_tenant_active", "tenant_id", "is_active"),
        Index("ix_engineers_tenant_company_type", "tenant_id", "company_type"),
    )


class ProjectEngineerMatch(Base):
    """Persisted AI match results between one project and one engineer."""
    __tablename__ = "project_engineer_matches"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    tenant_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    project_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    engineer_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    matching_history_id: Mapped[str | None] = mapped_column(String(36))
    match_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    confidence_score: Mapped[float | None] = mapped_column(Float)
    skill_match_score: Mapped[float | None] = mapped_column(Float)
    experience_match_score: Mapped[float | None] = mapped_column(Float)
    matched_skills: Mapped[list[str] | None] = mapped_column(StringList, default=list)
    missing_skills: Mapped[list[str] | None] = mapped_column(StringList, default=list)
    match_reasons: Mapped[list[str] | None] = mapped_column(StringList, default=list)
    concerns: Mapped[list[str] | None] = mapped_column(StringList, default=list)
    comment: Mapped[str | None] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="提案中")
    reviewed_by: Mapped[str | None] = mapped_column(String(36))
    reviewed_at: Mapped[datetime | None] = mapped_column()
    saved_at: Mapped[datetime | None] = mapped_column()
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    __table_args__ = (
        Index("ix_matches_tenant_status", "tenant_id", "status"),
    )


class EmailTemplate(Base):
    """Tenant e-mail templates with placeholder tokens."""
    __tablename__ = "email_templates"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    tenant_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    category: Mapped[str | None] = mapped_column(String(100), index=True)
    subject_template: Mapped[str] = mapped_column(Text, nullable=False)
    body_template_text: Mapped[str] = mapped_column(Text, nullable=False)
    body_template_html: Mapped[str | None] = mapped_column(Text)
    signature_template: Mapped[str | None] = mapped_column(Text)
    available_placeholders: Mapped[list[str] | None] = mapped_column(StringList, default=list)
    required_placeholders: Mapped[list[str] | None] = mapped_column(StringList, default=list)
    ai_summary_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    usage_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_used_at: Mapped[datetime | None] = mapped_column()
    created_by: Mapped[str | None] = mapped_column(String(36))
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )
    deleted_at: Mapped[datetime | None] = mapped_column()


class ProjectArchive(Base):
    """Snapshots of archived projects."""
    __tablename__ = "project_archives"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    tenant_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    original_project_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    project_data: Mapped[dict] = mapped_column(JSON, nullable=False)
    archive_reason: Mapped[str | None] = mapped_column(Text)
    archived_by: Mapped[str | None] = mapped_column(String(36))
    archived_at: Mapped[datetime] = mapped_column(default=datetime.utcnow, nullable=False)
