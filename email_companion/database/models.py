import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, Enum as SQLAlchemyEnum, Integer, String, Text
from sqlalchemy.orm import declarative_base

from ..models import ErrorKind, PromptTemplate, TemplateCategory

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


class PromptTemplateRecord(Base):
    """Model for stored prompt templates"""
    __tablename__ = 'prompt_templates'

    id = Column(String(64), primary_key=True, default=_new_id)
    name = Column(String(100), nullable=False)
    description = Column(String(500), nullable=False, default='')
    template = Column(Text, nullable=False)
    category = Column(SQLAlchemyEnum(TemplateCategory), nullable=False, default=TemplateCategory.CUSTOM)
    is_favorite = Column(Boolean, nullable=False, default=False)
    usage_count = Column(Integer, nullable=False, default=0)
    is_builtin = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True))

    def to_template(self) -> PromptTemplate:
        return PromptTemplate(
            id=self.id,
            name=self.name,
            template=self.template,
            category=self.category,
            description=self.description or '',
            is_favorite=bool(self.is_favorite),
            usage_count=self.usage_count or 0,
            is_builtin=bool(self.is_builtin)
        )

    def __repr__(self):
        return f"<PromptTemplateRecord(id='{self.id}', name='{self.name}')>"


class PromptPreset(Base):
    """Model for named, ordered selections of templates"""
    __tablename__ = 'prompt_presets'

    id = Column(String(64), primary_key=True, default=_new_id)
    name = Column(String(100), nullable=False)
    template_ids = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    def __repr__(self):
        return f"<PromptPreset(id='{self.id}', name='{self.name}')>"


class PipelineRun(Base):
    """Model for tracking pipeline run history"""
    __tablename__ = 'pipeline_runs'

    id = Column(String(64), primary_key=True, default=_new_id)
    kind = Column(String(32), nullable=False)  # 'one-shot' or 'smart-shot'
    message_id = Column(String(500))
    success = Column(Boolean, nullable=False)
    state = Column(String(32), nullable=False)
    error_kind = Column(SQLAlchemyEnum(ErrorKind))
    error_message = Column(Text)
    used_templates = Column(JSON, nullable=False, default=list)
    attachment_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    def __repr__(self):
        return f"<PipelineRun(kind='{self.kind}', success={self.success}, state='{self.state}')>"
