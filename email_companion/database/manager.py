import json
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ..config import config
from ..logger import get_logger
from ..models import PipelineResult, PromptTemplate, TemplateCategory
from ..prompting.defaults import BUILTIN_TEMPLATES, CORE_TEMPLATE_IDS
from .models import Base, PipelineRun, PromptPreset, PromptTemplateRecord

logger = get_logger(__name__)

MAX_NAME_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 500
MAX_TEMPLATE_LENGTH = 5000


class TemplateStoreError(Exception):
    """Raised for invalid template or preset operations."""
    pass


def _clip(value: Optional[str], limit: int) -> str:
    return (value or '')[:limit]


def _category(value) -> TemplateCategory:
    try:
        return TemplateCategory(str(value))
    except ValueError:
        return TemplateCategory.CUSTOM


class DatabaseManager:
    def __init__(self, database_url: Optional[str] = None):
        """Initialize database connection and session factory

        Args:
            database_url: Optional SQLAlchemy URL to override config
        """
        url = make_url(database_url or config.db.url)
        if url.get_backend_name() == 'sqlite' and url.database:
            Path(url.database).expanduser().parent.mkdir(parents=True, exist_ok=True)

        self.engine = create_engine(url)
        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)
        self.create_tables()

    def create_tables(self) -> None:
        """Create database tables if they don't exist and seed built-in templates"""
        try:
            Base.metadata.create_all(self.engine)
            self.seed_builtin_templates()
        except SQLAlchemyError as e:
            logger.error(f"Error creating tables: {e}")
            raise

    @contextmanager
    def get_session(self) -> Session:
        """Get a database session with automatic cleanup"""
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def seed_builtin_templates(self) -> int:
        """Insert built-in templates on first use and restore missing core ones.

        Returns:
            Number of templates inserted
        """
        with self.get_session() as session:
            existing_ids = {row[0] for row in session.query(PromptTemplateRecord.id).all()}
            if existing_ids:
                missing = [t for t in BUILTIN_TEMPLATES if t.id in CORE_TEMPLATE_IDS and t.id not in existing_ids]
            else:
                missing = list(BUILTIN_TEMPLATES)

            for template in missing:
                session.add(PromptTemplateRecord(
                    id=template.id,
                    name=template.name,
                    description=template.description,
                    template=template.template,
                    category=template.category,
                    is_favorite=template.is_favorite,
                    is_builtin=True
                ))
                logger.info(f"Added missing built-in template {template.id}")
            return len(missing)

    def list_templates(self) -> List[PromptTemplate]:
        with self.get_session() as session:
            records = session.query(PromptTemplateRecord)\
                .order_by(PromptTemplateRecord.is_builtin.desc(), PromptTemplateRecord.created_at)\
                .all()
            return [record.to_template() for record in records]

    def get_templates(self, template_ids: Sequence[str]) -> List[PromptTemplate]:
        """Fetch templates in the caller's order, skipping unknown ids"""
        if not template_ids:
            return []
        with self.get_session() as session:
            records = session.query(PromptTemplateRecord)\
                .filter(PromptTemplateRecord.id.in_(list(template_ids)))\
                .all()
            by_id = {record.id: record.to_template() for record in records}

        missing = [tid for tid in template_ids if tid not in by_id]
        if missing:
            logger.warning(f"Ignoring unknown template ids: {missing}")
        return [by_id[tid] for tid in template_ids if tid in by_id]

    def add_template(
        self,
        name: str,
        template: str,
        category: str = TemplateCategory.CUSTOM.value,
        description: str = '',
        is_favorite: bool = False,
    ) -> PromptTemplate:
        """Store a new user template

        Raises:
            TemplateStoreError: If name or template is empty
        """
        if not name or not name.strip() or not template or not template.strip():
            raise TemplateStoreError('Name and template are required')

        record = PromptTemplateRecord(
            name=_clip(name, MAX_NAME_LENGTH),
            description=_clip(description, MAX_DESCRIPTION_LENGTH),
            template=_clip(template, MAX_TEMPLATE_LENGTH),
            category=_category(category),
            is_favorite=bool(is_favorite),
            usage_count=0,
            is_builtin=False
        )
        with self.get_session() as session:
            session.add(record)
            session.flush()
            logger.info(f"Added template {record.id} ({record.name})")
            return record.to_template()

    def update_template(self, template_id: str, **changes) -> PromptTemplate:
        """Apply edits to a template

        Raises:
            TemplateStoreError: If the template does not exist
        """
        with self.get_session() as session:
            record = session.get(PromptTemplateRecord, template_id)
            if record is None:
                raise TemplateStoreError('Prompt not found')

            if changes.get('name'):
                record.name = _clip(changes['name'], MAX_NAME_LENGTH)
            if changes.get('description') is not None:
                record.description = _clip(changes['description'], MAX_DESCRIPTION_LENGTH)
            if changes.get('template'):
                record.template = _clip(changes['template'], MAX_TEMPLATE_LENGTH)
            if changes.get('category'):
                record.category = _category(changes['category'])
            if changes.get('is_favorite') is not None:
                record.is_favorite = bool(changes['is_favorite'])
            record.updated_at = datetime.now(timezone.utc)
            return record.to_template()

    def delete_template(self, template_id: str) -> None:
        """Delete a user template

        Raises:
            TemplateStoreError: If the template is missing or built-in
        """
        with self.get_session() as session:
            record = session.get(PromptTemplateRecord, template_id)
            if record is None:
                raise TemplateStoreError('Prompt not found')
            if record.is_builtin:
                raise TemplateStoreError('Cannot delete default prompts')
            session.delete(record)
            logger.info(f"Deleted template {template_id}")

    def increment_usage(self, template_ids: Iterable[str]) -> None:
        ids = list(template_ids)
        if not ids:
            return
        with self.get_session() as session:
            for record in session.query(PromptTemplateRecord).filter(PromptTemplateRecord.id.in_(ids)).all():
                record.usage_count = (record.usage_count or 0) + ids.count(record.id)

    def export_templates(self) -> str:
        """Serialize user templates to JSON"""
        templates = [t for t in self.list_templates() if not t.is_builtin]
        return json.dumps([
            {
                'name': t.name,
                'description': t.description,
                'template': t.template,
                'category': t.category.value,
                'isFavorite': t.is_favorite,
            }
            for t in templates
        ], indent=2)

    def import_templates(self, json_data: str) -> int:
        """Add templates from an export, returning how many were imported

        Raises:
            TemplateStoreError: If the payload is not a JSON list
        """
        try:
            items = json.loads(json_data)
        except (TypeError, ValueError) as e:
            raise TemplateStoreError(f"Invalid import data: {e}") from e
        if not isinstance(items, list):
            raise TemplateStoreError('Invalid import data: expected a list of prompts')

        imported = 0
        for item in items:
            if not isinstance(item, dict) or not item.get('name') or not item.get('template'):
                continue
            self.add_template(
                name=item['name'],
                template=item['template'],
                category=item.get('category', TemplateCategory.CUSTOM.value),
                description=item.get('description', ''),
                is_favorite=item.get('isFavorite', False)
            )
            imported += 1
        logger.info(f"Imported {imported} templates")
        return imported

    def save_preset(self, name: str, template_ids: Sequence[str]) -> str:
        if not name or not name.strip() or not template_ids:
            raise TemplateStoreError('Preset name and at least one prompt are required')
        preset = PromptPreset(name=_clip(name, MAX_NAME_LENGTH), template_ids=list(template_ids))
        with self.get_session() as session:
            session.add(preset)
            session.flush()
            return preset.id

    def list_presets(self) -> List[dict]:
        with self.get_session() as session:
            presets = session.query(PromptPreset).order_by(PromptPreset.created_at).all()
            return [{'id': p.id, 'name': p.name, 'template_ids': list(p.template_ids)} for p in presets]

    def delete_preset(self, preset_id: str) -> None:
        with self.get_session() as session:
            preset = session.get(PromptPreset, preset_id)
            if preset is None:
                raise TemplateStoreError('Preset not found')
            session.delete(preset)

    def record_run(self, kind: str, result: PipelineResult, message_id: Optional[str] = None) -> None:
        """Add a record to pipeline run history"""
        with self.get_session() as session:
            session.add(PipelineRun(
                kind=kind,
                message_id=message_id,
                success=result.success,
                state=result.state.value,
                error_kind=result.error_kind,
                error_message=result.error,
                used_templates=list(result.used_templates),
                attachment_count=len(result.attachment_summaries)
            ))

    def get_run_history(self, limit: int = 50) -> List[PipelineRun]:
        with self.get_session() as session:
            runs = session.query(PipelineRun)\
                .order_by(PipelineRun.created_at.desc())\
                .limit(limit)\
                .all()
            for run in runs:
                session.expunge(run)
            return runs
