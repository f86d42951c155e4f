"""
RecordStore — typed row access against the managed Postgres database.

Every public call opens its own short session (commit on success, rollback
on error) and returns detached ORM rows; sessions never outlive a call.
Driver failures surface as RecordStoreError subclasses:

  DuplicateProjectCodeError  insert/update hit uq_projects_code
  RecordNotFoundError        update of an id that does not exist
  RecordStoreError           anything else SQLAlchemy raised
"""
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional, Type

from sqlalchemy import delete as sa_delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from projectdesk.db import AsyncSessionLocal, Base, session_scope
from projectdesk.models.orm_models import BomItem, Project, Quote, QuoteItem, Task, TimeEntry
from projectdesk.services.perf_monitor import timed_async
from projectdesk.services.project_codes import code_prefix

logger = logging.getLogger("projectdesk-store")

PROJECT_CODE_CONSTRAINT = "uq_projects_code"


class RecordStoreError(Exception):
    """Persistence failure reported by the database or driver."""


class RecordNotFoundError(RecordStoreError):
    pass


class DuplicateProjectCodeError(RecordStoreError):
    """Another project already holds this code (lost the numbering race)."""

    def __init__(self, code: Optional[str]):
        super().__init__(f"Project code already in use: {code}")
        self.code = code


class RecordStore:

    def __init__(self, session_factory=None):
        self._factory = session_factory or AsyncSessionLocal

    @asynccontextmanager
    async def _session(self, action: str, code: Optional[str] = None):
        try:
            async with session_scope(self._factory) as session:
                yield session
        except IntegrityError as e:
            if PROJECT_CODE_CONSTRAINT in str(e):
                logger.warning("Project code conflict on %s: %s", action, code)
                raise DuplicateProjectCodeError(code) from e
            logger.error("Integrity error during %s: %s", action, e)
            raise RecordStoreError(f"{action} failed: {e}") from e
        except SQLAlchemyError as e:
            logger.error("Database error during %s: %s", action, e)
            raise RecordStoreError(f"{action} failed: {e}") from e

    async def _select(self, action: str, stmt) -> List[Any]:
        async with self._session(action) as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    # ── Projects ──────────────────────────────────────────────────────────────

    @timed_async
    async def list_projects(self) -> List[Project]:
        """All projects, newest first."""
        return await self._select("list_projects", select(Project).order_by(Project.created_at.desc()))

    @timed_async
    async def get_project(self, project_id: str) -> Project:
        async with self._session("get_project") as session:
            project = await session.get(Project, project_id)
            if project is None:
                raise RecordNotFoundError(f"Project {project_id} not found")
            return project

    @timed_async
    async def list_project_codes(self, year: int) -> List[str]:
        """
        Every code issued in *year* (case-insensitive prefix match).

        Not limited: the next code is max + 1 over this snapshot, so a partial
        scan would keep proposing a taken code once the year passes any cap.
        """
        stmt = select(Project.code).where(Project.code.ilike(f"{code_prefix(year)}%"))
        return await self._select("list_project_codes", stmt)

    # ── Child collections ─────────────────────────────────────────────────────

    @timed_async
    async def list_bom_items(self, project_id: str) -> List[BomItem]:
        stmt = select(BomItem).where(BomItem.project_id == project_id).order_by(BomItem.created_at.asc())
        return await self._select("list_bom_items", stmt)

    @timed_async
    async def list_time_entries(self, project_id: str) -> List[TimeEntry]:
        stmt = (
            select(TimeEntry)
            .where(TimeEntry.project_id == project_id)
            .order_by(TimeEntry.work_date.desc(), TimeEntry.created_at.desc())
        )
        return await self._select("list_time_entries", stmt)

    @timed_async
    async def list_tasks(self, project_id: str) -> List[Task]:
        """Open tasks first, then by due date, newest first within a date."""
        stmt = (
            select(Task)
            .where(Task.project_id == project_id)
            .order_by(Task.is_done.asc(), Task.due_at.asc(), Task.created_at.desc())
        )
        return await self._select("list_tasks", stmt)

    @timed_async
    async def list_upcoming_tasks(self, limit: int) -> List[Task]:
        """Open tasks across all projects, soonest due first."""
        stmt = select(Task).where(Task.is_done.is_(False)).order_by(Task.due_at.asc()).limit(limit)
        return await self._select("list_upcoming_tasks", stmt)

    @timed_async
    async def find_quote(self, project_id: str) -> Optional[Quote]:
        async with self._session("find_quote") as session:
            result = await session.execute(select(Quote).where(Quote.project_id == project_id))
            return result.scalar_one_or_none()

    @timed_async
    async def list_quote_items(self, quote_id: str) -> List[QuoteItem]:
        stmt = (
            select(QuoteItem)
            .where(QuoteItem.quote_id == quote_id)
            .order_by(QuoteItem.pos.asc(), QuoteItem.created_at.asc())
        )
        return await self._select("list_quote_items", stmt)

    # ── Generic mutations ─────────────────────────────────────────────────────

    @timed_async
    async def insert(self, model: Type[Base], values: Dict[str, Any]) -> Any:
        """Insert one row and return it with server defaults loaded."""
        async with self._session(f"insert {model.__tablename__}", values.get("code")) as session:
            row = model(**values)
            session.add(row)
            await session.flush()
            await session.refresh(row)
            return row

    @timed_async
    async def update(self, model: Type[Base], record_id: str, patch: Dict[str, Any]) -> Any:
        """Apply a partial patch and return the stored row."""
        async with self._session(f"update {model.__tablename__}", patch.get("code")) as session:
            row = await session.get(model, record_id)
            if row is None:
                raise RecordNotFoundError(f"{model.__tablename__} {record_id} not found")
            for key, value in patch.items():
                setattr(row, key, value)
            await session.flush()
            await session.refresh(row)
            return row

    @timed_async
    async def delete(self, model: Type[Base], record_id: str) -> bool:
        """Delete by id. Deleting a missing row is not an error; returns whether one existed."""
        async with self._session(f"delete {model.__tablename__}") as session:
            result = await session.execute(sa_delete(model).where(model.id == record_id))
            return bool(result.rowcount)

