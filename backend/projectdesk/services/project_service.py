"""
ProjectService — caller-side orchestration over RecordStore and BlobStore.

This is where the engine meets persistence:
  - new records get their defaults (schemas.*Create) before insert
  - project codes are suggested from a snapshot and re-suggested when the
    insert loses the numbering race (DuplicateProjectCodeError)
  - edits to list rows are optimistic: the caller's list is patched first,
    the store write follows, and on failure the authoritative list is
    re-fetched and returned instead of the local edit
  - KPIs and quote totals are computed by the pure engine modules
"""
import logging
from dataclasses import dataclass, field as dc_field
from datetime import date, datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from projectdesk.config import PROJECT_CODE_MAX_RETRIES, UPCOMING_TASKS_LIMIT
from projectdesk.models.orm_models import BomItem, Project, Quote, QuoteItem, Task, TimeEntry
from projectdesk.models.schemas import (
    BomItemCreate,
    BomItemPatch,
    ProjectCreate,
    ProjectPatch,
    QuoteCreate,
    QuoteItemCreate,
    QuoteItemPatch,
    QuotePatch,
    TaskCreate,
    TaskPatch,
    TimeEntryCreate,
    TimeEntryPatch,
)
from projectdesk.services.aggregation_engine import ProjectFinancials, field, summarize_project
from projectdesk.services.blob_store import BlobEntry, BlobStore
from projectdesk.services.project_codes import first_project_code, next_project_code
from projectdesk.services.quote_engine import QuoteTotals, compute_quote_totals, next_position, ordered_items
from projectdesk.services.record_store import DuplicateProjectCodeError, RecordStore, RecordStoreError
from projectdesk.services.report_engine import ReportEngine
from projectdesk.services.status_engine import partition_projects

logger = logging.getLogger("projectdesk-service")


@dataclass
class OptimisticResult:
    """Rows to display after an optimistic edit, plus the failure if it was rolled back."""
    items: List[Any]
    error: Optional[Exception] = None

    @property
    def reloaded(self) -> bool:
        return self.error is not None


@dataclass
class Dashboard:
    active: List[Any]
    archived: List[Any]
    upcoming_tasks: List[Any] = dc_field(default_factory=list)

    @property
    def counts(self) -> Dict[str, int]:
        return {"active": len(self.active), "archived": len(self.archived)}


@dataclass
class QuoteView:
    quote: Any
    items: List[Any]
    totals: QuoteTotals


def _as_utc(value: Any) -> Optional[datetime]:
    """Aware datetime from a datetime, date or ISO string; naive values are taken as UTC."""
    if isinstance(value, str):
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            value = datetime.fromisoformat(text)
        except ValueError:
            return None
    elif isinstance(value, date) and not isinstance(value, datetime):
        value = datetime.combine(value, datetime.min.time())
    if not isinstance(value, datetime):
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def is_overdue(task: Any, now: Optional[datetime] = None) -> bool:
    """Open task whose due time lies in the past. An unreadable due date is never overdue."""
    if field(task, "is_done"):
        return False
    due = _as_utc(field(task, "due_at"))
    if due is None:
        return False
    current = _as_utc(now) or datetime.now(timezone.utc)
    return due < current


def _row_values(row: Any) -> Dict[str, Any]:
    if isinstance(row, dict):
        return dict(row)
    table = getattr(row, "__table__", None)
    if table is not None:
        return {c.key: getattr(row, c.key) for c in table.columns}
    return dict(vars(row))


def _with_patch(row: Any, patch: Dict[str, Any]) -> Dict[str, Any]:
    values = _row_values(row)
    values.update(patch)
    return values


class ProjectService:

    def __init__(
        self,
        store: Optional[RecordStore] = None,
        blobs: Optional[BlobStore] = None,
        max_code_retries: int = PROJECT_CODE_MAX_RETRIES,
    ):
        self.store = store or RecordStore()
        self.blobs = blobs or BlobStore()
        self.max_code_retries = max(1, max_code_retries)

    # ── Optimistic edits ──────────────────────────────────────────────────────

    async def _optimistic(
        self,
        optimistic: List[Any],
        remote: Callable[[], Awaitable[Any]],
        reload: Callable[[], Awaitable[List[Any]]],
        settle: Callable[[Any], List[Any]],
        on_optimistic: Optional[Callable[[List[Any]], None]] = None,
    ) -> OptimisticResult:
        if on_optimistic is not None:
            on_optimistic(optimistic)
        try:
            result = await remote()
        except RecordStoreError as e:
            logger.warning("Optimistic edit rejected, reloading: %s", e)
            return OptimisticResult(items=await reload(), error=e)
        return OptimisticResult(items=settle(result))

    async def _patch_row(self, model, rows, row_id, patch_values, reload, on_optimistic=None):
        optimistic = [_with_patch(r, patch_values) if field(r, "id") == row_id else r for r in rows]
        return await self._optimistic(
            optimistic,
            lambda: self.store.update(model, row_id, patch_values),
            reload,
            lambda updated: [updated if field(r, "id") == row_id else r for r in rows],
            on_optimistic,
        )

    async def _remove_row(self, model, rows, row_id, reload, on_optimistic=None):
        remaining = [r for r in rows if field(r, "id") != row_id]
        return await self._optimistic(
            remaining,
            lambda: self.store.delete(model, row_id),
            reload,
            lambda _: remaining,
            on_optimistic,
        )

    # ── Projects ──────────────────────────────────────────────────────────────

    async def dashboard(self, upcoming_limit: int = UPCOMING_TASKS_LIMIT) -> Dashboard:
        projects = await self.store.list_projects()
        active, archived = partition_projects(projects)
        upcoming = await self.store.list_upcoming_tasks(upcoming_limit)
        return Dashboard(active=active, archived=archived, upcoming_tasks=upcoming)

    async def suggest_project_code(self, today: Optional[date] = None) -> str:
        """Next code for the current year; "{year}-001" when the codes cannot be read."""
        year = (today or date.today()).year
        try:
            codes = await self.store.list_project_codes(year)
        except RecordStoreError as e:
            logger.warning("Could not read %s project codes, using first code: %s", year, e)
            return first_project_code(year)
        return next_project_code(year, codes)

    async def create_project(self, payload: ProjectCreate, today: Optional[date] = None) -> Project:
        """
        Insert a project. Without an explicit code one is suggested; when a
        concurrent caller took it first the code is recomputed from a fresh
        snapshot, up to ``max_code_retries`` attempts.
        """
        values = payload.model_dump()
        if values.get("code"):
            return await self.store.insert(Project, values)

        last_error: Optional[DuplicateProjectCodeError] = None
        for attempt in range(1, self.max_code_retries + 1):
            values["code"] = await self.suggest_project_code(today)
            try:
                project = await self.store.insert(Project, values)
            except DuplicateProjectCodeError as e:
                logger.info("Code %s taken (attempt %d), recomputing", values["code"], attempt)
                last_error = e
                continue
            logger.info("Created project %s", project.code, extra={"project_id": project.id})
            return project
        raise last_error

    async def update_project(self, project_id: str, patch: ProjectPatch) -> Project:
        return await self.store.update(Project, project_id, patch.model_dump(exclude_unset=True))

    async def delete_project(self, project_id: str) -> bool:
        return await self.store.delete(Project, project_id)

    async def project_financials(self, project_id: str) -> ProjectFinancials:
        project = await self.store.get_project(project_id)
        bom = await self.store.list_bom_items(project_id)
        entries = await self.store.list_time_entries(project_id)
        return summarize_project(project, bom, entries)

    # ── Bill of materials ─────────────────────────────────────────────────────

    async def add_bom_item(self, project_id: str, payload: Optional[BomItemCreate] = None) -> BomItem:
        values = (payload or BomItemCreate()).model_dump()
        return await self.store.insert(BomItem, {"project_id": project_id, **values})

    async def patch_bom_item(self, project_id, rows, item_id, patch: BomItemPatch, on_optimistic=None):
        return await self._patch_row(
            BomItem, rows, item_id, patch.model_dump(exclude_unset=True),
            lambda: self.store.list_bom_items(project_id), on_optimistic,
        )

    async def remove_bom_item(self, project_id, rows, item_id, on_optimistic=None):
        return await self._remove_row(
            BomItem, rows, item_id, lambda: self.store.list_bom_items(project_id), on_optimistic,
        )

    # ── Time tracking ─────────────────────────────────────────────────────────

    async def add_time_entry(self, project: Any, payload: Optional[TimeEntryCreate] = None) -> TimeEntry:
        """New booking for today; an empty rate is filled from the project's rate."""
        values = (payload or TimeEntryCreate()).model_dump()
        if values.get("hourly_rate") is None:
            values["hourly_rate"] = field(project, "hourly_rate")
        return await self.store.insert(TimeEntry, {"project_id": field(project, "id"), **values})

    async def patch_time_entry(self, project_id, rows, entry_id, patch: TimeEntryPatch, on_optimistic=None):
        return await self._patch_row(
            TimeEntry, rows, entry_id, patch.model_dump(exclude_unset=True),
            lambda: self.store.list_time_entries(project_id), on_optimistic,
        )

    async def remove_time_entry(self, project_id, rows, entry_id, on_optimistic=None):
        return await self._remove_row(
            TimeEntry, rows, entry_id, lambda: self.store.list_time_entries(project_id), on_optimistic,
        )

    # ── Tasks ─────────────────────────────────────────────────────────────────

    async def add_task(self, project_id: str, payload: Optional[TaskCreate] = None) -> Task:
        values = (payload or TaskCreate()).model_dump()
        return await self.store.insert(Task, {"project_id": project_id, **values})

    async def patch_task(self, project_id, rows, task_id, patch: TaskPatch, on_optimistic=None):
        return await self._patch_row(
            Task, rows, task_id, patch.model_dump(exclude_unset=True),
            lambda: self.store.list_tasks(project_id), on_optimistic,
        )

    async def remove_task(self, project_id, rows, task_id, on_optimistic=None):
        return await self._remove_row(
            Task, rows, task_id, lambda: self.store.list_tasks(project_id), on_optimistic,
        )

    async def complete_upcoming_task(self, rows, task_id, limit: int = UPCOMING_TASKS_LIMIT, on_optimistic=None):
        """Mark a task from the dashboard widget done."""
        return await self._patch_row(
            Task, rows, task_id, {"is_done": True},
            lambda: self.store.list_upcoming_tasks(limit), on_optimistic,
        )

    # ── Quotes ────────────────────────────────────────────────────────────────

    async def get_or_create_quote(self, project_id: str) -> Quote:
        """A project has at most one quote; the first access creates it."""
        quote = await self.store.find_quote(project_id)
        if quote is not None:
            return quote
        values = QuoteCreate().model_dump()
        logger.info("Creating quote", extra={"project_id": project_id})
        return await self.store.insert(Quote, {"project_id": project_id, **values})

    async def load_quote(self, project_id: str) -> QuoteView:
        quote = await self.get_or_create_quote(project_id)
        items = ordered_items(await self.store.list_quote_items(quote.id))
        return QuoteView(quote=quote, items=items, totals=compute_quote_totals(items, quote.tax_rate))

    async def update_quote(self, quote_id: str, patch: QuotePatch) -> Quote:
        return await self.store.update(Quote, quote_id, patch.model_dump(exclude_unset=True))

    async def add_quote_item(self, quote_id: str, rows: List[Any], payload: Optional[QuoteItemCreate] = None) -> QuoteItem:
        values = (payload or QuoteItemCreate()).model_dump()
        if values.get("pos") is None:
            values["pos"] = next_position(rows)
        return await self.store.insert(QuoteItem, {"quote_id": quote_id, **values})

    async def patch_quote_item(self, quote_id, rows, item_id, patch: QuoteItemPatch, on_optimistic=None):
        return await self._patch_row(
            QuoteItem, rows, item_id, patch.model_dump(exclude_unset=True),
            lambda: self.store.list_quote_items(quote_id), on_optimistic,
        )

    async def remove_quote_item(self, quote_id, rows, item_id, on_optimistic=None):
        return await self._remove_row(
            QuoteItem, rows, item_id, lambda: self.store.list_quote_items(quote_id), on_optimistic,
        )

    async def sync_quote_total(self, project_id: str) -> Project:
        """Copy the quote's net subtotal into the project's quote_total_net."""
        view = await self.load_quote(project_id)
        return await self.store.update(
            Project, project_id, {"quote_total_net": view.totals.subtotal_net}
        )

    async def render_quote(self, project_id: str, report_engine=None, out_path: Optional[str] = None) -> bytes:
        engine = report_engine or ReportEngine()
        project = await self.store.get_project(project_id)
        view = await self.load_quote(project_id)
        return engine.render_quote_pdf(project, view.quote, view.items, out_path=out_path)

    # ── Files & photos ────────────────────────────────────────────────────────

    def upload_file(self, bucket: str, project_id: str, filename: str, data: bytes) -> str:
        return self.blobs.upload(bucket, project_id, filename, data)

    def list_files(self, bucket: str, project_id: str) -> List[BlobEntry]:
        return self.blobs.list(bucket, project_id)

    def remove_file(self, bucket: str, path: str) -> None:
        self.blobs.remove(bucket, path)

    def file_url(self, bucket: str, path: str) -> str:
        return self.blobs.url_for(bucket, path)
