"""
conftest.py — Shared pytest fixtures for the ProjectDesk backend test suite.

No database is required. Service-level tests run against FakeRecordStore, an
in-memory stand-in with the same async interface as RecordStore, including
the project-code uniqueness constraint and switchable failures.

Import-path bootstrapping:
    The ``backend/`` directory is inserted into sys.path so that all
    ``projectdesk.*`` imports resolve correctly regardless of where pytest is
    invoked.
"""

import sys
import os
import asyncio
import itertools
import uuid
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

# ---------------------------------------------------------------------------
# Ensure ``backend/`` is on the import path before any projectdesk imports.
# ---------------------------------------------------------------------------
_BACKEND_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _BACKEND_DIR not in sys.path:
    sys.path.insert(0, _BACKEND_DIR)

from projectdesk.services.record_store import (  # noqa: E402
    DuplicateProjectCodeError,
    RecordNotFoundError,
    RecordStoreError,
)


_BASE_TIME = datetime(2025, 3, 1, 8, 0, tzinfo=timezone.utc)


class FakeRecordStore:
    """
    In-memory RecordStore double.

    Rows are SimpleNamespace objects keyed by table name. ``fail`` holds
    method names that raise RecordStoreError on their next calls, e.g.
    ``store.fail.add("update")``.
    """

    def __init__(self):
        self.tables = {}
        self.fail = set()
        self.calls = []
        self._clock = itertools.count()

    def _rows(self, table):
        return self.tables.setdefault(table, [])

    def _check(self, name):
        self.calls.append(name)
        if name in self.fail:
            raise RecordStoreError(f"{name} failed (injected)")

    def _copy(self, row):
        return SimpleNamespace(**vars(row))

    # Projects
    async def list_projects(self):
        self._check("list_projects")
        rows = sorted(self._rows("projects"), key=lambda r: r.created_at, reverse=True)
        return [self._copy(r) for r in rows]

    async def get_project(self, project_id):
        self._check("get_project")
        for row in self._rows("projects"):
            if row.id == project_id:
                return self._copy(row)
        raise RecordNotFoundError(f"Project {project_id} not found")

    async def list_project_codes(self, year):
        self._check("list_project_codes")
        codes = [r.code for r in self._rows("projects") if str(r.code).lower().startswith(f"{year}-")]
        # Yield after taking the snapshot so concurrent callers can interleave
        await asyncio.sleep(0)
        return codes

    # Children
    async def _children(self, table, key, value, sort_key=None, reverse=False):
        rows = [self._copy(r) for r in self._rows(table) if getattr(r, key) == value]
        if sort_key is not None:
            rows.sort(key=sort_key, reverse=reverse)
        return rows

    async def list_bom_items(self, project_id):
        self._check("list_bom_items")
        return await self._children("bom_items", "project_id", project_id, lambda r: r.created_at)

    async def list_time_entries(self, project_id):
        self._check("list_time_entries")
        return await self._children(
            "time_entries", "project_id", project_id,
            lambda r: (r.work_date, r.created_at), reverse=True,
        )

    async def list_tasks(self, project_id):
        self._check("list_tasks")
        return await self._children("tasks", "project_id", project_id, lambda r: r.created_at)

    async def list_upcoming_tasks(self, limit):
        self._check("list_upcoming_tasks")
        rows = [self._copy(r) for r in self._rows("tasks") if not r.is_done]
        rows.sort(key=lambda r: (r.due_at is None, r.due_at or _BASE_TIME))
        return rows[:limit]

    async def find_quote(self, project_id):
        self._check("find_quote")
        for row in self._rows("quotes"):
            if row.project_id == project_id:
                return self._copy(row)
        return None

    async def list_quote_items(self, quote_id):
        self._check("list_quote_items")
        return await self._children(
            "quote_items", "quote_id", quote_id,
            lambda r: (r.pos is None, r.pos or 0, r.created_at),
        )

    # Mutations
    async def insert(self, model, values):
        table = model.__tablename__
        self._check("insert")
        if table == "projects" and any(r.code == values.get("code") for r in self._rows(table)):
            raise DuplicateProjectCodeError(values.get("code"))
        row = SimpleNamespace(
            id=str(uuid.uuid4()),
            created_at=_BASE_TIME + timedelta(seconds=next(self._clock)),
            **values,
        )
        self._rows(table).append(row)
        return self._copy(row)

    async def update(self, model, record_id, patch):
        self._check("update")
        for row in self._rows(model.__tablename__):
            if row.id == record_id:
                for key, value in patch.items():
                    setattr(row, key, value)
                return self._copy(row)
        raise RecordNotFoundError(f"{model.__tablename__} {record_id} not found")

    async def delete(self, model, record_id):
        self._check("delete")
        rows = self._rows(model.__tablename__)
        before = len(rows)
        rows[:] = [r for r in rows if r.id != record_id]
        return len(rows) != before


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def fake_store():
    return FakeRecordStore()


@pytest.fixture
def blob_store(tmp_path):
    """BlobStore rooted in a temp dir with one private and one public bucket."""
    from projectdesk.services.blob_store import BlobStore
    return BlobStore(
        root=str(tmp_path / "blobs"),
        public_base_url="https://files.example.test/storage/",
        signing_key="test-signing-key",
        buckets={"files": False, "photos": True},
    )


@pytest.fixture
def service(fake_store, blob_store):
    from projectdesk.services.project_service import ProjectService
    return ProjectService(store=fake_store, blobs=blob_store, max_code_retries=3)


@pytest.fixture
def run():
    """Drive a coroutine to completion from a synchronous test."""
    return asyncio.run
