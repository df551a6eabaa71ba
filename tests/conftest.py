from __future__ import annotations

import copy
import fnmatch
import logging
from types import SimpleNamespace

import pytest


class FakeResponse:
    def __init__(self, data, count=None):
        self.data = data
        self.count = count


class FakeQuery:
    """Chainable stand-in for the postgrest query builder used by supabase-py."""

    def __init__(self, store: "FakeSupabase", table: str):
        self.store = store
        self.table_name = table
        self._op = "select"
        self._columns: list[str] | None = None
        self._count = None
        self._payload = None
        self._filters = []
        self._negate = False
        self._order = None
        self._range = None
        self._limit = None

    # -- operations --
    def select(self, columns: str, count=None):
        self._op = "select"
        self._columns = [c.strip() for c in columns.split(",")]
        self._count = count
        return self

    def update(self, fields: dict):
        self._op = "update"
        self._payload = dict(fields)
        return self

    # -- filters --
    @property
    def not_(self):
        self._negate = True
        return self

    def _add(self, predicate):
        if self._negate:
            inner = predicate
            predicate = lambda row: not inner(row)
            self._negate = False
        self._filters.append(predicate)
        return self

    def is_(self, column, value):
        assert value == "null"
        return self._add(lambda row: row.get(column) is None)

    def eq(self, column, value):
        return self._add(lambda row: row.get(column) == value)

    def or_(self, filters: str):
        clauses = []
        for clause in filters.split(","):
            column, op, pattern = clause.split(".", 2)
            assert op == "like"
            clauses.append((column, pattern))
        return self._add(
            lambda row: any(
                fnmatch.fnmatchcase(row.get(column) or "", pattern) for column, pattern in clauses
            )
        )

    # -- modifiers --
    def order(self, column, desc=False):
        self._order = (column, desc)
        return self

    def range(self, start, end):
        self._range = (start, end)
        return self

    def limit(self, n):
        self._limit = n
        return self

    def execute(self):
        self.store.executed.append((self.table_name, self._op))
        rows = self.store.tables.setdefault(self.table_name, [])
        matched = [row for row in rows if all(f(row) for f in self._filters)]

        if self._op == "update":
            if self.store.fail_updates:
                raise RuntimeError("update rejected")
            for row in matched:
                if row.get("id") in self.store.fail_update_ids:
                    raise RuntimeError(f"update rejected for {row['id']}")
            for row in matched:
                row.update(copy.deepcopy(self._payload))
                self.store.updates.append((row.get("id"), dict(self._payload)))
            return FakeResponse([dict(row) for row in matched])

        if self.store.fail_selects:
            raise RuntimeError("connection refused")

        if self._order:
            column, desc = self._order
            matched = sorted(
                matched,
                key=lambda row: (row.get(column) is None, row.get(column)),
                reverse=desc,
            )
        total = len(matched)
        if self._range:
            start, end = self._range
            matched = matched[start:end + 1]
        if self._limit is not None:
            matched = matched[: self._limit]

        if self._columns and self._columns != ["*"]:
            data = [{c: row.get(c) for c in self._columns} for row in matched]
        else:
            data = [dict(row) for row in matched]
        self.store.returned.append(len(data))
        return FakeResponse(data, count=total if self._count else None)


class FakeSupabase:
    def __init__(self, rows=None, table="latest_news"):
        self.tables = {table: [dict(r) for r in (rows or [])]}
        self.updates: list[tuple] = []
        self.executed: list[tuple] = []
        self.returned: list[int] = []
        self.fail_selects = False
        self.fail_updates = False
        self.fail_update_ids: set = set()

    def table(self, name):
        return FakeQuery(self, name)

    def rows(self, table="latest_news"):
        return self.tables[table]

    def row(self, article_id, table="latest_news"):
        return next(r for r in self.tables[table] if r["id"] == article_id)


class FakeEmbeddings:
    def __init__(self, owner: "FakeOpenAI"):
        self.owner = owner

    def create(self, model, input):
        self.owner.calls.append({"model": model, "input": input})
        if input in self.owner.fail_inputs or self.owner.error is not None:
            raise self.owner.error or RuntimeError("rate limit exceeded")
        if self.owner.response is not None:
            return self.owner.response
        return SimpleNamespace(
            data=[SimpleNamespace(embedding=list(self.owner.vector))],
            usage=SimpleNamespace(prompt_tokens=len(input.split()), total_tokens=len(input.split())),
        )


class FakeOpenAI:
    def __init__(self, vector=None):
        self.vector = vector if vector is not None else [0.01] * 1536
        self.calls: list[dict] = []
        self.fail_inputs: set[str] = set()
        self.error: Exception | None = None
        self.response = None
        self.embeddings = FakeEmbeddings(self)


@pytest.fixture
def fake_openai():
    return FakeOpenAI()


@pytest.fixture(autouse=True)
def _reset_job_logging():
    yield
    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, "_news_jobs", False):
            root.removeHandler(handler)


@pytest.fixture
def no_sleep():
    calls = []
    return calls, calls.append


@pytest.fixture
def make_store():
    return FakeSupabase
