from __future__ import annotations

from contextlib import contextmanager, nullcontext
from datetime import datetime, timezone
import logging
from pathlib import Path
import sqlite3
import threading
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence
from uuid import uuid4


logger = logging.getLogger(__name__)

Filters = Mapping[str, Any]


class RowStoreError(Exception):
    pass


# Column types per table. BOOLEAN columns are stored as 0/1 where the
# backend has no native bool.
SCHEMA: Dict[str, Dict[str, str]] = {
    "profiles": {
        "id": "TEXT",
        "full_name": "TEXT",
        "avatar_url": "TEXT",
        "is_anonymous": "BOOLEAN",
        "is_participating": "BOOLEAN",
        "focus_minutes": "INTEGER",
        "leaderboard_privacy": "TEXT",
        "university_id": "TEXT",
        "program_id": "TEXT",
        "current_term_label": "TEXT",
        "created_at": "TEXT",
    },
    "terms": {
        "id": "TEXT",
        "user_id": "TEXT",
        "label": "TEXT",
        "season": "TEXT",
        "start_date": "TEXT",
        "end_date": "TEXT",
        "is_current": "BOOLEAN",
        "created_at": "TEXT",
    },
    "courses": {
        "id": "TEXT",
        "user_id": "TEXT",
        "term_id": "TEXT",
        "course_code": "TEXT",
        "course_name": "TEXT",
        "color": "TEXT",
        "credits": "REAL",
        "squad_course_id": "TEXT",
        "created_at": "TEXT",
    },
    "assessments": {
        "id": "TEXT",
        "user_id": "TEXT",
        "course_id": "TEXT",
        "name": "TEXT",
        "type": "TEXT",
        "weight": "REAL",
        "total_marks": "REAL",
        "due_date": "TEXT",
        "score": "REAL",
        "is_completed": "BOOLEAN",
        "group_tag": "TEXT",
        "squad_assessment_id": "TEXT",
        "created_at": "TEXT",
    },
    "schedule_items": {
        "id": "TEXT",
        "user_id": "TEXT",
        "course_id": "TEXT",
        "day": "TEXT",
        "start_time": "TEXT",
        "end_time": "TEXT",
        "location": "TEXT",
        "type": "TEXT",
        "created_at": "TEXT",
    },
    "task_lists": {
        "id": "TEXT",
        "user_id": "TEXT",
        "name": "TEXT",
        "color_hex": "TEXT",
        "created_at": "TEXT",
    },
    "tasks": {
        "id": "TEXT",
        "user_id": "TEXT",
        "list_id": "TEXT",
        "title": "TEXT",
        "description": "TEXT",
        "notes": "TEXT",
        "due_date": "TEXT",
        "priority": "TEXT",
        "course_id": "TEXT",
        "is_completed": "BOOLEAN",
        "position": "INTEGER",
        "created_at": "TEXT",
    },
    "personal_tasks": {
        "id": "TEXT",
        "user_id": "TEXT",
        "title": "TEXT",
        "description": "TEXT",
        "due_date": "TEXT",
        "type": "TEXT",
        "course_id": "TEXT",
        "is_completed": "BOOLEAN",
        "created_at": "TEXT",
    },
    "interviews": {
        "id": "TEXT",
        "user_id": "TEXT",
        "company_name": "TEXT",
        "role_title": "TEXT",
        "type": "TEXT",
        "interview_date": "TEXT",
        "status": "TEXT",
        "created_at": "TEXT",
    },
    "career_stats": {
        "id": "TEXT",
        "user_id": "TEXT",
        "pending_count": "INTEGER",
        "rejected_count": "INTEGER",
        "ghosted_count": "INTEGER",
        "interview_count": "INTEGER",
        "offer_count": "INTEGER",
        "no_offer_count": "INTEGER",
    },
    "focus_sessions": {
        "id": "TEXT",
        "user_id": "TEXT",
        "duration_minutes": "INTEGER",
        "objective_name": "TEXT",
        "linked_assessment_id": "TEXT",
        "is_completed": "BOOLEAN",
        "started_at": "TEXT",
        "ended_at": "TEXT",
    },
    "squads": {
        "id": "TEXT",
        "owner_id": "TEXT",
        "name": "TEXT",
        "description": "TEXT",
        "program": "TEXT",
        "term": "TEXT",
        "invite_code": "TEXT",
        "is_official": "BOOLEAN",
        "created_at": "TEXT",
    },
    "squad_memberships": {
        "id": "TEXT",
        "user_id": "TEXT",
        "squad_id": "TEXT",
        "role": "TEXT",
        "created_at": "TEXT",
    },
    "squad_templates": {
        "id": "TEXT",
        "squad_id": "TEXT",
        "title": "TEXT",
        "description": "TEXT",
        "due_date": "TEXT",
        "weight": "REAL",
        "type": "TEXT",
        "category": "TEXT",
        "is_archived": "BOOLEAN",
        "created_at": "TEXT",
    },
    # Curriculum snapshot of a leader's courses, copied to members on join.
    "squad_courses": {
        "id": "TEXT",
        "squad_id": "TEXT",
        "course_code": "TEXT",
        "course_name": "TEXT",
        "color": "TEXT",
        "credits": "REAL",
        "created_by": "TEXT",
        "created_at": "TEXT",
    },
    "squad_assessments": {
        "id": "TEXT",
        "squad_id": "TEXT",
        "squad_course_id": "TEXT",
        "name": "TEXT",
        "type": "TEXT",
        "weight": "REAL",
        "total_marks": "REAL",
        "due_date": "TEXT",
        "group_tag": "TEXT",
        "created_at": "TEXT",
    },
    # One member's private overlay on a squad template.
    "user_task_states": {
        "id": "TEXT",
        "user_id": "TEXT",
        "template_id": "TEXT",
        "status": "TEXT",
        "custom_title": "TEXT",
        "custom_date": "TEXT",
        "custom_weight": "REAL",
        "grade": "REAL",
        "notes": "TEXT",
        "completed_at": "TEXT",
        "created_at": "TEXT",
        "updated_at": "TEXT",
    },
}

# Tables whose rows belong to exactly one user through ``user_id``.
OWNER_SCOPED = frozenset(
    {
        "terms",
        "courses",
        "assessments",
        "schedule_items",
        "task_lists",
        "tasks",
        "personal_tasks",
        "interviews",
        "career_stats",
        "focus_sessions",
        "user_task_states",
    }
)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_id() -> str:
    return str(uuid4())


class RowStore:
    """Generic CRUD over named tables.

    ``filters`` map a column to a value (equality) or to a list/tuple of
    values (membership). ``order_by`` entries are column names, prefixed with
    ``-`` for descending. Mutations and scoped reads on owner-scoped tables
    must carry a ``user_id`` filter.
    """

    def select(
        self,
        table: str,
        filters: Optional[Filters] = None,
        *,
        order_by: Sequence[str] = (),
        limit: Optional[int] = None,
        shared: bool = False,
    ) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def insert(self, table: str, values: Mapping[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError

    def update(self, table: str, values: Mapping[str, Any], filters: Filters) -> int:
        raise NotImplementedError

    def delete(self, table: str, filters: Filters) -> int:
        raise NotImplementedError

    def transaction(self):
        return nullcontext()

    def find_first(self, table: str, filters: Filters, *, shared: bool = False) -> Optional[Dict[str, Any]]:
        rows = self.select(table, filters, limit=1, shared=shared)
        if not rows:
            return None
        return rows[0]

    def count(self, table: str, filters: Filters) -> int:
        return len(self.select(table, filters))

    @staticmethod
    def _check_table(table: str) -> Dict[str, str]:
        columns = SCHEMA.get(table)
        if columns is None:
            raise RowStoreError(f"Unknown table: {table}")
        return columns

    @classmethod
    def _check_columns(cls, table: str, names: Sequence[str]) -> None:
        columns = cls._check_table(table)
        unknown = [name for name in names if name not in columns]
        if unknown:
            raise RowStoreError(f"Unknown column(s) for {table}: {', '.join(unknown)}")

    @staticmethod
    def _check_owner(table: str, filters: Optional[Filters], shared: bool = False) -> None:
        if shared or table not in OWNER_SCOPED:
            return
        if not filters or not filters.get("user_id"):
            raise RowStoreError(f"Queries on {table} must be filtered by user_id")


class SqliteRowStore(RowStore):
    """Local row store on the standard library's sqlite3."""

    def __init__(self, db_path: str = "studydeck.db") -> None:
        self.db_path = db_path
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._in_transaction = False
        self._init_schema()

    def _init_schema(self) -> None:
        statements = []
        for table, columns in SCHEMA.items():
            defs = []
            for name, kind in columns.items():
                sql_type = "INTEGER" if kind == "BOOLEAN" else kind
                suffix = " PRIMARY KEY" if name == "id" else ""
                defs.append(f"{name} {sql_type}{suffix}")
            statements.append(f"CREATE TABLE IF NOT EXISTS {table} ({', '.join(defs)});")
        with self._lock:
            self.conn.executescript("\n".join(statements))
            self.conn.commit()

    @staticmethod
    def _where(filters: Optional[Filters]) -> tuple[str, List[Any]]:
        if not filters:
            return "", []
        clauses: List[str] = []
        params: List[Any] = []
        for column, value in filters.items():
            if isinstance(value, (list, tuple, set, frozenset)):
                values = list(value)
                if not values:
                    clauses.append("0")
                    continue
                clauses.append(f"{column} IN ({', '.join('?' for _ in values)})")
                params.extend(values)
            elif value is None:
                clauses.append(f"{column} IS NULL")
            else:
                clauses.append(f"{column} = ?")
                params.append(SqliteRowStore._to_sql(value))
        return " WHERE " + " AND ".join(clauses), params

    @staticmethod
    def _to_sql(value: Any) -> Any:
        if isinstance(value, bool):
            return 1 if value else 0
        if isinstance(value, datetime):
            return value.isoformat()
        return value

    def _from_sql(self, table: str, row: sqlite3.Row) -> Dict[str, Any]:
        columns = SCHEMA[table]
        result: Dict[str, Any] = {}
        for key in row.keys():
            value = row[key]
            if columns.get(key) == "BOOLEAN" and value is not None:
                value = bool(value)
            result[key] = value
        return result

    def _execute(self, sql: str, params: Sequence[Any]) -> sqlite3.Cursor:
        try:
            cur = self.conn.execute(sql, params)
            if not self._in_transaction:
                self.conn.commit()
            return cur
        except sqlite3.Error as exc:
            logger.error("SQLite statement failed: %s (%s)", exc, sql)
            raise RowStoreError(str(exc)) from exc

    @contextmanager
    def transaction(self) -> Iterator[None]:
        with self._lock:
            if self._in_transaction:
                yield
                return
            self._in_transaction = True
            try:
                yield
                self.conn.commit()
            except Exception:
                self.conn.rollback()
                raise
            finally:
                self._in_transaction = False

    def select(
        self,
        table: str,
        filters: Optional[Filters] = None,
        *,
        order_by: Sequence[str] = (),
        limit: Optional[int] = None,
        shared: bool = False,
    ) -> List[Dict[str, Any]]:
        self._check_owner(table, filters, shared)
        self._check_columns(table, list(filters or {}) + [col.lstrip("-") for col in order_by])
        where, params = self._where(filters)
        sql = f"SELECT * FROM {table}{where}"
        if order_by:
            parts = [f"{col.lstrip('-')} {'DESC' if col.startswith('-') else 'ASC'}" for col in order_by]
            sql += " ORDER BY " + ", ".join(parts)
        if limit is not None:
            sql += " LIMIT ?"
            params.append(int(limit))
        with self._lock:
            rows = self._execute(sql, params).fetchall()
        return [self._from_sql(table, row) for row in rows]

    def insert(self, table: str, values: Mapping[str, Any]) -> Dict[str, Any]:
        columns = self._check_table(table)
        row = dict(values)
        row.setdefault("id", new_id())
        if "created_at" in columns:
            row.setdefault("created_at", utc_now_iso())
        self._check_columns(table, list(row))
        names = list(row)
        sql = f"INSERT INTO {table} ({', '.join(names)}) VALUES ({', '.join('?' for _ in names)})"
        with self._lock:
            self._execute(sql, [self._to_sql(row[name]) for name in names])
        stored = {name: None for name in columns}
        stored.update(row)
        return stored

    def update(self, table: str, values: Mapping[str, Any], filters: Filters) -> int:
        self._check_owner(table, filters)
        self._check_columns(table, list(values) + list(filters))
        if not values:
            return 0
        assignments = ", ".join(f"{name} = ?" for name in values)
        where, params = self._where(filters)
        sql = f"UPDATE {table} SET {assignments}{where}"
        with self._lock:
            cur = self._execute(sql, [self._to_sql(v) for v in values.values()] + params)
        return cur.rowcount

    def delete(self, table: str, filters: Filters) -> int:
        self._check_owner(table, filters)
        self._check_columns(table, list(filters))
        if not filters:
            raise RowStoreError("Refusing to delete without filters")
        where, params = self._where(filters)
        with self._lock:
            cur = self._execute(f"DELETE FROM {table}{where}", params)
        return cur.rowcount


def from_settings() -> RowStore:
    from studydeck.config.settings import settings

    backend = settings.backend
    if backend == "appwrite":
        from studydeck.services.appwrite_store import AppwriteRowStore

        return AppwriteRowStore.from_settings()
    if backend == "firestore":
        from studydeck.services.firestore_store import FirestoreRowStore

        return FirestoreRowStore.from_settings()
    if backend == "sqlite":
        return SqliteRowStore(settings.sqlite_path)
    raise RowStoreError(f"Unsupported STUDYDECK_BACKEND: {backend}")
