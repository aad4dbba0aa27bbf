from datetime import datetime
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

try:
    from google.api_core.exceptions import GoogleAPICallError
    from google.cloud import firestore
    from google.cloud.firestore_v1.base_query import FieldFilter
except ModuleNotFoundError as exc:
    raise ModuleNotFoundError(
        "Missing dependency 'google-cloud-firestore'. Install the project with pip install -e ."
    ) from exc

from studydeck.config.settings import settings
from studydeck.services.row_store import Filters, RowStore, RowStoreError, SCHEMA, new_id, utc_now_iso


logger = logging.getLogger(__name__)


class FirestoreRowStore(RowStore):
    """Row store over Firestore; one top-level collection per table."""

    def __init__(self, project_id: str, client: Optional[Any] = None) -> None:
        if client is None:
            if not project_id:
                raise RowStoreError("Missing FIREBASE_PROJECT_ID in environment")
            client = firestore.Client(project=project_id)
        self.db = client

    @classmethod
    def from_settings(cls) -> "FirestoreRowStore":
        return cls(settings.firebase_project_id)

    def _query(self, table: str, filters: Optional[Filters]):
        query = self.db.collection(table)
        for column, value in (filters or {}).items():
            if column == "id":
                column = "__name__"
                if isinstance(value, (list, tuple, set, frozenset)):
                    value = [self.db.collection(table).document(v) for v in value]
                else:
                    value = self.db.collection(table).document(value)
            if isinstance(value, (list, tuple, set, frozenset)):
                query = query.where(filter=FieldFilter(column, "in", list(value)))
            else:
                query = query.where(filter=FieldFilter(column, "==", value))
        return query

    @staticmethod
    def _to_row(snap) -> Dict[str, Any]:
        data = snap.to_dict() or {}
        data["id"] = snap.id
        return data

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
        query = self._query(table, filters)
        for column in order_by:
            if column.startswith("-"):
                query = query.order_by(column[1:], direction=firestore.Query.DESCENDING)
            else:
                query = query.order_by(column)
        if limit is not None:
            query = query.limit(limit)
        try:
            return [self._to_row(snap) for snap in query.stream()]
        except GoogleAPICallError as exc:
            logger.error("Firestore query on %s failed: %s", table, exc)
            raise RowStoreError(str(exc)) from exc

    def insert(self, table: str, values: Mapping[str, Any]) -> Dict[str, Any]:
        columns = self._check_table(table)
        self._check_columns(table, list(values))
        row = dict(values)
        row.setdefault("id", new_id())
        if "created_at" in columns:
            row.setdefault("created_at", utc_now_iso())
        data = {
            key: value.isoformat() if isinstance(value, datetime) else value
            for key, value in row.items()
            if key != "id"
        }
        try:
            self.db.collection(table).document(row["id"]).set(data)
        except GoogleAPICallError as exc:
            logger.error("Firestore insert into %s failed: %s", table, exc)
            raise RowStoreError(str(exc)) from exc
        stored = {name: None for name in SCHEMA[table]}
        stored.update(row)
        return stored

    def update(self, table: str, values: Mapping[str, Any], filters: Filters) -> int:
        self._check_owner(table, filters)
        self._check_columns(table, list(values) + list(filters))
        data = {k: v.isoformat() if isinstance(v, datetime) else v for k, v in values.items()}
        try:
            snaps = list(self._query(table, filters).stream())
            for snap in snaps:
                snap.reference.update(data)
        except GoogleAPICallError as exc:
            logger.error("Firestore update on %s failed: %s", table, exc)
            raise RowStoreError(str(exc)) from exc
        return len(snaps)

    def delete(self, table: str, filters: Filters) -> int:
        self._check_owner(table, filters)
        self._check_columns(table, list(filters))
        if not filters:
            raise RowStoreError("Refusing to delete without filters")
        try:
            snaps = list(self._query(table, filters).stream())
            for snap in snaps:
                snap.reference.delete()
        except GoogleAPICallError as exc:
            logger.error("Firestore delete on %s failed: %s", table, exc)
            raise RowStoreError(str(exc)) from exc
        return len(snaps)
