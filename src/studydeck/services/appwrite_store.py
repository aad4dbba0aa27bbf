from datetime import datetime
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from appwrite.client import Client
from appwrite.exception import AppwriteException
from appwrite.id import ID
from appwrite.query import Query
from appwrite.services.databases import Databases

from studydeck.config.settings import settings
from studydeck.services.row_store import Filters, RowStore, RowStoreError, SCHEMA, utc_now_iso


logger = logging.getLogger(__name__)

PAGE_SIZE = 100


class AppwriteRowStore(RowStore):
    """Row store over Appwrite Databases; one collection per table, named after it."""

    def __init__(
        self,
        endpoint: str,
        project_id: str,
        api_key: str,
        database_id: str,
        databases: Optional[Databases] = None,
    ) -> None:
        if databases is None:
            if not endpoint:
                raise RowStoreError("Missing APPWRITE_ENDPOINT in environment")
            if not project_id:
                raise RowStoreError("Missing APPWRITE_PROJECT_ID in environment")
            if not api_key:
                raise RowStoreError("Missing APPWRITE_API_KEY in environment")
        if not database_id:
            raise RowStoreError("Missing APPWRITE_DATABASE_ID in environment")

        self.database_id = database_id
        if databases is None:
            client = Client()
            client.set_endpoint(endpoint.rstrip("/"))
            client.set_project(project_id)
            client.set_key(api_key)
            databases = Databases(client)
        self.db = databases

    @classmethod
    def from_settings(cls) -> "AppwriteRowStore":
        return cls(
            endpoint=settings.appwrite_endpoint,
            project_id=settings.appwrite_project_id,
            api_key=settings.appwrite_api_key,
            database_id=settings.appwrite_database_id,
        )

    @staticmethod
    def _to_row(doc: Mapping[str, Any]) -> Dict[str, Any]:
        row = {key: value for key, value in doc.items() if not key.startswith("$")}
        row["id"] = doc["$id"]
        return row

    @staticmethod
    def _to_document(values: Mapping[str, Any]) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        for key, value in values.items():
            if key == "id":
                continue
            data[key] = value.isoformat() if isinstance(value, datetime) else value
        return data

    @staticmethod
    def _queries(filters: Optional[Filters]) -> List[str]:
        queries: List[str] = []
        for column, value in (filters or {}).items():
            name = "$id" if column == "id" else column
            if value is None:
                queries.append(Query.is_null(name))
            elif isinstance(value, (list, tuple, set, frozenset)):
                queries.append(Query.equal(name, list(value)))
            else:
                queries.append(Query.equal(name, [value]))
        return queries

    def _list_documents(self, table: str, queries: List[str], limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Every matching document, fetched a page at a time; at most ``limit`` when given."""
        documents: List[Dict[str, Any]] = []
        while limit is None or len(documents) < limit:
            size = PAGE_SIZE if limit is None else min(PAGE_SIZE, limit - len(documents))
            page_queries = queries + [Query.limit(size)]
            if documents:
                page_queries.append(Query.cursor_after(documents[-1]["$id"]))
            try:
                result = self.db.list_documents(self.database_id, table, queries=page_queries)
            except AppwriteException as exc:
                logger.error("Appwrite list on %s failed: %s", table, exc)
                raise RowStoreError(str(exc)) from exc
            page = list(result.get("documents", []))
            documents.extend(page)
            if len(page) < size:
                break
        return documents

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
        queries = self._queries(filters)
        for column in order_by:
            if column.startswith("-"):
                queries.append(Query.order_desc(column[1:]))
            else:
                queries.append(Query.order_asc(column))
        return [self._to_row(doc) for doc in self._list_documents(table, queries, limit)]

    def insert(self, table: str, values: Mapping[str, Any]) -> Dict[str, Any]:
        columns = self._check_table(table)
        self._check_columns(table, list(values))
        data = self._to_document(values)
        if "created_at" in columns:
            data.setdefault("created_at", utc_now_iso())
        try:
            doc = self.db.create_document(
                self.database_id,
                table,
                values.get("id") or ID.unique(),
                data,
            )
        except AppwriteException as exc:
            logger.error("Appwrite insert into %s failed: %s", table, exc)
            raise RowStoreError(str(exc)) from exc
        row = {name: None for name in SCHEMA[table]}
        row.update(self._to_row(doc))
        return row

    def update(self, table: str, values: Mapping[str, Any], filters: Filters) -> int:
        self._check_owner(table, filters)
        self._check_columns(table, list(values) + list(filters))
        docs = self._list_documents(table, self._queries(filters))
        data = self._to_document(values)
        for doc in docs:
            try:
                self.db.update_document(self.database_id, table, doc["$id"], data)
            except AppwriteException as exc:
                logger.error("Appwrite update on %s/%s failed: %s", table, doc["$id"], exc)
                raise RowStoreError(str(exc)) from exc
        return len(docs)

    def delete(self, table: str, filters: Filters) -> int:
        self._check_owner(table, filters)
        self._check_columns(table, list(filters))
        if not filters:
            raise RowStoreError("Refusing to delete without filters")
        docs = self._list_documents(table, self._queries(filters))
        for doc in docs:
            try:
                self.db.delete_document(self.database_id, table, doc["$id"])
            except AppwriteException as exc:
                logger.error("Appwrite delete on %s/%s failed: %s", table, doc["$id"], exc)
                raise RowStoreError(str(exc)) from exc
        return len(docs)
