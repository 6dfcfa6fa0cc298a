"""
Record store adapter

All persistence goes through RecordStore, a thin layer over a pymongo
database. Records leave the adapter as plain dicts with a string "id" in
place of Mongo's "_id", and every driver error is re-raised as
RemoteOperationFailed so workflows never see pymongo types.
"""
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union
from urllib.parse import quote

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import DESCENDING, MongoClient
from pymongo.database import Database
from pymongo.errors import PyMongoError

from goldenshop.config import Settings
from goldenshop.errors import RecordNotFound, RemoteOperationFailed

logger = logging.getLogger(__name__)

NEWEST_FIRST = [("created_at", DESCENDING), ("_id", DESCENDING)]


def connect(settings: Settings) -> Optional[Database]:
    if not settings.database_url:
        return None
    client = MongoClient(settings.database_url)
    return client[settings.database_name]


def oid(id_str: str) -> ObjectId:
    try:
        return ObjectId(id_str)
    except (InvalidId, TypeError):
        raise RecordNotFound(f"Invalid id: {id_str!r}")


def serialize(doc: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(doc)
    out["id"] = str(out.pop("_id"))
    return out


class Page(BaseModel):
    items: List[Dict[str, Any]]
    page: int
    per_page: int
    total_items: int


@contextmanager
def remote(action: str):
    try:
        yield
    except PyMongoError as e:
        logger.error("%s failed: %s", action, e)
        raise RemoteOperationFailed(str(e))


class RecordStore:
    def __init__(self, db: Database, files_base_url: str = ""):
        self.db = db
        self.files_base_url = files_base_url.rstrip("/")

    # ---------- reads ----------
    def get_documents(self, collection: str, filter_dict: Optional[dict] = None, sort=NEWEST_FIRST) -> List[dict]:
        with remote(f"list {collection}"):
            cursor = self.db[collection].find(filter_dict or {})
            if sort:
                cursor = cursor.sort(sort)
            return [serialize(d) for d in cursor]

    def get_page(
        self,
        collection: str,
        page: int = 1,
        per_page: int = 50,
        filter_dict: Optional[dict] = None,
        sort=NEWEST_FIRST,
    ) -> Page:
        page = max(page, 1)
        with remote(f"page {collection}"):
            query = filter_dict or {}
            total = self.db[collection].count_documents(query)
            cursor = self.db[collection].find(query)
            if sort:
                cursor = cursor.sort(sort)
            cursor = cursor.skip((page - 1) * per_page).limit(per_page)
            items = [serialize(d) for d in cursor]
        return Page(items=items, page=page, per_page=per_page, total_items=total)

    def count_documents(self, collection: str, filter_dict: Optional[dict] = None) -> int:
        with remote(f"count {collection}"):
            return self.db[collection].count_documents(filter_dict or {})

    def find_first(self, collection: str, filter_dict: dict) -> Optional[dict]:
        with remote(f"find {collection}"):
            doc = self.db[collection].find_one(filter_dict)
        return serialize(doc) if doc else None

    def get_document(self, collection: str, record_id: str) -> dict:
        with remote(f"get {collection}/{record_id}"):
            doc = self.db[collection].find_one({"_id": oid(record_id)})
        if not doc:
            raise RecordNotFound(f"{collection}/{record_id} not found")
        return serialize(doc)

    # ---------- writes ----------
    def create_document(self, collection: str, data: Union[BaseModel, dict]) -> dict:
        if isinstance(data, BaseModel):
            data_dict = data.model_dump()
        else:
            data_dict = dict(data)
        now = datetime.now(timezone.utc)
        data_dict["created_at"] = now
        data_dict["updated_at"] = now
        with remote(f"create {collection}"):
            res = self.db[collection].insert_one(data_dict)
        data_dict["_id"] = res.inserted_id
        return serialize(data_dict)

    def update_document(self, collection: str, record_id: str, changes: dict) -> dict:
        updates = dict(changes)
        updates["updated_at"] = datetime.now(timezone.utc)
        with remote(f"update {collection}/{record_id}"):
            res = self.db[collection].update_one({"_id": oid(record_id)}, {"$set": updates})
        if res.matched_count == 0:
            raise RecordNotFound(f"{collection}/{record_id} not found")
        return self.get_document(collection, record_id)

    def delete_document(self, collection: str, record_id: str) -> None:
        with remote(f"delete {collection}/{record_id}"):
            res = self.db[collection].delete_one({"_id": oid(record_id)})
        if res.deleted_count == 0:
            raise RecordNotFound(f"{collection}/{record_id} not found")

    # ---------- files ----------
    def file_url(self, collection: str, record: dict, filename: Optional[str], thumb: Optional[str] = None) -> str:
        if not filename or not record.get("id"):
            return ""
        url = f"{self.files_base_url}/api/files/{collection}/{record['id']}/{quote(filename)}"
        if thumb:
            url += f"?thumb={thumb}"
        return url

    # ---------- diagnostics ----------
    def collection_names(self) -> List[str]:
        with remote("list collections"):
            return self.db.list_collection_names()
