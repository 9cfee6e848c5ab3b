"""DynamoDB tabanlı Record Store.

Tablolar (PK: id): Stocks, Communications.
- Sorgular scan + Attr filtresi ile yapılır (eşitlik, AND).
- Atomik işlemler transact_write_items ile commit edilir; her dokümanın
  ``version`` alanı koşul ifadesiyle doğrulanır (optimistic concurrency).
- boto3 çağrıları bloklayıcı olduğu için asyncio.to_thread ile çalıştırılır.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

import boto3
from boto3.dynamodb.conditions import Attr
from boto3.dynamodb.types import TypeSerializer
from botocore.exceptions import BotoCoreError, ClientError

from stockroom.errors import NotFoundError, StoreUnavailableError, TransactionConflict
from stockroom.models.records import COMMS, STOCKS, LedgerConfig
from stockroom.store.base import RecordStore, Transaction

logger = logging.getLogger(__name__)

VERSION = "version"
CONFLICT_CODES = {"TransactionCanceledException", "TransactionConflictException"}

_serializer = TypeSerializer()


def _from_dynamo(obj):
    """Decimal değerleri int/float'a çevirir."""
    if isinstance(obj, Decimal):
        return int(obj) if obj == int(obj) else float(obj)
    if isinstance(obj, dict):
        return {k: _from_dynamo(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_from_dynamo(i) for i in obj]
    return obj


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _serialize(item: dict) -> dict:
    return {k: _serializer.serialize(v) for k, v in item.items()}


def _set_expression(fields: dict, ts: str, version_clause: str, version_values: dict) -> dict:
    """SET ifadesi; tüm alan adları ExpressionAttributeNames ile (name/status/type rezerve)."""
    names: dict[str, str] = {"#updatedAt": "updatedAt", "#version": VERSION}
    values: dict[str, Any] = {":updatedAt": ts, **version_values}
    parts = ["#updatedAt = :updatedAt", version_clause]
    for i, (key, value) in enumerate(fields.items()):
        names[f"#f{i}"] = key
        values[f":f{i}"] = value
        parts.append(f"#f{i} = :f{i}")
    return {
        "UpdateExpression": "SET " + ", ".join(parts),
        "ExpressionAttributeNames": names,
        "ExpressionAttributeValues": values,
    }


def _version_condition(version: int) -> str:
    # Dışarıdan yüklenmiş dokümanlarda version alanı olmayabilir (0 olarak okunur)
    if version == 0:
        return "attribute_not_exists(#version)"
    return "#version = :expected"


class DynamoDBRecordStore(RecordStore):
    """boto3 resource/client üzerinden çalışan store (dependency injection destekli)."""

    def __init__(
        self,
        config: Optional[LedgerConfig] = None,
        dynamodb_resource: Optional[Any] = None,
        dynamodb_client: Optional[Any] = None,
    ):
        self.config = config or LedgerConfig.from_env()
        self.dynamodb = dynamodb_resource or boto3.resource(
            "dynamodb", region_name=self.config.region
        )
        self.client = dynamodb_client or boto3.client(
            "dynamodb", region_name=self.config.region
        )
        self._table_names = {
            STOCKS: self.config.stocks_table,
            COMMS: self.config.comms_table,
        }
        logger.info("DynamoDB store başlatıldı (region: %s)", self.config.region)

    def table_name(self, collection: str) -> str:
        return self._table_names.get(collection, collection)

    def _table(self, collection: str):
        return self.dynamodb.Table(self.table_name(collection))

    async def _call(self, fn, **kwargs):
        """boto3 çağrısını thread'de çalıştırır ve hataları store hatalarına çevirir."""
        try:
            return await asyncio.to_thread(fn, **kwargs)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "")
            if code == "ConditionalCheckFailedException":
                raise
            if code in CONFLICT_CODES:
                raise TransactionConflict(str(e)) from e
            logger.error("DynamoDB hatası [%s]: %s", code, e)
            raise StoreUnavailableError(str(e)) from e
        except BotoCoreError as e:
            logger.error("DynamoDB bağlantı hatası: %s", e)
            raise StoreUnavailableError(str(e)) from e

    @staticmethod
    def _document(item: dict) -> dict:
        doc = _from_dynamo(item)
        doc.pop(VERSION, None)
        return doc

    async def get(self, collection: str, doc_id: str) -> Optional[dict]:
        doc, _ = await self.read_versioned(collection, doc_id)
        return doc

    async def read_versioned(self, collection: str, doc_id: str) -> tuple[Optional[dict], Optional[int]]:
        resp = await self._call(
            self._table(collection).get_item, Key={"id": doc_id}, ConsistentRead=True
        )
        item = resp.get("Item")
        if item is None:
            return None, None
        return self._document(item), int(item.get(VERSION, 0))

    async def query(self, collection: str, filters: Optional[dict[str, Any]] = None) -> list[dict]:
        table = self._table(collection)
        kwargs: dict[str, Any] = {"ConsistentRead": True}
        if filters:
            conditions = [Attr(k).eq(v) for k, v in filters.items()]
            combined = conditions[0]
            for c in conditions[1:]:
                combined = combined & c
            kwargs["FilterExpression"] = combined

        items: list[dict] = []
        while True:
            resp = await self._call(table.scan, **kwargs)
            items.extend(resp.get("Items", []))
            last_key = resp.get("LastEvaluatedKey")
            if not last_key:
                break
            kwargs["ExclusiveStartKey"] = last_key
        return [self._document(item) for item in items]

    async def insert(self, collection: str, fields: dict) -> str:
        doc_id = self.new_id()
        ts = _now()
        await self._call(
            self._table(collection).put_item,
            Item={**fields, "id": doc_id, "createdAt": ts, "updatedAt": ts, VERSION: 1},
            ConditionExpression="attribute_not_exists(id)",
        )
        return doc_id

    async def update(self, collection: str, doc_id: str, fields: dict) -> None:
        # Tek doküman güncellemesi de versiyonu artırır, böylece açık transaction'lar çakışır
        expr = _set_expression(
            fields,
            _now(),
            "#version = if_not_exists(#version, :zero) + :one",
            {":zero": 0, ":one": 1},
        )
        try:
            await self._call(
                self._table(collection).update_item,
                Key={"id": doc_id},
                ConditionExpression="attribute_exists(id)",
                **expr,
            )
        except ClientError as e:
            raise NotFoundError(f"Kayıt bulunamadı: {collection}/{doc_id}") from e

    async def delete(self, collection: str, doc_id: str) -> None:
        try:
            await self._call(
                self._table(collection).delete_item,
                Key={"id": doc_id},
                ConditionExpression="attribute_exists(id)",
            )
        except ClientError as e:
            raise NotFoundError(f"Kayıt bulunamadı: {collection}/{doc_id}") from e

    def build_transact_items(self, tx: Transaction) -> list[dict]:
        """Transaction kaydını transact_write_items girdisine çevirir."""
        ts = _now()
        items: list[dict] = []

        for (collection, doc_id), (op, fields) in tx.writes.items():
            table_name = self.table_name(collection)
            if op == "insert":
                item = {**fields, "id": doc_id, "createdAt": ts, "updatedAt": ts, VERSION: 1}
                items.append({"Put": {
                    "TableName": table_name,
                    "Item": _serialize(item),
                    "ConditionExpression": "attribute_not_exists(id)",
                }})
                continue

            read_version = tx.reads.get((collection, doc_id))
            expr = _set_expression(
                fields, ts, "#version = :nextVersion", {":nextVersion": (read_version or 0) + 1}
            )
            if read_version is not None:
                expr["ConditionExpression"] = "attribute_exists(id) AND " + _version_condition(read_version)
                if read_version:
                    expr["ExpressionAttributeValues"][":expected"] = read_version
            else:
                expr["ConditionExpression"] = "attribute_exists(id)"
            items.append({"Update": {
                "TableName": table_name,
                "Key": _serialize({"id": doc_id}),
                "UpdateExpression": expr["UpdateExpression"],
                "ConditionExpression": expr["ConditionExpression"],
                "ExpressionAttributeNames": expr["ExpressionAttributeNames"],
                "ExpressionAttributeValues": _serialize(expr["ExpressionAttributeValues"]),
            }})

        # Sadece okunan dokümanlar için versiyon kontrolü
        for (collection, doc_id), version in tx.reads.items():
            if (collection, doc_id) in tx.writes:
                continue
            check: dict[str, Any] = {
                "TableName": self.table_name(collection),
                "Key": _serialize({"id": doc_id}),
            }
            if version is None:
                check["ConditionExpression"] = "attribute_not_exists(id)"
            else:
                check["ConditionExpression"] = _version_condition(version)
                check["ExpressionAttributeNames"] = {"#version": VERSION}
                if version:
                    check["ExpressionAttributeValues"] = _serialize({":expected": version})
            items.append({"ConditionCheck": check})

        return items

    async def commit(self, tx: Transaction) -> None:
        if not tx.writes:
            # Salt okunur transaction: yazılacak bir şey yok
            return
        items = self.build_transact_items(tx)
        # TransactionCanceledException, _call içinde TransactionConflict olarak döner
        await self._call(self.client.transact_write_items, TransactItems=items)
