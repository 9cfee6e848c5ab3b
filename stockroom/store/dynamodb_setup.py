"""DynamoDB tablo oluşturma.

2 tablo: Stocks, Communications (PK: id)

Kullanım:
    python -m stockroom.store.dynamodb_setup            # Tabloları oluştur
    python -m stockroom.store.dynamodb_setup --delete   # Tabloları sil
"""

from __future__ import annotations

import logging
import sys
from typing import Any, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

from stockroom.models.records import LedgerConfig

logger = logging.getLogger(__name__)

BOTO_CONFIG = Config(retries={"max_attempts": 3})


def table_definitions(config: LedgerConfig) -> list[dict]:
    return [
        {
            "TableName": table_name,
            "KeySchema": [
                {"AttributeName": "id", "KeyType": "HASH"},
            ],
            "AttributeDefinitions": [
                {"AttributeName": "id", "AttributeType": "S"},
            ],
            "BillingMode": "PAY_PER_REQUEST",
        }
        for table_name in (config.stocks_table, config.comms_table)
    ]


def _client(config: LedgerConfig, client: Optional[Any]):
    return client or boto3.client("dynamodb", region_name=config.region, config=BOTO_CONFIG)


def create_tables(config: Optional[LedgerConfig] = None, client: Optional[Any] = None) -> list[str]:
    """Eksik tabloları oluşturur, oluşturulan tablo adlarını döndürür."""
    config = config or LedgerConfig.from_env()
    dynamodb = _client(config, client)
    created = []

    for table_def in table_definitions(config):
        table_name = table_def["TableName"]
        try:
            dynamodb.describe_table(TableName=table_name)
            logger.info("%s zaten mevcut, atlanıyor", table_name)
        except ClientError as e:
            if e.response["Error"]["Code"] != "ResourceNotFoundException":
                raise
            logger.info("%s oluşturuluyor...", table_name)
            dynamodb.create_table(**table_def)
            # Tablonun aktif olmasını bekle
            waiter = dynamodb.get_waiter("table_exists")
            waiter.wait(TableName=table_name)
            created.append(table_name)
            logger.info("%s oluşturuldu", table_name)

    return created


def delete_tables(config: Optional[LedgerConfig] = None, client: Optional[Any] = None) -> list[str]:
    """Tüm tabloları siler (dikkatli kullan)."""
    config = config or LedgerConfig.from_env()
    dynamodb = _client(config, client)
    deleted = []
    for table_def in table_definitions(config):
        table_name = table_def["TableName"]
        try:
            dynamodb.delete_table(TableName=table_name)
            deleted.append(table_name)
            logger.info("%s silindi", table_name)
        except ClientError as e:
            if e.response["Error"]["Code"] != "ResourceNotFoundException":
                raise
            logger.info("%s bulunamadı, atlanıyor", table_name)
    return deleted


if __name__ == "__main__":
    import env_loader  # noqa: F401

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(name)s] %(levelname)s: %(message)s")
    if len(sys.argv) > 1 and sys.argv[1] == "--delete":
        delete_tables()
    else:
        create_tables()
