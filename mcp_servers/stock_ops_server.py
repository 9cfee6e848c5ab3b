"""
Stock Operations MCP Server

Provides tools for adding, merging, editing, deleting and transferring stock records,
managing radio sets, and reading the dashboard (summary + alerts).

Tables used: Stocks (PK: id), Communications (PK: id)
"""

import json
import logging
import os
import sys
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))
import env_loader

from typing import Dict, List, Optional
from mcp.server import Server
from mcp.types import Tool, TextContent

from stockroom.dashboard import load_dashboard
from stockroom.errors import StockroomError
from stockroom.ledger import CommsRegistry, LedgerEngine
from stockroom.models.records import LedgerConfig
from stockroom.store.base import RecordStore

logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(name)s] %(levelname)s: %(message)s")
logger = logging.getLogger("stock-ops")

app = Server("stock-ops")


class Services:
    """Store ve ustundeki defter servisleri."""

    def __init__(self, store: RecordStore, config: Optional[LedgerConfig] = None):
        self.store = store
        self.ledger = LedgerEngine(store, config)
        self.comms = CommsRegistry(store, config)


_services: Optional[Services] = None


def get_services() -> Services:
    """DynamoDB store'u ilk kullanimda olusturur."""
    global _services
    if _services is None:
        from stockroom.store.dynamodb import DynamoDBRecordStore

        config = LedgerConfig.from_env()
        _services = Services(DynamoDBRecordStore(config), config)
    return _services


def set_services(services: Optional[Services]) -> None:
    global _services
    _services = services


def _result(data):
    return [TextContent(type="text", text=json.dumps(data, indent=2, ensure_ascii=False, default=str))]


_STOCK_FIELDS = {
    "kind": {"type": "string", "enum": ["consumable", "fixture"]},
    "name": {"type": "string"},
    "category": {"type": "string"},
    "status": {"type": "string"},
    "quantity": {"type": "integer", "minimum": 0},
    "loc_main": {"type": "string"},
    "loc_exact": {"type": "string"},
    "site_status": {"type": "string", "enum": ["on_site", "off_site"]},
}
_STOCK_REQUIRED = ["kind", "name", "category", "status", "loc_main", "loc_exact", "site_status"]

_RADIO_FIELDS = {
    "set_number": {"type": "integer", "minimum": 1},
    "role": {"type": "string"}, "location": {"type": "string"},
    "call_sign": {"type": "string"},
    "status": {"type": "string", "enum": ["Online", "Offline", "Not in Use", "Spoilt / Decommissioned"]},
}


@app.list_tools()
async def list_tools() -> List[Tool]:
    return [
        Tool(name="add_stock", description="Add a stock record; merges quantity into an identical existing record",
             inputSchema={"type": "object", "properties": _STOCK_FIELDS, "required": _STOCK_REQUIRED}),
        Tool(name="update_stock", description="Replace all editable fields of a stock record",
             inputSchema={"type": "object", "properties": {"id": {"type": "string"}, **_STOCK_FIELDS},
                          "required": ["id", *_STOCK_REQUIRED]}),
        Tool(name="delete_stock", description="Delete a stock record",
             inputSchema={"type": "object", "properties": {"id": {"type": "string"}}, "required": ["id"]}),
        Tool(name="transfer_stock", description="Atomically move some or all quantity of a record to another location (omit quantity to move all)",
             inputSchema={"type": "object", "properties": {
                 "source_id": {"type": "string"}, "loc_main": {"type": "string"},
                 "loc_exact": {"type": "string"},
                 "site_status": {"type": "string", "enum": ["on_site", "off_site"]},
                 "quantity": {"type": "integer", "minimum": 1}
             }, "required": ["source_id", "loc_main", "loc_exact", "site_status"]}),
        Tool(name="list_stock", description="List stock records, newest first, optionally filtered by kind and search text",
             inputSchema={"type": "object", "properties": {
                 "kind": {"type": "string", "enum": ["consumable", "fixture"]}, "search": {"type": "string"}
             }}),
        Tool(name="find_duplicate_stock", description="List groups of stock records sharing one identity",
             inputSchema={"type": "object", "properties": {}}),
        Tool(name="upsert_radio", description="Create or overwrite a radio set by set number",
             inputSchema={"type": "object", "properties": _RADIO_FIELDS,
                          "required": ["set_number", "role", "location", "call_sign", "status"]}),
        Tool(name="set_radio_status", description="Change the status of a radio set",
             inputSchema={"type": "object", "properties": {
                 "id": {"type": "string"}, "status": _RADIO_FIELDS["status"]
             }, "required": ["id", "status"]}),
        Tool(name="delete_radio", description="Delete a radio set",
             inputSchema={"type": "object", "properties": {"id": {"type": "string"}}, "required": ["id"]}),
        Tool(name="list_radios", description="List radio sets ordered by set number",
             inputSchema={"type": "object", "properties": {}}),
        Tool(name="get_dashboard", description="Stock summary and severity-ranked alerts",
             inputSchema={"type": "object", "properties": {}}),
    ]


@app.call_tool()
async def call_tool(name: str, arguments: dict) -> List[TextContent]:
    return _result(await dispatch(name, arguments))


async def dispatch(name: str, arguments: dict) -> Dict:
    handlers = {
        "add_stock": add_stock,
        "update_stock": update_stock,
        "delete_stock": delete_stock,
        "transfer_stock": transfer_stock,
        "list_stock": list_stock,
        "find_duplicate_stock": find_duplicate_stock,
        "upsert_radio": upsert_radio,
        "set_radio_status": set_radio_status,
        "delete_radio": delete_radio,
        "list_radios": list_radios,
        "get_dashboard": get_dashboard,
    }
    handler = handlers.get(name)
    if not handler:
        raise ValueError(f"Unknown tool: {name}")
    try:
        return await handler(arguments or {})
    except StockroomError as e:
        logger.warning("%s basarisiz: %s", name, e)
        return {"success": False, "error": str(e), "error_type": type(e).__name__}


# --- Implementation ---

async def add_stock(a: Dict) -> Dict:
    record = await get_services().ledger.add_or_merge(a)
    return {"success": True, "data": record.to_dict()}


async def update_stock(a: Dict) -> Dict:
    payload = {k: v for k, v in a.items() if k != "id"}
    record = await get_services().ledger.update_fields(a["id"], payload)
    return {"success": True, "data": record.to_dict()}


async def delete_stock(a: Dict) -> Dict:
    await get_services().ledger.remove(a["id"])
    return {"success": True, "id": a["id"]}


async def transfer_stock(a: Dict) -> Dict:
    result = await get_services().ledger.transfer(
        a["source_id"], a["loc_main"], a["loc_exact"], a["site_status"], a.get("quantity")
    )
    return {"success": True, "data": result.to_dict()}


async def list_stock(a: Dict) -> Dict:
    records = await get_services().ledger.search_records(a.get("search", ""), a.get("kind"))
    return {"success": True, "count": len(records), "data": [r.to_dict() for r in records]}


async def find_duplicate_stock(a: Dict) -> Dict:
    groups = await get_services().ledger.find_duplicate_identities()
    return {"success": True, "count": len(groups), "data": groups}


async def upsert_radio(a: Dict) -> Dict:
    record = await get_services().comms.upsert_radio(a)
    return {"success": True, "data": record.to_dict()}


async def set_radio_status(a: Dict) -> Dict:
    record = await get_services().comms.set_status(a["id"], a["status"])
    return {"success": True, "data": record.to_dict()}


async def delete_radio(a: Dict) -> Dict:
    await get_services().comms.remove(a["id"])
    return {"success": True, "id": a["id"]}


async def list_radios(a: Dict) -> Dict:
    records = await get_services().comms.list_all()
    return {"success": True, "count": len(records), "data": [r.to_dict() for r in records]}


async def get_dashboard(a: Dict) -> Dict:
    view = await load_dashboard(get_services().store)
    return {"success": True, "data": view.to_dict()}


if __name__ == "__main__":
    import asyncio
    from mcp.server.stdio import stdio_server

    async def run():
        async with stdio_server() as (read, write):
            await app.run(read, write, app.create_initialization_options())

    asyncio.run(run())
