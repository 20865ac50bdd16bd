# backend/consignbook/services/backup_service.py
"""
Full-state backup and restore.

Export document:
{
    "version": "1.0",
    "export_time": "...Z",
    "products": [...], "partners": [...], "consignments": [...],
    "sales": [...], "inventory_logs": [...],
    "images": [{"id", "data": "data:<mime>;base64,<...>", "type"}]
}

Import upserts every record by primary key (merge-by-key); nothing is
cleared first. version_id counters are not part of the document: they
belong to the database that holds the row.
"""
from __future__ import annotations

import base64
import binascii
import json
import logging
from datetime import datetime

import sqlalchemy as sa

from ..errors import ValidationError
from ..extensions import db
from ..models import ConsignmentOrder, InventoryLogEntry, Partner, Product, ProductImage, SaleRecord
from ..state import publish_change
from ..sync import RELOAD_ALL
from ..time_utils import parse_iso_datetime, to_utc_z, utcnow
from .concurrency import run_with_retry
from .legacy_service import add_converted_logs, convert_legacy_records

logger = logging.getLogger(__name__)

BACKUP_VERSION = "1.0"

BACKUP_TABLES = (
    ("products", Product),
    ("partners", Partner),
    ("consignments", ConsignmentOrder),
    ("sales", SaleRecord),
    ("inventory_logs", InventoryLogEntry),
)

_SKIPPED_COLUMNS = {"version_id"}


def _encode_datetime(value: datetime) -> str:
    # Full precision so a restore reproduces the stored value exactly
    return value.isoformat() + "Z"


def _columns(model):
    return [c for c in model.__mapper__.columns if c.key not in _SKIPPED_COLUMNS]


def _record(model, row) -> dict:
    out = {}
    for col in _columns(model):
        value = getattr(row, col.key)
        if isinstance(value, datetime):
            value = _encode_datetime(value)
        out[col.key] = value
    return out


def _decode(model, key: str, record) -> dict:
    if not isinstance(record, dict):
        raise ValidationError(f"{key} entries must be objects")
    values = {}
    for col in _columns(model):
        if col.key not in record:
            continue
        value = record[col.key]
        if isinstance(col.type, sa.DateTime) and isinstance(value, str):
            try:
                value = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{key}.{col.key} must be an ISO-8601 datetime")
        values[col.key] = value
    if values.get("id") is None:
        raise ValidationError(f"{key} entries require an id")
    return values


def _encode_image(image: ProductImage) -> dict:
    payload = base64.b64encode(image.blob).decode("ascii")
    return {
        "id": image.id,
        "data": f"data:{image.content_type};base64,{payload}",
        "type": image.content_type,
    }


def _decode_image(record) -> ProductImage:
    if not isinstance(record, dict) or not record.get("id") or not record.get("data"):
        raise ValidationError("images entries require id and data")
    data = record["data"]
    content_type = record.get("type")
    if data.startswith("data:"):
        header, _, data = data.partition(",")
        if not content_type:
            content_type = header[len("data:"):].split(";", 1)[0]
    try:
        blob = base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError(f"Image {record['id']} is not valid base64")
    return ProductImage(id=record["id"], blob=blob, content_type=content_type or "application/octet-stream")


def export_all() -> dict:
    document = {
        "version": BACKUP_VERSION,
        "export_time": to_utc_z(utcnow()),
    }
    for key, model in BACKUP_TABLES:
        rows = db.session.query(model).order_by(model.id.asc()).all()
        document[key] = [_record(model, row) for row in rows]
    document["images"] = [
        _encode_image(img) for img in db.session.query(ProductImage).order_by(ProductImage.id.asc())
    ]

    logger.info(
        "backup exported: %s",
        {key: len(document[key]) for key, _ in BACKUP_TABLES} | {"images": len(document["images"])},
    )
    return document


def export_json(*, indent: int | None = 2) -> str:
    return json.dumps(export_all(), indent=indent, ensure_ascii=False)


def import_data(document) -> dict:
    """
    Upsert every record of a backup document.

    Accepts the dict or its JSON text. Legacy consignment_logs /
    stock_adjustments arrays are converted and appended as new
    inventory_logs. Returns per-table counts.
    """
    if isinstance(document, (str, bytes)):
        try:
            document = json.loads(document)
        except ValueError as exc:
            raise ValidationError(f"Backup is not valid JSON: {exc}")
    if not isinstance(document, dict):
        raise ValidationError("Backup document must be an object")

    def _op():
        counts = {}
        for key, model in BACKUP_TABLES:
            records = document.get(key) or []
            for record in records:
                db.session.merge(model(**_decode(model, key, record)))
            counts[key] = len(records)

        images = document.get("images") or []
        for record in images:
            db.session.merge(_decode_image(record))
        counts["images"] = len(images)

        legacy = convert_legacy_records(
            _legacy_rows("consignment_logs", document.get("consignment_logs")),
            _legacy_rows("stock_adjustments", document.get("stock_adjustments")),
        )
        counts["legacy_logs"] = add_converted_logs(legacy)

        db.session.commit()
        return counts

    counts = run_with_retry(_op)
    logger.info("backup imported: %s", counts)
    publish_change(RELOAD_ALL)
    return counts


def _legacy_rows(key: str, rows) -> list[dict]:
    out = []
    for row in rows or ():
        if not isinstance(row, dict):
            raise ValidationError(f"{key} entries must be objects")
        row = dict(row)
        if isinstance(row.get("date"), str):
            try:
                row["date"] = parse_iso_datetime(row["date"])
            except ValueError:
                raise ValidationError(f"{key}.date must be an ISO-8601 datetime")
        out.append(row)
    return out
