# backend/app/services/transfer_service.py
"""
Transfer requests between locations.

Creates transfer transactions, replaces their lines while Pending, and
serves the read-side listings (all requests, one request, inward queue
for a destination, status counts). Status changes live in
transfer_workflow.py.

Every write is one unit: header and lines commit together or not at all.
The legacy mirror and the audit trail run after commit and never fail the
request.
"""
from __future__ import annotations

import logging
import secrets
import string
from typing import Optional

from sqlalchemy import case, func, select
from sqlalchemy.exc import IntegrityError, OperationalError, ProgrammingError
from sqlalchemy.orm import aliased

from app.models import Item, Location, TransferLine, TransferTransaction
from app.models.documents import TRANSFER_PRIORITIES, TRANSFER_STATUSES
from app.services import metrics
from app.services.concurrency import is_missing_table, lock_for_update, run_unit
from app.time_utils import to_utc_z, utcnow
from app.validation import (
    LinesNotEditableError,
    NotFoundError,
    StorageError,
    ValidationError,
    clean_str,
)


TRANSFER_STATUS_PENDING = "Pending"
TRANSFER_STATUS_SHIPPED = "Shipped"
TRANSFER_STATUS_RECEIVED = "Received"
TRANSFER_STATUS_CONFIRMED = "Confirmed"
TRANSFER_STATUS_REJECTED = "Rejected"

OPEN_INWARD_STATUSES = (TRANSFER_STATUS_PENDING, TRANSFER_STATUS_SHIPPED, TRANSFER_STATUS_RECEIVED)

_CODE_ALPHABET = string.digits + string.ascii_uppercase


def generate_transfer_code(now=None) -> str:
    """TXN-YYYYMMDD-HHMMSS-XXXXXXXX; 8 base36 chars from a CSPRNG."""
    now = now or utcnow()
    suffix = "".join(secrets.choice(_CODE_ALPHABET) for _ in range(8))
    return f"TXN-{now:%Y%m%d}-{now:%H%M%S}-{suffix}"


def normalize_status(value) -> Optional[str]:
    """Case-insensitive match against the known statuses; None if unknown."""
    if value is None:
        return None
    text = str(value).strip().lower()
    for status in TRANSFER_STATUSES:
        if status.lower() == text:
            return status
    return None


def normalize_priority(value) -> str:
    if value is None or str(value).strip() == "":
        return "Normal"
    text = str(value).strip().lower()
    for priority in TRANSFER_PRIORITIES:
        if priority.lower() == text:
            return priority
    raise ValidationError(f"priority must be one of {', '.join(TRANSFER_PRIORITIES)}")


class TransferRequestManager:
    def __init__(self, session, resolver, mirror, audit, *, config=None, logger: logging.Logger | None = None):
        self.session = session
        self.resolver = resolver
        self.mirror = mirror
        self.audit = audit
        self.config = config or {}
        self.logger = logger or logging.getLogger(__name__)

    @property
    def max_code_attempts(self) -> int:
        return max(1, int(self.config.get("TRANSFER_CODE_MAX_ATTEMPTS", 5)))

    # Writes

    def create(
        self,
        *,
        to_location_id,
        lines,
        actor,
        from_location_id=None,
        priority=None,
        note=None,
    ) -> dict:
        """
        Create a Pending transfer with all of its lines.

        Everything is validated before the first write: a single bad line
        rejects the whole request and nothing is stored.
        """
        to_location = self.resolver.require_location(to_location_id, "to_location_id")
        from_location = self.resolver.require_location(from_location_id, "from_location_id", required=False)
        if from_location is not None and from_location.id == to_location.id:
            raise ValidationError("from_location_id and to_location_id must differ")
        priority = normalize_priority(priority)
        note = clean_str(note, "note", max_length=2000)
        resolved = self.resolver.resolve_transfer_lines(lines)
        line_specs = [(r.item_id, r.quantity) for r in resolved]

        attempt = 0
        while True:
            attempt += 1
            code = generate_transfer_code()
            if run_unit(self.session, lambda: self._code_exists(code)):
                self._code_collision(code, attempt)
                continue

            def _op(code=code):
                now = utcnow()
                transfer = TransferTransaction(
                    code=code,
                    from_location_id=from_location.id if from_location else None,
                    to_location_id=to_location.id,
                    priority=priority,
                    note=note,
                    status=TRANSFER_STATUS_PENDING,
                    created_by_user_id=actor.user_id,
                    created_by_name=actor.name or "Unknown",
                    created_at=now,
                    updated_at=now,
                )
                transfer.lines = [TransferLine(item_id=item_id, quantity=qty) for item_id, qty in line_specs]
                self.session.add(transfer)
                self.session.commit()
                return transfer

            try:
                transfer = run_unit(self.session, _op)
            except IntegrityError as exc:
                # Unique violation from a concurrent writer, or a real constraint failure.
                if not run_unit(self.session, lambda: self._code_exists(code)):
                    raise StorageError("Transfer could not be stored") from exc
                self._code_collision(code, attempt)
                continue
            break

        metrics.incr("transfers_created")
        self.audit.record(
            event_type="transfer.created",
            entity_type="transfer",
            entity_ref=transfer.code,
            actor=actor,
            location_id=transfer.from_location_id,
            payload={"id": transfer.id, "item_count": len(line_specs), "priority": priority},
        )
        self.mirror.enqueue_snapshot(transfer.id)
        self.mirror.dispatch()

        return {
            "id": transfer.id,
            "code": transfer.code,
            "item_count": len(line_specs),
            "status": transfer.status,
            "created_by_user_id": transfer.created_by_user_id,
            "created_by_name": transfer.created_by_name,
        }

    def replace_lines(self, transfer_id: int, lines, *, actor=None) -> dict:
        """Swap the full line set of a Pending transfer."""

        def _op():
            transfer = lock_for_update(
                self.session.query(TransferTransaction).filter_by(id=transfer_id)
            ).first()
            if transfer is None:
                raise NotFoundError(f"Transfer {transfer_id} not found")
            if transfer.status != TRANSFER_STATUS_PENDING:
                raise LinesNotEditableError(
                    "Only Pending transfers can be edited",
                    current_status=transfer.status,
                )

            resolved = self.resolver.resolve_transfer_lines(lines)

            self.session.query(TransferLine).filter_by(transfer_id=transfer.id).delete(
                synchronize_session=False
            )
            for r in resolved:
                self.session.add(TransferLine(transfer_id=transfer.id, item_id=r.item_id, quantity=r.quantity))
            transfer.updated_at = utcnow()
            self.session.commit()
            return transfer.id, transfer.code, len(resolved), sum(r.quantity for r in resolved)

        tid, code, item_count, total_qty = run_unit(self.session, _op)

        self.audit.record(
            event_type="transfer.lines_replaced",
            entity_type="transfer",
            entity_ref=code,
            actor=actor,
            payload={"id": tid, "item_count": item_count, "total_qty": total_qty},
        )
        self.mirror.enqueue_snapshot(tid)
        self.mirror.dispatch()

        return {"id": tid, "code": code, "item_count": item_count, "total_qty": total_qty}

    # Reads

    def list(self, *, status=None, from_location_id=None, to_location_id=None, limit: int | None = None) -> list[dict]:
        max_limit = int(self.config.get("TRANSFER_LIST_LIMIT", 200))
        limit = max_limit if limit is None else max(1, min(int(limit), max_limit))
        query = self._summary_query()
        if status:
            wanted = normalize_status(status)
            if wanted is None:
                raise ValidationError(f"Unknown status: {status}")
            query = query.where(TransferTransaction.status == wanted)
        if from_location_id is not None:
            query = query.where(TransferTransaction.from_location_id == from_location_id)
        if to_location_id is not None:
            query = query.where(TransferTransaction.to_location_id == to_location_id)
        query = query.order_by(TransferTransaction.created_at.desc(), TransferTransaction.id.desc()).limit(limit)
        return self._read_summaries(query, "transfer list")

    def inward(self, location_id: int, status: str = "") -> list[dict]:
        """Inbound transfers for a destination. status: pending | accepted | "" (all)."""
        query = self._summary_query().where(TransferTransaction.to_location_id == location_id)
        wanted = (status or "").strip().lower()
        if wanted == "pending":
            query = query.where(TransferTransaction.status.in_(OPEN_INWARD_STATUSES))
        elif wanted == "accepted":
            query = query.where(TransferTransaction.status == TRANSFER_STATUS_CONFIRMED)
        elif wanted:
            raise ValidationError("status must be pending, accepted or empty")
        query = query.order_by(
            func.coalesce(TransferTransaction.dispatched_at, TransferTransaction.created_at).desc(),
            TransferTransaction.id.desc(),
        )
        return self._read_summaries(query, "inward list")

    def get(self, id_or_code) -> Optional[dict]:
        """Numeric id first, then transfer code. None when absent."""
        try:
            transfer = None
            text = str(id_or_code).strip()
            if text.isdigit():
                transfer = self.session.get(TransferTransaction, int(text))
            if transfer is None:
                transfer = self.session.query(TransferTransaction).filter_by(code=text).first()
            if transfer is None:
                return None

            rows = (
                self.session.query(TransferLine, Item)
                .join(Item, Item.id == TransferLine.item_id)
                .filter(TransferLine.transfer_id == transfer.id)
                .order_by(TransferLine.id.asc())
                .all()
            )
        except (OperationalError, ProgrammingError) as exc:
            if not is_missing_table(exc):
                raise
            self.session.rollback()
            self.logger.warning("Transfer tables missing; transfer %s reported as absent", id_or_code)
            return None

        data = transfer.to_dict()
        data["from_location_name"] = transfer.from_location.name if transfer.from_location else None
        data["to_location_name"] = transfer.to_location.name if transfer.to_location else None
        data["lines"] = [
            {
                "id": line.id,
                "item_id": item.id,
                "item_code": item.item_code,
                "stock_no": item.stock_no,
                "name": item.name,
                "size": item.size,
                "brand": item.brand,
                "colour": item.colour,
                "quantity": line.quantity,
                "dealer_price_cents": item.dealer_price_cents,
                "line_total_cents": (item.dealer_price_cents or 0) * line.quantity,
            }
            for line, item in rows
        ]
        data["item_count"] = len(rows)
        data["total_qty"] = sum(line.quantity for line, _ in rows)
        return data

    def stats(self) -> dict:
        columns = [func.count(TransferTransaction.id).label("total")]
        for status in TRANSFER_STATUSES:
            columns.append(
                func.coalesce(
                    func.sum(case((TransferTransaction.status == status, 1), else_=0)), 0
                ).label(status.lower())
            )
        empty = {"total": 0, **{s.lower(): 0 for s in TRANSFER_STATUSES}}
        try:
            row = self.session.execute(select(*columns)).one()
        except (OperationalError, ProgrammingError) as exc:
            if not is_missing_table(exc):
                raise
            self.session.rollback()
            self.logger.warning("Transfer table missing; returning zero stats")
            return empty
        return {key: int(row._mapping[key] or 0) for key in empty}

    # Internals

    def _code_exists(self, code: str) -> bool:
        return self.session.query(TransferTransaction.id).filter_by(code=code).first() is not None

    def _code_collision(self, code: str, attempt: int) -> None:
        metrics.incr("transfer_code_retries")
        if attempt >= self.max_code_attempts:
            raise StorageError("Could not allocate a unique transfer code")
        self.logger.info("Transfer code %s already taken; regenerating (attempt %s)", code, attempt)

    def _summary_query(self):
        src = aliased(Location)
        dst = aliased(Location)
        totals = (
            select(
                TransferLine.transfer_id.label("transfer_id"),
                func.count(TransferLine.id).label("item_count"),
                func.coalesce(func.sum(TransferLine.quantity), 0).label("total_qty"),
                func.coalesce(
                    func.sum(func.coalesce(Item.dealer_price_cents, 0) * TransferLine.quantity), 0
                ).label("total_amount_cents"),
            )
            .join(Item, Item.id == TransferLine.item_id, isouter=True)
            .group_by(TransferLine.transfer_id)
            .subquery()
        )
        return (
            select(
                TransferTransaction,
                src.name.label("from_location_name"),
                dst.name.label("to_location_name"),
                totals.c.item_count,
                totals.c.total_qty,
                totals.c.total_amount_cents,
            )
            .outerjoin(src, src.id == TransferTransaction.from_location_id)
            .outerjoin(dst, dst.id == TransferTransaction.to_location_id)
            .outerjoin(totals, totals.c.transfer_id == TransferTransaction.id)
        )

    def _read_summaries(self, query, label: str) -> list[dict]:
        try:
            rows = self.session.execute(query).all()
        except (OperationalError, ProgrammingError) as exc:
            if not is_missing_table(exc):
                raise
            self.session.rollback()
            self.logger.warning("Transfer tables missing; returning empty %s", label)
            return []

        result = []
        for transfer, from_name, to_name, item_count, total_qty, total_amount in rows:
            result.append({
                "id": transfer.id,
                "code": transfer.code,
                "from_location_id": transfer.from_location_id,
                "from_location_name": from_name,
                "to_location_id": transfer.to_location_id,
                "to_location_name": to_name,
                "priority": transfer.priority,
                "status": transfer.status,
                "created_by_user_id": transfer.created_by_user_id,
                "created_by_name": transfer.created_by_name,
                "created_at": to_utc_z(transfer.created_at),
                "dispatched_at": to_utc_z(transfer.dispatched_at),
                "accepted_at": to_utc_z(transfer.accepted_at),
                "item_count": int(item_count or 0),
                "total_qty": int(total_qty or 0),
                "total_amount_cents": int(total_amount or 0),
            })
        return result
