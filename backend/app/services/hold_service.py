# backend/app/services/hold_service.py
"""
Hold bills: park an in-progress sale and pick it up later.

Holding never touches stock. Resume hands the cart back and deletes the
bill in the same unit, so a bill resumes exactly once. Every hold, resume
and delete writes an audit event in the same unit as the change.
"""
from __future__ import annotations

import logging
import math
import secrets
import time
from typing import Optional

from sqlalchemy.exc import IntegrityError, OperationalError, ProgrammingError

from app.models import HeldBill, HeldBillLine
from app.services import metrics
from app.services.concurrency import is_missing_table, lock_for_update, run_unit
from app.time_utils import hours_ago
from app.validation import (
    ConflictError,
    NotFoundError,
    StorageError,
    ValidationError,
    clean_str,
    coerce_int,
    coerce_optional_id,
    coerce_price_cents,
    coerce_quantity,
    require_list,
)


MAX_BPS = 10_000
MAX_AGE_HOURS = 24 * 366


def generate_hold_token() -> str:
    """H + epoch milliseconds + random hex; short enough to read over the counter."""
    return f"H{int(time.time() * 1000)}{secrets.token_hex(3).upper()}"


def _bps(value, field: str) -> int:
    if value is None or value == "":
        return 0
    bps = coerce_int(value, field)
    if bps < 0 or bps > MAX_BPS:
        raise ValidationError(f"{field} must be between 0 and {MAX_BPS}")
    return bps


class HoldBillManager:
    def __init__(self, session, resolver, audit, *, config=None, logger: logging.Logger | None = None):
        self.session = session
        self.resolver = resolver
        self.audit = audit
        self.config = config or {}
        self.logger = logger or logging.getLogger(__name__)

    def hold(self, *, cart, actor, customer=None, settings=None, location_id=None, token=None) -> dict:
        lines = self._prepare_cart(require_list(cart, "cart"))
        if not lines:
            raise ValidationError("Cart is empty")
        customer = customer if isinstance(customer, dict) else {}
        settings = settings if isinstance(settings, dict) else {}
        client_token = clean_str(token, "token", max_length=64)
        hold_token = client_token or generate_hold_token()
        location = self.resolver.require_location(location_id, "location_id", required=False)
        location_id = location.id if location is not None else None

        def _op():
            bill = HeldBill(
                token=hold_token,
                location_id=location_id,
                customer_name=clean_str(customer.get("name"), "customer.name", max_length=128),
                customer_mobile=clean_str(customer.get("mobile"), "customer.mobile", max_length=32),
                discount_bps=_bps(settings.get("discount_bps"), "settings.discount_bps"),
                tax_rate_bps=_bps(settings.get("tax_rate_bps"), "settings.tax_rate_bps"),
                held_by_user_id=actor.user_id,
                held_by_name=actor.name or "Unknown",
            )
            bill.lines = [HeldBillLine(**spec) for spec in lines]
            self.session.add(bill)
            self.audit.append(
                event_type="hold.created",
                entity_type="hold",
                entity_ref=hold_token,
                actor=actor,
                location_id=location_id,
                payload={"item_count": len(lines)},
            )
            self.session.commit()
            return bill

        try:
            bill = run_unit(self.session, _op)
        except IntegrityError as exc:
            if self.session.query(HeldBill.id).filter_by(token=hold_token).first() is not None:
                raise ConflictError(f"Hold token {hold_token} already exists") from exc
            raise StorageError("Held bill could not be stored") from exc

        metrics.incr("holds_created")
        return bill.to_dict()

    def resume(self, token, *, actor=None) -> dict:
        """Return the cart and delete the bill. A second resume raises NotFoundError."""
        token = clean_str(token, "token", max_length=64, required=True)

        def _op():
            bill = lock_for_update(self.session.query(HeldBill).filter_by(token=token)).first()
            if bill is None:
                raise NotFoundError(f"Held bill {token} not found")
            cart = bill.to_cart()
            cart["created_at"] = bill.to_dict()["created_at"]
            bill_id = bill.id
            self.session.expunge(bill)

            self.session.query(HeldBillLine).filter_by(held_bill_id=bill_id).delete(synchronize_session=False)
            deleted = self.session.query(HeldBill).filter_by(id=bill_id).delete(synchronize_session=False)
            if deleted != 1:
                raise NotFoundError(f"Held bill {token} was already resumed")

            self.audit.append(
                event_type="hold.resumed",
                entity_type="hold",
                entity_ref=token,
                actor=actor,
                location_id=cart["location_id"],
            )
            self.session.commit()
            return cart

        cart = run_unit(self.session, _op)
        metrics.incr("holds_resumed")
        return cart

    def delete(self, token_or_id, *, actor=None) -> dict:
        ref = clean_str(token_or_id, "token", max_length=64, required=True)

        def _op():
            query = self.session.query(HeldBill)
            bill = lock_for_update(query.filter_by(token=ref)).first()
            if bill is None and ref.isdigit():
                bill = lock_for_update(self.session.query(HeldBill).filter_by(id=int(ref))).first()
            if bill is None:
                raise NotFoundError(f"Held bill {ref} not found")
            bill_id, hold_token, location_id = bill.id, bill.token, bill.location_id
            self.session.expunge(bill)

            self.session.query(HeldBillLine).filter_by(held_bill_id=bill_id).delete(synchronize_session=False)
            deleted = self.session.query(HeldBill).filter_by(id=bill_id).delete(synchronize_session=False)
            if deleted != 1:
                raise NotFoundError(f"Held bill {ref} not found")

            self.audit.append(
                event_type="hold.deleted",
                entity_type="hold",
                entity_ref=hold_token,
                actor=actor,
                location_id=location_id,
            )
            self.session.commit()
            return {"id": bill_id, "token": hold_token, "deleted": True}

        return run_unit(self.session, _op)

    def list(self, *, max_age_hours=None, location_id=None) -> list[dict]:
        limit = int(self.config.get("HOLD_LIST_LIMIT", 500))
        query = self.session.query(HeldBill)
        if max_age_hours is not None and max_age_hours != "":
            try:
                hours = float(max_age_hours)
            except (TypeError, ValueError):
                raise ValidationError("max_age_hours must be a number")
            if not math.isfinite(hours) or hours <= 0 or hours > MAX_AGE_HOURS:
                raise ValidationError(f"max_age_hours must be greater than zero and at most {MAX_AGE_HOURS}")
            query = query.filter(HeldBill.created_at >= hours_ago(hours))
        if location_id is not None:
            query = query.filter(HeldBill.location_id == location_id)

        try:
            bills = query.order_by(HeldBill.id.desc()).limit(limit).all()
            return [b.to_dict() for b in bills]
        except (OperationalError, ProgrammingError) as exc:
            if not is_missing_table(exc):
                raise
            self.session.rollback()
            self.logger.warning("held_bills table missing; returning empty hold list")
            return []

    def get(self, token) -> Optional[dict]:
        bill = self.session.query(HeldBill).filter_by(token=str(token)).first()
        return bill.to_dict() if bill else None

    @staticmethod
    def _prepare_cart(raw_lines: list) -> list[dict]:
        prepared = []
        for index, raw in enumerate(raw_lines):
            if not isinstance(raw, dict):
                raise ValidationError(f"cart[{index}] must be an object", row=index)
            qty = raw.get("quantity", raw.get("qty"))
            prepared.append({
                "item_id": coerce_optional_id(raw.get("item_id"), f"cart[{index}].item_id"),
                "sku": clean_str(raw.get("sku"), f"cart[{index}].sku", max_length=64),
                "name": clean_str(raw.get("name"), f"cart[{index}].name", max_length=255),
                "size": clean_str(raw.get("size"), f"cart[{index}].size", max_length=32),
                "quantity": coerce_quantity(1 if qty is None else qty, f"cart[{index}].quantity"),
                "unit_price_cents": coerce_price_cents(
                    raw.get("unit_price_cents", raw.get("price_cents")), f"cart[{index}].unit_price_cents"
                ),
            })
        return prepared
