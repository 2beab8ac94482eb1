# backend/app/services/exchange_service.py
"""
Exchange / return reconciliation.

An exchange takes goods back (return lines) and hands new goods out (issue
lines) against an earlier sale:

- return lines go into the quarantine ledger, never straight back to
  sellable stock
- issue lines leave the sellable ledger (clamped at zero)
- the price difference is settled separately, at most once

Purchase-location and return-window policies belong to the caller; this
service only enforces structural rules.
"""
from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.models import Exchange, ExchangeLine, ExchangePayment, ExchangeSaleLink, ExchangeSettlement
from app.models.sales import PAYMENT_METHODS
from app.services import metrics
from app.services.concurrency import lock_for_update, run_unit
from app.validation import (
    NotFoundError,
    SettlementError,
    StateConflictError,
    StorageError,
    ValidationError,
    clean_str,
    coerce_int,
    coerce_optional_id,
    coerce_price_cents,
    require_list,
)


def exchange_due_cents(original_total_cents: int, new_total_cents: int) -> int:
    """Amount the customer still owes. Refunds are out of scope, so never negative."""
    return max(0, new_total_cents - original_total_cents)


class ExchangeReconciler:
    def __init__(self, session, resolver, stock_ledger, quarantine_ledger, audit, *, logger: logging.Logger | None = None):
        self.session = session
        self.resolver = resolver
        self.stock_ledger = stock_ledger
        self.quarantine_ledger = quarantine_ledger
        self.audit = audit
        self.logger = logger or logging.getLogger(__name__)

    def process_exchange(
        self,
        *,
        original_sale_ref,
        actor,
        location_id=None,
        customer_name=None,
        customer_mobile=None,
        reason=None,
        returns=None,
        issues=None,
    ) -> dict:
        sale_ref = clean_str(original_sale_ref, "original_sale_ref", max_length=64, required=True)
        returns = require_list(returns, "returns")
        issues = require_list(issues, "issues")
        location = self.resolver.require_location(location_id, "location_id", required=False)
        customer_name = clean_str(customer_name, "customer_name", max_length=128)
        customer_mobile = clean_str(customer_mobile, "customer_mobile", max_length=32)
        reason = clean_str(reason, "reason", max_length=2000)

        lines = self._prepare_lines("return", returns) + self._prepare_lines("issue", issues)
        if not lines:
            raise ValidationError("Exchange must have at least one return or issue line with quantity > 0")

        def _op():
            exchange = Exchange(
                original_sale_ref=sale_ref,
                location_id=location.id if location else None,
                customer_name=customer_name,
                customer_mobile=customer_mobile,
                reason=reason,
                created_by_user_id=actor.user_id,
                created_by_name=actor.name or "Unknown",
            )
            exchange.lines = [ExchangeLine(**spec) for spec in lines]
            self.session.add(exchange)
            self.session.flush()

            if exchange.location_id is not None:
                for line in exchange.lines:
                    if line.item_id is None:
                        continue
                    if line.direction == "return":
                        self.quarantine_ledger.increment(exchange.location_id, line.item_id, line.quantity)
                    else:
                        self.stock_ledger.decrement(exchange.location_id, line.item_id, line.quantity)

            self.session.commit()
            return exchange

        exchange = run_unit(self.session, _op)
        metrics.incr("exchanges_created")

        data = exchange.to_dict()
        self.audit.record(
            event_type="exchange.created",
            entity_type="exchange",
            entity_ref=exchange.id,
            actor=actor,
            location_id=exchange.location_id,
            payload={"original_sale_ref": sale_ref, "difference_cents": data["difference_cents"]},
        )
        return data

    def settle_difference(
        self,
        exchange_id: int,
        *,
        original_total_cents,
        new_total_cents,
        payments=None,
        accept_partial: bool = False,
        actor=None,
    ) -> dict:
        """
        Record how the price difference was paid.

        due = max(0, new - original). Payments must add up to exactly the
        amount due unless accept_partial is set, in which case they may
        fall short but never exceed it.
        """
        original_total = coerce_price_cents(original_total_cents, "original_total_cents")
        new_total = coerce_price_cents(new_total_cents, "new_total_cents")
        due = exchange_due_cents(original_total, new_total)
        payment_specs = self._prepare_payments(require_list(payments, "payments"))
        paid = sum(p["amount_cents"] for p in payment_specs)

        if paid > due:
            raise SettlementError(
                f"Payments total {paid} exceeds amount due {due}", due_cents=due, paid_cents=paid
            )
        if paid != due and not accept_partial:
            raise SettlementError(
                f"Payments total {paid} does not match amount due {due}", due_cents=due, paid_cents=paid
            )

        def _op():
            exchange = lock_for_update(self.session.query(Exchange).filter_by(id=exchange_id)).first()
            if exchange is None:
                raise NotFoundError(f"Exchange {exchange_id} not found")
            if self._settlement_exists(exchange.id):
                raise StateConflictError(f"Exchange {exchange_id} is already settled")

            settlement = ExchangeSettlement(
                exchange_id=exchange.id,
                original_total_cents=original_total,
                new_total_cents=new_total,
                due_cents=due,
                paid_cents=paid,
                accepted_partial=bool(accept_partial and paid != due),
            )
            settlement.payments = [ExchangePayment(**spec) for spec in payment_specs]
            self.session.add(settlement)
            self.session.commit()
            return settlement

        try:
            settlement = run_unit(self.session, _op)
        except IntegrityError as exc:
            # Lost the race to a concurrent settle
            if self.session.query(ExchangeSettlement.id).filter_by(exchange_id=exchange_id).first() is not None:
                raise StateConflictError(f"Exchange {exchange_id} is already settled") from exc
            raise StorageError("Settlement could not be stored") from exc
        data = settlement.to_dict()
        self.audit.record(
            event_type="exchange.settled",
            entity_type="exchange",
            entity_ref=exchange_id,
            actor=actor,
            payload={"due_cents": due, "paid_cents": paid, "accepted_partial": data["accepted_partial"]},
        )
        return data

    def _settlement_exists(self, exchange_id: int) -> bool:
        return self.session.query(ExchangeSettlement.id).filter_by(exchange_id=exchange_id).first() is not None

    def mark_exchanged(self, original_sale_ref, *, exchange_id=None, new_sale_ref=None, note=None) -> bool:
        """
        Advisory link between the original sale and its exchange.

        Only a missing original_sale_ref is an error; storage problems are
        logged and reported as False.
        """
        sale_ref = clean_str(original_sale_ref, "original_sale_ref", max_length=64, required=True)
        try:
            link = ExchangeSaleLink(
                original_sale_ref=sale_ref,
                exchange_id=coerce_optional_id(exchange_id, "exchange_id"),
                new_sale_ref=clean_str(new_sale_ref, "new_sale_ref", max_length=64),
                note=clean_str(note, "note", max_length=2000),
            )
            self.session.add(link)
            self.session.commit()
        except (SQLAlchemyError, ValidationError):
            self.session.rollback()
            metrics.incr("exchange_link_failures")
            self.logger.warning("Exchange link for sale %s not recorded", sale_ref, exc_info=True)
            return False
        return True

    def get(self, exchange_id: int) -> Optional[dict]:
        exchange = self.session.get(Exchange, exchange_id)
        return exchange.to_dict() if exchange else None

    def links_for_sale(self, original_sale_ref) -> list[dict]:
        rows = (
            self.session.query(ExchangeSaleLink)
            .filter_by(original_sale_ref=str(original_sale_ref))
            .order_by(ExchangeSaleLink.id.asc())
            .all()
        )
        return [r.to_dict() for r in rows]

    # Internals

    def _prepare_lines(self, direction: str, raw_lines: list) -> list[dict]:
        field = "returns" if direction == "return" else "issues"
        prepared = []
        for index, raw in enumerate(raw_lines):
            if not isinstance(raw, dict):
                raise ValidationError(f"{field}[{index}] must be an object", row=index)
            qty = coerce_int(raw.get("quantity", raw.get("qty")), f"{field}[{index}].quantity", allow_none=True)
            if qty is None or qty <= 0:
                continue
            price = coerce_price_cents(
                raw.get("unit_price_cents", raw.get("price_cents")), f"{field}[{index}].unit_price_cents"
            )
            sku = clean_str(raw.get("sku"), f"{field}[{index}].sku", max_length=64)
            item_id = coerce_optional_id(raw.get("item_id"), f"{field}[{index}].item_id")
            item = self.resolver.find_item(item_id=item_id, item_code=sku)
            if item is None and (item_id or sku):
                self.logger.info("Exchange %s line %s: item %s not in master", direction, index, item_id or sku)
            prepared.append({
                "direction": direction,
                "item_id": item.id if item else None,
                "sku": sku or (item.item_code if item else None),
                "name": clean_str(raw.get("name"), f"{field}[{index}].name", max_length=255) or (item.name if item else None),
                "size": clean_str(raw.get("size"), f"{field}[{index}].size", max_length=32) or (item.size if item else None),
                "quantity": qty,
                "unit_price_cents": price,
            })
        return prepared

    @staticmethod
    def _prepare_payments(raw_payments: list) -> list[dict]:
        prepared = []
        for index, raw in enumerate(raw_payments):
            if not isinstance(raw, dict):
                raise ValidationError(f"payments[{index}] must be an object")
            method = str(raw.get("method") or "").strip().lower()
            if method not in PAYMENT_METHODS:
                raise ValidationError(f"payments[{index}].method must be one of {', '.join(PAYMENT_METHODS)}")
            amount = coerce_int(raw.get("amount_cents"), f"payments[{index}].amount_cents")
            if amount <= 0:
                raise ValidationError(f"payments[{index}].amount_cents must be greater than zero")
            prepared.append({
                "method": method,
                "amount_cents": amount,
                "ref": clean_str(raw.get("ref"), f"payments[{index}].ref", max_length=128),
            })
        return prepared
