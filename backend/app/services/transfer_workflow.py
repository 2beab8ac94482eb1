# backend/app/services/transfer_workflow.py
"""
Transfer state machine.

    Pending -> Shipped -> (Received) -> Confirmed
    Pending | Shipped | Received -> Rejected

Who may move a transfer depends on where the actor stands:

- sender: the source location, or no location at all when the transfer
  has no source (external supplier / head office)
- receiver: the destination location

The status column is updated with a compare-and-swap
(UPDATE ... WHERE id = ? AND status IN (eligible)). Two concurrent
confirms race on that statement; exactly one sees rowcount 1 and applies
the ledger increments, the other gets IllegalTransitionError.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import func

from app.models import TransferLine, TransferTransaction
from app.services import metrics
from app.services.concurrency import run_unit
from app.services.transfer_service import (
    TRANSFER_STATUS_CONFIRMED,
    TRANSFER_STATUS_PENDING,
    TRANSFER_STATUS_RECEIVED,
    TRANSFER_STATUS_REJECTED,
    TRANSFER_STATUS_SHIPPED,
    normalize_status,
)
from app.time_utils import to_utc_z, utcnow
from app.validation import (
    AuthorizationError,
    IllegalTransitionError,
    NotFoundError,
    ValidationError,
    clean_str,
    coerce_optional_id,
)


SENDER = "sender"
RECEIVER = "receiver"
EITHER_PARTY = "either"

# Sentinel: caller did not say where the actor stands; use the actor's home location.
ACTOR_HOME_LOCATION = object()


@dataclass(frozen=True)
class TransitionRule:
    from_statuses: tuple
    role: str


TRANSITIONS = {
    TRANSFER_STATUS_SHIPPED: TransitionRule((TRANSFER_STATUS_PENDING,), SENDER),
    TRANSFER_STATUS_RECEIVED: TransitionRule((TRANSFER_STATUS_SHIPPED,), RECEIVER),
    TRANSFER_STATUS_CONFIRMED: TransitionRule((TRANSFER_STATUS_SHIPPED, TRANSFER_STATUS_RECEIVED), RECEIVER),
    TRANSFER_STATUS_REJECTED: TransitionRule(
        (TRANSFER_STATUS_PENDING, TRANSFER_STATUS_SHIPPED, TRANSFER_STATUS_RECEIVED), EITHER_PARTY
    ),
}


def is_sender(transfer, location_id) -> bool:
    if transfer.from_location_id is None:
        return location_id is None
    return location_id is not None and transfer.from_location_id == location_id


def is_receiver(transfer, location_id) -> bool:
    return location_id is not None and transfer.to_location_id == location_id


def actor_may(role: str, transfer, location_id) -> bool:
    if role == SENDER:
        return is_sender(transfer, location_id)
    if role == RECEIVER:
        return is_receiver(transfer, location_id)
    return is_sender(transfer, location_id) or is_receiver(transfer, location_id)


class TransferStateMachine:
    def __init__(self, session, stock_ledger, mirror, audit, *, config=None, logger: logging.Logger | None = None):
        self.session = session
        self.stock_ledger = stock_ledger
        self.mirror = mirror
        self.audit = audit
        self.config = config or {}
        self.logger = logger or logging.getLogger(__name__)

    @property
    def decrement_source(self) -> bool:
        return bool(self.config.get("TRANSFER_DECREMENT_SOURCE", False))

    def transition(
        self,
        transfer_id: int,
        target_status,
        actor,
        *,
        actor_location_id=ACTOR_HOME_LOCATION,
        discrepancy_note=None,
        reason=None,
    ) -> dict:
        """
        Move a transfer to target_status.

        Raises:
            ValidationError: unknown target status
            NotFoundError: no such transfer
            IllegalTransitionError: target not reachable from the current status
            AuthorizationError: actor is not the party allowed to make this move
        """
        target = normalize_status(target_status)
        if target is None:
            raise ValidationError(f"Invalid status: {target_status}")

        if actor_location_id is ACTOR_HOME_LOCATION:
            location_id = getattr(actor, "location_id", None)
        else:
            location_id = coerce_optional_id(actor_location_id, "actor_location_id")
        discrepancy_note = clean_str(discrepancy_note, "discrepancy_note", max_length=2000)
        reason = clean_str(reason, "reason", max_length=2000)

        def _op():
            transfer = self.session.get(TransferTransaction, transfer_id, populate_existing=True)
            if transfer is None:
                raise NotFoundError(f"Transfer {transfer_id} not found")

            rule = TRANSITIONS.get(target)
            if rule is None or transfer.status not in rule.from_statuses:
                raise IllegalTransitionError(
                    f"Cannot move transfer from {transfer.status} to {target}",
                    current_status=transfer.status,
                )
            if not actor_may(rule.role, transfer, location_id):
                raise AuthorizationError(
                    "Not allowed to set status from current state",
                    current_status=transfer.status,
                )

            now = utcnow()
            values = {"status": target, "updated_at": now}
            if target == TRANSFER_STATUS_SHIPPED:
                values["dispatched_at"] = func.coalesce(TransferTransaction.dispatched_at, now)
            elif target == TRANSFER_STATUS_CONFIRMED:
                values["accepted_at"] = now
                values["discrepancy_note"] = func.coalesce(discrepancy_note, TransferTransaction.discrepancy_note)
            elif target == TRANSFER_STATUS_REJECTED:
                values["rejected_at"] = now
                values["rejection_reason"] = reason

            swapped = (
                self.session.query(TransferTransaction)
                .filter(
                    TransferTransaction.id == transfer.id,
                    TransferTransaction.status.in_(rule.from_statuses),
                )
                .update(values, synchronize_session=False)
            )
            if swapped != 1:
                # Lost the race to a concurrent transition.
                raise IllegalTransitionError(
                    f"Transfer {transfer.id} changed status concurrently",
                    current_status=None,
                )

            if target == TRANSFER_STATUS_CONFIRMED:
                self._apply_confirm(transfer)

            self.session.commit()
            return transfer.id, transfer.code, transfer.from_location_id, transfer.to_location_id

        tid, code, from_location_id, to_location_id = run_unit(self.session, _op)
        transfer = self.session.get(TransferTransaction, tid, populate_existing=True)

        metrics.incr("transfer_transitions")
        self.audit.record(
            event_type=f"transfer.{target.lower()}",
            entity_type="transfer",
            entity_ref=code,
            actor=actor,
            location_id=location_id,
            note=discrepancy_note or reason,
            payload={"id": tid, "from_location_id": from_location_id, "to_location_id": to_location_id},
        )
        self.mirror.enqueue_status(tid)
        self.mirror.dispatch()

        return {
            "id": tid,
            "code": code,
            "status": target,
            "dispatched_at": to_utc_z(transfer.dispatched_at),
            "accepted_at": to_utc_z(transfer.accepted_at),
            "rejected_at": to_utc_z(transfer.rejected_at),
            "discrepancy_note": transfer.discrepancy_note,
            "rejection_reason": transfer.rejection_reason,
        }

    def _apply_confirm(self, transfer) -> None:
        lines = (
            self.session.query(TransferLine.item_id, TransferLine.quantity)
            .filter(TransferLine.transfer_id == transfer.id)
            .all()
        )
        for item_id, qty in lines:
            self.stock_ledger.increment(transfer.to_location_id, item_id, qty)
            if self.decrement_source and transfer.from_location_id is not None:
                self.stock_ledger.decrement(transfer.from_location_id, item_id, qty)
