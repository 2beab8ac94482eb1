# Overview: Best-effort copy of transfers into the legacy flat transfer_master table.

"""
Legacy mirror outbox.

Primary operations enqueue jobs while their unit is open and call
dispatch() after it commits. Each job runs in its own unit; any failure
is rolled back, logged at WARNING and counted. A mirror failure never
reaches the caller and never undoes the primary write. `flask mirror
rebuild` re-syncs rows that fell behind.
"""

from __future__ import annotations

import logging

from ..models import Item, LegacyTransferRow, TransferLine, TransferTransaction
from ..time_utils import utcnow
from ..validation import MirrorError
from . import metrics


class LegacyMirror:
    def __init__(self, session, logger: logging.Logger | None = None):
        self.session = session
        self.logger = logger or logging.getLogger(__name__)
        self._pending: list[tuple[str, int]] = []

    # Outbox

    def enqueue_snapshot(self, transfer_id: int) -> None:
        self._pending.append(("snapshot", transfer_id))

    def enqueue_status(self, transfer_id: int) -> None:
        self._pending.append(("status", transfer_id))

    @property
    def pending(self) -> list[tuple[str, int]]:
        return list(self._pending)

    def dispatch(self) -> dict:
        """Run queued jobs, each in its own unit. Returns {"written": n, "failed": n}."""
        jobs, self._pending = self._pending, []
        written = failed = 0
        for kind, transfer_id in jobs:
            if self._run(kind, transfer_id):
                written += 1
            else:
                failed += 1
        return {"written": written, "failed": failed}

    def _run(self, kind: str, transfer_id: int) -> bool:
        job = self.snapshot if kind == "snapshot" else self.status
        try:
            job(transfer_id)
            self.session.commit()
        except Exception:
            # Any failure here is contained; the primary unit already committed.
            self.session.rollback()
            metrics.incr("mirror_failures")
            self.logger.warning("Legacy mirror %s failed for transfer %s", kind, transfer_id, exc_info=True)
            return False
        metrics.incr("mirror_writes")
        return True

    # Jobs (caller commits)

    def snapshot(self, transfer_id: int) -> int:
        """Replace the transfer's flat rows. Returns rows written."""
        transfer = self.session.get(TransferTransaction, transfer_id)
        if transfer is None:
            raise MirrorError(f"Transfer {transfer_id} not found for mirror")

        self.session.query(LegacyTransferRow).filter_by(transfer_id=transfer_id).delete(
            synchronize_session=False
        )

        rows = (
            self.session.query(TransferLine, Item)
            .join(Item, Item.id == TransferLine.item_id)
            .filter(TransferLine.transfer_id == transfer_id)
            .order_by(TransferLine.id.asc())
            .all()
        )
        now = utcnow()
        for line, item in rows:
            dealer = item.dealer_price_cents or 0
            self.session.add(
                LegacyTransferRow(
                    transfer_id=transfer.id,
                    transaction_code=transfer.code,
                    from_location_id=transfer.from_location_id,
                    to_location_id=transfer.to_location_id,
                    item_id=item.id,
                    transfer_date=(transfer.created_at or now).date(),
                    quantity=line.quantity,
                    stock_no=item.stock_no or item.item_code,
                    size=item.size,
                    dealer_price_cents=dealer,
                    total_price_cents=dealer * line.quantity,
                    status=transfer.status,
                    accepted_at=transfer.accepted_at,
                    discrepancy_note=transfer.discrepancy_note,
                    created_at=transfer.created_at,
                    updated_at=transfer.updated_at or now,
                )
            )
        return len(rows)

    def status(self, transfer_id: int) -> int:
        """Copy the current status fields onto existing rows. Returns rows updated."""
        transfer = self.session.get(TransferTransaction, transfer_id)
        if transfer is None:
            raise MirrorError(f"Transfer {transfer_id} not found for mirror")

        updated = (
            self.session.query(LegacyTransferRow)
            .filter_by(transfer_id=transfer_id)
            .update(
                {
                    "status": transfer.status,
                    "accepted_at": transfer.accepted_at,
                    "discrepancy_note": transfer.discrepancy_note,
                    "updated_at": transfer.updated_at or utcnow(),
                },
                synchronize_session=False,
            )
        )
        if updated == 0:
            # Rows never made it across; rebuild them from the primary tables.
            return self.snapshot(transfer_id)
        return updated

    def rebuild(self, transfer_id: int | None = None) -> dict:
        """Re-sync one or all transfers. Each transfer is its own unit."""
        if transfer_id is not None:
            ids = [transfer_id]
        else:
            ids = [row.id for row in self.session.query(TransferTransaction.id).order_by(TransferTransaction.id).all()]
        for tid in ids:
            self.enqueue_snapshot(tid)
        return self.dispatch()
