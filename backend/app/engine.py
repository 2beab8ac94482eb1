# backend/app/engine.py
"""
Component wiring.

Every component takes the SQLAlchemy session and its collaborators in its
constructor; this module is the only place that knows how they fit
together. One engine per request (cached on flask.g), or one per CLI
command.
"""
from __future__ import annotations

import logging

from flask import current_app, g

from .extensions import db
from .services.audit_service import AuditTrail
from .services.exchange_service import ExchangeReconciler
from .services.hold_service import HoldBillManager
from .services.mirror_service import LegacyMirror
from .services.reference_service import ReferenceResolver
from .services.stock_ledger_service import QuarantineLedger, StockLedger
from .services.transfer_service import TransferRequestManager
from .services.transfer_workflow import TransferStateMachine


class InventoryEngine:
    def __init__(self, session, config=None, logger: logging.Logger | None = None):
        config = config or {}
        logger = logger or logging.getLogger("hypepos")
        self.session = session
        self.config = config
        self.logger = logger

        self.resolver = ReferenceResolver(session)
        self.stock_ledger = StockLedger(session, logger)
        self.quarantine_ledger = QuarantineLedger(session, logger)
        self.audit = AuditTrail(session, logger)
        self.mirror = LegacyMirror(session, logger)

        self.transfers = TransferRequestManager(
            session, self.resolver, self.mirror, self.audit, config=config, logger=logger
        )
        self.workflow = TransferStateMachine(
            session, self.stock_ledger, self.mirror, self.audit, config=config, logger=logger
        )
        self.exchanges = ExchangeReconciler(
            session, self.resolver, self.stock_ledger, self.quarantine_ledger, self.audit, logger=logger
        )
        self.holds = HoldBillManager(session, self.resolver, self.audit, config=config, logger=logger)


def current_engine() -> InventoryEngine:
    """Engine bound to the current request's session."""
    engine = getattr(g, "inventory_engine", None)
    if engine is None:
        engine = InventoryEngine(db.session, current_app.config, current_app.logger)
        g.inventory_engine = engine
    return engine
