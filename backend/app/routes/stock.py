# backend/app/routes/stock.py
"""
Stock ledger read routes.

Writes happen only through transfer confirmation and exchanges; there is
no direct adjust endpoint here.
"""
from flask import Blueprint, current_app, jsonify, request

from app.engine import current_engine
from app.extensions import db


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


def _location_rows(ledger):
    location_id = request.args.get("location_id", type=int)
    if not location_id:
        return jsonify({"error": "location_id is required"}), 400
    try:
        return jsonify(ledger.read_all_for_location(location_id)), 200
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Unexpected error reading stock for location %s", location_id)
        return jsonify({"error": "Unexpected error"}), 500


@stock_bp.get("")
def location_stock():
    """Sellable stock at one location. Query: location_id (required)."""
    return _location_rows(current_engine().stock_ledger)


@stock_bp.get("/quarantine")
def location_quarantine():
    """Returned goods awaiting inspection at one location. Query: location_id (required)."""
    return _location_rows(current_engine().quarantine_ledger)


@stock_bp.get("/<int:location_id>/<int:item_id>")
def item_stock(location_id: int, item_id: int):
    """
    Sellable stock row for one (location, item) plus its quarantined quantity.

    Returns:
        200: Row with item and location display fields; quantity 0 when never stocked
        404: Unknown location or item
    """
    engine = current_engine()
    try:
        row = engine.stock_ledger.read(location_id, item_id)
        if row is None:
            return jsonify({"error": "Location or item not found"}), 404
        row["quarantine_quantity"] = engine.quarantine_ledger.quantity(location_id, item_id)
        return jsonify(row), 200
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Unexpected error reading stock for %s/%s", location_id, item_id)
        return jsonify({"error": "Unexpected error"}), 500
