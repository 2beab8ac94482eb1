# backend/app/routes/transfers.py
"""
Transfer request API routes.
"""
from flask import Blueprint, request, jsonify, g, current_app
from app.extensions import db
from app.decorators import with_actor
from app.engine import current_engine
from app.services.transfer_workflow import ACTOR_HOME_LOCATION
from app.validation import InventoryError, error_response, require_object


transfers_bp = Blueprint("transfers", __name__, url_prefix="/api/transfers")


def _unexpected(action: str):
    db.session.rollback()
    current_app.logger.exception("Unexpected error %s", action)
    return jsonify({"error": "Unexpected error"}), 500


@transfers_bp.route("/requests", methods=["POST"])
@with_actor
def create_transfer_request():
    """
    Create a transfer request with its lines.

    Request body:
    {
        "from_location_id": int | null,
        "to_location_id": int,
        "priority": "Normal" | "High" | "Urgent",
        "note": str (optional),
        "lines": [{"item_id" | "item_code" | "stock_no": ..., "quantity": int}]
    }

    Returns:
        201: {id, code, item_count, status, created_by_user_id, created_by_name}
        400: Invalid request (nothing stored)
        503: Storage unavailable, retry
    """
    try:
        data = require_object(request.get_json(silent=True) or {}, "request body")
        result = current_engine().transfers.create(
            from_location_id=data.get("from_location_id"),
            to_location_id=data.get("to_location_id"),
            priority=data.get("priority"),
            note=data.get("note"),
            lines=data.get("lines", data.get("items")),
            actor=g.actor,
        )
        return jsonify(result), 201

    except InventoryError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        return _unexpected("creating transfer request")


@transfers_bp.route("/requests/<int:transfer_id>/lines", methods=["PUT"])
@with_actor
def replace_transfer_lines(transfer_id: int):
    """
    Replace the full line set of a Pending transfer.

    Returns:
        200: {id, code, item_count, total_qty}
        400: Invalid lines, or transfer no longer Pending
        404: Transfer not found
    """
    try:
        data = require_object(request.get_json(silent=True) or {}, "request body")
        result = current_engine().transfers.replace_lines(
            transfer_id,
            data.get("lines", data.get("items")),
            actor=g.actor,
        )
        return jsonify(result), 200

    except InventoryError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        return _unexpected("replacing transfer lines")


@transfers_bp.route("/requests/<int:transfer_id>", methods=["PUT"])
@with_actor
def update_transfer_status(transfer_id: int):
    """
    Move a transfer through its lifecycle.

    Request body:
    {
        "status": "Shipped" | "Received" | "Confirmed" | "Rejected",
        "actor_location_id": int | null (optional; defaults to the actor's location),
        "discrepancy_note": str (Confirmed only, optional),
        "reason": str (Rejected only, optional)
    }

    Returns:
        200: {id, status, ...}
        400: Unknown status
        403: Actor not allowed, or transition not allowed from current status
        404: Transfer not found
    """
    try:
        data = require_object(request.get_json(silent=True) or {}, "request body")
        actor_location_id = data["actor_location_id"] if "actor_location_id" in data else ACTOR_HOME_LOCATION
        result = current_engine().workflow.transition(
            transfer_id,
            data.get("status"),
            g.actor,
            actor_location_id=actor_location_id,
            discrepancy_note=data.get("discrepancy_note"),
            reason=data.get("reason"),
        )
        return jsonify(result), 200

    except InventoryError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        return _unexpected("updating transfer status")


@transfers_bp.route("/requests", methods=["GET"])
def list_transfer_requests():
    """
    List transfer requests.

    Query params:
        status: Pending | Shipped | Received | Confirmed | Rejected
        from_location_id, to_location_id: int
        limit: int (default TRANSFER_LIST_LIMIT)
    """
    try:
        rows = current_engine().transfers.list(
            status=request.args.get("status"),
            from_location_id=request.args.get("from_location_id", type=int),
            to_location_id=request.args.get("to_location_id", type=int),
            limit=request.args.get("limit", type=int),
        )
        return jsonify(rows), 200

    except InventoryError as e:
        return error_response(e)
    except Exception:
        return _unexpected("listing transfer requests")


@transfers_bp.route("/requests/stats", methods=["GET"])
def transfer_stats():
    """Counts by status."""
    try:
        return jsonify(current_engine().transfers.stats()), 200
    except Exception:
        return _unexpected("reading transfer stats")


@transfers_bp.route("/requests/<id_or_code>", methods=["GET"])
def get_transfer_request(id_or_code: str):
    """
    Get one transfer with its lines, by numeric id or by code.

    Returns:
        200: Transfer details
        404: Transfer not found
    """
    try:
        transfer = current_engine().transfers.get(id_or_code)
        if transfer is None:
            return jsonify({"error": "Transfer not found"}), 404
        return jsonify(transfer), 200
    except Exception:
        return _unexpected("reading transfer request")


@transfers_bp.route("/inward", methods=["GET"])
def inward_transfers():
    """
    Inbound transfers for a destination.

    Query params:
        location_id: int (required)
        status: pending | accepted | "" (all)
    """
    location_id = request.args.get("location_id", type=int)
    if not location_id:
        return jsonify({"error": "location_id is required"}), 400

    try:
        rows = current_engine().transfers.inward(location_id, request.args.get("status", ""))
        return jsonify(rows), 200
    except InventoryError as e:
        return error_response(e)
    except Exception:
        return _unexpected("listing inward transfers")
