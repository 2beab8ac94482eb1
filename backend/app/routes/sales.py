# backend/app/routes/sales.py
"""
Exchange and hold-bill routes.

Exchanges: returns go to quarantine, issues leave sellable stock, the price
difference is settled once. Hold bills park a cart without touching stock.
"""
from flask import Blueprint, current_app, g, jsonify, request

from app.decorators import with_actor
from app.engine import current_engine
from app.extensions import db
from app.validation import InventoryError, ValidationError, error_response, require_object


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _unexpected(action: str):
    db.session.rollback()
    current_app.logger.exception("Unexpected error %s", action)
    return jsonify({"error": "Unexpected error"}), 500


# Exchanges

@sales_bp.post("/exchange")
@with_actor
def create_exchange():
    """
    Record an exchange against an earlier sale.

    Request body:
    {
        "original_sale_ref": str,
        "location_id": int (optional),
        "customer_name": str, "customer_mobile": str, "reason": str,
        "returns": [{"item_id" | "sku", "name", "size", "quantity", "unit_price_cents"}],
        "issues":  [... same shape ...]
    }

    Returns:
        201: Exchange record with totals
        400: Invalid request
    """
    try:
        data = require_object(request.get_json(silent=True) or {}, "request body")
        result = current_engine().exchanges.process_exchange(
            original_sale_ref=data.get("original_sale_ref"),
            location_id=data.get("location_id"),
            customer_name=data.get("customer_name"),
            customer_mobile=data.get("customer_mobile"),
            reason=data.get("reason"),
            returns=data.get("returns"),
            issues=data.get("issues"),
            actor=g.actor,
        )
        return jsonify(result), 201

    except InventoryError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        return _unexpected("creating exchange")


@sales_bp.post("/exchange/<int:exchange_id>/settle")
@with_actor
def settle_exchange(exchange_id: int):
    """
    Settle the price difference of an exchange.

    Request body:
    {
        "original_total_cents": int,
        "new_total_cents": int,
        "payments": [{"method": "cash" | "card" | "upi", "amount_cents": int, "ref": str}],
        "accept_partial": bool (optional)
    }

    Returns:
        201: Settlement
        400: Payments do not match the amount due
        404: Exchange not found
        409: Already settled
    """
    try:
        data = require_object(request.get_json(silent=True) or {}, "request body")
        result = current_engine().exchanges.settle_difference(
            exchange_id,
            original_total_cents=data.get("original_total_cents"),
            new_total_cents=data.get("new_total_cents"),
            payments=data.get("payments"),
            accept_partial=bool(data.get("accept_partial", False)),
            actor=g.actor,
        )
        return jsonify(result), 201

    except InventoryError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        return _unexpected("settling exchange")


@sales_bp.get("/exchange/<int:exchange_id>")
def get_exchange(exchange_id: int):
    try:
        exchange = current_engine().exchanges.get(exchange_id)
        if exchange is None:
            return jsonify({"error": "Exchange not found"}), 404
        return jsonify(exchange), 200
    except Exception:
        return _unexpected("reading exchange")


@sales_bp.post("/mark-exchanged")
def mark_exchanged():
    """
    Link an original sale to its exchange / replacement sale.

    Best effort: 200 {ok: true} even if the link could not be stored
    ("recorded" says whether it was). 400 only without original_sale_ref.
    """
    try:
        data = require_object(request.get_json(silent=True) or {}, "request body")
        recorded = current_engine().exchanges.mark_exchanged(
            data.get("original_sale_ref"),
            exchange_id=data.get("exchange_id"),
            new_sale_ref=data.get("new_sale_ref"),
            note=data.get("note"),
        )
        return jsonify({"ok": True, "recorded": recorded}), 200

    except ValidationError as e:
        return error_response(e)
    except Exception:
        return _unexpected("marking sale exchanged")


# Hold bills

@sales_bp.post("/hold")
@with_actor
def hold_bill():
    """
    Park a cart.

    Request body:
    {
        "cart": [{"item_id", "sku", "name", "size", "quantity", "unit_price_cents"}],
        "customer": {"name": str, "mobile": str},
        "settings": {"discount_bps": int, "tax_rate_bps": int},
        "location_id": int (optional),
        "token": str (optional, client-assigned)
    }

    Returns:
        201: Held bill
        400: Empty or invalid cart
        409: Token already in use
    """
    try:
        data = require_object(request.get_json(silent=True) or {}, "request body")
        result = current_engine().holds.hold(
            cart=data.get("cart"),
            customer=data.get("customer"),
            settings=data.get("settings"),
            location_id=data.get("location_id"),
            token=data.get("token"),
            actor=g.actor,
        )
        return jsonify(result), 201

    except InventoryError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        return _unexpected("holding bill")


@sales_bp.get("/hold")
def list_held_bills():
    """Query: max_age_hours (optional), location_id (optional)."""
    try:
        rows = current_engine().holds.list(
            max_age_hours=request.args.get("max_age_hours"),
            location_id=request.args.get("location_id", type=int),
        )
        return jsonify(rows), 200
    except InventoryError as e:
        return error_response(e)
    except Exception:
        return _unexpected("listing held bills")


@sales_bp.post("/hold/<token>/resume")
@with_actor
def resume_held_bill(token: str):
    """
    Returns:
        200: Cart (the held bill is gone afterwards)
        404: Unknown token or already resumed
    """
    try:
        cart = current_engine().holds.resume(token, actor=g.actor)
        return jsonify(cart), 200

    except InventoryError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        return _unexpected("resuming held bill")


@sales_bp.delete("/hold/<token_or_id>")
@with_actor
def delete_held_bill(token_or_id: str):
    try:
        result = current_engine().holds.delete(token_or_id, actor=g.actor)
        return jsonify(result), 200

    except InventoryError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        return _unexpected("deleting held bill")
