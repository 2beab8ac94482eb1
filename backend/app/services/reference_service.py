# Overview: Resolves item and location references from request payloads.

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from sqlalchemy import or_

from ..models import Item, Location
from ..validation import ValidationError, coerce_optional_id, coerce_quantity


@dataclass(frozen=True)
class ResolvedLine:
    item: Item
    quantity: int

    @property
    def item_id(self) -> int:
        return self.item.id


class ReferenceResolver:
    """
    Item lookup order for a line:
    1. item_id
    2. item_code (matches item_code or stock_no)
    3. stock_no
    """

    def __init__(self, session):
        self.session = session

    def location(self, location_id) -> Optional[Location]:
        if location_id is None:
            return None
        return self.session.get(Location, location_id)

    def require_location(self, value, field: str, *, required: bool = True) -> Optional[Location]:
        location_id = coerce_optional_id(value, field)
        if location_id is None:
            if required:
                raise ValidationError(f"{field} is required")
            return None
        location = self.location(location_id)
        if location is None:
            raise ValidationError(f"{field} {location_id} not found")
        return location

    def find_item(self, *, item_id=None, item_code=None, stock_no=None) -> Optional[Item]:
        if item_id is not None:
            return self.session.get(Item, item_id)

        code = str(item_code).strip() if item_code is not None else ""
        if code:
            return (
                self.session.query(Item)
                .filter(or_(Item.item_code == code, Item.stock_no == code))
                .order_by(Item.id.asc())
                .first()
            )

        stock = str(stock_no).strip() if stock_no is not None else ""
        if stock:
            return (
                self.session.query(Item)
                .filter(Item.stock_no == stock)
                .order_by(Item.id.asc())
                .first()
            )
        return None

    def item_for_line(self, line, index: int, field: str = "lines") -> Item:
        if not isinstance(line, dict):
            raise ValidationError(f"{field}[{index}] must be an object", row=index)

        item_id = coerce_optional_id(line.get("item_id"), f"{field}[{index}].item_id")
        item = self.find_item(
            item_id=item_id,
            item_code=line.get("item_code"),
            stock_no=line.get("stock_no"),
        )
        if item is None:
            ref = item_id or line.get("item_code") or line.get("stock_no")
            if ref is None or ref == "":
                raise ValidationError(
                    f"{field}[{index}]: item_id, item_code or stock_no is required", row=index
                )
            raise ValidationError(f"{field}[{index}]: item {ref} not found", row=index)
        return item

    def resolve_transfer_lines(self, lines, field: str = "lines") -> list[ResolvedLine]:
        """Resolve and validate every line. Raises on the first bad row; writes nothing."""
        if not isinstance(lines, list) or not lines:
            raise ValidationError(f"{field}[] required")

        resolved = []
        for index, line in enumerate(lines):
            item = self.item_for_line(line, index, field)
            try:
                qty = coerce_quantity(line.get("quantity", line.get("qty")), f"{field}[{index}].quantity")
            except ValidationError as exc:
                raise ValidationError(exc.message, row=index) from exc
            resolved.append(ResolvedLine(item=item, quantity=qty))
        return resolved
