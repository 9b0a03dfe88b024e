"""Cart line-item ledger with key-value persistence.

Keeps the ordered list of cart lines for one customer session and derives
item count, subtotal and the pre-tariff order total. Every mutation writes the
full line list to the session store; the list is rehydrated when the ledger is
created. Stored data that cannot be read back is discarded and the cart
starts empty.
"""

import json
import logging
import uuid
from decimal import Decimal
from typing import Any

from pydantic import ValidationError

from ..config import PricingConfig
from ..errors import CheckoutValidationError
from ..models import CartItem, NewCartItem
from .storage import KeyValueStore

logger = logging.getLogger(__name__)

MAX_QUANTITY = 99


def shipping_fallback(subtotal: Decimal, pricing: PricingConfig) -> Decimal:
    """Flat shipping charged when no carrier rate is selected.

    Free strictly above the threshold, e.g. 50.00 pays 9.99 and 50.01 pays 0.
    """
    if subtotal > pricing.free_shipping_threshold:
        return Decimal("0")
    return pricing.fallback_shipping


def sales_tax(subtotal: Decimal, pricing: PricingConfig) -> Decimal:
    return subtotal * pricing.tax_rate


def _validation_message(error: ValidationError) -> str:
    first = error.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"Invalid cart item {location}: {first.get('msg', 'invalid value')}"


class CartLedger:
    """Ordered cart lines for a single session.

    Attributes:
        revision: Incremented on every mutation; lets dependants detect change.
    """

    def __init__(self, store: KeyValueStore, key: str, pricing: PricingConfig):
        """Initialize the ledger and rehydrate persisted lines.

        Args:
            store: Session key-value store.
            key: Key holding the serialized line list.
            pricing: Tax and shipping fallback parameters.
        """
        self.store = store
        self.key = key
        self.pricing = pricing
        self.revision = 0
        self._items: list[CartItem] = self._load()

    def _load(self) -> list[CartItem]:
        raw = self.store.get(self.key)
        if not raw:
            return []

        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, TypeError) as e:
            logger.warning(f"Discarding unreadable stored cart: {e}")
            return []

        if not isinstance(data, list):
            logger.warning("Discarding stored cart: expected a list of items")
            return []

        try:
            items = [CartItem.model_validate(entry) for entry in data]
        except ValidationError as e:
            logger.warning(f"Discarding stored cart with malformed line: {e.error_count()} errors")
            return []

        logger.debug(f"Restored cart with {len(items)} lines")
        return items

    def _save(self) -> None:
        payload = [item.model_dump(mode="json") for item in self._items]
        self.store.set(self.key, json.dumps(payload, ensure_ascii=False))
        self.revision += 1

    @property
    def items(self) -> list[CartItem]:
        """Copy of the current lines, in insertion order."""
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def get(self, item_id: str) -> CartItem | None:
        for item in self._items:
            if item.id == item_id:
                return item
        return None

    def add_item(self, data: NewCartItem | dict[str, Any]) -> CartItem:
        """Add a product or merge it into an existing line.

        A line with the same (product_id, size, color) has its quantity
        increased instead of a new line being appended.

        Args:
            data: Item fields without an id.

        Returns:
            The new or updated line.

        Raises:
            CheckoutValidationError: If the item is malformed, or a merge would
                push the line above the quantity cap.
        """
        try:
            new_item = data if isinstance(data, NewCartItem) else NewCartItem.model_validate(data)
        except ValidationError as e:
            raise CheckoutValidationError(_validation_message(e)) from e

        for index, item in enumerate(self._items):
            if item.identity != new_item.identity:
                continue

            merged_quantity = item.quantity + new_item.quantity
            if merged_quantity > MAX_QUANTITY:
                raise CheckoutValidationError(
                    f"Quantity for {item.name} cannot exceed {MAX_QUANTITY}", field="quantity"
                )
            updated = item.model_copy(update={"quantity": merged_quantity})
            self._items[index] = updated
            self._save()
            logger.debug(f"Merged {new_item.product_id} into line {item.id}: qty {merged_quantity}")
            return updated

        line = CartItem(id=uuid.uuid4().hex, **new_item.model_dump(exclude={"id"}))
        self._items.append(line)
        self._save()
        logger.debug(f"Added line {line.id} for {line.product_id}")
        return line

    def remove_item(self, item_id: str) -> None:
        """Delete a line; unknown ids are ignored."""
        remaining = [item for item in self._items if item.id != item_id]
        if len(remaining) == len(self._items):
            return
        self._items = remaining
        self._save()

    def update_quantity(self, item_id: str, quantity: int) -> CartItem | None:
        """Set a line's quantity; zero or less removes the line.

        Returns:
            The updated line, or None if it was removed or not found.

        Raises:
            CheckoutValidationError: If quantity is not an integer or exceeds the cap.
        """
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            raise CheckoutValidationError(
                f"Quantity must be a whole number, got {quantity!r}", field="quantity"
            )

        if quantity <= 0:
            self.remove_item(item_id)
            return None

        if quantity > MAX_QUANTITY:
            raise CheckoutValidationError(
                f"Quantity cannot exceed {MAX_QUANTITY}", field="quantity"
            )

        for index, item in enumerate(self._items):
            if item.id == item_id:
                updated = item.model_copy(update={"quantity": quantity})
                self._items[index] = updated
                self._save()
                return updated

        logger.debug(f"update_quantity: no line {item_id}")
        return None

    def clear(self) -> None:
        self._items = []
        self._save()

    def item_count(self) -> int:
        return sum(item.quantity for item in self._items)

    def subtotal_usd(self) -> Decimal:
        return sum((item.line_total_usd for item in self._items), Decimal("0"))

    def total_usd(self) -> Decimal:
        """Subtotal + fallback shipping + tax. Tariff is not included."""
        subtotal = self.subtotal_usd()
        return subtotal + shipping_fallback(subtotal, self.pricing) + sales_tax(subtotal, self.pricing)
