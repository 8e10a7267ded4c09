"""Shopping cart: at most one line per dish id."""

import logging
from decimal import Decimal
from typing import Union

from kitchen_checkout.schemas import CartLine, MenuItem

logger = logging.getLogger(__name__)

DishId = Union[int, str]


class Cart:
    """In-memory cart. Adding a dish that is already present bumps its quantity."""

    def __init__(self):
        self._lines: dict[str, CartLine] = {}

    @staticmethod
    def _key(dish_id: DishId) -> str:
        return str(dish_id)

    def add(self, item: MenuItem, quantity: int = 1) -> CartLine:
        """
        Add a menu item, freezing its current name, price and image.

        Args:
            item: Dish from the catalog
            quantity: Portions to add (must be positive)

        Returns:
            The resulting cart line
        """
        if quantity < 1:
            raise ValueError("quantity must be positive")

        key = self._key(item.id)
        existing = self._lines.get(key)
        if existing:
            line = existing.model_copy(update={"quantity": existing.quantity + quantity})
        else:
            line = CartLine(
                id=item.id,
                name=item.name,
                price=item.price,
                quantity=quantity,
                image=item.image,
            )
        self._lines[key] = line
        return line

    def set_quantity(self, dish_id: DishId, quantity: int) -> None:
        """Change a line's quantity; zero or less removes it."""
        key = self._key(dish_id)
        if key not in self._lines:
            raise KeyError(dish_id)
        if quantity <= 0:
            del self._lines[key]
        else:
            self._lines[key] = self._lines[key].model_copy(update={"quantity": quantity})

    def remove(self, dish_id: DishId) -> None:
        self._lines.pop(self._key(dish_id), None)

    def clear(self) -> None:
        self._lines.clear()
        logger.debug("Cart cleared")

    @property
    def lines(self) -> list[CartLine]:
        return list(self._lines.values())

    @property
    def is_empty(self) -> bool:
        return not self._lines

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self._lines.values())

    @property
    def subtotal(self) -> Decimal:
        return sum((line.line_total for line in self._lines.values()), Decimal("0"))

    def __len__(self) -> int:
        return len(self._lines)
