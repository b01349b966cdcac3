"""Cart models with Decimal-based pricing."""
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict

from storefront.errors import CorruptSnapshotError, InvalidCartLineError
from storefront.money import add, multiply, to_decimal

ProductId = Union[int, str]

# Keys of the durable line layout that map onto CartLine fields
_LINE_KEYS = {"id", "productId", "name", "price", "imageUrl", "image_url", "quantity"}


def same_product(a: ProductId, b: ProductId) -> bool:
    """Ids compare as strings so 1 and "1" address the same line."""
    return str(a) == str(b)


def _strict_price(value: Any) -> Decimal:
    if isinstance(value, bool) or value is None:
        raise InvalidCartLineError(f"Invalid price: {value!r}")
    try:
        price = Decimal(str(value)) if isinstance(value, float) else Decimal(value)
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidCartLineError(f"Invalid price: {value!r}")
    if not price.is_finite() or price < 0:
        raise InvalidCartLineError(f"Invalid price: {value!r}")
    return price


def _strict_quantity(value: Any) -> int:
    if isinstance(value, bool):
        raise InvalidCartLineError(f"Invalid quantity: {value!r}")
    try:
        quantity = int(value)
    except (ValueError, TypeError, OverflowError):
        raise InvalidCartLineError(f"Invalid quantity: {value!r}")
    if quantity != value and str(quantity) != str(value):
        # 1.5 or "1.5" would silently truncate
        raise InvalidCartLineError(f"Invalid quantity: {value!r}")
    if quantity < 1:
        raise InvalidCartLineError(f"Invalid quantity: {value!r}")
    return quantity


def _json_number(value: Decimal) -> Union[int, float]:
    if value == value.to_integral_value():
        return int(value)
    return float(value)


class Product(BaseModel):
    """Product descriptor as returned by the backend catalog."""
    model_config = ConfigDict(extra="allow")

    id: ProductId
    name: str
    price: Decimal
    imageUrl: Optional[str] = None

    def to_descriptor(self) -> Dict[str, Any]:
        return self.model_dump()


@dataclass
class CartLine:
    """Single product-quantity pair in the cart."""
    product_id: ProductId
    name: str
    price: Decimal
    quantity: int = 1
    image_url: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.price = to_decimal(self.price)

    @property
    def subtotal(self) -> Decimal:
        """Price for all units of this line."""
        return multiply(self.price, self.quantity)

    def to_dict(self) -> dict:
        """Durable layout: ``{id, name, price, imageUrl, quantity, ...other fields}``."""
        data = dict(self.extra)
        data.update({
            "id": self.product_id,
            "name": self.name,
            "price": _json_number(self.price),
            "imageUrl": self.image_url,
            "quantity": self.quantity,
        })
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CartLine":
        """Parse one stored line. Raises InvalidCartLineError on invalid data."""
        if not isinstance(data, Mapping):
            raise InvalidCartLineError(f"Cart line is not an object: {type(data).__name__}")

        product_id = data.get("id", data.get("productId"))
        if product_id is None or product_id == "" or isinstance(product_id, (bool, list, dict)):
            raise InvalidCartLineError("Cart line has no product id")

        return cls(
            product_id=product_id,
            name=str(data.get("name") or ""),
            price=_strict_price(data.get("price")),
            quantity=_strict_quantity(data.get("quantity", 1)),
            image_url=data.get("imageUrl", data.get("image_url")),
            extra={k: v for k, v in data.items() if k not in _LINE_KEYS},
        )

    @classmethod
    def from_product(cls, product: Union[Product, Mapping[str, Any]]) -> "CartLine":
        """Fresh line with quantity 1 from a product descriptor."""
        if isinstance(product, Product):
            product = product.to_descriptor()
        return cls.from_dict({**product, "quantity": 1})


@dataclass
class Cart:
    """Ordered cart lines owned by one identity key."""
    key: str
    lines: List[CartLine] = field(default_factory=list)

    def find(self, product_id: ProductId) -> Optional[CartLine]:
        return next((line for line in self.lines if same_product(line.product_id, product_id)), None)

    @property
    def total(self) -> Decimal:
        """Sum of price * quantity over all lines."""
        total = Decimal("0")
        for line in self.lines:
            total = add(total, line.subtotal)
        return total

    @property
    def items_count(self) -> int:
        """Sum of quantities over all lines."""
        return sum(line.quantity for line in self.lines)

    def to_list(self) -> List[dict]:
        return [line.to_dict() for line in self.lines]

    @classmethod
    def from_list(cls, key: str, raw: Any) -> "Cart":
        """Parse a stored snapshot. Raises CorruptSnapshotError on invalid data."""
        if not isinstance(raw, list):
            raise CorruptSnapshotError(f"Cart snapshot is not a list: {type(raw).__name__}")

        cart = cls(key=key)
        for item in raw:
            try:
                line = CartLine.from_dict(item)
            except InvalidCartLineError as e:
                raise CorruptSnapshotError(str(e)) from e
            if cart.find(line.product_id) is not None:
                raise CorruptSnapshotError(f"Duplicate product id in snapshot: {line.product_id!r}")
            cart.lines.append(line)
        return cart
