# Central pricing + calculation shared by the quote endpoint and order creation

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation

from errors import PriceNotFoundError, ValidationError
from price_tables import (
    BINDING,
    BOOK_BINDING,
    COLOR_KEYS,
    GLOSSY_LAMINATION,
    LAMINATION,
    MAP_LAMINATION,
    NOT_REQUIRED,
    PRICE_TABLES,
    STANDARD_SHEET,
)

CENT = Decimal("0.01")
ZERO = Decimal("0")

MAX_PRINT_QUANTITY = 10000

CATEGORIES = tuple(PRICE_TABLES)

_COLOR_MODES = {"bw": "bw", "color": "color"}
_SIDES = {"single": "Single", "both": "Both"}
_MAP_PRINT_TYPES = {"bw": "B/W", "color": "Color"}

# configuration attributes that are table keys
TEXT_FIELDS = (
    "category", "size", "paper_type", "color_type", "sides",
    "binding", "binding_pages", "lamination", "pricing_type",
)


def to_money(value) -> Decimal:
    """Decimal rounded half-up to 2 places. Accepts numbers, strings, Decimals."""
    if value is None:
        return ZERO.quantize(CENT)
    try:
        amount = Decimal(str(value))
        if not amount.is_finite():
            raise InvalidOperation
        return amount.quantize(CENT, rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Invalid amount: {value!r}")


def _not_required(value) -> bool:
    return value in (None, "", NOT_REQUIRED)


# -------------------- Resolver --------------------
def resolve_unit_price(category: str, *keys) -> Decimal:
    """
    Exact-match lookup of a unit price: PRICE_TABLES[category][k1][k2]...
    Missing combinations raise PriceNotFoundError; there is no fallback.
    """
    table = PRICE_TABLES.get(category) if isinstance(category, str) else None
    if table is None:
        raise PriceNotFoundError(category, keys)
    node = table
    for key in keys:
        if not isinstance(node, dict) or not _has_key(node, key):
            raise PriceNotFoundError(category, keys)
        node = node[key]
    if not isinstance(node, Decimal):
        raise PriceNotFoundError(category, keys)
    return node


def _has_key(node: dict, key) -> bool:
    try:
        return key in node
    except TypeError:
        # unhashable keys (lists, dicts) from JSON bodies
        return False


def _lookup(table: dict, label: str, *keys) -> Decimal:
    node = table
    for key in keys:
        if not isinstance(node, dict) or not _has_key(node, key):
            raise PriceNotFoundError(label, keys)
        node = node[key]
    return node


def color_key(color_type: str | None, sides: str | None) -> str:
    """('bw', 'single') -> 'bwSingle'. Already-combined keys pass through."""
    if not all(v is None or isinstance(v, str) for v in (color_type, sides)):
        raise ValidationError(f"Invalid color/sides: {color_type!r}/{sides!r}")
    if color_type in COLOR_KEYS:
        return color_type
    mode = _COLOR_MODES.get((color_type or "").lower())
    side = _SIDES.get((sides or "single").lower())
    if not mode or not side:
        raise ValidationError(f"Invalid color/sides: {color_type!r}/{sides!r}")
    return mode + side


# -------------------- Configuration --------------------
@dataclass(frozen=True)
class ProductConfiguration:
    category: str = "printouts"
    size: str = "A4"
    paper_type: str | None = "70 Gsm"
    color_type: str = "bw"
    sides: str = "single"
    binding: str | None = None
    binding_pages: str | None = None
    lamination: str | None = None
    pricing_type: str = STANDARD_SHEET
    quantity: int = 1
    pages: int = 1
    custom_options: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict, max_quantity: int = MAX_PRINT_QUANTITY) -> "ProductConfiguration":
        if not isinstance(data, dict):
            raise ValidationError("Configuration must be an object")

        for name in TEXT_FIELDS:
            value = data.get(name)
            if value is not None and not isinstance(value, str):
                raise ValidationError(f"{name} must be a string")

        category = (data.get("category") or "printouts").strip().lower()
        if category not in CATEGORIES:
            raise ValidationError(f"Unknown category: {category}")

        quantity = _as_int(data.get("quantity", 1), "quantity")
        if quantity < 1 or quantity > max_quantity:
            raise ValidationError(f"Quantity must be between 1 and {max_quantity}")

        pages = _as_int(data.get("pages", 1), "pages")
        if pages < 1:
            raise ValidationError("Pages must be at least 1")

        size = (data.get("size") or "").strip()
        if not size:
            raise ValidationError("Size is required")

        custom = data.get("custom_options") or {}
        if not isinstance(custom, dict):
            raise ValidationError("custom_options must be an object")

        return cls(
            category=category,
            size=size,
            paper_type=data.get("paper_type"),
            color_type=data.get("color_type") or "bw",
            sides=data.get("sides") or "single",
            binding=data.get("binding"),
            binding_pages=data.get("binding_pages"),
            lamination=data.get("lamination"),
            pricing_type=data.get("pricing_type") or STANDARD_SHEET,
            quantity=quantity,
            pages=pages,
            custom_options=dict(custom),
        )

    def to_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}


def _as_int(value, name: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        raise ValidationError(f"{name} must be an integer")


# -------------------- Options --------------------
def paper_options(size: str, category: str = "printouts") -> list[str]:
    table = PRICE_TABLES.get(category, {})
    if category == "photos":
        return [finish for finish, sizes in table.items() if size in sizes]
    return list(table.get(size, {}))


def binding_options(size: str, category: str = "printouts") -> dict[str, list[str]]:
    if category == "books":
        return {kind: list(tiers) for kind, tiers in BOOK_BINDING.items()}
    if category != "printouts":
        return {}
    return {kind: list(tiers) for kind, tiers in BINDING.get(size, {}).items()}


def lamination_options(size: str, category: str = "printouts") -> list[str]:
    if category == "printouts":
        return list(LAMINATION.get(size, {}))
    if category == "maps" and size in MAP_LAMINATION:
        return [NOT_REQUIRED, "50 Micron"]
    if category == "photos" and size in GLOSSY_LAMINATION:
        return [NOT_REQUIRED, "Glossy"]
    return []


def update_selection(selection: ProductConfiguration, key: str, value) -> ProductConfiguration:
    """
    Pure reducer for the configuration a customer is building.

    Changing the size resets choices that depend on it: paper type goes to
    the first option for the new size, binding is cleared and lamination
    goes to the first option.
    """
    names = {f.name for f in fields(ProductConfiguration)}
    if key not in names:
        raise ValidationError(f"Unknown configuration field: {key}")
    if key in TEXT_FIELDS and value is not None and not isinstance(value, str):
        raise ValidationError(f"{key} must be a string")

    if key == "size":
        papers = paper_options(value, selection.category)
        laminations = lamination_options(value, selection.category)
        return replace(
            selection,
            size=value,
            paper_type=papers[0] if papers else None,
            binding=None,
            binding_pages=None,
            lamination=laminations[0] if laminations else None,
        )

    return replace(selection, **{key: value})


# -------------------- Quantity aggregator --------------------
@dataclass(frozen=True)
class Quote:
    base_print_price: Decimal
    binding_price: Decimal
    lamination_price: Decimal
    total_price: Decimal
    quantity: int
    price_per_unit: Decimal
    unit_price: Decimal

    def to_dict(self) -> dict:
        return {
            "unit_price": float(self.unit_price),
            "base_print_price": float(self.base_print_price),
            "binding_price": float(self.binding_price),
            "lamination_price": float(self.lamination_price),
            "total_price": float(self.total_price),
            "quantity": self.quantity,
            "price_per_unit": float(self.price_per_unit),
        }


def calculate_quote(config: ProductConfiguration) -> Quote:
    if config.quantity < 1:
        raise ValidationError("Quantity must be at least 1")

    qty = config.quantity
    binding = ZERO
    lamination = ZERO

    if config.category == "printouts":
        unit = resolve_unit_price("printouts", config.size, config.paper_type,
                                  color_key(config.color_type, config.sides))
        base = unit * qty
        if not _not_required(config.binding):
            binding = _lookup(BINDING, "binding", config.size, config.binding, config.binding_pages)
        if not _not_required(config.lamination):
            lamination = _lookup(LAMINATION, "lamination", config.size, config.lamination) * qty

    elif config.category == "books":
        unit = resolve_unit_price("books", config.size, config.paper_type or "70 Gsm",
                                  color_key(config.color_type, config.sides))
        base = unit * config.pages * qty
        if not _not_required(config.binding):
            binding = _lookup(BOOK_BINDING, "book binding", config.binding, config.binding_pages) * qty

    elif config.category == "maps":
        print_type = _MAP_PRINT_TYPES.get((config.color_type or "").lower(), config.color_type)
        unit = resolve_unit_price("maps", config.size, print_type, config.pricing_type)
        base = unit * qty
        if not _not_required(config.lamination):
            lamination = _lookup(MAP_LAMINATION, "map lamination", config.size) * qty

    elif config.category == "photos":
        unit = resolve_unit_price("photos", config.paper_type, config.size)
        base = unit * qty
        if not _not_required(config.lamination):
            lamination = _lookup(GLOSSY_LAMINATION, "photo lamination", config.size) * qty

    else:
        raise ValidationError(f"Unknown category: {config.category}")

    total = to_money(base + binding + lamination)
    return Quote(
        base_print_price=to_money(base),
        binding_price=to_money(binding),
        lamination_price=to_money(lamination),
        total_price=total,
        quantity=qty,
        price_per_unit=to_money(total / qty),
        unit_price=to_money(unit),
    )


# -------------------- Order totals --------------------
@dataclass(frozen=True)
class OrderTotals:
    subtotal: Decimal
    discount: Decimal
    fees: Decimal
    total: Decimal

    def to_dict(self) -> dict:
        return {
            "subtotal": float(self.subtotal),
            "discount": float(self.discount),
            "fees": float(self.fees),
            "total": float(self.total),
        }


def assemble_total(subtotal, discount=ZERO, *fees) -> OrderTotals:
    """total = max(subtotal - discount, 0) + fees, discount clamped to [0, subtotal]."""
    sub = to_money(subtotal)
    if sub < 0:
        raise ValidationError("Subtotal cannot be negative")

    disc = min(max(to_money(discount), ZERO), sub)

    fee_total = ZERO
    for fee in fees:
        amount = to_money(fee)
        if amount < 0:
            raise ValidationError("Fees cannot be negative")
        fee_total += amount

    return OrderTotals(
        subtotal=sub,
        discount=disc,
        fees=to_money(fee_total),
        total=to_money(sub - disc + fee_total),
    )
