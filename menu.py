"""
Menu Module
===========
Read-only menu catalog for the storefront.

✅ Strongly typed, immutable records (pizzas, toppings, crusts)
✅ Validation at load time (malformed entries rejected, never at lookup)
✅ Categories and sizes as enums
✅ Loaded once from static JSON, shared by cart and checkout
"""

import json
import logging
from typing import Dict, List, Any, Optional, Tuple
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from prometheus_client import Counter


logger = logging.getLogger(__name__)


# ============================================================================
# CONFIGURATION
# ============================================================================

# Validation limits
MAX_MENU_SIZE = 1000
MAX_ITEM_NAME_LENGTH = 200
MAX_DESCRIPTION_LENGTH = 500
MAX_ITEM_PRICE = 10000.00

DEFAULT_CRUST_ID = "regular"


# ============================================================================
# METRICS
# ============================================================================

menu_validation_errors = Counter(
    'menu_validation_errors_total',
    'Menu entries rejected at load time',
    ['error_type']
)


# ============================================================================
# ENUMS
# ============================================================================

class PizzaSize(Enum):
    """Available pizza sizes."""
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"
    XLARGE = "xlarge"


class ToppingCategory(Enum):
    """Topping groups."""
    MEAT = "meat"
    VEGETABLE = "vegetable"
    CHEESE = "cheese"
    SAUCE = "sauce"


class PizzaCategory(Enum):
    """Menu sections for pizzas."""
    CLASSIC = "classic"
    SPECIALTY = "specialty"
    VEGETARIAN = "vegetarian"
    PREMIUM = "premium"


SIZE_LABELS: Dict[PizzaSize, str] = {
    PizzaSize.SMALL: 'Small (10")',
    PizzaSize.MEDIUM: 'Medium (12")',
    PizzaSize.LARGE: 'Large (14")',
    PizzaSize.XLARGE: 'X-Large (16")',
}


class MenuLoadError(Exception):
    """Raised when the menu document cannot be read at all."""
    pass


# ============================================================================
# MENU RECORDS
# ============================================================================

@dataclass(frozen=True)
class Topping:
    """A topping (sauces included) that can be added to a pizza."""
    id: str
    name: str
    price: float
    category: ToppingCategory

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "price": self.price,
            "category": self.category.value,
        }


@dataclass(frozen=True)
class Crust:
    """A crust option. The regular crust is free."""
    id: str
    name: str
    price: float

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "price": self.price}


@dataclass(frozen=True)
class SizeOption:
    """A size a pizza is sold in and its price multiplier."""
    size: PizzaSize
    price_multiplier: float

    @property
    def label(self) -> str:
        return SIZE_LABELS[self.size]


@dataclass(frozen=True)
class Pizza:
    """
    A pizza on the menu.

    default_toppings are included in base_price at no extra charge.
    """
    id: str
    name: str
    description: str
    category: PizzaCategory
    base_price: float
    sizes: Tuple[SizeOption, ...]
    default_toppings: frozenset = field(default_factory=frozenset)
    image_url: str = ""

    def get_size_option(self, size: Any) -> Optional[SizeOption]:
        """
        Find the size configuration for this pizza.

        Args:
            size: PizzaSize or its string value

        Returns:
            SizeOption or None if the pizza is not sold in that size
        """
        size_value = size.value if isinstance(size, PizzaSize) else str(size)
        for option in self.sizes:
            if option.size.value == size_value:
                return option
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category.value,
            "imageUrl": self.image_url,
            "basePrice": self.base_price,
            "sizes": [
                {"size": option.size.value, "priceMultiplier": option.price_multiplier}
                for option in self.sizes
            ],
            "defaultToppings": sorted(self.default_toppings),
        }


# ============================================================================
# MENU CATALOG
# ============================================================================

class MenuCatalog:
    """
    Validated, immutable menu.

    Responsibilities:
    - Validate raw menu entries (once, at load)
    - Index records by identifier
    - Answer lookups ("not found" is None, never an exception)
    """

    def __init__(
        self,
        pizzas: List[Pizza],
        toppings: List[Topping],
        crusts: List[Crust]
    ):
        self._pizzas: Dict[str, Pizza] = {p.id: p for p in pizzas}
        self._toppings: Dict[str, Topping] = {t.id: t for t in toppings}
        self._crusts: Dict[str, Crust] = {c.id: c for c in crusts}

        if DEFAULT_CRUST_ID not in self._crusts:
            self._crusts = {
                DEFAULT_CRUST_ID: Crust(id=DEFAULT_CRUST_ID, name="Regular", price=0.0),
                **self._crusts,
            }

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    @classmethod
    def from_file(cls, path: Any) -> "MenuCatalog":
        """
        Load and validate a menu JSON file.

        Raises:
            MenuLoadError: If the file is missing or not valid JSON
        """
        menu_path = Path(path)
        try:
            raw = json.loads(menu_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise MenuLoadError(f"Cannot read menu {menu_path}: {e}") from e

        catalog = cls.from_dict(raw)
        logger.info(
            f"Menu loaded from {menu_path}: {len(catalog._pizzas)} pizzas, "
            f"{len(catalog._toppings)} toppings, {len(catalog._crusts)} crusts"
        )
        return catalog

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "MenuCatalog":
        """
        Build a catalog from a raw menu document.

        Entries that fail validation are skipped with a warning.

        Raises:
            MenuLoadError: If the document is not an object
        """
        if not isinstance(raw, dict):
            raise MenuLoadError("Menu document must be a JSON object")

        toppings = _collect(raw.get("toppings"), _parse_topping, "topping")
        crusts = _collect(raw.get("crusts"), _parse_crust, "crust")
        pizzas = _collect(raw.get("pizzas"), _parse_pizza, "pizza")

        return cls(pizzas=pizzas, toppings=toppings, crusts=crusts)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_pizza_by_id(self, pizza_id: str) -> Optional[Pizza]:
        return self._pizzas.get(pizza_id)

    def get_topping_by_id(self, topping_id: str) -> Optional[Topping]:
        return self._toppings.get(topping_id)

    def get_crust_by_id(self, crust_id: str) -> Optional[Crust]:
        return self._crusts.get(crust_id)

    def list_pizzas(self) -> List[Pizza]:
        return list(self._pizzas.values())

    def list_toppings(self, category: Optional[ToppingCategory] = None) -> List[Topping]:
        """List toppings, optionally restricted to one category."""
        toppings = list(self._toppings.values())
        if category:
            toppings = [t for t in toppings if t.category == category]
        return toppings

    def list_crusts(self) -> List[Crust]:
        return list(self._crusts.values())

    def to_dict(self) -> Dict[str, Any]:
        """Export the catalog using the public wire names."""
        return {
            "pizzas": [p.to_dict() for p in self._pizzas.values()],
            "toppings": [t.to_dict() for t in self._toppings.values()],
            "crusts": [c.to_dict() for c in self._crusts.values()],
        }


# ============================================================================
# VALIDATION (load time only)
# ============================================================================

def _collect(raw_entries: Any, parser, kind: str) -> List[Any]:
    """Parse a list of raw entries, dropping invalid and duplicate ones."""
    if not isinstance(raw_entries, list):
        if raw_entries is not None:
            _reject(kind, "not_a_list", f"'{kind}s' section is not a list")
        return []

    parsed = []
    seen_ids = set()

    for raw_entry in raw_entries[:MAX_MENU_SIZE]:
        try:
            record = parser(raw_entry)
        except (KeyError, TypeError, ValueError) as e:
            _reject(kind, "malformed", f"{e} in {raw_entry!r}")
            continue

        if record.id in seen_ids:
            _reject(kind, "duplicate_id", f"duplicate id '{record.id}'")
            continue

        seen_ids.add(record.id)
        parsed.append(record)

    return parsed


def _reject(kind: str, error_type: str, detail: str):
    logger.warning(f"Rejected {kind} entry ({error_type}): {detail}")
    menu_validation_errors.labels(error_type=f"{kind}_{error_type}").inc()


def _require_text(entry: Dict[str, Any], key: str, max_length: int = MAX_ITEM_NAME_LENGTH) -> str:
    value = entry[key]
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"'{key}' must be a non-empty string")
    value = value.strip()
    if len(value) > max_length:
        raise ValueError(f"'{key}' longer than {max_length} characters")
    return value


def _normalize_price(value: Any, allow_zero: bool = True) -> float:
    """Validate a price without rounding it."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"price must be a number, got {value!r}")

    price = float(value)
    if price < 0 or price > MAX_ITEM_PRICE:
        raise ValueError(f"price out of range: {price}")
    if not allow_zero and price == 0:
        raise ValueError("price must be positive")
    return price


def _parse_topping(entry: Dict[str, Any]) -> Topping:
    if not isinstance(entry, dict):
        raise TypeError("topping entry must be an object")
    return Topping(
        id=_require_text(entry, "id"),
        name=_require_text(entry, "name"),
        price=_normalize_price(entry["price"]),
        category=ToppingCategory(entry["category"]),
    )


def _parse_crust(entry: Dict[str, Any]) -> Crust:
    if not isinstance(entry, dict):
        raise TypeError("crust entry must be an object")
    return Crust(
        id=_require_text(entry, "id"),
        name=_require_text(entry, "name"),
        price=_normalize_price(entry["price"]),
    )


def _parse_pizza(entry: Dict[str, Any]) -> Pizza:
    if not isinstance(entry, dict):
        raise TypeError("pizza entry must be an object")

    raw_sizes = entry["sizes"]
    if not isinstance(raw_sizes, list) or not raw_sizes:
        raise ValueError("'sizes' must be a non-empty list")

    sizes = []
    for raw_size in raw_sizes:
        multiplier = _normalize_price(raw_size["priceMultiplier"], allow_zero=False)
        sizes.append(SizeOption(size=PizzaSize(raw_size["size"]), price_multiplier=multiplier))

    defaults = entry.get("defaultToppings", [])
    if not isinstance(defaults, list) or not all(isinstance(t, str) for t in defaults):
        raise ValueError("'defaultToppings' must be a list of topping ids")

    description = str(entry.get("description", "")).strip()
    if len(description) > MAX_DESCRIPTION_LENGTH:
        description = description[:MAX_DESCRIPTION_LENGTH] + "..."

    return Pizza(
        id=_require_text(entry, "id"),
        name=_require_text(entry, "name"),
        description=description,
        category=PizzaCategory(entry.get("category", "classic")),
        base_price=_normalize_price(entry["basePrice"], allow_zero=False),
        sizes=tuple(sizes),
        default_toppings=frozenset(defaults),
        image_url=str(entry.get("imageUrl", "")),
    )


# ============================================================================
# GLOBAL INSTANCE
# ============================================================================

_catalog: Optional[MenuCatalog] = None


def get_catalog() -> MenuCatalog:
    """
    Get the shared catalog, loading it on first use from the configured path.

    Raises:
        MenuLoadError: If the menu file cannot be read
    """
    global _catalog

    if _catalog is None:
        from config import get_config
        _catalog = MenuCatalog.from_file(get_config().storage.menu_path)

    return _catalog


def set_catalog(catalog: Optional[MenuCatalog]):
    """Replace the shared catalog (None forces a reload on next access)."""
    global _catalog
    _catalog = catalog


# ============================================================================
# PUBLIC API
# ============================================================================

def get_pizza_by_id(pizza_id: str) -> Optional[Pizza]:
    return get_catalog().get_pizza_by_id(pizza_id)


def get_topping_by_id(topping_id: str) -> Optional[Topping]:
    return get_catalog().get_topping_by_id(topping_id)


def get_crust_by_id(crust_id: str) -> Optional[Crust]:
    return get_catalog().get_crust_by_id(crust_id)


def list_pizzas() -> List[Pizza]:
    return get_catalog().list_pizzas()


def list_toppings() -> List[Topping]:
    return get_catalog().list_toppings()


def list_crusts() -> List[Crust]:
    return get_catalog().list_crusts()
