from pathlib import Path

import pytest

from conftest import TEST_MENU
from menu import (
    MenuCatalog,
    MenuLoadError,
    PizzaSize,
    ToppingCategory,
    get_pizza_by_id,
    list_crusts,
)


SHIPPED_MENU = Path(__file__).parent / "data" / "menu.json"


def test_shipped_menu_loads_cleanly():
    catalog = MenuCatalog.from_file(SHIPPED_MENU)
    margherita = catalog.get_pizza_by_id("margherita")

    assert margherita.base_price == 10.99
    assert margherita.default_toppings == {"mozzarella", "tomato-sauce", "basil"}
    assert len(catalog.list_pizzas()) == 6
    assert catalog.get_crust_by_id("regular").price == 0


def test_shipped_defaults_all_exist():
    catalog = MenuCatalog.from_file(SHIPPED_MENU)
    for pizza in catalog.list_pizzas():
        for topping_id in pizza.default_toppings:
            assert catalog.get_topping_by_id(topping_id) is not None, (pizza.id, topping_id)


def test_size_lookup_accepts_enum_or_string(catalog):
    pizza = catalog.get_pizza_by_id("margherita")
    assert pizza.get_size_option(PizzaSize.LARGE).price_multiplier == 1.3
    assert pizza.get_size_option("small").price_multiplier == 0.8
    assert pizza.get_size_option("xlarge") is None
    assert pizza.get_size_option(PizzaSize.MEDIUM).label == 'Medium (12")'


def test_lookups_return_none_when_missing(catalog):
    assert catalog.get_pizza_by_id("calzone") is None
    assert catalog.get_topping_by_id("anchovy") is None
    assert catalog.get_crust_by_id("cardboard") is None


def test_list_toppings_by_category(catalog):
    sauces = catalog.list_toppings(ToppingCategory.SAUCE)
    assert {t.id for t in sauces} == {"tomato-sauce", "bbq-sauce"}
    assert len(catalog.list_toppings()) == len(TEST_MENU["toppings"])


def test_malformed_entries_are_skipped(caplog):
    raw = {
        "pizzas": [
            TEST_MENU["pizzas"][0],
            {"id": "no-sizes", "name": "No Sizes", "basePrice": 9, "sizes": []},
            {"id": "free", "name": "Free", "basePrice": 0, "sizes": [{"size": "small", "priceMultiplier": 1}]},
            {"id": "odd", "name": "Odd", "basePrice": 9, "sizes": [{"size": "huge", "priceMultiplier": 1}]},
        ],
        "toppings": [
            {"id": "olive", "name": "Olives", "price": 1.5, "category": "vegetable"},
            {"id": "olive", "name": "Olives again", "price": 9, "category": "vegetable"},
            {"id": "gold", "name": "Gold", "price": -1, "category": "meat"},
            {"id": "tofu", "name": "Tofu", "price": 1, "category": "protein"},
            {"id": "salt", "name": "Salt", "price": "cheap", "category": "sauce"},
        ],
        "crusts": [{"name": "Nameless id"}],
    }

    catalog = MenuCatalog.from_dict(raw)

    assert [p.id for p in catalog.list_pizzas()] == ["margherita"]
    assert [t.id for t in catalog.list_toppings()] == ["olive"]
    assert catalog.get_topping_by_id("olive").price == 1.5
    assert "duplicate" in caplog.text


def test_regular_crust_added_when_missing():
    catalog = MenuCatalog.from_dict({"pizzas": [], "toppings": [], "crusts": [
        {"id": "thin", "name": "Thin", "price": 0},
    ]})
    assert [c.id for c in catalog.list_crusts()] == ["regular", "thin"]


def test_non_object_menu_rejected():
    with pytest.raises(MenuLoadError):
        MenuCatalog.from_dict(["not", "a", "menu"])


def test_missing_menu_file_rejected(tmp_path):
    with pytest.raises(MenuLoadError):
        MenuCatalog.from_file(tmp_path / "missing.json")


def test_wire_format(catalog):
    exported = catalog.to_dict()
    assert set(exported) == {"pizzas", "toppings", "crusts"}
    pizza = exported["pizzas"][0]
    assert pizza["basePrice"] == 10
    assert pizza["defaultToppings"] == ["basil", "mozzarella", "tomato-sauce"]
    assert pizza["sizes"][0] == {"size": "small", "priceMultiplier": 0.8}


def test_module_level_lookups_use_shared_catalog():
    assert get_pizza_by_id("pepperoni").name == "Pepperoni"
    assert {c.id for c in list_crusts()} == {"regular", "thin", "stuffed"}
