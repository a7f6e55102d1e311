import pytest

from menu import MenuCatalog, set_catalog


TEST_MENU = {
    "pizzas": [
        {
            "id": "margherita",
            "name": "Margherita",
            "description": "Tomato, mozzarella, basil",
            "category": "classic",
            "basePrice": 10,
            "sizes": [
                {"size": "small", "priceMultiplier": 0.8},
                {"size": "medium", "priceMultiplier": 1.0},
                {"size": "large", "priceMultiplier": 1.3},
            ],
            "defaultToppings": ["mozzarella", "tomato-sauce", "basil"],
        },
        {
            "id": "pepperoni",
            "name": "Pepperoni",
            "description": "Pepperoni and mozzarella",
            "category": "classic",
            "basePrice": 12.99,
            "sizes": [
                {"size": "small", "priceMultiplier": 0.8},
                {"size": "medium", "priceMultiplier": 1.0},
                {"size": "large", "priceMultiplier": 1.3},
            ],
            "defaultToppings": ["mozzarella", "tomato-sauce", "pepperoni"],
        },
    ],
    "toppings": [
        {"id": "pepperoni", "name": "Pepperoni", "price": 2.0, "category": "meat"},
        {"id": "mushroom", "name": "Mushrooms", "price": 1.5, "category": "vegetable"},
        {"id": "olive", "name": "Olives", "price": 1.5, "category": "vegetable"},
        {"id": "mozzarella", "name": "Mozzarella", "price": 1.5, "category": "cheese"},
        {"id": "basil", "name": "Basil", "price": 0.5, "category": "vegetable"},
        {"id": "tomato-sauce", "name": "Tomato Sauce", "price": 0.0, "category": "sauce"},
        {"id": "bbq-sauce", "name": "BBQ Sauce", "price": 0.5, "category": "sauce"},
    ],
    "crusts": [
        {"id": "regular", "name": "Regular", "price": 0},
        {"id": "thin", "name": "Thin", "price": 0},
        {"id": "stuffed", "name": "Stuffed", "price": 3.0},
    ],
}

MARGHERITA_DEFAULTS = ["mozzarella", "tomato-sauce", "basil"]


@pytest.fixture
def catalog():
    return MenuCatalog.from_dict(TEST_MENU)


@pytest.fixture(autouse=True)
def shared_catalog(catalog):
    set_catalog(catalog)
    yield catalog
    set_catalog(None)


@pytest.fixture
def customer():
    return {
        "name": "Ann Smith",
        "email": "ann@example.com",
        "phone": "(555) 123-4567",
        "address": "1 Main St",
        "city": "Springfield",
        "zipCode": "12345",
    }
