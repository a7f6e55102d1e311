import pytest

from config import ConfigurationError, get_config, reload_config


@pytest.fixture(autouse=True)
def restore_config(monkeypatch):
    yield
    monkeypatch.undo()
    reload_config()


def test_defaults():
    config = reload_config()
    assert config.pricing.tax_rate == 0.08
    assert config.pricing.delivery_fee == 4.99
    assert config.checkout.max_order_items == 50
    assert config.checkout.max_item_quantity == 20
    assert config.storage.menu_path.name == "menu.json"
    assert get_config() is config


def test_environment_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv("TAX_RATE", "0.1")
    monkeypatch.setenv("DATA_DIR", str(tmp_path))
    monkeypatch.setenv("PERF_LOG_FAST_OPERATIONS", "true")

    config = reload_config()

    assert config.pricing.tax_rate == 0.1
    assert config.storage.orders_dir == tmp_path / "orders"
    assert config.performance.log_fast_operations is True


@pytest.mark.parametrize("key,value", [
    ("TAX_RATE", "abc"),
    ("TAX_RATE", "1.5"),
    ("DELIVERY_FEE", "-1"),
    ("MAX_ORDER_ITEMS", "0"),
    ("LOG_LEVEL", "LOUD"),
])
def test_invalid_values_rejected(monkeypatch, key, value):
    monkeypatch.setenv(key, value)
    with pytest.raises(ConfigurationError):
        reload_config()
