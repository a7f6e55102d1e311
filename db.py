"""
Database Module
===============
Flat-file JSON storage for orders and per-client carts.

✅ One JSON document per order (data/orders/<id>.json)
✅ One JSON blob per client cart (data/carts/<client>.json)
✅ Atomic writes (temp file + rename), last write wins
✅ Identifiers validated before touching the filesystem
✅ Read/write/error counters for health checks

Carts are a convenience: a missing or corrupt blob loads as an empty cart.
Orders are records: write failures raise StorageError.
"""

import json
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Dict, List, Any, Optional, Union

from cart import CartLineItem, StorageError
from order import Order
from order_status import advance_status
from performance import PERFORMANCE_THRESHOLDS, observe


logger = logging.getLogger(__name__)


SAFE_ID_PATTERN = re.compile(r"^[A-Za-z0-9_\-]{1,128}$")


def _is_safe_id(value: Any) -> bool:
    return isinstance(value, str) and bool(SAFE_ID_PATTERN.match(value))


def _write_json(path: Path, data: Any):
    """Write JSON next to the target, then rename over it."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=str(path.parent), prefix=".tmp-", suffix=".json")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


# ============================================================================
# ORDER STORE
# ============================================================================

class OrderStore:
    """
    Order documents on disk.

    Orders are written once at checkout and rewritten only on status
    changes.
    """

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)

        # Stats
        self.read_count = 0
        self.write_count = 0
        self.error_count = 0

        logger.info(f"OrderStore initialized at {self.directory}")

    def _path(self, order_id: str) -> Path:
        return self.directory / f"{order_id}.json"

    @observe("write_order_file", PERFORMANCE_THRESHOLDS["file_operation"])
    def save(self, order: Order):
        """
        Write an order document.

        Raises:
            StorageError: Invalid id or filesystem failure
        """
        if not _is_safe_id(order.id):
            self.error_count += 1
            raise StorageError(f"Refusing to store order with unsafe id: {order.id!r}")

        try:
            _write_json(self._path(order.id), order.to_dict())
        except OSError as e:
            self.error_count += 1
            logger.error(f"Order write failed for {order.id}: {str(e)}")
            raise StorageError(f"Failed to save order {order.id}") from e

        self.write_count += 1
        logger.debug(f"Order saved: {order.id}")

    @observe("read_order_file", PERFORMANCE_THRESHOLDS["file_operation"])
    def get(self, order_id: str) -> Optional[Order]:
        """
        Read one order.

        Returns:
            Order, or None if the id is unknown or not a valid identifier

        Raises:
            StorageError: The document exists but cannot be parsed
        """
        if not _is_safe_id(order_id):
            logger.warning(f"Rejected order lookup with unsafe id: {order_id!r}")
            return None

        path = self._path(order_id)
        if not path.is_file():
            return None

        self.read_count += 1
        return self._load(path)

    def _load(self, path: Path) -> Order:
        try:
            with open(path, "r", encoding="utf-8") as f:
                return Order.from_dict(json.load(f))
        except (OSError, ValueError, KeyError, TypeError) as e:
            self.error_count += 1
            logger.error(f"Unreadable order document {path.name}: {str(e)}")
            raise StorageError(f"Failed to read order {path.stem}") from e

    @observe("list_orders", PERFORMANCE_THRESHOLDS["database_query"])
    def list_all(self) -> List[Order]:
        """All readable orders, newest first. Corrupt documents are skipped."""
        if not self.directory.is_dir():
            return []

        orders = []
        for path in self.directory.glob("order-*.json"):
            self.read_count += 1
            try:
                orders.append(self._load(path))
            except StorageError:
                continue

        orders.sort(key=lambda o: o.created_at, reverse=True)
        return orders

    def list_by_user(self, user_id: str) -> List[Order]:
        """Orders placed by one user, newest first."""
        return [order for order in self.list_all() if order.user_id == user_id]

    def update_status(self, order_id: str, new_status, reason: Optional[str] = None) -> Optional[Order]:
        """
        Advance a stored order's status and write it back.

        Returns:
            Updated Order, or None if the order does not exist

        Raises:
            StatusTransitionError: Transition not allowed
            StorageError: Write failed
        """
        order = self.get(order_id)
        if order is None:
            return None

        updated = advance_status(order, new_status, reason)
        self.save(updated)
        return updated

    def get_stats(self) -> Dict[str, Any]:
        return {
            "reads": self.read_count,
            "writes": self.write_count,
            "errors": self.error_count,
        }


# ============================================================================
# CART STORE
# ============================================================================

class CartStore:
    """
    Key-value blob store for carts, keyed by client id.

    load() never raises for missing or damaged data; save() raises
    StorageError so the session can log it.
    """

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)

        # Stats
        self.read_count = 0
        self.write_count = 0
        self.error_count = 0

    def _path(self, client_id: str) -> Path:
        if not _is_safe_id(client_id):
            raise StorageError(f"Invalid client id: {client_id!r}")
        return self.directory / f"{client_id}.json"

    def load(self, client_id: str) -> List[CartLineItem]:
        """
        Stored items for a client, or [] if none or unreadable.

        Raises:
            StorageError: client_id is not a valid identifier
        """
        path = self._path(client_id)
        if not path.is_file():
            return []

        self.read_count += 1

        try:
            with open(path, "r", encoding="utf-8") as f:
                raw = json.load(f)
            return [CartLineItem.from_dict(entry) for entry in raw["items"]]
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            self.error_count += 1
            logger.warning(f"Discarding unreadable cart for {client_id}: {str(e)}")
            return []

    @observe("write_cart_file", PERFORMANCE_THRESHOLDS["file_operation"])
    def save(self, client_id: str, items: List[CartLineItem]):
        """
        Replace the stored cart for a client.

        Raises:
            StorageError: Invalid id or filesystem failure
        """
        path = self._path(client_id)

        try:
            _write_json(path, {"items": [item.to_dict() for item in items]})
        except OSError as e:
            self.error_count += 1
            raise StorageError(f"Failed to save cart for {client_id}") from e

        self.write_count += 1

    def clear(self, client_id: str):
        path = self._path(client_id)
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            self.error_count += 1
            raise StorageError(f"Failed to clear cart for {client_id}") from e

    def get_stats(self) -> Dict[str, Any]:
        return {
            "reads": self.read_count,
            "writes": self.write_count,
            "errors": self.error_count,
        }
