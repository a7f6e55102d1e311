"""
Storefront HTTP Server
======================
Thin FastAPI adapter over the menu and checkout modules.

Endpoints:
- GET  /health
- GET  /metrics                      (Prometheus)
- GET  /api/menu
- POST /api/orders
- GET  /api/orders/{order_id}
- POST /api/orders/{order_id}/status
- GET  /api/orders/user/{user_id}

NO BUSINESS LOGIC - pricing and validation live in pricing / order.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
import uvicorn

from config import get_config, validate_configuration
from db import OrderStore, StorageError
from menu import MenuCatalog, MenuLoadError, get_catalog
from order import OrderValidationError, create_order
from order_status import StatusTransitionError
from performance import PERFORMANCE_THRESHOLDS, get_performance_logger, observe


logger = logging.getLogger(__name__)


API_THRESHOLD = PERFORMANCE_THRESHOLDS["api_request"]


# ============================================================================
# DEPENDENCIES
# ============================================================================

_order_store: Optional[OrderStore] = None


def get_order_store() -> OrderStore:
    """Shared order store rooted at the configured orders directory."""
    global _order_store

    if _order_store is None:
        _order_store = OrderStore(get_config().storage.orders_dir)

    return _order_store


def get_menu() -> MenuCatalog:
    return get_catalog()


def _error(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": message, **extra}
    )


# ============================================================================
# FASTAPI APPLICATION
# ============================================================================

app = FastAPI(title="Pizza Storefront API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_config().server.cors_origins,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


@app.get("/health")
async def health_check(store: OrderStore = Depends(get_order_store)):
    """Health check endpoint."""
    return {
        "status": "healthy",
        "storage": store.get_stats(),
        "performance": get_performance_logger().get_summary(),
        "timestamp": datetime.now(timezone.utc).isoformat()
    }


@app.get("/metrics")
async def metrics():
    """Prometheus scrape endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


# ============================================================================
# MENU
# ============================================================================

@app.get("/api/menu")
@observe("GET /api/menu", API_THRESHOLD)
async def read_menu(catalog: MenuCatalog = Depends(get_menu)):
    """Full menu (pizzas, toppings, crusts)."""
    return {"success": True, "data": catalog.to_dict()}


# ============================================================================
# ORDERS
# ============================================================================

@app.post("/api/orders")
@observe("POST /api/orders", API_THRESHOLD)
async def submit_order(
    request: Request,
    store: OrderStore = Depends(get_order_store),
    catalog: MenuCatalog = Depends(get_menu)
):
    """
    Place an order.

    Body: {customerInfo, items: [{pizzaId, size, selectedToppings, quantity}], userId?}
    Prices in the body are ignored; the response carries server totals.
    """
    try:
        payload = await request.json()
    except ValueError:
        return _error(400, "Invalid request format")

    try:
        order = create_order(payload, store=store, catalog=catalog)
    except OrderValidationError as e:
        return JSONResponse(status_code=400, content=e.to_dict())
    except StorageError as e:
        logger.error(f"Order creation failed: {str(e)}")
        return _error(500, "Failed to create order")

    return {"success": True, "data": order.to_dict()}


@app.get("/api/orders/{order_id}")
@observe("GET /api/orders/{id}", API_THRESHOLD)
async def read_order(order_id: str, store: OrderStore = Depends(get_order_store)):
    """Fetch one order by id."""
    try:
        order = store.get(order_id)
    except StorageError as e:
        logger.error(f"Order retrieval failed: {str(e)}")
        return _error(500, "Failed to retrieve order")

    if order is None:
        return _error(404, "Order not found")

    return {"success": True, "data": order.to_dict()}


@app.post("/api/orders/{order_id}/status")
@observe("POST /api/orders/{id}/status", API_THRESHOLD)
async def change_order_status(
    order_id: str,
    request: Request,
    store: OrderStore = Depends(get_order_store)
):
    """Body: {status, reason?}. Only lifecycle-valid transitions succeed."""
    try:
        payload = await request.json()
    except ValueError:
        return _error(400, "Invalid request format")

    if not isinstance(payload, dict) or "status" not in payload:
        return _error(400, "status is required")

    try:
        order = store.update_status(order_id, payload["status"], payload.get("reason"))
    except StatusTransitionError as e:
        return _error(409, str(e))
    except StorageError as e:
        logger.error(f"Order status update failed: {str(e)}")
        return _error(500, "Failed to update order")

    if order is None:
        return _error(404, "Order not found")

    return {"success": True, "data": order.to_dict()}


@app.get("/api/orders/user/{user_id}")
@observe("GET /api/orders/user/{userId}", API_THRESHOLD)
async def read_user_orders(user_id: str, store: OrderStore = Depends(get_order_store)):
    """All orders placed by a user, newest first."""
    orders = store.list_by_user(user_id)
    return {"success": True, "data": [order.to_dict() for order in orders]}


# ============================================================================
# MAIN ENTRY POINT
# ============================================================================

def main():
    """Run the storefront server."""
    settings = get_config().server

    logging.basicConfig(
        level=settings.log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    validate_configuration()

    try:
        get_catalog()
    except MenuLoadError as e:
        logger.error(f"Menu could not be loaded: {str(e)}")
        raise

    logger.info(f"Starting server on {settings.host}:{settings.port}")

    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        access_log=True
    )


if __name__ == "__main__":
    main()
