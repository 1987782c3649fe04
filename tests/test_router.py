import httpx
import pytest_asyncio

from shared.config.database import get_db
from services.order_service.dependencies import (
    get_order_service,
    get_order_stats_service,
    get_seller_order_service,
)
from services.order_service.main import order_app
from services.order_service.models import OrderStatus
from services.order_service.seller_view import SellerOrderService
from services.order_service.stats import OrderStatsService

API_KEY = "test-internal-key"


def _headers(user_id="user-1", role="USER"):
    return {"X-Internal-API-Key": API_KEY, "X-User-ID": user_id, "X-User-Role": role}


def _line(product_id, seller_id="seller-1", quantity=1, price=10.0):
    return {"product_id": product_id, "product_name": product_id, "quantity": quantity, "price": price, "seller_id": seller_id}


@pytest_asyncio.fixture
async def client(session_factory, service, static_resolver):
    async def override_db():
        async with session_factory() as session:
            yield session

    resolver = static_resolver()
    order_app.dependency_overrides[get_db] = override_db
    order_app.dependency_overrides[get_order_service] = lambda: service
    order_app.dependency_overrides[get_seller_order_service] = lambda: SellerOrderService(resolver)
    order_app.dependency_overrides[get_order_stats_service] = lambda: OrderStatsService(resolver)

    transport = httpx.ASGITransport(app=order_app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    order_app.dependency_overrides.clear()


async def test_health_is_public(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"service": "order", "status": "running"}


async def test_internal_key_required(client):
    resp = await client.get("/user/user-1", headers={"X-User-ID": "user-1"})
    assert resp.status_code == 403


async def test_caller_identity_required(client):
    resp = await client.get("/user/user-1", headers={"X-Internal-API-Key": API_KEY})
    assert resp.status_code == 401


async def test_create_and_fetch_order(client):
    resp = await client.post(
        "/",
        json={"user_id": "user-1", "items": [{"product_id": "p-1", "quantity": 2, "price": 4.5}]},
        headers=_headers(),
    )
    assert resp.status_code == 201
    created = resp.json()
    assert created["status"] == "PENDING"
    assert created["total_price"] == 9.0

    resp = await client.get(f"/{created['id']}", headers=_headers())
    assert resp.status_code == 200
    assert resp.json()["items"][0]["product_id"] == "p-1"


async def test_other_users_orders_are_forbidden(client, make_order):
    order = await make_order(items=[_line("p-1")])

    resp = await client.get(f"/{order.id}", headers=_headers(user_id="intruder"))

    assert resp.status_code == 403
    assert resp.json()["error"] == "forbidden"


async def test_unknown_order_renders_error_body(client):
    resp = await client.get("/missing", headers=_headers(role="ADMIN"))

    assert resp.status_code == 404
    assert resp.json() == {"error": "order_not_found", "message": "Order missing not found"}


async def test_active_cart_absent(client):
    resp = await client.get("/user/user-1/cart", headers=_headers())
    assert resp.status_code == 204


async def test_checkout_endpoint(client, inventory, make_order):
    cart = await make_order(items=[_line("p-1", quantity=2)])
    body = {"shipping_address": "10 Downing St", "payment_method": "PAY_ON_DELIVERY"}

    resp = await client.post(f"/{cart.id}/checkout", json=body, headers=_headers())
    assert resp.status_code == 200
    assert resp.json()["status"] == "SHIPPING"
    assert inventory.decrease_calls == [[("p-1", 2)]]

    resp = await client.post(f"/{cart.id}/checkout", json=body, headers=_headers())
    assert resp.status_code == 409
    assert resp.json()["error"] == "order_not_pending"


async def test_checkout_failure_hides_collaborator_details(client, inventory, make_order):
    cart = await make_order(items=[_line("p-1")])
    inventory.fail_decrease = True

    resp = await client.post(
        f"/{cart.id}/checkout",
        json={"shipping_address": "10 Downing St", "payment_method": "CARD"},
        headers=_headers(),
    )

    assert resp.status_code == 502
    assert resp.json() == {"error": "checkout_failed", "message": "Could not complete checkout"}


async def test_search_validation_errors(client):
    resp = await client.get("/user/user-1/search", params={"min_price": 10, "max_price": 1}, headers=_headers())

    assert resp.status_code == 400
    assert resp.json()["error"] == "invalid_price_range"


async def test_search_by_status_list(client, make_order):
    delivered = await make_order(status=OrderStatus.DELIVERED, items=[_line("p-1")])
    await make_order(status=OrderStatus.CANCELLED, items=[_line("p-1")])

    resp = await client.get("/user/user-1/search", params={"status": ["DELIVERED"]}, headers=_headers())

    assert resp.status_code == 200
    page = resp.json()
    assert [o["id"] for o in page["content"]] == [delivered.id]
    assert page["total_elements"] == 1


async def test_seller_sees_only_own_items(client, make_order):
    order = await make_order(status=OrderStatus.SHIPPING, items=[_line("p-1", "seller-1"), _line("p-2", "seller-2")])

    resp = await client.get(f"/{order.id}", headers=_headers(user_id="seller-2", role="SELLER"))

    assert resp.status_code == 200
    body = resp.json()
    assert [i["product_id"] for i in body["items"]] == ["p-2"]
    assert body["subtotal"] == 10.0

    resp = await client.get("/seller/seller-2", headers=_headers(user_id="seller-1", role="SELLER"))
    assert resp.status_code == 403


async def test_status_update_requires_admin(client, make_order):
    order = await make_order(status=OrderStatus.SHIPPING, items=[_line("p-1")])

    resp = await client.patch(f"/{order.id}/status", json={"status": "SHIPPED"}, headers=_headers())
    assert resp.status_code == 403

    resp = await client.patch(f"/{order.id}/status", json={"status": "SHIPPED"}, headers=_headers(role="ADMIN"))
    assert resp.status_code == 200
    assert resp.json()["status"] == "SHIPPED"


async def test_payment_event(client, make_order):
    cart = await make_order(items=[_line("p-1")])

    resp = await client.post("/payment-events", json={"order_id": cart.id, "status": "SUCCESS"}, headers=_headers())

    assert resp.status_code == 202
    assert resp.json() == {"order_id": cart.id, "handled": True, "status": "PROCESSING"}


async def test_redo_endpoint(client, inventory, make_order):
    inventory.add_product("p-1", quantity=1)
    past = await make_order(status=OrderStatus.DELIVERED, items=[_line("p-1", quantity=3)])

    resp = await client.post(f"/{past.id}/redo", headers=_headers())

    assert resp.status_code == 200
    body = resp.json()
    assert body["order"]["items"][0]["quantity"] == 1
    assert body["partially_filled_products"] == ["'Widget' has only 1 available instead of 3"]


async def test_stats_endpoints(client, make_order):
    await make_order(status=OrderStatus.DELIVERED, items=[_line("p-1", quantity=3)])

    buyer = await client.get("/user/user-1/stats", headers=_headers())
    seller = await client.get("/seller/seller-1/stats", headers=_headers(user_id="seller-1", role="SELLER"))

    assert buyer.json()["total_spent"] == 30.0
    assert seller.json()["delivery_rating"] == 5.0


async def test_seller_sees_full_view_of_own_purchase(client, make_order):
    order = await make_order(user_id="seller-2", status=OrderStatus.SHIPPING, items=[_line("p-1", "seller-1")])

    resp = await client.get(f"/{order.id}", headers=_headers(user_id="seller-2", role="SELLER"))

    assert resp.status_code == 200
    body = resp.json()
    assert body["user_id"] == "seller-2"
    assert body["shipping_address"] == "1 Main St"
    assert [i["product_id"] for i in body["items"]] == ["p-1"]
