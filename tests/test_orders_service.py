"""
Orders Service: creation, the status state machine and the payment saga.
"""

import asyncio
import inspect
from unittest.mock import AsyncMock
from uuid import UUID, uuid4

import pytest
from fastapi.testclient import TestClient

from erp_services.config import Settings
from erp_services.errors import ConcurrencyConflict, InvalidTransition, NotFound, Timeout, Transient, ValidationError
from erp_services.orders import commands, queries
from erp_services.orders.aggregate import TRANSITIONS, OrderAggregate
from erp_services.orders.main import create_app
from erp_services.orders.models import OrderEvent, OrderStatus
from erp_services.orders.peers import PaymentsClient, ProductsClient, UsersClient
from erp_services.products import commands as product_commands
from erp_services.products import queries as product_queries


@pytest.fixture
def fields(catalogue, known_user):
    widget, gadget = list(catalogue)
    return {
        "user_id": str(known_user),
        "items": [
            {"product_id": str(widget), "quantity": 2},
            {"product_id": str(gadget), "quantity": 1},
        ],
    }


@pytest.fixture
async def order_id(session, redis, peers, fields):
    return await commands.create_order(session, redis, peers, fields)


class TestCreateOrder:
    @pytest.mark.asyncio
    async def test_round_trip_keeps_user_id_only(self, session, order_id, known_user):
        order = await queries.get_order(session, order_id)

        assert order["user_id"] == str(known_user)
        assert "user" not in order
        assert "name" not in order

    @pytest.mark.asyncio
    async def test_price_snapshot_and_total(self, session, order_id, catalogue):
        order = await queries.get_order(session, order_id)

        assert order["status"] == "Created"
        assert [i["unit_price"] for i in order["items"]] == [2.5, 10.0]
        assert order["total"] == 15.0
        assert order["payment_id"] is None
        assert "created_at" in order

    @pytest.mark.asyncio
    async def test_snapshot_survives_price_change(self, session, order_id, catalogue):
        for product in catalogue.values():
            product["price"] = 99.0

        order = await queries.get_order(session, order_id)

        assert order["total"] == 15.0

    @pytest.mark.asyncio
    async def test_unknown_user(self, session, redis, peers, fields):
        fields["user_id"] = str(uuid4())

        with pytest.raises(ValidationError) as exc_info:
            await commands.create_order(session, redis, peers, fields)
        assert exc_info.value.code == "UNKNOWN_USER"

    @pytest.mark.asyncio
    async def test_unknown_product(self, session, redis, peers, fields):
        fields["items"].append({"product_id": str(uuid4()), "quantity": 1})

        with pytest.raises(ValidationError) as exc_info:
            await commands.create_order(session, redis, peers, fields)
        assert exc_info.value.code == "UNKNOWN_PRODUCT"

    @pytest.mark.asyncio
    async def test_repeated_product_rejected(self, session, redis, peers, fields):
        fields["items"].append({"product_id": fields["items"][0]["product_id"], "quantity": 3})

        with pytest.raises(ValidationError) as exc_info:
            await commands.create_order(session, redis, peers, fields)
        assert exc_info.value.code == "VALIDATION_ERROR"
        assert await queries.list_orders(session) == []

    @pytest.mark.asyncio
    async def test_empty_order_rejected(self, session, redis, peers, known_user):
        with pytest.raises(ValidationError):
            await commands.create_order(session, redis, peers, {"user_id": str(known_user), "items": []})

    @pytest.mark.asyncio
    async def test_users_unavailable_propagates(self, session, redis, peers, fields):
        peers.users.get_user.side_effect = Timeout("users did not answer")

        with pytest.raises(Timeout):
            await commands.create_order(session, redis, peers, fields)
        assert await queries.list_orders(session) == []


class TestTransitions:
    @pytest.mark.asyncio
    async def test_fulfill_from_created_is_invalid(self, session, redis, peers, order_id):
        with pytest.raises(InvalidTransition):
            await commands.transition_order(session, redis, peers, order_id, "Fulfill")

        assert (await queries.get_order(session, order_id))["status"] == "Created"

    @pytest.mark.parametrize("status", list(OrderStatus))
    def test_pairs_outside_table_raise(self, status):
        for event in OrderEvent:
            agg = OrderAggregate()
            agg.id, agg.status = uuid4(), status
            if (status, event) in TRANSITIONS:
                assert agg.next_status(event) == TRANSITIONS[(status, event)]
            else:
                with pytest.raises(InvalidTransition):
                    agg.next_status(event)

    @pytest.mark.asyncio
    async def test_unknown_event_name(self, session, redis, peers, order_id):
        with pytest.raises(InvalidTransition):
            await commands.transition_order(session, redis, peers, order_id, "Ship")

    @pytest.mark.asyncio
    async def test_pay_then_fulfill(self, session, redis, peers, order_id):
        status = await commands.transition_order(session, redis, peers, order_id, "Pay")
        assert status == OrderStatus.PAID
        assert peers.products.reserve_stock.await_count == 2
        peers.payments.capture.assert_awaited_once_with(order_id, 15.0)

        status = await commands.transition_order(session, redis, peers, order_id, "Fulfill")
        assert status == OrderStatus.FULFILLED

        order = await queries.get_order(session, order_id)
        assert order["status"] == "Fulfilled"
        assert order["payment_id"] == "pay-123"
        assert "paid_at" in order and "fulfilled_at" in order

    @pytest.mark.asyncio
    async def test_cancel_created_has_no_side_effects(self, session, redis, peers, order_id):
        status = await commands.transition_order(session, redis, peers, order_id, "Cancel")

        assert status == OrderStatus.CANCELLED
        peers.payments.refund.assert_not_awaited()
        peers.products.release_stock.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cancel_paid_refunds_and_releases(self, session, redis, peers, order_id):
        await commands.transition_order(session, redis, peers, order_id, "Pay")

        status = await commands.transition_order(session, redis, peers, order_id, "Cancel")

        assert status == OrderStatus.CANCELLED
        peers.payments.refund.assert_awaited_once_with("pay-123", order_id)
        assert peers.products.release_stock.await_count == 2

    @pytest.mark.asyncio
    async def test_terminal_states_reject_everything(self, session, redis, peers, order_id):
        await commands.transition_order(session, redis, peers, order_id, "Cancel")

        for event in ("Pay", "Fulfill", "Cancel"):
            with pytest.raises(InvalidTransition):
                await commands.transition_order(session, redis, peers, order_id, event)


class TestPaymentSaga:
    @pytest.mark.asyncio
    async def test_payment_failure_keeps_order_created(self, session, redis, peers, order_id):
        peers.payments.capture.side_effect = Transient("payments unreachable")

        with pytest.raises(Transient):
            await commands.transition_order(session, redis, peers, order_id, "Pay")

        order = await queries.get_order(session, order_id)
        assert order["status"] == "Created"
        assert order["payment_id"] is None
        # both reservations are compensated
        assert peers.products.release_stock.await_count == 2

    @pytest.mark.asyncio
    async def test_stock_failure_skips_payment(self, session, redis, peers, order_id):
        peers.products.reserve_stock.side_effect = [
            {"reserved": 2},
            ValidationError("Insufficient stock", code="INSUFFICIENT_STOCK"),
        ]

        with pytest.raises(ValidationError):
            await commands.transition_order(session, redis, peers, order_id, "Pay")

        peers.payments.capture.assert_not_awaited()
        assert peers.products.release_stock.await_count == 2
        assert (await queries.get_order(session, order_id))["status"] == "Created"

    @pytest.mark.asyncio
    async def test_failed_compensation_is_reported(self, session, redis, peers, order_id):
        peers.payments.capture.side_effect = Timeout("payments timed out")
        peers.products.release_stock.side_effect = Transient("products down")

        with pytest.raises(Timeout) as exc_info:
            await commands.transition_order(session, redis, peers, order_id, "Pay")

        assert len(exc_info.value.details["unreleased_items"]) == 2

    @pytest.mark.asyncio
    async def test_lost_race_undoes_payment(self, session, redis, peers, order_id, monkeypatch):
        async def conflicting_record(*args, **kwargs):
            raise ConcurrencyConflict("someone else moved the order")

        monkeypatch.setattr(commands, "_record", conflicting_record)
        with pytest.raises(ConcurrencyConflict):
            await commands.transition_order(session, redis, peers, order_id, "Pay")

        peers.payments.refund.assert_awaited_once_with("pay-123", order_id)
        assert peers.products.release_stock.await_count == 2

    @pytest.mark.asyncio
    async def test_refunded_cancel_that_loses_the_write_reports_payment(
        self, session, redis, peers, order_id, monkeypatch
    ):
        await commands.transition_order(session, redis, peers, order_id, "Pay")

        async def conflicting_record(*args, **kwargs):
            raise ConcurrencyConflict("someone else moved the order")

        monkeypatch.setattr(commands, "_record", conflicting_record)
        with pytest.raises(ConcurrencyConflict) as exc_info:
            await commands.transition_order(session, redis, peers, order_id, "Cancel")

        assert exc_info.value.details["refunded_payment_id"] == "pay-123"

    @pytest.mark.asyncio
    async def test_failed_refund_keeps_order_paid(self, session, redis, peers, order_id):
        await commands.transition_order(session, redis, peers, order_id, "Pay")
        peers.payments.refund.side_effect = Transient("payments down")

        with pytest.raises(Transient):
            await commands.transition_order(session, redis, peers, order_id, "Cancel")

        assert (await queries.get_order(session, order_id))["status"] == "Paid"


class TestUpdateAndDelete:
    @pytest.mark.asyncio
    async def test_replace_items_while_created(self, session, redis, peers, order_id, catalogue):
        widget = list(catalogue)[0]

        agg = await commands.update_order(
            session, redis, peers, order_id, {"items": [{"product_id": str(widget), "quantity": 4}]}
        )

        assert agg.total == 10.0
        assert len((await queries.get_order(session, order_id))["items"]) == 1

    @pytest.mark.asyncio
    async def test_replacement_with_repeated_product_rejected(self, session, redis, peers, order_id, catalogue):
        widget = str(list(catalogue)[0])
        items = [{"product_id": widget, "quantity": 1}, {"product_id": widget, "quantity": 2}]

        with pytest.raises(ValidationError):
            await commands.update_order(session, redis, peers, order_id, {"items": items})

    @pytest.mark.asyncio
    async def test_status_not_writable_through_update(self, session, redis, peers, order_id):
        with pytest.raises(ValidationError):
            await commands.update_order(session, redis, peers, order_id, {"status": "Paid"})

    @pytest.mark.asyncio
    async def test_paid_order_cannot_change(self, session, redis, peers, order_id, fields):
        await commands.transition_order(session, redis, peers, order_id, "Pay")

        with pytest.raises(ValidationError):
            await commands.update_order(session, redis, peers, order_id, {"items": fields["items"]})
        with pytest.raises(ValidationError):
            await commands.delete_order(session, redis, order_id)

    @pytest.mark.asyncio
    async def test_delete_created_order(self, session, redis, order_id):
        await commands.delete_order(session, redis, order_id)

        with pytest.raises(NotFound):
            await queries.get_order(session, order_id)


class TestOwnership:
    """The Orders service has no way to write another service's entities."""

    @pytest.mark.parametrize("client_cls", [UsersClient, ProductsClient, PaymentsClient])
    def test_peer_clients_expose_no_update_or_delete(self, client_cls):
        methods = {name for name, _ in inspect.getmembers(client_cls, inspect.isfunction)}

        assert not any(m.startswith(("update", "delete", "create", "save")) for m in methods)

    def test_users_client_is_read_only(self):
        methods = {n for n, _ in inspect.getmembers(UsersClient, inspect.isfunction) if not n.startswith("_")}

        assert methods == {"get_user"}


class TestOrdersApi:
    @pytest.fixture
    def client(self, tmp_path, peers):
        settings = Settings(database_url=f"sqlite+aiosqlite:///{tmp_path}/orders.db")
        with TestClient(create_app(settings, redis=AsyncMock(), peers=peers)) as client:
            yield client

    def test_transition_over_http(self, client, fields):
        order_id = client.post("/commands/orders", json=fields).json()["id"]

        resp = client.post(f"/commands/orders/{order_id}/transition", json={"event": "Fulfill"})
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "INVALID_TRANSITION"

        resp = client.post(f"/commands/orders/{order_id}/transition", json={"event": "Pay"})
        assert resp.json() == {"id": order_id, "status": "Paid"}

    def test_list_orders_by_user(self, client, fields, known_user):
        client.post("/commands/orders", json=fields)

        assert len(client.get("/queries/orders", params={"user_id": str(known_user)}).json()) == 1
        assert client.get("/queries/orders", params={"user_id": str(uuid4())}).json() == []

    def test_order_id_is_uuid(self, client, fields):
        order_id = client.post("/commands/orders", json=fields).json()["id"]

        assert UUID(order_id)


class TestSagaAgainstProductStore:
    """Pay and Cancel with Products reservations applied to the real store."""

    @pytest.fixture
    async def stocked(self, session_factory, redis):
        async with session_factory() as s:
            widget = await product_commands.create_product(
                s, redis, {"name": "Widget", "price": 2.5, "stock": 10}
            )
            gadget = await product_commands.create_product(
                s, redis, {"name": "Gadget", "price": 10.0, "stock": 1}
            )
        return widget, gadget

    @pytest.fixture
    async def widget_order(self, session, redis, store_peers, stocked, known_user):
        widget, _ = stocked
        fields = {"user_id": str(known_user), "items": [{"product_id": str(widget), "quantity": 4}]}
        return await commands.create_order(session, redis, store_peers, fields)

    async def stock_of(self, session_factory, product_id):
        async with session_factory() as s:
            product = await product_queries.get_product(s, product_id)
        return product["stock"], product["reserved"]

    @pytest.mark.asyncio
    async def test_pay_debits_each_line_once(self, session, session_factory, redis, store_peers, stocked, widget_order):
        await commands.transition_order(session, redis, store_peers, widget_order, "Pay")

        assert await self.stock_of(session_factory, stocked[0]) == (6, 4)

    @pytest.mark.asyncio
    async def test_repeated_product_never_reaches_products(self, session, session_factory, redis, store_peers, stocked, known_user):
        widget = str(stocked[0])
        fields = {
            "user_id": str(known_user),
            "items": [{"product_id": widget, "quantity": 2}, {"product_id": widget, "quantity": 3}],
        }

        with pytest.raises(ValidationError):
            await commands.create_order(session, redis, store_peers, fields)
        assert await self.stock_of(session_factory, stocked[0]) == (10, 0)

    @pytest.mark.asyncio
    async def test_insufficient_stock_returns_earlier_lines(self, session, session_factory, redis, store_peers, stocked, known_user):
        widget, gadget = stocked
        fields = {
            "user_id": str(known_user),
            "items": [{"product_id": str(widget), "quantity": 4}, {"product_id": str(gadget), "quantity": 2}],
        }
        order_id = await commands.create_order(session, redis, store_peers, fields)

        with pytest.raises(ValidationError) as exc_info:
            await commands.transition_order(session, redis, store_peers, order_id, "Pay")

        assert exc_info.value.code == "INSUFFICIENT_STOCK"
        assert await self.stock_of(session_factory, widget) == (10, 0)
        assert await self.stock_of(session_factory, gadget) == (1, 0)
        store_peers.payments.capture.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_losing_pay_keeps_winners_reservation(self, session, session_factory, redis, store_peers, stocked, widget_order):
        calls = 0

        async def capture(order_id, amount):
            nonlocal calls
            calls += 1
            if calls == 1:
                # another Pay completes while this one waits on Payments
                async with session_factory() as other:
                    await commands.transition_order(other, redis, store_peers, order_id, "Pay")
                return "pay-late"
            return "pay-first"

        store_peers.payments.capture.side_effect = capture

        with pytest.raises(ConcurrencyConflict):
            await commands.transition_order(session, redis, store_peers, widget_order, "Pay")

        store_peers.payments.refund.assert_awaited_once_with("pay-late", widget_order)
        assert await self.stock_of(session_factory, stocked[0]) == (6, 4)
        async with session_factory() as s:
            order = await queries.get_order(s, widget_order)
        assert order["status"] == "Paid"
        assert order["payment_id"] == "pay-first"

    @pytest.mark.asyncio
    async def test_cancel_on_stale_order_has_no_side_effects(
        self, session, session_factory, redis, store_peers, stocked, widget_order, monkeypatch
    ):
        await commands.transition_order(session, redis, store_peers, widget_order, "Pay")
        stale = await commands.load_order(session, widget_order)
        await commands.transition_order(session, redis, store_peers, widget_order, "Fulfill")

        async def load_stale(session, order_id):
            return stale

        monkeypatch.setattr(commands, "load_order", load_stale)
        with pytest.raises(ConcurrencyConflict):
            await commands.transition_order(session, redis, store_peers, widget_order, "Cancel")

        store_peers.payments.refund.assert_not_awaited()
        assert await self.stock_of(session_factory, stocked[0]) == (6, 4)
        assert (await queries.get_order(session, widget_order))["status"] == "Fulfilled"

    @pytest.mark.asyncio
    async def test_cancel_paid_returns_stock(self, session, session_factory, redis, store_peers, stocked, widget_order):
        await commands.transition_order(session, redis, store_peers, widget_order, "Pay")

        await commands.transition_order(session, redis, store_peers, widget_order, "Cancel")

        assert await self.stock_of(session_factory, stocked[0]) == (10, 0)

    @pytest.mark.asyncio
    async def test_cancelled_caller_releases_reservations(self, session, session_factory, redis, store_peers, stocked, widget_order):
        store_peers.payments.capture.side_effect = asyncio.CancelledError()

        with pytest.raises(asyncio.CancelledError):
            await commands.transition_order(session, redis, store_peers, widget_order, "Pay")

        assert await self.stock_of(session_factory, stocked[0]) == (10, 0)
        assert (await queries.get_order(session, widget_order))["status"] == "Created"
