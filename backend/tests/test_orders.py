# Overview: Pytest coverage for order placement, numbering, events and the status lifecycle.

"""
Order Engine Tests

Placement:
- totals invariants and price snapshots
- stock checks (summed across repeated lines) and decrements
- best-effort coupons and the usage counter
- per-tenant sequential order numbers
- NEW_ORDER event on the tenant channel after commit

Lifecycle:
- forward-only transition table, terminal states
- each *_at timestamp written once
- tenant isolation on status changes
"""

from datetime import timedelta

import pytest

from pantry.errors import ForbiddenError, InvalidStateError, NotFoundError, ValidationError
from pantry.models import Coupon, Item, Order
from pantry.services import catalog_service, order_service, session_service
from pantry.time_utils import utcnow


def _line(item, quantity=1, **extra):
    return {"item_id": item.id, "quantity": quantity, **extra}


class TestPlacement:

    def test_coffee_scenario(self, db_session, session_a, coffee):
        """2 x Coffee at 80 with stock 5: subtotal 160, stock 3, ORD-00001."""
        order = order_service.create_order(session_a.id, [_line(coffee, 2)])

        assert order.subtotal_cents == 160
        assert order.discount_cents == 0
        assert order.total_cents == 160
        assert order.status == "PENDING"
        assert order.order_number == "ORD-00001"
        assert order.org_id == session_a.org_id
        assert order.space_id == session_a.space_id
        assert order.chair_number == 3

        db_session.expire_all()
        assert db_session.get(Item, coffee.id).stock == 3

    def test_welcome10_scenario(self, db_session, org_a, session_a, tea, make_coupon):
        """WELCOME10 on a 200 subtotal: discount 20, total 180, usage 0 -> 1."""
        coupon = make_coupon(org_a.id, "WELCOME10", value=10)
        order = order_service.create_order(session_a.id, [_line(tea, 4)], coupon_code="welcome10")

        assert order.subtotal_cents == 200
        assert order.discount_cents == 20
        assert order.total_cents == 180
        assert order.coupon_id == coupon.id

        db_session.expire_all()
        assert db_session.get(Coupon, coupon.id).usage_count == 1

    def test_totals_invariants(self, db_session, session_a, coffee, tea, water):
        order = order_service.create_order(
            session_a.id,
            [_line(coffee, 1), _line(tea, 3, notes="no sugar", options={"milk": "oat"}), _line(water, 2)],
        )

        assert order.subtotal_cents == sum(l.unit_price_cents * l.quantity for l in order.lines)
        assert order.total_cents == order.subtotal_cents - order.discount_cents
        assert [l.item_name for l in order.lines] == ["Coffee", "Tea", "Water"]
        assert order.lines[1].options == {"milk": "oat"}
        assert order.lines[1].notes == "no sugar"

    def test_free_item_snapshot_is_zero(self, db_session, session_a, water):
        order = order_service.create_order(session_a.id, [_line(water, 2)])
        assert order.lines[0].unit_price_cents == 0
        assert order.total_cents == 0

    def test_price_snapshot_survives_catalog_change(self, db_session, session_a, tea):
        order = order_service.create_order(session_a.id, [_line(tea, 2)])

        tea.price_cents = 999
        db_session.commit()

        db_session.expire_all()
        stored = order_service.get_order(order.id)
        assert stored.lines[0].unit_price_cents == 50
        assert stored.subtotal_cents == 100

    def test_order_numbers_sequential_per_tenant(self, db_session, session_a, tea, space_b, item_b):
        first = order_service.create_order(session_a.id, [_line(tea)])
        second = order_service.create_order(session_a.id, [_line(tea)])
        session_b = session_service.open_session(space_b.qr_code, 60)
        other = order_service.create_order(session_b.id, [_line(item_b)])

        assert first.order_number == "ORD-00001"
        assert second.order_number == "ORD-00002"
        assert other.order_number == "ORD-00001"

    def test_user_defaults_to_session_owner(self, db_session, space_a, tea, guest_a):
        session = session_service.open_session(space_a.qr_code, 60, user_id=guest_a.id)
        order = order_service.create_order(session.id, [_line(tea)])
        assert order.user_id == guest_a.id


class TestPlacementRejections:

    def test_expired_session(self, db_session, session_a, tea):
        session_a.expires_at = utcnow() - timedelta(seconds=1)
        db_session.commit()
        with pytest.raises(InvalidStateError):
            order_service.create_order(session_a.id, [_line(tea)])

    def test_missing_session(self, db_session, tea):
        with pytest.raises(NotFoundError):
            order_service.create_order("00000000-0000-0000-0000-000000000000", [_line(tea)])

    def test_empty_items(self, db_session, session_a):
        with pytest.raises(ValidationError):
            order_service.create_order(session_a.id, [])

    def test_item_from_other_tenant(self, db_session, session_a, item_b):
        with pytest.raises(NotFoundError):
            order_service.create_order(session_a.id, [_line(item_b)])

    def test_unavailable_item(self, db_session, session_a, coffee):
        coffee.is_available = False
        db_session.commit()
        with pytest.raises(InvalidStateError, match="Coffee is not available"):
            order_service.create_order(session_a.id, [_line(coffee)])

    def test_insufficient_stock(self, db_session, session_a, coffee):
        with pytest.raises(InvalidStateError, match="Insufficient stock for Coffee"):
            order_service.create_order(session_a.id, [_line(coffee, 6)])

    def test_repeated_lines_are_summed_for_stock(self, db_session, session_a, coffee):
        with pytest.raises(InvalidStateError, match="Insufficient stock for Coffee"):
            order_service.create_order(session_a.id, [_line(coffee, 3), _line(coffee, 3)])

        db_session.expire_all()
        assert db_session.get(Item, coffee.id).stock == 5
        assert db_session.query(Order).count() == 0

    def test_later_decrement_failure_restores_earlier_lines(
        self, db_session, org_a, beverages_a, session_a, coffee, monkeypatch,
    ):
        muffin = Item(org_id=org_a.id, category_id=beverages_a.id, name="Muffin", price_cents=60, stock=3)
        db_session.add(muffin)
        db_session.commit()
        coffee_id, muffin_id = coffee.id, muffin.id

        real_decrement = catalog_service.try_decrement_stock
        attempted = []

        def decrement(item_id, quantity):
            attempted.append(item_id)
            if item_id == muffin_id:
                return False  # a concurrent order took the last muffins
            return real_decrement(item_id, quantity)

        monkeypatch.setattr(catalog_service, "try_decrement_stock", decrement)

        with pytest.raises(InvalidStateError, match="Insufficient stock for Muffin"):
            order_service.create_order(session_a.id, [_line(coffee, 2), _line(muffin, 1)])

        assert attempted == [coffee_id, muffin_id]
        db_session.expire_all()
        assert db_session.get(Item, coffee_id).stock == 5
        assert db_session.get(Item, muffin_id).stock == 3
        assert db_session.query(Order).count() == 0

    def test_failed_order_consumes_no_number(self, db_session, session_a, coffee, tea):
        with pytest.raises(InvalidStateError):
            order_service.create_order(session_a.id, [_line(tea), _line(coffee, 6)])
        order = order_service.create_order(session_a.id, [_line(tea)])
        assert order.order_number == "ORD-00001"


class TestCouponsOnOrders:

    def test_failing_coupon_is_ignored(self, db_session, org_a, session_a, tea, make_coupon):
        make_coupon(org_a.id, "BIG", min_order_amount_cents=10_000)
        order = order_service.create_order(session_a.id, [_line(tea, 2)], coupon_code="BIG")
        assert order.discount_cents == 0
        assert order.coupon_id is None
        assert order.total_cents == 100

    def test_unknown_coupon_is_ignored(self, db_session, session_a, tea):
        order = order_service.create_order(session_a.id, [_line(tea, 2)], coupon_code="NOPE")
        assert order.total_cents == 100

    def test_usage_limit_second_order_full_price(self, db_session, org_a, session_a, tea, make_coupon):
        coupon = make_coupon(org_a.id, "ONCE", value=10, usage_limit=1, per_user_limit=None)

        first = order_service.create_order(session_a.id, [_line(tea, 4)], coupon_code="ONCE")
        second = order_service.create_order(session_a.id, [_line(tea, 4)], coupon_code="ONCE")

        assert first.discount_cents == 20
        assert second.discount_cents == 0
        assert second.total_cents == 200
        db_session.expire_all()
        assert db_session.get(Coupon, coupon.id).usage_count == 1


class TestOrderEvents:

    def test_new_order_event(self, db_session, session_a, tea, org_a_events):
        order = order_service.create_order(session_a.id, [_line(tea)])

        event = org_a_events.next()
        assert event["type"] == "NEW_ORDER"
        assert event["order"]["id"] == order.id
        assert event["order"]["order_number"] == "ORD-00001"
        assert event["order"]["items"][0]["item_name"] == "Tea"

    def test_no_event_for_rejected_order(self, db_session, session_a, coffee, org_a_events):
        with pytest.raises(InvalidStateError):
            order_service.create_order(session_a.id, [_line(coffee, 10)])
        assert org_a_events.next() is None


class TestQueries:

    def test_list_session_orders_newest_first(self, db_session, session_a, tea):
        first = order_service.create_order(session_a.id, [_line(tea)])
        second = order_service.create_order(session_a.id, [_line(tea)])
        assert [o.id for o in order_service.list_session_orders(session_a.id)] == [second.id, first.id]

    def test_list_org_orders_filters_and_pages(self, db_session, org_a, session_a, tea):
        orders = [order_service.create_order(session_a.id, [_line(tea)]) for _ in range(3)]
        order_service.update_order_status(orders[0].id, "ACCEPTED", org_a.id)

        page, total = order_service.list_org_orders(org_a.id, limit=2)
        assert total == 3
        assert len(page) == 2

        accepted, total = order_service.list_org_orders(org_a.id, status="ACCEPTED")
        assert total == 1
        assert accepted[0].id == orders[0].id

    def test_get_missing_order(self, db_session):
        with pytest.raises(NotFoundError):
            order_service.get_order("00000000-0000-0000-0000-000000000000")


class TestStatusLifecycle:

    @pytest.fixture
    def order(self, db_session, session_a, tea):
        return order_service.create_order(session_a.id, [_line(tea)])

    def test_happy_path_sets_each_timestamp(self, db_session, org_a, order):
        for status in ("ACCEPTED", "PREPARING", "READY", "DELIVERED"):
            order = order_service.update_order_status(order.id, status, org_a.id)

        assert order.status == "DELIVERED"
        assert order.accepted_at is not None
        assert order.preparing_at is not None
        assert order.ready_at is not None
        assert order.delivered_at is not None
        assert order.cancelled_at is None

    def test_ready_to_delivered_sets_only_delivered_at(self, db_session, org_a, order):
        for status in ("ACCEPTED", "PREPARING", "READY"):
            order_service.update_order_status(order.id, status, org_a.id)
        before = order_service.get_order(order.id).to_dict()

        after = order_service.update_order_status(order.id, "DELIVERED", org_a.id).to_dict()

        assert after["delivered_at"] is not None
        for field in ("accepted_at", "preparing_at", "ready_at"):
            assert after[field] == before[field]

    def test_backwards_transition_rejected(self, db_session, org_a, order):
        for status in ("ACCEPTED", "PREPARING"):
            order_service.update_order_status(order.id, status, org_a.id)
        with pytest.raises(InvalidStateError):
            order_service.update_order_status(order.id, "PENDING", org_a.id)
        assert order_service.get_order(order.id).status == "PREPARING"

    def test_skipping_states_rejected(self, db_session, org_a, order):
        with pytest.raises(InvalidStateError):
            order_service.update_order_status(order.id, "READY", org_a.id)

    @pytest.mark.parametrize("terminal", ["CANCELLED", "DELIVERED"])
    def test_terminal_states(self, db_session, org_a, order, terminal):
        if terminal == "DELIVERED":
            for status in ("ACCEPTED", "PREPARING", "READY"):
                order_service.update_order_status(order.id, status, org_a.id)
        order_service.update_order_status(order.id, terminal, org_a.id)
        with pytest.raises(InvalidStateError):
            order_service.update_order_status(order.id, "ACCEPTED", org_a.id)

    def test_same_status_is_noop_without_event(self, db_session, org_a, order, org_a_events):
        order_service.update_order_status(order.id, "ACCEPTED", org_a.id)
        assert org_a_events.next()["type"] == "STATUS_UPDATE"

        accepted_at = order_service.get_order(order.id).accepted_at
        order_service.update_order_status(order.id, "ACCEPTED", org_a.id)

        assert org_a_events.next() is None
        assert order_service.get_order(order.id).accepted_at == accepted_at

    def test_unknown_status(self, db_session, org_a, order):
        with pytest.raises(ValidationError):
            order_service.update_order_status(order.id, "SHIPPED", org_a.id)

    def test_other_tenant_forbidden(self, db_session, org_b, order):
        with pytest.raises(ForbiddenError):
            order_service.update_order_status(order.id, "ACCEPTED", org_b.id)

    def test_missing_order(self, db_session, org_a):
        with pytest.raises(NotFoundError):
            order_service.update_order_status("00000000-0000-0000-0000-000000000000", "ACCEPTED", org_a.id)
