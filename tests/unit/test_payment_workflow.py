"""Unit tests for the payment workflow.

Tests call payment_workflow functions directly with the db_session fixture,
an in-memory cache and a recording notifier.
"""

import uuid
from decimal import Decimal

import pytest
from libs.common.errors import (
    BadRequestError,
    InvalidStateError,
    NotFoundError,
)
from libs.common.idempotency_cache import payment_cache_key
from services.payments_service.models import Payment, PaymentMethod, PaymentStatus
from services.payments_service.services import payment_ledger
from services.payments_service.services.payment_workflow import (
    create_payment,
    get_payment,
    lookup_payment,
    refund_payment,
    update_payment_status,
)
from services.store_service.models import OrderStatus
from services.store_service.schemas import OrderItemRequest
from services.store_service.services import order_ledger
from services.store_service.services.order_workflow import begin_checkout, create_order
from sqlalchemy import func, select
from tests.conftest import BrokenCache, FailingNotifier, FakeCache, seed_part
from tests.factories import PaymentFactory

USER = "user-1"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _order_awaiting_payment(db, *, price="65.50", quantity=1, user_id=USER):
    """Place an order and move it to PENDING_PAYMENT; returns (order_id, total)."""
    part = await seed_part(db, stock=10, price=price)
    order = await create_order(
        db,
        user_id=user_id,
        items=[OrderItemRequest(part_id=part.id, quantity=quantity)],
    )
    await begin_checkout(db, order_id=order.id, user_id=user_id)
    return order.id, order.total


async def _open_payment(db, cache=None, **kwargs):
    order_id, total = await _order_awaiting_payment(db, **kwargs)
    created = await create_payment(
        db,
        order_id=order_id,
        amount=total,
        method=PaymentMethod.CARD,
        user_id=kwargs.get("user_id", USER),
        cache=cache,
    )
    return order_id, created.payment_id


async def _order_status(db, order_id):
    order = await order_ledger.get_order(db, order_id, with_items=False)
    return order.status


async def _payment_count(db, order_id):
    return await payment_ledger.count_payments_for_order(db, order_id)


# ---------------------------------------------------------------------------
# create_payment
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_create_payment_opens_pending_payment_and_caches(db_session, fake_cache):
    order_id, total = await _order_awaiting_payment(db_session, price="65.50")

    created = await create_payment(
        db_session,
        order_id=order_id,
        amount=Decimal("65.50"),
        method="mobile_money",
        mobile_money_phone="+221770000000",
        user_id=USER,
        cache=fake_cache,
    )

    assert created.status == PaymentStatus.PENDING
    assert created.amount == Decimal("65.50")
    assert created.currency == "XOF"
    assert created.expires_at is not None
    key = payment_cache_key(created.payment_id)
    assert fake_cache.writes == [(key, 86400)]
    assert fake_cache.store[key]["status"] == "pending"
    assert fake_cache.store[key]["user_id"] == USER

    payment = await payment_ledger.get_payment(db_session, created.payment_id)
    assert payment.payment_metadata == {"mobile_money_phone": "+221770000000"}


@pytest.mark.asyncio
@pytest.mark.unit
async def test_create_payment_requires_matching_amount(db_session):
    order_id, _ = await _order_awaiting_payment(db_session, price="65.50")

    with pytest.raises(BadRequestError):
        await create_payment(
            db_session,
            order_id=order_id,
            amount="60.00",
            method=PaymentMethod.CARD,
            user_id=USER,
        )
    assert await _payment_count(db_session, order_id) == 0


@pytest.mark.asyncio
@pytest.mark.unit
async def test_create_payment_for_foreign_order_is_bad_request(db_session):
    order_id, total = await _order_awaiting_payment(db_session)

    with pytest.raises(BadRequestError):
        await create_payment(
            db_session,
            order_id=order_id,
            amount=total,
            method=PaymentMethod.CARD,
            user_id="someone-else",
        )


@pytest.mark.asyncio
@pytest.mark.unit
async def test_create_payment_requires_order_awaiting_payment(db_session):
    part = await seed_part(db_session, stock=10, price="10.00")
    order = await create_order(
        db_session, user_id=USER, items=[OrderItemRequest(part_id=part.id, quantity=1)]
    )
    order_id = order.id

    with pytest.raises(InvalidStateError):
        await create_payment(
            db_session,
            order_id=order_id,
            amount="10.00",
            method=PaymentMethod.CARD,
            user_id=USER,
        )
    with pytest.raises(NotFoundError):
        await create_payment(
            db_session,
            order_id=uuid.uuid4(),
            amount="10.00",
            method=PaymentMethod.CARD,
            user_id=USER,
        )


@pytest.mark.asyncio
@pytest.mark.unit
async def test_create_payment_validates_method_and_phone(db_session):
    order_id, total = await _order_awaiting_payment(db_session)

    with pytest.raises(BadRequestError):
        await create_payment(
            db_session, order_id=order_id, amount=total, method="crypto", user_id=USER
        )
    with pytest.raises(BadRequestError):
        await create_payment(
            db_session,
            order_id=order_id,
            amount=total,
            method=PaymentMethod.MOBILE_MONEY,
            user_id=USER,
        )


@pytest.mark.asyncio
@pytest.mark.unit
async def test_create_payment_survives_cache_outage(db_session):
    order_id, total = await _order_awaiting_payment(db_session)

    created = await create_payment(
        db_session,
        order_id=order_id,
        amount=total,
        method=PaymentMethod.CARD,
        user_id=USER,
        cache=BrokenCache(),
    )

    assert created.status == PaymentStatus.PENDING
    assert await _payment_count(db_session, order_id) == 1


# ---------------------------------------------------------------------------
# update_payment_status
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_completion_moves_order_to_processing(db_session, fake_cache, notifier):
    order_id, payment_id = await _open_payment(db_session)

    result = await update_payment_status(
        db_session,
        payment_id=payment_id,
        new_status=PaymentStatus.COMPLETED,
        transaction_ref="gw-123",
        cache=fake_cache,
        notifier=notifier,
    )

    assert result.payment_status == PaymentStatus.COMPLETED
    assert result.order_status == OrderStatus.PROCESSING
    assert notifier.kinds == ["payment_success"]
    assert fake_cache.store[payment_cache_key(payment_id)]["status"] == "completed"

    payment = await payment_ledger.get_payment(db_session, payment_id)
    assert payment.transaction_ref == "gw-123"
    assert payment.completed_at is not None
    order = await order_ledger.get_order(db_session, order_id, with_items=False)
    assert order.paid_at is not None


@pytest.mark.asyncio
@pytest.mark.unit
async def test_double_completion_is_idempotent(db_session, fake_cache, notifier):
    """Verifying the same payment twice returns the same result, one row, one email."""
    order_id, payment_id = await _open_payment(db_session)

    first = await update_payment_status(
        db_session,
        payment_id=payment_id,
        new_status="completed",
        cache=fake_cache,
        notifier=notifier,
    )
    writes_after_first = len(fake_cache.writes)
    second = await update_payment_status(
        db_session,
        payment_id=payment_id,
        new_status="completed",
        cache=fake_cache,
        notifier=notifier,
    )

    assert first == second
    assert (second.payment_status, second.order_status) == (
        PaymentStatus.COMPLETED,
        OrderStatus.PROCESSING,
    )
    assert await _payment_count(db_session, order_id) == 1
    assert notifier.kinds == ["payment_success"]
    assert len(fake_cache.writes) == writes_after_first


@pytest.mark.asyncio
@pytest.mark.unit
async def test_failed_payment_leaves_order_awaiting_payment(db_session, notifier):
    order_id, payment_id = await _open_payment(db_session)

    result = await update_payment_status(
        db_session,
        payment_id=payment_id,
        new_status=PaymentStatus.FAILED,
        error_message="Insufficient funds",
        notifier=notifier,
    )

    assert result.payment_status == PaymentStatus.FAILED
    assert result.order_status == OrderStatus.PENDING_PAYMENT
    assert await _order_status(db_session, order_id) == OrderStatus.PENDING_PAYMENT
    payment = await payment_ledger.get_payment(db_session, payment_id)
    assert payment.payment_metadata["failure_reason"] == "Insufficient funds"
    assert notifier.kinds == ["payment_failed"]
    assert notifier.events[0].context["reason"] == "Insufficient funds"


@pytest.mark.asyncio
@pytest.mark.unit
async def test_retry_after_failure_can_complete_with_new_payment(db_session):
    order_id, failed_id = await _open_payment(db_session)
    await update_payment_status(db_session, payment_id=failed_id, new_status="failed")

    order = await order_ledger.get_order(db_session, order_id, with_items=False)
    retry = await create_payment(
        db_session,
        order_id=order_id,
        amount=order.total,
        method=PaymentMethod.CARD,
        user_id=USER,
    )
    result = await update_payment_status(
        db_session, payment_id=retry.payment_id, new_status="completed"
    )

    assert result.order_status == OrderStatus.PROCESSING
    assert await _payment_count(db_session, order_id) == 2


@pytest.mark.asyncio
@pytest.mark.unit
async def test_conflicting_status_after_completion_is_rejected(db_session, notifier):
    order_id, payment_id = await _open_payment(db_session)
    await update_payment_status(db_session, payment_id=payment_id, new_status="completed")

    with pytest.raises(InvalidStateError):
        await update_payment_status(
            db_session, payment_id=payment_id, new_status="failed", notifier=notifier
        )

    assert await _order_status(db_session, order_id) == OrderStatus.PROCESSING
    assert notifier.events == []


@pytest.mark.asyncio
@pytest.mark.unit
async def test_second_payment_cannot_complete_a_paid_order(db_session):
    order_id, first_id = await _open_payment(db_session)
    order = await order_ledger.get_order(db_session, order_id, with_items=False)
    total = order.total
    second = await create_payment(
        db_session, order_id=order_id, amount=total, method="card", user_id=USER
    )
    await update_payment_status(db_session, payment_id=first_id, new_status="completed")

    with pytest.raises(InvalidStateError):
        await update_payment_status(
            db_session, payment_id=second.payment_id, new_status="completed"
        )

    payment = await payment_ledger.get_payment(db_session, second.payment_id)
    assert payment.status == PaymentStatus.PENDING


@pytest.mark.asyncio
@pytest.mark.unit
async def test_completion_requires_order_awaiting_payment(db_session, notifier):
    """A stray pending payment cannot push an unchecked-out order forward."""
    part = await seed_part(db_session, stock=10, price="25.00")
    order = await create_order(
        db_session, user_id=USER, items=[OrderItemRequest(part_id=part.id, quantity=1)]
    )
    order_id = order.id
    payment = PaymentFactory.create(order_id=order_id)
    payment_id = payment.id
    db_session.add(payment)
    await db_session.commit()

    with pytest.raises(InvalidStateError):
        await update_payment_status(
            db_session, payment_id=payment_id, new_status="completed", notifier=notifier
        )

    assert await _order_status(db_session, order_id) == OrderStatus.PENDING
    stored = await payment_ledger.get_payment(db_session, payment_id)
    assert stored.status == PaymentStatus.PENDING
    assert notifier.events == []


@pytest.mark.asyncio
@pytest.mark.unit
@pytest.mark.parametrize("status", ["pending", "refunded", "bogus"])
async def test_update_payment_status_rejects_other_targets(db_session, status):
    _, payment_id = await _open_payment(db_session)

    with pytest.raises(BadRequestError):
        await update_payment_status(db_session, payment_id=payment_id, new_status=status)


@pytest.mark.asyncio
@pytest.mark.unit
async def test_update_payment_status_missing_payment(db_session):
    with pytest.raises(NotFoundError):
        await update_payment_status(
            db_session, payment_id=uuid.uuid4(), new_status="completed"
        )


@pytest.mark.asyncio
@pytest.mark.unit
async def test_notifier_failure_does_not_undo_completion(db_session):
    order_id, payment_id = await _open_payment(db_session)
    failing = FailingNotifier()

    result = await update_payment_status(
        db_session, payment_id=payment_id, new_status="completed", notifier=failing
    )

    assert failing.calls == 1
    assert result.order_status == OrderStatus.PROCESSING
    assert await _order_status(db_session, order_id) == OrderStatus.PROCESSING


# ---------------------------------------------------------------------------
# refund_payment
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_refund_pending_payment_fails(db_session):
    order_id, payment_id = await _open_payment(db_session)

    with pytest.raises(InvalidStateError):
        await refund_payment(
            db_session, payment_id=payment_id, requesting_user_id=USER, reason="changed mind"
        )

    payment = await payment_ledger.get_payment(db_session, payment_id)
    assert payment.status == PaymentStatus.PENDING
    assert await _order_status(db_session, order_id) == OrderStatus.PENDING_PAYMENT


@pytest.mark.asyncio
@pytest.mark.unit
async def test_refund_completed_payment(db_session, fake_cache, notifier):
    order_id, payment_id = await _open_payment(db_session)
    await update_payment_status(db_session, payment_id=payment_id, new_status="completed")

    result = await refund_payment(
        db_session,
        payment_id=payment_id,
        requesting_user_id=USER,
        reason="Wrong part",
        cache=fake_cache,
        notifier=notifier,
    )

    assert result.payment_status == PaymentStatus.REFUNDED
    assert result.order_status == OrderStatus.REFUNDED
    assert result.refunded_amount == Decimal("65.50")
    assert result.refunded_at is not None
    assert notifier.kinds == ["refund_processed"]
    assert fake_cache.store[payment_cache_key(payment_id)]["status"] == "refunded"

    payment = await payment_ledger.get_payment(db_session, payment_id)
    assert payment.payment_metadata["refund_reason"] == "Wrong part"
    order = await order_ledger.get_order(db_session, order_id, with_items=False)
    assert order.refunded_at is not None


@pytest.mark.asyncio
@pytest.mark.unit
async def test_refund_twice_is_idempotent(db_session, notifier):
    _, payment_id = await _open_payment(db_session)
    await update_payment_status(db_session, payment_id=payment_id, new_status="completed")

    first = await refund_payment(
        db_session, payment_id=payment_id, requesting_user_id=None, notifier=notifier
    )
    second = await refund_payment(
        db_session, payment_id=payment_id, requesting_user_id=None, notifier=notifier
    )

    assert (second.payment_status, second.order_status) == (
        first.payment_status,
        first.order_status,
    )
    assert second.refunded_amount == first.refunded_amount
    assert second.refunded_at is not None
    assert notifier.kinds == ["refund_processed"]


@pytest.mark.asyncio
@pytest.mark.unit
async def test_refund_hides_foreign_payments(db_session):
    _, payment_id = await _open_payment(db_session)
    await update_payment_status(db_session, payment_id=payment_id, new_status="completed")

    with pytest.raises(NotFoundError):
        await refund_payment(
            db_session, payment_id=payment_id, requesting_user_id="someone-else"
        )

    payment = await payment_ledger.get_payment(db_session, payment_id)
    assert payment.status == PaymentStatus.COMPLETED


@pytest.mark.asyncio
@pytest.mark.unit
async def test_refund_requires_order_processing(db_session):
    order_id, payment_id = await _open_payment(db_session)
    await update_payment_status(db_session, payment_id=payment_id, new_status="completed")
    order = await order_ledger.get_order(db_session, order_id, with_items=False)
    order_ledger.apply_status(order, OrderStatus.SHIPPED)
    await db_session.commit()

    with pytest.raises(InvalidStateError):
        await refund_payment(db_session, payment_id=payment_id, requesting_user_id=USER)


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_get_payment_prefers_cache(db_session, fake_cache):
    _, payment_id = await _open_payment(db_session, cache=fake_cache)
    key = payment_cache_key(payment_id)
    fake_cache.store[key]["transaction_ref"] = "from-cache"

    payment = await get_payment(
        db_session, payment_id=payment_id, user_id=USER, cache=fake_cache
    )

    assert payment.transaction_ref == "from-cache"


@pytest.mark.asyncio
@pytest.mark.unit
async def test_get_payment_falls_back_to_ledger(db_session, fake_cache):
    _, payment_id = await _open_payment(db_session)
    assert fake_cache.store == {}

    payment = await get_payment(
        db_session, payment_id=payment_id, user_id=USER, cache=fake_cache
    )

    assert payment.id == payment_id
    assert payment.status == PaymentStatus.PENDING
    # A pending payment can still change, so the read does not cache it
    assert payment_cache_key(payment_id) not in fake_cache.store


@pytest.mark.asyncio
@pytest.mark.unit
async def test_lookup_caches_final_status(db_session, fake_cache):
    _, payment_id = await _open_payment(db_session)
    await update_payment_status(db_session, payment_id=payment_id, new_status="failed")

    payment = await lookup_payment(db_session, payment_id=payment_id, cache=fake_cache)

    assert payment.status == PaymentStatus.FAILED
    assert fake_cache.store[payment_cache_key(payment_id)]["status"] == "failed"


@pytest.mark.asyncio
@pytest.mark.unit
async def test_get_payment_works_without_cache(db_session):
    _, payment_id = await _open_payment(db_session)

    for cache in (None, BrokenCache()):
        payment = await get_payment(
            db_session, payment_id=payment_id, user_id=USER, cache=cache
        )
        assert payment.id == payment_id


@pytest.mark.asyncio
@pytest.mark.unit
async def test_get_payment_hides_other_users_payments(db_session, fake_cache):
    _, payment_id = await _open_payment(db_session, cache=fake_cache)

    with pytest.raises(NotFoundError):
        await get_payment(
            db_session, payment_id=payment_id, user_id="someone-else", cache=fake_cache
        )
    with pytest.raises(NotFoundError):
        await lookup_payment(db_session, payment_id=uuid.uuid4(), cache=fake_cache)


@pytest.mark.asyncio
@pytest.mark.unit
async def test_payment_row_count_matches_attempts(db_session):
    order_id, payment_id = await _open_payment(db_session)
    for _ in range(3):
        await update_payment_status(
            db_session, payment_id=payment_id, new_status="completed"
        )

    total = (
        await db_session.execute(select(func.count()).select_from(Payment))
    ).scalar_one()
    assert total == 1


# ---------------------------------------------------------------------------
# Cache consistency
# ---------------------------------------------------------------------------


class SetFailsLaterCache(FakeCache):
    """Accepts the first ``good_writes`` sets, then every set raises."""

    def __init__(self, good_writes=1):
        super().__init__()
        self.good_writes = good_writes
        self.deleted: list[str] = []

    async def set(self, key, value, ttl_seconds):
        if len(self.writes) >= self.good_writes:
            raise ConnectionError("redis write timed out")
        return await super().set(key, value, ttl_seconds)

    async def delete(self, key):
        self.deleted.append(key)
        return await super().delete(key)


@pytest.mark.asyncio
@pytest.mark.unit
async def test_failed_refresh_after_completion_drops_stale_entry(db_session):
    cache = SetFailsLaterCache(good_writes=1)
    _, payment_id = await _open_payment(db_session, cache=cache)
    key = payment_cache_key(payment_id)
    assert cache.store[key]["status"] == "pending"

    await update_payment_status(
        db_session, payment_id=payment_id, new_status="completed", cache=cache
    )

    assert cache.deleted == [key]
    assert key not in cache.store
    payment = await get_payment(
        db_session, payment_id=payment_id, user_id=USER, cache=cache
    )
    assert payment.status == PaymentStatus.COMPLETED


@pytest.mark.asyncio
@pytest.mark.unit
async def test_failed_refresh_after_refund_drops_stale_entry(db_session):
    cache = SetFailsLaterCache(good_writes=2)
    _, payment_id = await _open_payment(db_session, cache=cache)
    await update_payment_status(
        db_session, payment_id=payment_id, new_status="completed", cache=cache
    )
    key = payment_cache_key(payment_id)
    assert cache.store[key]["status"] == "completed"

    await refund_payment(
        db_session, payment_id=payment_id, requesting_user_id=USER, cache=cache
    )

    assert key not in cache.store
    payment = await lookup_payment(db_session, payment_id=payment_id, cache=cache)
    assert payment.status == PaymentStatus.REFUNDED
