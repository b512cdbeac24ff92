"""
Order and payment notification emails.

``render_notification`` turns a ``NotificationEvent`` into subject, plain-text
body and HTML body. Every ``NotificationKind`` has a renderer.
"""

from typing import Callable, NamedTuple

from libs.common.config import get_settings
from libs.common.notifications import NotificationEvent, NotificationKind
from services.communications_service.templates.base import (
    COLOR_AMBER,
    COLOR_BLUE,
    COLOR_GREEN,
    COLOR_SLATE,
    cta_button,
    detail_box,
    wrap_html,
)


class RenderedEmail(NamedTuple):
    subject: str
    body: str
    html_body: str


def _short_id(event: NotificationEvent) -> str:
    return str(event.order_id)[:8].upper()


def _order_url(event: NotificationEvent) -> str:
    return f"{get_settings().STOREFRONT_URL}/orders/{event.order_id}"


def _money(context: dict) -> str:
    amount = context.get("amount") or context.get("total") or ""
    currency = context.get("currency") or get_settings().DEFAULT_CURRENCY
    return f"{amount} {currency}".strip()


def _order_confirmation(event: NotificationEvent) -> RenderedEmail:
    ctx = event.context
    order_ref = _short_id(event)
    items = ctx.get("items") or []
    items_text = "\n".join(f"  - {i['title']} x{i['quantity']}" for i in items)

    body = f"""Hi,

Thanks for your order #{order_ref}. Your parts are reserved.

Items:
{items_text}

Total: {_money(ctx)}
Estimated delivery: {ctx.get("estimated_delivery", "to be confirmed")}

Complete payment to start processing: {_order_url(event)}
"""
    html = wrap_html(
        title="Order received",
        subtitle=f"Order #{order_ref}",
        body_html=(
            "<p>Thanks for your order. Your parts are reserved.</p>"
            + detail_box(
                {
                    "Items": ", ".join(f"{i['title']} x{i['quantity']}" for i in items),
                    "Total": _money(ctx),
                    "Estimated delivery": ctx.get("estimated_delivery", ""),
                }
            )
            + cta_button("View order", _order_url(event))
        ),
    )
    return RenderedEmail(f"Order #{order_ref} received", body, html)


def _order_cancelled(event: NotificationEvent) -> RenderedEmail:
    order_ref = _short_id(event)
    body = f"""Hi,

Your order #{order_ref} has been cancelled and the reserved parts were released.
"""
    html = wrap_html(
        title="Order cancelled",
        subtitle=f"Order #{order_ref}",
        body_html="<p>Your order has been cancelled and the reserved parts were released.</p>",
        header_color=COLOR_SLATE,
    )
    return RenderedEmail(f"Order #{order_ref} cancelled", body, html)


def _payment_success(event: NotificationEvent) -> RenderedEmail:
    ctx = event.context
    order_ref = _short_id(event)
    body = f"""Hi,

We received your payment of {_money(ctx)} for order #{order_ref}.
Transaction reference: {ctx.get("transaction_ref") or "n/a"}

Your order is now being processed. We'll let you know when it ships.
"""
    html = wrap_html(
        title="Payment received",
        subtitle=f"Order #{order_ref}",
        body_html=(
            "<p>Your payment was successful and your order is now being processed.</p>"
            + detail_box(
                {
                    "Amount": _money(ctx),
                    "Transaction reference": ctx.get("transaction_ref") or "",
                },
                accent_color=COLOR_GREEN,
            )
        ),
        header_color=COLOR_GREEN,
    )
    return RenderedEmail(f"Payment received for order #{order_ref}", body, html)


def _payment_failed(event: NotificationEvent) -> RenderedEmail:
    ctx = event.context
    order_ref = _short_id(event)
    retry_url = f"{_order_url(event)}/pay"
    body = f"""Hi,

Your payment of {_money(ctx)} for order #{order_ref} did not go through.
Reason: {ctx.get("reason") or "not provided"}

Your parts are still reserved. You can try again here: {retry_url}
"""
    html = wrap_html(
        title="Payment failed",
        subtitle=f"Order #{order_ref}",
        body_html=(
            "<p>Your payment did not go through. Your parts are still reserved.</p>"
            + detail_box(
                {"Amount": _money(ctx), "Reason": ctx.get("reason") or ""},
                accent_color=COLOR_AMBER,
            )
            + cta_button("Retry payment", retry_url, color=COLOR_AMBER)
        ),
        header_color=COLOR_AMBER,
    )
    return RenderedEmail(f"Payment failed for order #{order_ref}", body, html)


def _refund_processed(event: NotificationEvent) -> RenderedEmail:
    ctx = event.context
    order_ref = _short_id(event)
    body = f"""Hi,

We refunded {_money(ctx)} for order #{order_ref}.
Reason: {ctx.get("reason") or "not provided"}
"""
    html = wrap_html(
        title="Refund processed",
        subtitle=f"Order #{order_ref}",
        body_html=detail_box({"Amount": _money(ctx), "Reason": ctx.get("reason") or ""}),
    )
    return RenderedEmail(f"Refund processed for order #{order_ref}", body, html)


def _order_shipped(event: NotificationEvent) -> RenderedEmail:
    order_ref = _short_id(event)
    body = f"""Hi,

Good news: order #{order_ref} has shipped. Track it here: {_order_url(event)}
"""
    html = wrap_html(
        title="Your order has shipped",
        subtitle=f"Order #{order_ref}",
        body_html="<p>Your parts are on their way.</p>"
        + cta_button("Track order", _order_url(event)),
    )
    return RenderedEmail(f"Order #{order_ref} shipped", body, html)


def _order_delivered(event: NotificationEvent) -> RenderedEmail:
    order_ref = _short_id(event)
    body = f"""Hi,

Order #{order_ref} has been delivered. Thanks for shopping with us.
"""
    html = wrap_html(
        title="Delivered",
        subtitle=f"Order #{order_ref}",
        body_html="<p>Your order has been delivered. Thanks for shopping with us.</p>",
        header_color=COLOR_GREEN,
    )
    return RenderedEmail(f"Order #{order_ref} delivered", body, html)


RENDERERS: dict[NotificationKind, Callable[[NotificationEvent], RenderedEmail]] = {
    NotificationKind.ORDER_CONFIRMATION: _order_confirmation,
    NotificationKind.ORDER_CANCELLED: _order_cancelled,
    NotificationKind.PAYMENT_SUCCESS: _payment_success,
    NotificationKind.PAYMENT_FAILED: _payment_failed,
    NotificationKind.REFUND_PROCESSED: _refund_processed,
    NotificationKind.ORDER_SHIPPED: _order_shipped,
    NotificationKind.ORDER_DELIVERED: _order_delivered,
}


def render_notification(event: NotificationEvent) -> RenderedEmail:
    return RENDERERS[event.kind](event)
