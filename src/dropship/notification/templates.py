"""Buyer email templates keyed by NotificationType.

Each template renders a subject and plain-text body from a context dict.
Amounts in the context are integer cents.
"""

from dropship.notification.notification import NotificationType


def format_dollars(cents) -> str:
    if cents is None:
        return "$0.00"
    return f"${cents / 100:,.2f}"


class PaymentReceivedTemplate:
    notification_type = NotificationType.PAYMENT_RECEIVED.value

    @staticmethod
    def render(context: dict) -> dict:
        product = context.get("product_name") or "your order"
        return {
            "subject": f"Payment received for {product}",
            "body": (
                f"We received your payment of {format_dollars(context.get('amount_cents'))} for {product}.\n\n"
                "We're preparing your order now. You'll receive a tracking number once it ships."
            ),
        }


class OrderShippedTemplate:
    notification_type = NotificationType.ORDER_SHIPPED.value

    @staticmethod
    def render(context: dict) -> dict:
        return {
            "subject": "Your order has shipped!",
            "body": (
                "Your order is on its way!\n\n"
                f"Tracking Number: {context.get('tracking_number') or 'pending'}\n"
                f"Carrier: {context.get('tracking_carrier') or 'pending'}\n\n"
                "Allow a few hours for tracking information to become available."
            ),
        }


class OrderDeliveredTemplate:
    notification_type = NotificationType.ORDER_DELIVERED.value

    @staticmethod
    def render(context: dict) -> dict:
        product = context.get("product_name") or "your item"
        return {
            "subject": "Your order has been delivered",
            "body": f"Your order of {product} has been delivered.\n\nThank you for bidding with us!",
        }


class OrderRefundedTemplate:
    notification_type = NotificationType.ORDER_REFUNDED.value

    @staticmethod
    def render(context: dict) -> dict:
        amount = format_dollars(context.get("amount_cents"))
        return {
            "subject": "Your order has been refunded",
            "body": (
                f"A refund of {amount} has been issued for {context.get('product_name') or 'your order'}.\n\n"
                f"Reason: {context.get('reason') or 'We were unable to fulfill this order.'}\n\n"
                "The refund should appear in your account within 5-10 business days."
            ),
        }


class OrderCancelledTemplate:
    notification_type = NotificationType.ORDER_CANCELLED.value

    @staticmethod
    def render(context: dict) -> dict:
        return {
            "subject": "Your order has been cancelled",
            "body": (
                f"Your order of {context.get('product_name') or 'your item'} was cancelled by our supplier.\n\n"
                "If you were charged, a refund will follow shortly."
            ),
        }


TEMPLATE_REGISTRY: dict[str, type] = {
    template.notification_type: template
    for template in (
        PaymentReceivedTemplate,
        OrderShippedTemplate,
        OrderDeliveredTemplate,
        OrderRefundedTemplate,
        OrderCancelledTemplate,
    )
}


def get_template(notification_type: str):
    """Look up a template class by notification type string."""
    template_cls = TEMPLATE_REGISTRY.get(notification_type)
    if template_cls is None:
        raise ValueError(f"No template registered for notification type: {notification_type}")
    return template_cls
