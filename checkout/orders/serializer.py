"""Response serializers for intents, totals and orders."""
from typing import Any

from checkout.payments.constants import CLIENT_STATUS
from checkout.services.models import Order, PaymentIntent, Totals
from checkout.services.money import to_float


def build_totals_payload(totals: Totals) -> dict[str, Any]:
    return {
        "subtotal": to_float(totals.subtotal),
        "shippingFee": to_float(totals.shipping_fee),
        "tax": to_float(totals.tax),
        "discountAmount": to_float(totals.discount_amount),
        "total": to_float(totals.total),
        "totalMinorUnits": totals.total_minor_units,
        "currency": totals.currency,
        "couponCode": totals.coupon_code,
        "lines": [
            {
                "productId": line.product_id,
                "variantId": line.variant_id,
                "name": line.display_name,
                "unitPrice": to_float(line.unit_price),
                "quantity": line.quantity,
                "lineTotal": to_float(line.line_total),
            }
            for line in totals.lines
        ],
    }


def build_intent_payload(intent: PaymentIntent) -> dict[str, Any]:
    return {
        "intentId": intent.intent_id,
        "merchantOrderId": intent.merchant_order_id,
        "gateway": intent.gateway,
        "status": intent.status,
        "state": CLIENT_STATUS.get(intent.status),
        "totals": build_totals_payload(intent.totals),
        "redirectUrl": intent.redirect_url,
        "expiresAt": intent.expires_at.isoformat() if intent.expires_at else None,
    }


def build_order_payload(order: Order) -> dict[str, Any]:
    """Order as returned to clients."""
    address = order.shipping_address
    return {
        "orderId": order.order_id,
        "intentId": order.intent_id,
        "status": order.status,
        "paymentMethod": order.payment_method,
        "paymentStatus": order.payment_status,
        "items": [
            {
                "productId": item.product_id,
                "variantId": item.variant_id,
                "variant": item.variant,
                "name": item.display_name,
                "unitPrice": to_float(item.unit_price),
                "quantity": item.quantity,
            }
            for item in order.items
        ],
        "subtotal": to_float(order.subtotal),
        "shippingFee": to_float(order.shipping_fee),
        "tax": to_float(order.tax),
        "discountAmount": to_float(order.discount_amount),
        "total": to_float(order.total),
        "currency": order.currency,
        "customer": {
            "fullName": order.customer_info.full_name,
            "email": order.customer_info.email,
            "phone": order.customer_info.phone,
        },
        "shippingAddress": {
            "fullName": address.full_name,
            "address": address.address,
            "city": address.city,
            "state": address.state,
            "postalCode": address.postal_code,
            "country": address.country,
            "phone": address.phone,
        },
        "shipping": {
            "pushStatus": order.shipping_push_status,
            "carrierOrderId": order.carrier_order_id,
            "trackingNumber": order.tracking_number,
            "carrierName": order.carrier_name,
        },
        "emailStatus": order.email_status,
        "createdAt": order.created_at.isoformat() if order.created_at else None,
    }
