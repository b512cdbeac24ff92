"""HMAC signatures on payment gateway callbacks.

The gateway signs the raw request body with ``PAYMENT_WEBHOOK_SECRET``
(HMAC-SHA512, hex) and sends it in the ``x-gateway-signature`` header.
"""

import hashlib
import hmac

from libs.common.config import get_settings

SIGNATURE_HEADER = "x-gateway-signature"


def sign_payload(raw_body: bytes) -> str:
    secret = get_settings().PAYMENT_WEBHOOK_SECRET.encode("utf-8")
    return hmac.new(secret, raw_body, hashlib.sha512).hexdigest()


def verify_gateway_signature(raw_body: bytes, signature: str) -> bool:
    # Without a configured secret anyone could compute the signature
    if not get_settings().PAYMENT_WEBHOOK_SECRET:
        return False
    return hmac.compare_digest(sign_payload(raw_body), signature)
