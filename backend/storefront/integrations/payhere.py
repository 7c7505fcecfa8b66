"""
storefront/integrations/payhere.py - PayHere card gateway signing.

Checkout hash (sent to the browser together with the order):

    UPPER(md5(merchant_id + order_id + amount + currency + UPPER(md5(secret))))

Notification signature (`md5sig` posted to /payhere/notify):

    UPPER(md5(merchant_id + order_id + payhere_amount + payhere_currency
              + status_code + UPPER(md5(secret))))

`amount` is always a fixed two-decimal string with no thousands separator
("1500.00"). Field order, formatting and case are part of the gateway
contract; any deviation makes PayHere reject the request.
"""
import hashlib
import hmac
from decimal import Decimal, ROUND_HALF_UP
from typing import Literal, Union

from pydantic import BaseModel

from storefront.config import Settings, settings

Amount = Union[Decimal, float, int, str]


class PayHereConfig(BaseModel):
    merchant_id: str
    merchant_secret: str
    currency: str = "LKR"
    success_code: int = 2
    failure_action: Literal["delete", "mark_failed"] = "delete"

    @classmethod
    def from_settings(cls, s: Settings) -> "PayHereConfig":
        return cls(
            merchant_id=s.payhere_merchant_id,
            merchant_secret=s.payhere_merchant_secret,
            currency=s.payhere_currency,
            success_code=s.payhere_success_code,
            failure_action=s.payhere_failure_action,
        )


class PayHereNotification(BaseModel):
    merchant_id: str
    order_id: str
    payhere_amount: str
    payhere_currency: str
    status_code: str
    md5sig: str


def get_payhere_config() -> PayHereConfig:
    """FastAPI dependency."""
    return PayHereConfig.from_settings(settings)


def format_amount(amount: Amount) -> str:
    value = Decimal(str(amount)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return f"{value:.2f}"


def _md5_upper(text: str) -> str:
    return hashlib.md5(text.encode("utf-8")).hexdigest().upper()


def payment_hash(config: PayHereConfig, order_id: str, amount: Amount) -> str:
    return _md5_upper(
        config.merchant_id
        + str(order_id)
        + format_amount(amount)
        + config.currency
        + _md5_upper(config.merchant_secret)
    )


def payment_data(config: PayHereConfig, order_id: str, amount: Amount) -> dict:
    """Everything the storefront needs to open the PayHere checkout."""
    return {
        "merchant_id": config.merchant_id,
        "order_id": str(order_id),
        "amount": format_amount(amount),
        "currency": config.currency,
        "hash": payment_hash(config, order_id, amount),
    }


def notification_signature(config: PayHereConfig, note: PayHereNotification) -> str:
    # payhere_amount is taken verbatim; the gateway already sends it formatted.
    return _md5_upper(
        note.merchant_id
        + note.order_id
        + note.payhere_amount
        + note.payhere_currency
        + note.status_code
        + _md5_upper(config.merchant_secret)
    )


def signature_matches(config: PayHereConfig, note: PayHereNotification) -> bool:
    local = notification_signature(config, note)
    return hmac.compare_digest(local, (note.md5sig or "").strip().upper())


def is_successful(config: PayHereConfig, note: PayHereNotification) -> bool:
    return signature_matches(config, note) and note.status_code.strip() == str(config.success_code)
