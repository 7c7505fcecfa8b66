"""
storefront/integrations/sms.py - outbound SMS through the text.lk HTTP API.

Every send is best-effort: failures are logged and swallowed so that an SMS
outage never fails an order or a payment notification.
"""
import logging
from typing import Optional

import requests
from pydantic import BaseModel

from storefront.config import Settings, settings

logger = logging.getLogger("storefront.sms")


class SmsConfig(BaseModel):
    api_url: str
    api_token: str = ""
    sender_id: str = "TextLKDemo"
    timeout: int = 10
    owner_phone: Optional[str] = None
    invoice_url_template: str = "https://jcreations.lk/invoice/{order_id}"

    @classmethod
    def from_settings(cls, s: Settings) -> "SmsConfig":
        return cls(
            api_url=s.sms_api_url,
            api_token=s.sms_api_token,
            sender_id=s.sms_sender_id,
            timeout=s.sms_timeout,
            owner_phone=s.owner_phone,
            invoice_url_template=s.invoice_url_template,
        )


class SmsNotifier:
    def __init__(self, config: SmsConfig, session: Optional[requests.Session] = None):
        self.config = config
        self.session = session or requests.Session()

    def send(self, recipient: Optional[str], message: str) -> bool:
        if not self.config.api_token:
            logger.info("SMS token not configured - skipping message to %s", recipient)
            return False
        if not recipient:
            logger.warning("SMS skipped: no recipient")
            return False
        try:
            resp = self.session.post(
                self.config.api_url,
                json={
                    "api_token": self.config.api_token,
                    "recipient": recipient,
                    "sender_id": self.config.sender_id,
                    "type": "plain",
                    "message": message,
                },
                timeout=self.config.timeout,
            )
        except requests.RequestException as e:
            logger.error("SMS notification error for %s: %s", recipient, e)
            return False
        if not resp.ok:
            logger.error("Failed to send SMS to %s: %s %s", recipient, resp.status_code, resp.text)
            return False
        return True

    def cod_order_placed(self, order_id: str, phone: str) -> None:
        if self.send(phone, f"Your Cash on Delivery order #{order_id} has been successfully placed. "
                            "Thank you for your purchase!"):
            logger.info("SMS notification sent for COD order #%s", order_id)

    def card_payment_confirmed(self, order_id: str, phone: str, total_amount: float, customer_name: str) -> None:
        invoice_url = self.config.invoice_url_template.format(order_id=order_id)
        if self.send(phone, f"Your order #{order_id} has been successfully paid and confirmed. "
                            f"View your invoice: {invoice_url}. Thank you for your purchase!"):
            logger.info("SMS notification sent for order #%s", order_id)

        if self.config.owner_phone:
            if self.send(self.config.owner_phone,
                         f"Payment received! Order #{order_id} for {total_amount:.2f} LKR "
                         f"from {customer_name} has been paid successfully."):
                logger.info("Owner notification sent for payment of order #%s", order_id)


def get_sms_notifier() -> SmsNotifier:
    """FastAPI dependency."""
    return SmsNotifier(SmsConfig.from_settings(settings))
