# storefront/routers/payhere.py
"""
PayHere server-to-server notification.

PayHere posts `application/x-www-form-urlencoded` fields once per payment and
only looks at the status code, so the body is plain text:

    200  Payment notification processed successfully
    404  Order not found
    400  Invalid signature or payment not successful
"""
import logging
from decimal import Decimal

from fastapi import APIRouter, BackgroundTasks, Depends, Form
from fastapi.responses import PlainTextResponse

from storefront.config import get_db
from storefront.integrations.payhere import PayHereConfig, PayHereNotification, get_payhere_config
from storefront.integrations.sms import SmsNotifier, get_sms_notifier
from storefront.services.payments import NotificationOutcome, process_notification

logger = logging.getLogger("storefront.payhere")

router = APIRouter(prefix="/payhere", tags=["Payments"])


def _notification_form(
    merchant_id: str = Form(...),
    order_id: str = Form(...),
    payhere_amount: str = Form(...),
    payhere_currency: str = Form(...),
    status_code: str = Form(...),
    md5sig: str = Form(...),
) -> PayHereNotification:
    return PayHereNotification(
        merchant_id=merchant_id,
        order_id=order_id,
        payhere_amount=payhere_amount,
        payhere_currency=payhere_currency,
        status_code=status_code,
        md5sig=md5sig,
    )


@router.post("/notify", response_class=PlainTextResponse)
def notify(
    background: BackgroundTasks,
    note: PayHereNotification = Depends(_notification_form),
    db=Depends(get_db),
    config: PayHereConfig = Depends(get_payhere_config),
    sms: SmsNotifier = Depends(get_sms_notifier),
):
    logger.info(
        "PayHere notification for order #%s status_code=%s", note.order_id, note.status_code,
        extra={"order_id": note.order_id},
    )
    outcome, order = process_notification(db, config, note)

    if outcome is NotificationOutcome.paid:
        background.add_task(
            sms.card_payment_confirmed,
            order["id"],
            order.get("contact_number"),
            float(Decimal(str(order.get("total_amount", 0))) + Decimal(str(order.get("shipping_charge", 0)))),
            order.get("customer_name", ""),
        )
        return PlainTextResponse("Payment notification processed successfully", status_code=200)
    if outcome is NotificationOutcome.order_missing:
        return PlainTextResponse("Order not found", status_code=404)
    return PlainTextResponse("Invalid signature or payment not successful", status_code=400)
