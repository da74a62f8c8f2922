"""Webhook API routes for payment provider callbacks."""

import logging

from fastapi import APIRouter, HTTPException, Request, status

from src.api.deps import SettlementServiceDep
from src.api.middleware.error_handler import AmountMismatchError, APIError, PaymentNotFoundError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post(
    "/stripe",
    status_code=status.HTTP_200_OK,
    summary="Handle Stripe webhooks",
    description="Receives Stripe checkout session events. Requires a valid signature.",
)
async def stripe_webhook(request: Request, service: SettlementServiceDep) -> dict[str, str]:
    """Handle Stripe webhook events.

    Handles:
    - checkout.session.completed (paid): settles the pending payment
    - checkout.session.async_payment_succeeded: settles the pending payment
    - checkout.session.async_payment_failed: marks the pending payment FAILED
    - checkout.session.expired: marks the pending payment FAILED

    A redelivered event finds no pending payment and is acknowledged with
    200 so Stripe stops retrying. Error bodies never carry internal detail.

    Raises:
        HTTPException: 400 for a bad signature, malformed payload or amount
            mismatch; 500 when processing failed and Stripe should retry.
    """
    payload = await request.body()

    sig_header = request.headers.get("stripe-signature")
    if not sig_header:
        logger.error("Missing Stripe-Signature header in webhook request")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing Stripe-Signature header",
        )

    try:
        service.verify_webhook_signature(payload, sig_header)
        event, raw = service.parse_event(payload)
    except ValueError as e:
        logger.error("Rejected webhook: %s", str(e))
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid webhook",
        ) from e

    logger.info("Processing Stripe webhook event %s (%s)", event.id, event.type)

    try:
        outcome = await service.handle_event(event, raw)
    except PaymentNotFoundError:
        logger.info("Event %s has no pending payment, acknowledged without changes", event.id)
        return {"status": "OK"}
    except AmountMismatchError as e:
        logger.error("Event %s rejected: %s", event.id, e.message)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Amount mismatch",
        ) from e
    except ValueError as e:
        logger.error("Event %s is malformed: %s", event.id, str(e))
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid webhook",
        ) from e
    except APIError as e:
        logger.error("Event %s processing failed: %s - %s", event.id, e.error_type, e.message)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Webhook processing failed",
        ) from e

    logger.info("Event %s processed: %s", event.id, outcome)
    return {"status": "OK"}
