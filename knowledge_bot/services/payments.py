"""Stripe SDK access shared by the billing services."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

import httpx
import stripe
from starlette.concurrency import run_in_threadpool

from knowledge_bot.core.settings import AppSettings
from knowledge_bot.services.base import PaymentProviderError, ValidationError

logger = logging.getLogger(__name__)

STRIPE_NOT_CONFIGURED = "Payment processing is not configured. Please contact support."
INVOICE_DOWNLOAD_TIMEOUT_SECONDS = 10.0


def stripe_configured(settings: AppSettings) -> bool:
    return bool(settings.STRIPE_SECRET_KEY)


def configure_stripe(settings: AppSettings) -> None:
    """
    Point the Stripe SDK at the configured API key.

    Raises:
        ValidationError: no STRIPE_SECRET_KEY is configured.
    """
    if not stripe_configured(settings):
        raise ValidationError(STRIPE_NOT_CONFIGURED)
    stripe.api_key = settings.STRIPE_SECRET_KEY


# PUBLIC_INTERFACE
async def call_stripe(settings: AppSettings, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """Run a blocking Stripe SDK call in the threadpool. Stripe errors propagate to the caller."""
    configure_stripe(settings)
    return await run_in_threadpool(func, *args, **kwargs)


def plan_price_ids(settings: AppSettings) -> Dict[str, Optional[str]]:
    return {
        "starter": settings.STRIPE_STARTER_PRICE_ID,
        "professional": settings.STRIPE_PROFESSIONAL_PRICE_ID,
        "enterprise": settings.STRIPE_ENTERPRISE_PRICE_ID,
    }


def stripe_field(obj: Any, name: str, default: Any = None) -> Any:
    """Read a field from a Stripe object, tolerating fields the API version does not return."""
    if obj is None:
        return default
    value = getattr(obj, name, default)
    return default if value is None else value


def checkout_error_message(exc: stripe.StripeError) -> str:
    """Customer-facing message for a failed checkout session request."""
    text = str(exc)
    if "No such price" in text:
        return (
            "Payment plan configuration error. Please contact support - "
            "the selected plan is not properly configured."
        )
    if "No such customer" in text:
        return "Customer account error. Please contact support."
    if isinstance(exc, stripe.AuthenticationError):
        return "Payment system configuration error. Please contact support."
    if isinstance(exc, stripe.CardError):
        return "Payment method error. Please try a different payment method."
    if isinstance(exc, stripe.InvalidRequestError):
        return "Payment request error. Please contact support."
    return "Failed to create checkout session"


# PUBLIC_INTERFACE
async def fetch_invoice_pdf(url: str, transport: Optional[httpx.AsyncBaseTransport] = None) -> bytes:
    """
    Download the hosted PDF of a Stripe invoice.

    Raises:
        PaymentProviderError: the PDF could not be fetched.
    """
    async with httpx.AsyncClient(
        timeout=INVOICE_DOWNLOAD_TIMEOUT_SECONDS, follow_redirects=True, transport=transport
    ) as client:
        try:
            response = await client.get(url)
            response.raise_for_status()
        except (httpx.RequestError, httpx.HTTPStatusError) as exc:
            logger.warning("Invoice PDF download from %s failed: %s", url, exc)
            raise PaymentProviderError("Failed to download invoice") from exc
    return response.content
