"""Mercado Pago client for agenda subscription payments."""

import logging
from dataclasses import dataclass
from decimal import Decimal
from functools import lru_cache

import httpx

from agenda_backend.core import config
from agenda_backend.core.errors import UpstreamError

logger = logging.getLogger(__name__)

APPROVED_STATUS = "approved"


@dataclass(frozen=True)
class PaymentIntent:
    id: str
    init_point: str
    sandbox_init_point: str | None = None


@dataclass(frozen=True)
class GatewayPayment:
    id: str
    status: str
    external_reference: str | None
    transaction_amount: Decimal | None = None

    @property
    def is_approved(self) -> bool:
        return self.status == APPROVED_STATUS


class MercadoPagoGateway:
    """Thin synchronous wrapper over the preferences and payments endpoints."""

    def __init__(
        self,
        access_token: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self.access_token = access_token if access_token is not None else config.MP_ACCESS_TOKEN
        self.base_url = (base_url or config.MP_API_BASE_URL).rstrip("/")
        self.timeout = timeout or config.MP_TIMEOUT_SECONDS
        self.transport = transport

        if not self.access_token:
            logger.warning("MP_ACCESS_TOKEN not set; agenda payments will fail until configured")

    def is_available(self) -> bool:
        return bool(self.access_token)

    def _request(self, method: str, path: str, **kwargs) -> dict:
        if not self.is_available():
            raise UpstreamError("Payment gateway is not configured.")

        headers = {"Authorization": f"Bearer {self.access_token}"}
        try:
            with httpx.Client(
                base_url=self.base_url,
                timeout=self.timeout,
                headers=headers,
                transport=self.transport,
            ) as client:
                response = client.request(method, path, **kwargs)
                response.raise_for_status()
                return response.json()
        except httpx.TimeoutException as exc:
            logger.error("Mercado Pago %s %s timed out after %ss", method, path, self.timeout)
            raise UpstreamError("Payment gateway timed out. Please try again.") from exc
        except httpx.HTTPStatusError as exc:
            logger.error(
                "Mercado Pago %s %s failed with %s: %s",
                method,
                path,
                exc.response.status_code,
                exc.response.text[:200],
            )
            raise UpstreamError() from exc
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Mercado Pago %s %s failed: %s", method, path, exc)
            raise UpstreamError() from exc

    def create_preference(
        self,
        *,
        title: str,
        description: str,
        amount: Decimal,
        external_reference: str,
        payer_name: str | None,
        payer_email: str | None,
    ) -> PaymentIntent:
        agenda_url = f"{config.FRONTEND_URL}/professional/agenda"
        body = {
            "items": [
                {
                    "title": title,
                    "description": description,
                    "quantity": 1,
                    "unit_price": float(amount),
                    "currency_id": "BRL",
                }
            ],
            "payer": {"name": payer_name, "email": payer_email},
            "back_urls": {
                "success": f"{agenda_url}?payment=success",
                "failure": f"{agenda_url}?payment=failure",
                "pending": f"{agenda_url}?payment=pending",
            },
            "auto_return": "approved",
            "external_reference": external_reference,
            "notification_url": f"{config.API_URL}/agenda/webhook",
            "statement_descriptor": config.MP_STATEMENT_DESCRIPTOR,
        }
        data = self._request("POST", "/checkout/preferences", json=body)
        if not data.get("id") or not data.get("init_point"):
            logger.error("Mercado Pago preference response missing id/init_point: %s", data)
            raise UpstreamError()

        return PaymentIntent(
            id=str(data["id"]),
            init_point=data["init_point"],
            sandbox_init_point=data.get("sandbox_init_point"),
        )

    def get_payment(self, payment_id: str) -> GatewayPayment:
        data = self._request("GET", f"/v1/payments/{payment_id}")
        amount = data.get("transaction_amount")
        return GatewayPayment(
            id=str(data.get("id", payment_id)),
            status=str(data.get("status") or ""),
            external_reference=data.get("external_reference"),
            transaction_amount=Decimal(str(amount)) if amount is not None else None,
        )


@lru_cache
def get_payment_gateway() -> MercadoPagoGateway:
    """Process-wide gateway client, injected into routes as a dependency."""
    return MercadoPagoGateway()
