import hashlib
import hmac
import logging
from decimal import ROUND_HALF_UP, Decimal

import httpx

from vaxdog import config
from vaxdog.errors import GatewayError
from vaxdog.models import PaymentReceipt

logger = logging.getLogger(__name__)


def to_minor_units(amount: Decimal) -> int:
    """Rupees to paise."""
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class RazorpayGateway:
    """
    Thin client for the hosted-checkout gateway: order creation before the
    modal opens, signature verification of the success callback, refunds.
    """

    def __init__(
        self,
        key_id: str,
        key_secret: str,
        *,
        base_url: str = config.RAZORPAY_BASE_URL,
        timeout: float = config.HTTP_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.key_id = key_id
        self._key_secret = key_secret
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url,
            auth=(self.key_id, self._key_secret),
            timeout=self._timeout,
            transport=self._transport,
        )

    async def _post(self, path: str, payload: dict) -> dict:
        try:
            async with self._client() as client:
                response = await client.post(path, json=payload)
        except httpx.HTTPError as e:
            logger.error(f"Payment gateway request to {path} failed: {e}")
            raise GatewayError("Payment gateway is unreachable") from e

        if response.status_code >= 400:
            logger.error(
                f"Payment gateway rejected {path}: HTTP {response.status_code} {response.text[:200]}"
            )
            raise GatewayError(f"Payment gateway error (HTTP {response.status_code})")
        return response.json()

    async def create_order(
        self,
        amount: Decimal,
        currency: str,
        receipt: str,
        notes: dict[str, str] | None = None,
    ) -> dict:
        return await self._post(
            "/orders",
            {
                "amount": to_minor_units(amount),
                "currency": currency,
                "receipt": receipt,
                "notes": notes or {},
            },
        )

    async def refund(self, payment_id: str, amount: Decimal | None = None) -> dict:
        """Refund ``amount``, or the whole captured payment when it is None."""
        payload = {} if amount is None else {"amount": to_minor_units(amount)}
        refund = await self._post(f"/payments/{payment_id}/refund", payload)
        logger.info(f"Refund {refund.get('id')} issued for payment {payment_id}")
        return refund

    def sign(self, order_id: str, payment_id: str) -> str:
        return hmac.new(
            self._key_secret.encode("utf-8"),
            msg=f"{order_id}|{payment_id}".encode("utf-8"),
            digestmod=hashlib.sha256,
        ).hexdigest()

    def verify_payment_signature(self, receipt: PaymentReceipt) -> bool:
        if not receipt.signature:
            return False
        expected = self.sign(receipt.order_id, receipt.payment_id)
        return hmac.compare_digest(expected, receipt.signature)
