"""Payment gateway clients: escrow hold, release and refund.

Provides both a simulated gateway (fake escrow references, used in
development, tests and the local simulation) and an HTTP client for a real
escrow provider.

The core treats every call as synchronous: a call that fails raises
PaymentError and the triggering transition is rolled back.
"""

from __future__ import annotations

import uuid
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import httpx

from job_broker.domain.exceptions import PaymentError
from job_broker.logging_config import get_logger

if TYPE_CHECKING:
    from job_broker.config import Settings

logger = get_logger(__name__)


@runtime_checkable
class PaymentGateway(Protocol):
    async def capture_hold(self, job_id: str, amount: Decimal) -> str:
        """Capture ``amount`` from the customer into escrow and return its reference."""
        ...

    async def capture_additional(self, escrow_ref: str, amount: Decimal) -> None:
        """Increase an existing hold by ``amount``."""
        ...

    async def release_to_worker(self, escrow_ref: str) -> None: ...

    async def refund(self, escrow_ref: str, amount: Decimal) -> None: ...


class SimulatedPaymentGateway:
    """In-process escrow with fake references.

    Keeps the running hold per reference so the simulation can print it.
    """

    def __init__(self) -> None:
        self.holds: dict[str, Decimal] = {}
        self.released: set[str] = set()

    async def capture_hold(self, job_id: str, amount: Decimal) -> str:
        escrow_ref = "esc_" + uuid.uuid4().hex[:24]
        self.holds[escrow_ref] = Decimal(amount)
        logger.info("payment.hold_captured", job_id=job_id, escrow_ref=escrow_ref, amount=str(amount), simulated=True)
        return escrow_ref

    async def capture_additional(self, escrow_ref: str, amount: Decimal) -> None:
        self._require_open(escrow_ref)
        self.holds[escrow_ref] += Decimal(amount)
        logger.info("payment.hold_increased", escrow_ref=escrow_ref, amount=str(amount), simulated=True)

    async def release_to_worker(self, escrow_ref: str) -> None:
        self._require_open(escrow_ref)
        self.released.add(escrow_ref)
        logger.info("payment.released", escrow_ref=escrow_ref, amount=str(self.holds[escrow_ref]), simulated=True)

    async def refund(self, escrow_ref: str, amount: Decimal) -> None:
        if escrow_ref not in self.holds:
            raise PaymentError(f"Unknown escrow reference: {escrow_ref}", escrow_ref=escrow_ref)
        if Decimal(amount) > self.holds[escrow_ref]:
            raise PaymentError(
                f"Refund {amount} exceeds hold {self.holds[escrow_ref]}", escrow_ref=escrow_ref
            )
        self.holds[escrow_ref] -= Decimal(amount)
        logger.info("payment.refunded", escrow_ref=escrow_ref, amount=str(amount), simulated=True)

    def _require_open(self, escrow_ref: str) -> None:
        if escrow_ref not in self.holds:
            raise PaymentError(f"Unknown escrow reference: {escrow_ref}", escrow_ref=escrow_ref)
        if escrow_ref in self.released:
            raise PaymentError(f"Escrow already released: {escrow_ref}", escrow_ref=escrow_ref)


class HttpPaymentGateway:
    """Async HTTP client for the escrow provider.

    Endpoints:
        POST /escrow/holds                  {job_id, amount} -> {escrow_ref}
        POST /escrow/{ref}/captures         {amount}
        POST /escrow/{ref}/release
        POST /escrow/{ref}/refunds          {amount}
    """

    def __init__(self, base_url: str, api_key: str, timeout_seconds: int) -> None:
        self._base_url = base_url
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(timeout_seconds),
            headers=headers,
        )

    async def capture_hold(self, job_id: str, amount: Decimal) -> str:
        body = await self._post("/escrow/holds", {"job_id": job_id, "amount": str(amount)}, expected=(200, 201))
        escrow_ref = body.get("escrow_ref")
        if not escrow_ref:
            raise PaymentError("Escrow provider returned no escrow_ref")
        return str(escrow_ref)

    async def capture_additional(self, escrow_ref: str, amount: Decimal) -> None:
        await self._post(f"/escrow/{escrow_ref}/captures", {"amount": str(amount)}, escrow_ref=escrow_ref)

    async def release_to_worker(self, escrow_ref: str) -> None:
        await self._post(f"/escrow/{escrow_ref}/release", {}, escrow_ref=escrow_ref)

    async def refund(self, escrow_ref: str, amount: Decimal) -> None:
        await self._post(f"/escrow/{escrow_ref}/refunds", {"amount": str(amount)}, escrow_ref=escrow_ref)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _post(
        self,
        path: str,
        payload: dict[str, Any],
        expected: tuple[int, ...] = (200, 201, 204),
        escrow_ref: str | None = None,
    ) -> dict[str, Any]:
        try:
            response = await self._client.post(path, json=payload)
        except (httpx.ConnectError, httpx.TimeoutException) as exc:
            logger.warning("payment.gateway_unreachable", path=path, base_url=self._base_url, error=str(exc))
            raise PaymentError("Cannot connect to payment gateway", escrow_ref=escrow_ref) from exc
        except httpx.HTTPError as exc:
            logger.warning("payment.gateway_http_error", path=path, error=str(exc))
            raise PaymentError("Payment gateway request failed", escrow_ref=escrow_ref) from exc

        if response.status_code in expected:
            if response.status_code == 204 or not response.content:
                return {}
            result: dict[str, Any] = response.json()
            return result

        logger.warning("payment.gateway_rejected", path=path, status_code=response.status_code)
        raise PaymentError(
            f"Payment gateway returned {response.status_code} for {path}",
            escrow_ref=escrow_ref,
        )


def build_payment_gateway(settings: Settings) -> PaymentGateway:
    if settings.payment_simulate:
        return SimulatedPaymentGateway()
    return HttpPaymentGateway(
        base_url=settings.payment_gateway_url,
        api_key=settings.payment_gateway_api_key,
        timeout_seconds=settings.payment_gateway_timeout_seconds,
    )
