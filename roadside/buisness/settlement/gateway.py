"""
Payment gateway client

The engine needs three things from a gateway: create an order, check the
signature on a checkout callback, and refund a captured payment. The
default client speaks the Razorpay REST API; tests swap in a fake.

Amounts cross this boundary in major units (rupees); the REST API wants
minor units (paise).
"""

import hashlib
import hmac
from dataclasses import dataclass, field
from typing import Optional, Protocol

import httpx

from roadside.buisness.dispatching.errors import PaymentGatewayError
from roadside.logger import get_logger
from roadside.utils.logging_sanitizer import sanitize_gateway_payload

logger = get_logger("roadside.domain.settlement.gateway")


def to_minor_units(amount: float) -> int:
    return int(round(amount * 100))


def expected_signature(secret: str, order_id: str, payment_id: str) -> str:
    """HMAC-SHA256 over "<order_id>|<payment_id>", hex encoded"""
    message = f"{order_id}|{payment_id}".encode('utf-8')
    return hmac.new(secret.encode('utf-8'), message, hashlib.sha256).hexdigest()


@dataclass(frozen=True)
class GatewayOrder:
    order_id: str
    amount_minor: int
    currency: str
    receipt: str
    raw: dict = field(default_factory=dict)


@dataclass(frozen=True)
class GatewayRefund:
    refund_id: str
    amount_minor: int
    status: str
    raw: dict = field(default_factory=dict)


class PaymentGatewayClient(Protocol):

    def create_order(self, amount: float, currency: str, receipt: str, notes: Optional[dict] = None) -> GatewayOrder:
        ...

    def verify_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        ...

    def refund(self, gateway_payment_id: str, amount: float, notes: Optional[dict] = None) -> GatewayRefund:
        ...


class RazorpayGatewayClient:
    """Razorpay REST client over httpx, basic auth with the key id/secret"""

    def __init__(self, key_id: str, key_secret: str, base_url: str = 'https://api.razorpay.com/v1',
                 timeout: float = 10.0, http_client: Optional[httpx.Client] = None):
        self.key_id = key_id
        self._key_secret = key_secret
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self._http = http_client

    @classmethod
    def from_config(cls, config) -> 'RazorpayGatewayClient':
        return cls(
            key_id=config.get('RAZORPAY_KEY_ID', ''),
            key_secret=config.get('RAZORPAY_KEY_SECRET', ''),
            base_url=config.get('GATEWAY_BASE_URL', 'https://api.razorpay.com/v1'),
            timeout=float(config.get('GATEWAY_TIMEOUT_SECONDS', 10)),
        )

    def _client(self) -> httpx.Client:
        if self._http is None:
            self._http = httpx.Client(
                base_url=self.base_url,
                auth=(self.key_id, self._key_secret),
                timeout=self.timeout,
                headers={'Content-Type': 'application/json'},
            )
        return self._http

    def _post(self, path: str, payload: dict) -> dict:
        if not self.key_id or not self._key_secret:
            raise PaymentGatewayError("Payment gateway credentials are not configured")

        logger.debug(f"Gateway POST {path} {sanitize_gateway_payload(payload)}")
        try:
            resp = self._client().post(path, json=payload)
        except httpx.HTTPError as e:
            logger.error(f"Gateway POST {path} failed: {type(e).__name__}")
            raise PaymentGatewayError(f"Payment gateway unreachable: {type(e).__name__}") from e

        if resp.status_code not in (200, 201):
            logger.error(f"Gateway POST {path} failed HTTP_{resp.status_code}")
            description = None
            if resp.headers.get('content-type', '').startswith('application/json'):
                description = (resp.json().get('error') or {}).get('description')
            raise PaymentGatewayError(
                f"Payment gateway rejected request (HTTP {resp.status_code})"
                + (f": {description}" if description else ""),
                status_code=resp.status_code,
            )

        data = resp.json()
        logger.debug(f"Gateway POST {path} -> {sanitize_gateway_payload(data)}")
        return data

    def create_order(self, amount, currency, receipt, notes=None):
        data = self._post('/orders', {
            'amount': to_minor_units(amount),
            'currency': currency,
            'receipt': receipt,
            'notes': notes or {},
        })
        return GatewayOrder(
            order_id=data['id'],
            amount_minor=data.get('amount', to_minor_units(amount)),
            currency=data.get('currency', currency),
            receipt=data.get('receipt', receipt),
            raw=data,
        )

    def verify_signature(self, order_id, payment_id, signature):
        if not (order_id and payment_id and signature and self._key_secret):
            return False
        return hmac.compare_digest(expected_signature(self._key_secret, order_id, payment_id), signature)

    def refund(self, gateway_payment_id, amount, notes=None):
        data = self._post(f'/payments/{gateway_payment_id}/refund', {
            'amount': to_minor_units(amount),
            'speed': 'normal',
            'notes': notes or {},
        })
        return GatewayRefund(
            refund_id=data['id'],
            amount_minor=data.get('amount', to_minor_units(amount)),
            status=data.get('status', 'processed'),
            raw=data,
        )

    def close(self):
        if self._http is not None:
            self._http.close()
            self._http = None
