# Paystack Payment Service for brand payments and influencer payouts
import os
import hmac
import hashlib
import requests
from decimal import Decimal
from typing import Optional, Dict, Any
import logging

from config.app_config import DEFAULT_CURRENCY

logger = logging.getLogger(__name__)


class PaystackConfig:
    """Paystack configuration"""
    BASE_URL = os.getenv("PAYSTACK_BASE_URL", "https://api.paystack.co")
    SECRET_KEY = os.getenv("PAYSTACK_SECRET_KEY", "")
    CALLBACK_URL = os.getenv("PAYSTACK_CALLBACK_URL", "http://localhost:3000/payments/callback")
    TIMEOUT = int(os.getenv("PAYSTACK_TIMEOUT", 30))
    CURRENCY = DEFAULT_CURRENCY


class PaymentServiceError(Exception):
    """Raised when the Paystack API is unreachable or rejects a request."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def to_subunit(amount) -> int:
    """Convert a major-unit amount (KES 12.50) to Paystack subunits (1250)."""
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1")))


class PaystackService:
    """Service for handling Paystack charges and transfers"""

    def __init__(self, secret_key: Optional[str] = None):
        self.base_url = PaystackConfig.BASE_URL
        self.secret_key = secret_key or PaystackConfig.SECRET_KEY
        self.headers = {
            "Authorization": f"Bearer {self.secret_key}",
            "Content-Type": "application/json"
        }

    def _make_request(self, method: str, endpoint: str, data: Optional[Dict] = None) -> Dict[str, Any]:
        """Make a request to Paystack API"""
        url = f"{self.base_url}{endpoint}"
        try:
            if method == "GET":
                response = requests.get(url, headers=self.headers, timeout=PaystackConfig.TIMEOUT)
            elif method == "POST":
                response = requests.post(url, headers=self.headers, json=data, timeout=PaystackConfig.TIMEOUT)
            else:
                raise ValueError(f"Unsupported method: {method}")

            response.raise_for_status()
            body = response.json()
        except requests.exceptions.RequestException as e:
            logger.error(f"Paystack API error on {endpoint}: {e}")
            status_code = e.response.status_code if e.response is not None else None
            raise PaymentServiceError(f"Payment service error: {str(e)}", status_code=status_code)

        if not body.get("status"):
            logger.error(f"Paystack rejected {endpoint}: {body.get('message')}")
            raise PaymentServiceError(body.get("message") or "Payment service rejected the request")
        return body

    # ------------------------------------------------------------------
    # Brand payments
    # ------------------------------------------------------------------

    def initialize_transaction(
        self,
        email: str,
        amount,
        reference: str,
        currency: Optional[str] = None,
        callback_url: Optional[str] = None,
        metadata: Optional[Dict] = None
    ) -> Dict[str, Any]:
        """
        Initialize a Paystack transaction for a brand payment

        Args:
            email: Brand's email
            amount: Amount in major units (converted to subunits here)
            reference: Unique transaction reference
            currency: Currency tag, passed through
            callback_url: URL to redirect after payment
            metadata: Additional transaction metadata

        Returns:
            The `data` block of the response (authorization_url, access_code, reference)
        """
        data = {
            "email": email,
            "amount": to_subunit(amount),
            "currency": currency or PaystackConfig.CURRENCY,
            "reference": reference,
            "callback_url": callback_url or PaystackConfig.CALLBACK_URL,
            "metadata": metadata or {}
        }

        return self._make_request("POST", "/transaction/initialize", data)["data"]

    def verify_transaction(self, reference: str) -> Dict[str, Any]:
        """
        Verify a Paystack transaction

        Returns:
            The `data` block of the response (status, amount, id, ...)
        """
        return self._make_request("GET", f"/transaction/verify/{reference}")["data"]

    # ------------------------------------------------------------------
    # Influencer payouts
    # ------------------------------------------------------------------

    def fetch_recipient(self, recipient_code: str) -> Dict[str, Any]:
        """Fetch a transfer recipient (the influencer's payout destination)."""
        return self._make_request("GET", f"/transferrecipient/{recipient_code}")["data"]

    def is_payout_capable(self, recipient_code: str) -> bool:
        """
        Whether the recipient can currently receive transfers.

        The answer is advisory: a transfer can still fail after this returns True.
        """
        recipient = self.fetch_recipient(recipient_code)
        return bool(recipient.get("active")) and not recipient.get("is_deleted", False)

    def create_transfer(
        self,
        amount,
        currency: str,
        recipient_code: str,
        reference: str,
        reason: str = "",
        funding_reference: Optional[str] = None,
        metadata: Optional[Dict] = None
    ) -> str:
        """
        Send a transfer from the platform balance to a recipient

        Args:
            amount: Amount in major units
            currency: Currency tag, passed through
            recipient_code: Paystack recipient code (RCP_...)
            reference: Idempotency reference; Paystack rejects a reused reference
            reason: Narration shown to the recipient
            funding_reference: Brand charge the transfer is funded from
            metadata: Additional context stored with the transfer

        Returns:
            The transfer code (TRF_...)
        """
        transfer_metadata = dict(metadata or {})
        if funding_reference:
            transfer_metadata["funding_reference"] = funding_reference

        data = {
            "source": "balance",
            "amount": to_subunit(amount),
            "currency": currency,
            "recipient": recipient_code,
            "reference": reference,
            "reason": reason,
            "metadata": transfer_metadata
        }

        result = self._make_request("POST", "/transfer", data)["data"]
        if result.get("status") in ("failed", "reversed"):
            raise PaymentServiceError(f"Transfer {reference} {result.get('status')}")
        return result.get("transfer_code")

    @staticmethod
    def format_amount(amount, currency: Optional[str] = None) -> str:
        """Format a major-unit amount for display, e.g. "KES 2,999.00"."""
        return f"{currency or PaystackConfig.CURRENCY} {Decimal(str(amount)):,.2f}"


def get_paystack_service() -> PaystackService:
    """FastAPI dependency returning the payments processor client."""
    return PaystackService()


# Webhook handler for Paystack events
class PaystackWebhookHandler:
    """Handle Paystack webhook events"""

    @staticmethod
    def verify_webhook(payload: bytes, signature: str, secret_key: str) -> bool:
        """
        Verify webhook signature

        Args:
            payload: Raw request body
            signature: X-Paystack-Signature header value
            secret_key: Paystack secret key

        Returns:
            True if signature is valid
        """
        if not signature:
            return False

        computed_signature = hmac.new(
            secret_key.encode('utf-8'),
            payload,
            hashlib.sha512
        ).hexdigest()

        return hmac.compare_digest(computed_signature, signature)

    @staticmethod
    def handle_charge_success(data: Dict[str, Any]) -> Dict[str, Any]:
        """Handle successful charge webhook"""
        return {
            "event": "charge.success",
            "reference": data.get("reference"),
            "amount": data.get("amount"),
            "customer_email": (data.get("customer") or {}).get("email"),
            "metadata": data.get("metadata") or {},
            "paid_at": data.get("paid_at")
        }
