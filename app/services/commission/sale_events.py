"""
Sale webhook handling.

Validates the signed sale payload sent by the external token-sale source
and queues commission distribution keyed by its transaction id.
"""

from datetime import datetime
from decimal import Decimal

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from app.config.reward_policy import RewardPolicy
from app.config.settings import settings
from app.repositories.volunteer_profile_repository import (
    VolunteerProfileRepository,
)
from app.services.commission.fraud_flags import SaleFraudScreen
from app.services.work_queue import WorkEnqueuer
from app.utils.exceptions import (
    InvalidSignatureError,
    ProfileNotFoundError,
)
from app.utils.exceptions import ValidationError as RewardsValidationError
from app.utils.security import mask_sensitive, verify_signature

SIGNATURE_HEADER = "X-Scicent-Signature"
DEFAULT_CURRENCY = "SCICENT"


class SaleEvent(BaseModel):
    """Inbound sale payload."""

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    user_id: int = Field(gt=0)
    amount: Decimal = Field(gt=0)
    transaction_id: str = Field(min_length=1, max_length=200)
    currency: str = DEFAULT_CURRENCY
    timestamp: datetime

    @field_validator("currency", mode="before")
    @classmethod
    def default_currency(cls, v: str | None) -> str:
        """Missing or empty currency means the platform token."""
        return v or DEFAULT_CURRENCY

    @property
    def trigger_id(self) -> str:
        """Idempotency anchor for the commission distribution."""
        return f"sale:{self.transaction_id}"


def verify_sale_signature(
    raw_body: bytes, signature: str | None, secret: str | None
) -> bool:
    """
    Check 'sha256=<hex>' HMAC of the raw body in constant time.

    Returns False when either the signature or the secret is missing.
    """
    return verify_signature(raw_body, signature, secret)


def parse_sale_event(raw_body: bytes) -> SaleEvent:
    """
    Parse a sale payload.

    Raises:
        RewardsValidationError: Payload is malformed or fails validation
    """
    try:
        return SaleEvent.model_validate_json(raw_body)
    except ValidationError as e:
        raise RewardsValidationError(
            "Invalid sale data", errors=e.error_count()
        ) from e


class SaleWebhookHandler:
    """Accepts sale webhooks and queues commission distribution."""

    def __init__(
        self,
        session: AsyncSession,
        enqueuer: WorkEnqueuer,
        secret: str | None = None,
        verify: bool | None = None,
        policy: RewardPolicy | None = None,
    ) -> None:
        """
        Initialize sale webhook handler.

        Args:
            session: Async database session (read-only use)
            enqueuer: Work queue
            secret: Shared secret (defaults to settings.sale_webhook_secret)
            verify: Check signatures (defaults to off only in development)
            policy: Reward policy (fraud flag thresholds)
        """
        self.session = session
        self.enqueuer = enqueuer
        self.secret = secret if secret is not None else settings.sale_webhook_secret
        self.verify = (
            verify if verify is not None else settings.environment != "development"
        )
        self.profile_repo = VolunteerProfileRepository(session)
        self.fraud_screen = SaleFraudScreen(session, policy)

    async def handle_sale_event(
        self, raw_body: bytes, signature: str | None
    ) -> SaleEvent:
        """
        Verify, validate and queue one sale.

        Suspicious sales are logged as a warning and still queued.

        Args:
            raw_body: Request body exactly as received
            signature: Signature header value

        Returns:
            Parsed event

        Raises:
            InvalidSignatureError: Signature missing or wrong
            RewardsValidationError: Malformed payload
            ProfileNotFoundError: Unknown user
        """
        if self.verify and not verify_sale_signature(raw_body, signature, self.secret):
            logger.error(
                "Invalid webhook signature",
                extra={"signature": mask_sensitive(signature)},
            )
            raise InvalidSignatureError()

        event = parse_sale_event(raw_body)

        if not await self.profile_repo.get_by_id(event.user_id):
            raise ProfileNotFoundError(user_id=event.user_id)

        flags = await self.fraud_screen.indicators(
            event.user_id, event.amount, event.trigger_id
        )
        if flags:
            logger.warning(
                "Sale flagged for review",
                extra={
                    "transaction_id": event.transaction_id,
                    "user_id": event.user_id,
                    "amount": str(event.amount),
                    "flags": flags,
                },
            )

        self.enqueuer.enqueue_commission_distribution(
            event.trigger_id, event.user_id, str(event.amount)
        )
        logger.info(
            "Queued commission distribution for sale",
            extra={
                "transaction_id": event.transaction_id,
                "user_id": event.user_id,
                "amount": str(event.amount),
                "currency": event.currency,
            },
        )
        return event
