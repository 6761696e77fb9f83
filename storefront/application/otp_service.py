"""One-time passcode service.

Provides:
- Issuing and re-sending emailed passcodes per (email, purpose)
- Verifying submitted passcodes with an attempt ceiling
- Purging expired passcode records

Only a hash of each code is stored. Counters are changed with
conditional UPDATE statements so concurrent requests cannot push them
past their ceilings, and a matching code is consumed by a DELETE whose
row count decides the winner, so a code can be used at most once.
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum

import structlog
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.domain.exceptions import TransientFailureError
from storefront.domain.value_objects import OtpPurpose
from storefront.infrastructure.config import settings
from storefront.infrastructure.email import EmailDispatcher, get_email_dispatcher, render_otp_email
from storefront.infrastructure.models import OtpModel
from storefront.infrastructure.security import generate_numeric_code, hash_code, verify_code

logger = structlog.get_logger()


def normalize_email(email: str) -> str:
    """Canonical form used as the passcode key."""
    return email.strip().lower()


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class OtpOutcome(str, Enum):
    """Outcome of an issue or verify call."""

    ISSUED = "issued"
    VALID = "valid"
    INVALID = "invalid"
    BLOCKED = "blocked"


@dataclass
class OtpIssueResult:
    """Result of issuing or re-sending a passcode.

    Attributes:
        outcome: ISSUED or BLOCKED.
        attempts_remaining: Wrong guesses left before the record is purged.
        resends_remaining: Re-sends left before the record is purged.
        expires_at: When the issued code stops working.
    """

    outcome: OtpOutcome
    attempts_remaining: int = 0
    resends_remaining: int = 0
    expires_at: datetime | None = None

    @property
    def blocked(self) -> bool:
        """Whether issuance was refused."""
        return self.outcome == OtpOutcome.BLOCKED


@dataclass
class OtpVerification:
    """Result of verifying a passcode.

    Attributes:
        outcome: VALID, INVALID or BLOCKED.
        attempts_remaining: Wrong guesses left (0 when blocked or no record).
    """

    outcome: OtpOutcome
    attempts_remaining: int = 0

    @property
    def valid(self) -> bool:
        """Whether the code was accepted."""
        return self.outcome == OtpOutcome.VALID

    @property
    def blocked(self) -> bool:
        """Whether the record was purged after too many attempts."""
        return self.outcome == OtpOutcome.BLOCKED


# ============================================================================
# Repository
# ============================================================================


class OtpRepository:
    """Database access for passcode records."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def find_live(self, email: str, purpose: OtpPurpose, now: datetime) -> OtpModel | None:
        """Get the unexpired record for (email, purpose).

        An expired record is deleted and reported as absent.

        Args:
            email: Normalized email.
            purpose: Passcode purpose.
            now: Current time.

        Returns:
            The live record, or None.
        """
        result = await self.session.execute(
            select(OtpModel)
            .where(OtpModel.target_email == email, OtpModel.purpose == purpose.value)
            .execution_options(populate_existing=True)
        )
        record = result.scalar_one_or_none()
        if record is None:
            return None

        if _as_utc(record.expires_at) <= now:
            await self.delete(record.id)
            return None
        return record

    async def create(
        self,
        email: str,
        purpose: OtpPurpose,
        hashed_code: str,
        expires_at: datetime,
        meta: dict | None = None,
    ) -> OtpModel:
        record = OtpModel(
            target_email=email,
            purpose=purpose.value,
            hashed_code=hashed_code,
            attempts=0,
            resend_count=0,
            expires_at=expires_at,
            meta=meta,
        )
        self.session.add(record)
        await self.session.flush()
        return record

    async def replace_code(
        self,
        record_id: str,
        hashed_code: str,
        expires_at: datetime,
        max_attempts: int,
        max_resends: int,
    ) -> bool:
        """Swap in a fresh code and count the re-send.

        Attempts are left untouched.

        Returns:
            False if either counter was already at its ceiling.
        """
        result = await self.session.execute(
            update(OtpModel)
            .where(
                OtpModel.id == record_id,
                OtpModel.resend_count < max_resends,
                OtpModel.attempts < max_attempts,
            )
            .values(
                hashed_code=hashed_code,
                expires_at=expires_at,
                resend_count=OtpModel.resend_count + 1,
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def record_failed_attempt(self, record_id: str) -> int:
        """Increment attempts in the database and return the new count."""
        await self.session.execute(
            update(OtpModel)
            .where(OtpModel.id == record_id)
            .values(attempts=OtpModel.attempts + 1)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(
            select(OtpModel.attempts).where(OtpModel.id == record_id)
        )
        return result.scalar_one_or_none() or 0

    async def delete(self, record_id: str) -> bool:
        """Delete a record. Returns False if it was already gone."""
        result = await self.session.execute(
            delete(OtpModel)
            .where(OtpModel.id == record_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def purge_expired(self, now: datetime) -> int:
        result = await self.session.execute(
            delete(OtpModel)
            .where(OtpModel.expires_at <= now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount


# ============================================================================
# Service
# ============================================================================


class OtpService:
    """Issue and verify emailed one-time passcodes.

    Each call is its own unit of work and commits the session on success.
    Anything the caller has pending on the same session commits with it,
    so a registration and its first passcode land together or not at all.
    """

    def __init__(
        self,
        session: AsyncSession,
        dispatcher: EmailDispatcher | None = None,
        code_factory: Callable[[], str] | None = None,
        max_attempts: int | None = None,
        max_resends: int | None = None,
        ttl_minutes: int | None = None,
    ) -> None:
        """Initialize service.

        Args:
            session: Async SQLAlchemy session.
            dispatcher: Email dispatcher, defaults to the configured one.
            code_factory: Produces plaintext codes, defaults to random digits.
            max_attempts: Wrong-guess ceiling.
            max_resends: Re-send ceiling.
            ttl_minutes: Code lifetime.
        """
        self.session = session
        self.repository = OtpRepository(session)
        self.dispatcher = dispatcher or get_email_dispatcher()
        self.code_factory = code_factory or generate_numeric_code
        self.max_attempts = max_attempts or settings.otp_max_attempts
        self.max_resends = max_resends or settings.otp_max_resends
        self.ttl = timedelta(minutes=ttl_minutes or settings.otp_ttl_minutes)

    async def issue_or_resend(
        self,
        email: str,
        purpose: OtpPurpose,
        display_name: str = "",
        meta: dict | None = None,
    ) -> OtpIssueResult:
        """Issue a new passcode, or replace the pending one, and email it.

        A pending record whose attempt or re-send counter has reached its
        ceiling is purged and issuance is refused. Otherwise a fresh code is
        stored (hashed) with a new expiry and emailed once. If the email
        cannot be sent the whole change is rolled back.

        Args:
            email: Recipient address.
            purpose: What the code authorizes.
            display_name: Name used in the greeting.
            meta: Extra data stored with a new record.

        Returns:
            Issue result with remaining counters.

        Raises:
            EmailDeliveryError: If the email could not be sent.
        """
        email = normalize_email(email)
        now = datetime.now(timezone.utc)
        log = logger.bind(email=email, purpose=purpose.value)

        try:
            record = await self.repository.find_live(email, purpose, now)

            if record is not None and (
                record.attempts >= self.max_attempts or record.resend_count >= self.max_resends
            ):
                await self.repository.delete(record.id)
                await self.session.commit()
                log.warning(
                    "OTP issuance blocked",
                    attempts=record.attempts,
                    resends=record.resend_count,
                )
                return OtpIssueResult(outcome=OtpOutcome.BLOCKED)

            code = self.code_factory()
            hashed = hash_code(code)
            expires_at = now + self.ttl

            if record is None:
                record = await self.repository.create(email, purpose, hashed, expires_at, meta)
                attempts, resends = 0, 0
            else:
                replaced = await self.repository.replace_code(
                    record.id,
                    hashed,
                    expires_at,
                    max_attempts=self.max_attempts,
                    max_resends=self.max_resends,
                )
                if not replaced:
                    # A concurrent request pushed a counter to its ceiling
                    await self.repository.delete(record.id)
                    await self.session.commit()
                    log.warning("OTP issuance blocked")
                    return OtpIssueResult(outcome=OtpOutcome.BLOCKED)
                attempts, resends = record.attempts, record.resend_count + 1

            rendered = render_otp_email(purpose, display_name, code, int(self.ttl.total_seconds() // 60))
            await self.dispatcher.send(email, rendered.subject, rendered.html)
            await self.session.commit()
        except IntegrityError as e:
            # Lost a race to create the record for this (email, purpose)
            await self.session.rollback()
            log.warning("OTP record created concurrently")
            raise TransientFailureError("Passcode issuance", "concurrent request") from e
        except Exception:
            await self.session.rollback()
            raise

        log.info("OTP issued", resend_count=resends, expires_at=expires_at.isoformat())
        return OtpIssueResult(
            outcome=OtpOutcome.ISSUED,
            attempts_remaining=self.max_attempts - attempts,
            resends_remaining=self.max_resends - resends,
            expires_at=expires_at,
        )

    async def verify(self, email: str, purpose: OtpPurpose, code: str) -> OtpVerification:
        """Check a submitted passcode.

        A match consumes the record. A miss counts against the attempt
        ceiling; the miss that reaches it purges the record.

        Args:
            email: Address the code was sent to.
            purpose: What the code authorizes.
            code: Code entered by the user.

        Returns:
            Verification result.
        """
        email = normalize_email(email)
        now = datetime.now(timezone.utc)
        log = logger.bind(email=email, purpose=purpose.value)

        try:
            record = await self.repository.find_live(email, purpose, now)

            if record is None:
                verify_code(code, None)
                await self.session.commit()
                log.info("OTP verification without live code")
                return OtpVerification(outcome=OtpOutcome.INVALID, attempts_remaining=0)

            if record.attempts >= self.max_attempts:
                await self.repository.delete(record.id)
                await self.session.commit()
                log.warning("OTP verification blocked", attempts=record.attempts)
                return OtpVerification(outcome=OtpOutcome.BLOCKED)

            if verify_code(code, record.hashed_code):
                consumed = await self.repository.delete(record.id)
                await self.session.commit()
                if not consumed:
                    log.info("OTP already consumed by a concurrent request")
                    return OtpVerification(outcome=OtpOutcome.INVALID)
                log.info("OTP verified")
                return OtpVerification(outcome=OtpOutcome.VALID)

            attempts = await self.repository.record_failed_attempt(record.id)
            if attempts >= self.max_attempts:
                await self.repository.delete(record.id)
                await self.session.commit()
                log.warning("OTP attempts exhausted", attempts=attempts)
                return OtpVerification(outcome=OtpOutcome.BLOCKED)

            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        log.info("OTP mismatch", attempts=attempts)
        return OtpVerification(
            outcome=OtpOutcome.INVALID,
            attempts_remaining=self.max_attempts - attempts,
        )

    async def purge_expired(self) -> int:
        """Delete every expired passcode record.

        Returns:
            Number of records removed.
        """
        removed = await self.repository.purge_expired(datetime.now(timezone.utc))
        await self.session.commit()
        logger.info("Expired OTPs purged", removed=removed)
        return removed
