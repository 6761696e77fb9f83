"""Tests for the one-time passcode service."""

from datetime import datetime, timedelta, timezone
from itertools import count

import pytest
from sqlalchemy import select, update

from storefront.application.otp_service import OtpOutcome, OtpService
from storefront.domain.exceptions import EmailDeliveryError
from storefront.domain.value_objects import OtpPurpose
from storefront.infrastructure.models import OtpModel

EMAIL = "asha@example.com"


def sequential_codes():
    """Code factory producing 100001, 100002, ..."""
    counter = count(100001)
    return lambda: str(next(counter))


@pytest.fixture
def otp(session, mailer) -> OtpService:
    return OtpService(session, dispatcher=mailer, code_factory=sequential_codes())


async def _records(session_factory) -> list[OtpModel]:
    async with session_factory() as s:
        result = await s.execute(select(OtpModel))
        return list(result.scalars().all())


class TestIssue:
    """Tests for issuing and re-sending passcodes."""

    async def test_issue_stores_hash_and_emails_code(self, otp, mailer, session_factory) -> None:
        """A first request stores a hashed code and emails the plain one once."""
        result = await otp.issue_or_resend(EMAIL, OtpPurpose.REGISTER, "asha")

        assert result.outcome == OtpOutcome.ISSUED
        assert result.attempts_remaining == 5
        assert result.resends_remaining == 5
        assert len(mailer.sent) == 1
        assert mailer.last_code(EMAIL) == "100001"

        records = await _records(session_factory)
        assert len(records) == 1
        assert records[0].hashed_code != "100001"
        assert records[0].attempts == 0
        assert records[0].resend_count == 0

    async def test_email_is_normalized(self, otp, mailer) -> None:
        """Mixed-case addresses share one record."""
        await otp.issue_or_resend("  Asha@Example.COM ", OtpPurpose.REGISTER)
        result = await otp.issue_or_resend(EMAIL, OtpPurpose.REGISTER)

        assert result.resends_remaining == 4
        assert mailer.sent[0].to == EMAIL

    async def test_resend_replaces_code(self, otp, mailer) -> None:
        """A re-send invalidates the earlier code."""
        await otp.issue_or_resend(EMAIL, OtpPurpose.REGISTER)
        result = await otp.issue_or_resend(EMAIL, OtpPurpose.REGISTER)

        assert result.outcome == OtpOutcome.ISSUED
        assert result.resends_remaining == 4
        assert mailer.last_code(EMAIL) == "100002"

        stale = await otp.verify(EMAIL, OtpPurpose.REGISTER, "100001")
        assert stale.outcome == OtpOutcome.INVALID
        fresh = await otp.verify(EMAIL, OtpPurpose.REGISTER, "100002")
        assert fresh.valid

    async def test_purposes_are_independent(self, otp) -> None:
        """Register and password reset codes for one email do not interfere."""
        await otp.issue_or_resend(EMAIL, OtpPurpose.REGISTER)
        await otp.issue_or_resend(EMAIL, OtpPurpose.PASSWORD_RESET)

        assert (await otp.verify(EMAIL, OtpPurpose.PASSWORD_RESET, "100002")).valid
        assert (await otp.verify(EMAIL, OtpPurpose.REGISTER, "100001")).valid

    async def test_resend_ceiling_blocks_and_purges(self, otp, mailer, session_factory) -> None:
        """After the maximum re-sends the next request is refused and the record purged."""
        await otp.issue_or_resend(EMAIL, OtpPurpose.REGISTER)
        for _ in range(5):
            result = await otp.issue_or_resend(EMAIL, OtpPurpose.REGISTER)
            assert result.outcome == OtpOutcome.ISSUED

        blocked = await otp.issue_or_resend(EMAIL, OtpPurpose.REGISTER)

        assert blocked.blocked
        assert len(mailer.sent) == 6
        assert await _records(session_factory) == []

    async def test_resend_does_not_reset_attempts(self, otp) -> None:
        """Wrong guesses still count after a re-send."""
        await otp.issue_or_resend(EMAIL, OtpPurpose.REGISTER)
        await otp.verify(EMAIL, OtpPurpose.REGISTER, "000000")
        await otp.verify(EMAIL, OtpPurpose.REGISTER, "000000")

        result = await otp.issue_or_resend(EMAIL, OtpPurpose.REGISTER)

        assert result.attempts_remaining == 3

    async def test_expired_record_replaced_by_fresh_one(self, otp, session, session_factory) -> None:
        """An expired record is ignored and a fresh one is issued."""
        await otp.issue_or_resend(EMAIL, OtpPurpose.REGISTER)
        await session.execute(
            update(OtpModel).values(
                expires_at=datetime.now(timezone.utc) - timedelta(minutes=1),
                resend_count=5,
            )
        )
        await session.commit()

        result = await otp.issue_or_resend(EMAIL, OtpPurpose.REGISTER)

        assert result.outcome == OtpOutcome.ISSUED
        assert result.resends_remaining == 5
        assert len(await _records(session_factory)) == 1

    async def test_delivery_failure_rolls_back(self, session, failing_mailer, session_factory) -> None:
        """If the email cannot be sent nothing is stored."""
        service = OtpService(session, dispatcher=failing_mailer)

        with pytest.raises(EmailDeliveryError):
            await service.issue_or_resend(EMAIL, OtpPurpose.REGISTER)

        assert await _records(session_factory) == []

    async def test_delivery_failure_on_resend_keeps_old_code(
        self, session, mailer, failing_mailer
    ) -> None:
        """A failed re-send leaves the earlier code and counters in place."""
        await OtpService(session, dispatcher=mailer, code_factory=lambda: "111111").issue_or_resend(
            EMAIL, OtpPurpose.REGISTER
        )

        failing = OtpService(session, dispatcher=failing_mailer, code_factory=lambda: "222222")
        with pytest.raises(EmailDeliveryError):
            await failing.issue_or_resend(EMAIL, OtpPurpose.REGISTER)

        service = OtpService(session, dispatcher=mailer)
        assert (await service.verify(EMAIL, OtpPurpose.REGISTER, "111111")).valid


class TestVerify:
    """Tests for verifying passcodes."""

    async def test_correct_code_is_single_use(self, otp, session_factory) -> None:
        """A matching code verifies once and is then gone."""
        await otp.issue_or_resend(EMAIL, OtpPurpose.LOGIN)

        first = await otp.verify(EMAIL, OtpPurpose.LOGIN, "100001")
        second = await otp.verify(EMAIL, OtpPurpose.LOGIN, "100001")

        assert first.outcome == OtpOutcome.VALID
        assert second.outcome == OtpOutcome.INVALID
        assert await _records(session_factory) == []

    async def test_no_record_is_invalid(self, otp) -> None:
        """Verifying without any issued code is invalid with no attempts left."""
        result = await otp.verify(EMAIL, OtpPurpose.LOGIN, "123456")

        assert result.outcome == OtpOutcome.INVALID
        assert result.attempts_remaining == 0

    async def test_wrong_code_counts_attempt(self, otp) -> None:
        """A wrong code reports the attempts left."""
        await otp.issue_or_resend(EMAIL, OtpPurpose.LOGIN)

        result = await otp.verify(EMAIL, OtpPurpose.LOGIN, "999999")

        assert result.outcome == OtpOutcome.INVALID
        assert result.attempts_remaining == 4

    async def test_lockout_after_max_attempts(self, otp, session_factory) -> None:
        """The fifth wrong guess blocks and purges; even the right code then fails."""
        await otp.issue_or_resend(EMAIL, OtpPurpose.LOGIN)

        outcomes = [
            (await otp.verify(EMAIL, OtpPurpose.LOGIN, "999999")).outcome for _ in range(5)
        ]

        assert outcomes == [OtpOutcome.INVALID] * 4 + [OtpOutcome.BLOCKED]
        assert await _records(session_factory) == []
        assert not (await otp.verify(EMAIL, OtpPurpose.LOGIN, "100001")).valid

    async def test_expired_code_rejected(self, otp, session) -> None:
        """A correct code past its expiry does not verify."""
        await otp.issue_or_resend(EMAIL, OtpPurpose.LOGIN)
        await session.execute(
            update(OtpModel).values(expires_at=datetime.now(timezone.utc) - timedelta(seconds=1))
        )
        await session.commit()

        result = await otp.verify(EMAIL, OtpPurpose.LOGIN, "100001")

        assert result.outcome == OtpOutcome.INVALID

    async def test_purge_expired(self, otp, session, session_factory) -> None:
        """purge_expired removes only expired records."""
        await otp.issue_or_resend(EMAIL, OtpPurpose.LOGIN)
        await otp.issue_or_resend("other@example.com", OtpPurpose.LOGIN)
        await session.execute(
            update(OtpModel)
            .where(OtpModel.target_email == EMAIL)
            .values(expires_at=datetime.now(timezone.utc) - timedelta(minutes=10))
        )
        await session.commit()

        removed = await otp.purge_expired()

        assert removed == 1
        remaining = await _records(session_factory)
        assert [r.target_email for r in remaining] == ["other@example.com"]
