"""Tests for accounts, login and password reset."""

import pytest
from sqlalchemy import select

from storefront.application.auth_service import AuthService
from storefront.application.otp_service import OtpService
from storefront.domain.exceptions import (
    AccountNotFoundError,
    AccountNotVerifiedError,
    AlreadyVerifiedError,
    EmailAlreadyRegisteredError,
    EmailDeliveryError,
    InvalidCredentialsError,
    OtpBlockedError,
    OtpInvalidError,
)
from storefront.domain.value_objects import Role
from storefront.infrastructure.models import UserModel
from storefront.infrastructure.security import issue_access_token, verify_password

# Password of the make_user and make_admin accounts
TEST_PASSWORD = "Passw0rd!"
NEW_PASSWORD = "N3w-Secret!"


@pytest.fixture
def auth(session, mailer) -> AuthService:
    return AuthService(session, otp=OtpService(session, dispatcher=mailer))


class TestRegistration:
    """Tests for shopper sign-up."""

    async def test_register_verify_login(self, auth, mailer) -> None:
        """A new shopper registers, verifies the emailed code, then logs in."""
        issued = await auth.register("asha", "Asha@Example.com", TEST_PASSWORD)
        assert issued.attempts_remaining == 5

        with pytest.raises(AccountNotVerifiedError):
            await auth.login("asha@example.com", TEST_PASSWORD)

        user = await auth.verify_registration("asha@example.com", mailer.last_code("asha@example.com"))
        assert user.is_verified

        token = await auth.login("ASHA@example.com", TEST_PASSWORD)
        assert token.token_type == "bearer"
        assert token.expires_in == 3600
        assert token.principal.role == Role.USER
        assert token.principal.username == "asha"

        principal = await auth.resolve_principal(token.access_token)
        assert principal.id == user.id

    async def test_duplicate_email(self, auth, make_user) -> None:
        """An email can only be registered once."""
        await make_user("taken", email="taken@example.com")

        with pytest.raises(EmailAlreadyRegisteredError):
            await auth.register("other", "TAKEN@example.com", TEST_PASSWORD)

    async def test_wrong_code(self, auth) -> None:
        """A wrong code leaves the account unverified."""
        await auth.register("asha", "asha@example.com", TEST_PASSWORD)

        with pytest.raises(OtpInvalidError) as exc_info:
            await auth.verify_registration("asha@example.com", "000000")

        assert exc_info.value.details["attempts_remaining"] == 4

    async def test_verify_unknown_account(self, auth) -> None:
        """Verifying an email with no account fails."""
        with pytest.raises(AccountNotFoundError):
            await auth.verify_registration("ghost@example.com", "123456")

    async def test_delivery_failure_discards_account(self, session, failing_mailer) -> None:
        """If the code cannot be emailed the account is not created."""
        auth = AuthService(session, otp=OtpService(session, dispatcher=failing_mailer))

        with pytest.raises(EmailDeliveryError):
            await auth.register("asha", "asha@example.com", TEST_PASSWORD)

        result = await session.execute(select(UserModel))
        assert result.scalars().all() == []

    async def test_resend(self, auth, mailer) -> None:
        """Re-sending emails a new code that verifies the account."""
        await auth.register("asha", "asha@example.com", TEST_PASSWORD)

        result = await auth.resend_registration_otp("asha@example.com")

        assert result.resends_remaining == 4
        assert len(mailer.sent) == 2
        await auth.verify_registration("asha@example.com", mailer.last_code("asha@example.com"))

    async def test_resend_for_verified_account(self, auth, make_user) -> None:
        """Verified accounts need no registration code."""
        await make_user("done")

        with pytest.raises(AlreadyVerifiedError):
            await auth.resend_registration_otp("done@example.com")

    async def test_resend_blocked_after_ceiling(self, auth) -> None:
        """After the maximum re-sends further requests are blocked."""
        await auth.register("asha", "asha@example.com", TEST_PASSWORD)
        for _ in range(5):
            await auth.resend_registration_otp("asha@example.com")

        with pytest.raises(OtpBlockedError):
            await auth.resend_registration_otp("asha@example.com")


class TestLogin:
    """Tests for shopper login and tokens."""

    async def test_wrong_password(self, auth, make_user) -> None:
        """A wrong password is rejected."""
        await make_user()

        with pytest.raises(InvalidCredentialsError):
            await auth.login("shopper@example.com", "Wrong-pass1")

    async def test_unknown_email(self, auth) -> None:
        """Unknown emails get the same error as wrong passwords."""
        with pytest.raises(InvalidCredentialsError):
            await auth.login("ghost@example.com", TEST_PASSWORD)

    async def test_token_for_deleted_account(self, auth) -> None:
        """A token whose account no longer exists is rejected."""
        token = issue_access_token("no-such-user", Role.USER.value)

        with pytest.raises(InvalidCredentialsError):
            await auth.resolve_principal(token)

    async def test_garbage_token(self, auth) -> None:
        """Malformed tokens are rejected."""
        with pytest.raises(InvalidCredentialsError):
            await auth.resolve_principal("not-a-jwt")


class TestPasswordReset:
    """Tests for password reset by emailed code."""

    async def test_reset_flow(self, auth, make_user, mailer, session_factory) -> None:
        """The emailed code sets a new password."""
        user = await make_user()
        await auth.request_password_reset("shopper@example.com")

        await auth.confirm_password_reset(
            "shopper@example.com", mailer.last_code("shopper@example.com"), NEW_PASSWORD
        )

        async with session_factory() as s:
            stored = await s.get(UserModel, user.id)
        assert verify_password(NEW_PASSWORD, stored.password_hash)
        token = await auth.login("shopper@example.com", NEW_PASSWORD)
        assert token.principal.id == user.id

    async def test_unknown_email_is_silent(self, auth, mailer) -> None:
        """Requests for unknown emails succeed without sending anything."""
        await auth.request_password_reset("ghost@example.com")

        assert mailer.sent == []

    async def test_wrong_code_keeps_password(self, auth, make_user) -> None:
        """A wrong code does not change the password."""
        await make_user()
        await auth.request_password_reset("shopper@example.com")

        with pytest.raises(OtpInvalidError):
            await auth.confirm_password_reset("shopper@example.com", "000000", NEW_PASSWORD)

        token = await auth.login("shopper@example.com", TEST_PASSWORD)
        assert token.principal.username == "shopper"


class TestProfile:
    """Tests for profile reads and updates."""

    async def test_address_merges(self, auth, make_user) -> None:
        """Partial address updates keep the other stored fields."""
        user = await make_user(
            address={"street": "1 Main St", "city": "Pune", "state": "MH", "postal_code": "411001"}
        )

        updated = await auth.update_profile(
            user, {"phone": "9999999999", "address": {"city": "Mumbai", "postal_code": None}}
        )

        assert updated.phone == "9999999999"
        assert updated.address["city"] == "Mumbai"
        assert updated.address["street"] == "1 Main St"
        assert updated.address["postal_code"] == "411001"

    async def test_password_change(self, auth, make_user) -> None:
        """A new password replaces the old one."""
        user = await make_user()

        await auth.update_profile(user, {"password": NEW_PASSWORD})

        with pytest.raises(InvalidCredentialsError):
            await auth.login("shopper@example.com", TEST_PASSWORD)
        await auth.login("shopper@example.com", NEW_PASSWORD)


class TestAdminLogin:
    """Tests for two-step admin login."""

    async def test_password_then_code(self, auth, make_admin, mailer) -> None:
        """The right password emails a code; the code yields an admin token."""
        admin = await make_admin()

        issued = await auth.admin_login("admin@example.com", TEST_PASSWORD)
        assert issued.resends_remaining == 5

        token = await auth.admin_verify_otp("admin@example.com", mailer.last_code("admin@example.com"))

        assert token.principal.role == Role.ADMIN
        assert token.principal.id == admin.id
        principal = await auth.resolve_principal(token.access_token)
        assert principal.is_admin

    async def test_wrong_password_sends_nothing(self, auth, make_admin, mailer) -> None:
        """A wrong admin password does not email a code."""
        await make_admin()

        with pytest.raises(InvalidCredentialsError):
            await auth.admin_login("admin@example.com", "Wrong-pass1")
        assert mailer.sent == []

    async def test_code_is_single_use(self, auth, make_admin, mailer) -> None:
        """A login code cannot be replayed."""
        await make_admin()
        await auth.admin_login("admin@example.com", TEST_PASSWORD)
        code = mailer.last_code("admin@example.com")
        await auth.admin_verify_otp("admin@example.com", code)

        with pytest.raises(OtpInvalidError):
            await auth.admin_verify_otp("admin@example.com", code)

    async def test_lockout(self, auth, make_admin) -> None:
        """Five wrong codes block the login code."""
        await make_admin()
        await auth.admin_login("admin@example.com", TEST_PASSWORD)
        for _ in range(4):
            with pytest.raises(OtpInvalidError):
                await auth.admin_verify_otp("admin@example.com", "000000")

        with pytest.raises(OtpBlockedError):
            await auth.admin_verify_otp("admin@example.com", "000000")

    async def test_only_one_admin(self, auth, make_admin) -> None:
        """A second admin cannot be created."""
        await make_admin()

        with pytest.raises(EmailAlreadyRegisteredError):
            await auth.create_admin("second", "second@example.com", TEST_PASSWORD)
