"""Account and authentication service.

Provides:
- Shopper registration verified by emailed passcode
- Shopper password login and profile management
- Password reset by emailed passcode
- Two-step admin login (password, then emailed passcode)
- Principal lookup for access tokens
"""

from dataclasses import dataclass
from typing import Any

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.application.otp_service import (
    OtpIssueResult,
    OtpService,
    OtpVerification,
    normalize_email,
)
from storefront.domain.exceptions import (
    AccountNotFoundError,
    AccountNotVerifiedError,
    AlreadyVerifiedError,
    EmailAlreadyRegisteredError,
    InvalidCredentialsError,
    OtpBlockedError,
    OtpInvalidError,
)
from storefront.domain.value_objects import OtpPurpose, Principal, Role
from storefront.infrastructure.config import settings
from storefront.infrastructure.models import AdminModel, UserModel
from storefront.infrastructure.security import (
    TokenError,
    decode_access_token,
    hash_password,
    issue_access_token,
    verify_password,
)

logger = structlog.get_logger()


@dataclass
class AccessToken:
    """Issued access token.

    Attributes:
        access_token: Encoded JWT.
        expires_in: Lifetime in seconds.
        principal: Who the token identifies.
    """

    access_token: str
    expires_in: int
    principal: Principal
    token_type: str = "bearer"


def _principal_for(account: UserModel | AdminModel) -> Principal:
    return Principal(
        id=account.id,
        role=Role(account.role),
        email=account.email,
        username=account.username,
    )


def _token_for(account: UserModel | AdminModel) -> AccessToken:
    principal = _principal_for(account)
    return AccessToken(
        access_token=issue_access_token(principal.id, principal.role.value),
        expires_in=settings.jwt_expires_minutes * 60,
        principal=principal,
    )


def _raise_for_otp_failure(
    result: OtpIssueResult | OtpVerification, email: str, purpose: OtpPurpose
) -> None:
    if result.blocked:
        raise OtpBlockedError(email, purpose.value)
    if isinstance(result, OtpVerification) and not result.valid:
        raise OtpInvalidError(result.attempts_remaining)


class AuthService:
    """Application service for accounts and sessions."""

    def __init__(self, session: AsyncSession, otp: OtpService | None = None) -> None:
        """Initialize service.

        Args:
            session: Async SQLAlchemy session.
            otp: Passcode service, defaults to one on the same session.
        """
        self.session = session
        self.otp = otp or OtpService(session)

    # ========================================================================
    # Lookups
    # ========================================================================

    async def _find_user(self, email: str) -> UserModel | None:
        result = await self.session.execute(
            select(UserModel).where(func.lower(UserModel.email) == normalize_email(email))
        )
        return result.scalar_one_or_none()

    async def _find_admin(self, email: str) -> AdminModel | None:
        result = await self.session.execute(
            select(AdminModel).where(func.lower(AdminModel.email) == normalize_email(email))
        )
        return result.scalar_one_or_none()

    async def _require_user(self, email: str) -> UserModel:
        user = await self._find_user(email)
        if user is None:
            raise AccountNotFoundError(normalize_email(email))
        return user

    async def resolve_principal(self, token: str) -> Principal:
        """Turn a bearer token into the principal it identifies.

        Args:
            token: Encoded access token.

        Returns:
            Principal for a still-existing account.

        Raises:
            InvalidCredentialsError: If the token is invalid or its account is gone.
        """
        try:
            claims = decode_access_token(token)
        except TokenError as e:
            raise InvalidCredentialsError("Invalid or expired token") from e

        model = AdminModel if claims.role == Role.ADMIN.value else UserModel
        account = await self.session.get(model, claims.subject)
        if account is None:
            raise InvalidCredentialsError("Invalid or expired token")
        return _principal_for(account)

    # ========================================================================
    # Shopper Registration and Login
    # ========================================================================

    async def register(self, username: str, email: str, password: str) -> OtpIssueResult:
        """Create an unverified account and email a registration passcode.

        The account and its passcode commit together; if the email cannot
        be sent neither is kept.

        Raises:
            EmailAlreadyRegisteredError: If the email already has an account.
            OtpBlockedError: If passcode issuance for this email is blocked.
            EmailDeliveryError: If the passcode email could not be sent.
        """
        email = normalize_email(email)
        if await self._find_user(email) is not None:
            raise EmailAlreadyRegisteredError(email)

        user = UserModel(
            username=username,
            email=email,
            password_hash=hash_password(password),
            is_verified=False,
            role=Role.USER.value,
        )
        self.session.add(user)
        await self.session.flush()

        result = await self.otp.issue_or_resend(email, OtpPurpose.REGISTER, username)
        if result.blocked:
            raise OtpBlockedError(email, OtpPurpose.REGISTER.value)

        logger.info("User registered", user_id=user.id)
        return result

    async def verify_registration(self, email: str, code: str) -> UserModel:
        """Confirm a registration passcode and mark the account verified.

        Raises:
            AccountNotFoundError: If no account uses the email.
            OtpInvalidError: If the code is wrong or expired.
            OtpBlockedError: If too many wrong codes were entered.
        """
        user = await self._require_user(email)
        result = await self.otp.verify(user.email, OtpPurpose.REGISTER, code)
        _raise_for_otp_failure(result, user.email, OtpPurpose.REGISTER)

        user.is_verified = True
        await self.session.commit()
        logger.info("User verified", user_id=user.id)
        return user

    async def resend_registration_otp(self, email: str) -> OtpIssueResult:
        """Email a fresh registration passcode.

        Raises:
            AccountNotFoundError: If no account uses the email.
            AlreadyVerifiedError: If the account is already verified.
            OtpBlockedError: If the re-send ceiling has been reached.
        """
        user = await self._require_user(email)
        if user.is_verified:
            raise AlreadyVerifiedError(user.email)

        result = await self.otp.issue_or_resend(user.email, OtpPurpose.REGISTER, user.username)
        _raise_for_otp_failure(result, user.email, OtpPurpose.REGISTER)
        return result

    async def login(self, email: str, password: str) -> AccessToken:
        """Log a shopper in with email and password.

        Raises:
            InvalidCredentialsError: If the email or password is wrong.
            AccountNotVerifiedError: If the account is not verified yet.
        """
        user = await self._find_user(email)
        if user is None or not verify_password(password, user.password_hash):
            raise InvalidCredentialsError()
        if not user.is_verified:
            raise AccountNotVerifiedError(user.email)

        logger.info("User logged in", user_id=user.id)
        return _token_for(user)

    # ========================================================================
    # Password Reset
    # ========================================================================

    async def request_password_reset(self, email: str) -> None:
        """Email a password reset passcode if the account exists.

        Reports nothing about whether the account exists.

        Raises:
            OtpBlockedError: If issuance for this email is blocked.
        """
        user = await self._find_user(email)
        if user is None:
            logger.info("Password reset requested for unknown email")
            return

        result = await self.otp.issue_or_resend(user.email, OtpPurpose.PASSWORD_RESET, user.username)
        _raise_for_otp_failure(result, user.email, OtpPurpose.PASSWORD_RESET)

    async def confirm_password_reset(self, email: str, code: str, new_password: str) -> None:
        """Set a new password after checking the reset passcode.

        Raises:
            OtpInvalidError: If the code is wrong, expired or the account is unknown.
            OtpBlockedError: If too many wrong codes were entered.
        """
        result = await self.otp.verify(email, OtpPurpose.PASSWORD_RESET, code)
        _raise_for_otp_failure(result, normalize_email(email), OtpPurpose.PASSWORD_RESET)

        user = await self._find_user(email)
        if user is None:
            raise OtpInvalidError(0)

        user.password_hash = hash_password(new_password)
        await self.session.commit()
        logger.info("Password reset", user_id=user.id)

    # ========================================================================
    # Profile
    # ========================================================================

    async def get_profile(self, principal: Principal) -> UserModel:
        """Get the caller's account."""
        user = await self.session.get(UserModel, principal.id)
        if user is None:
            raise AccountNotFoundError(principal.email)
        return user

    async def update_profile(self, principal: Principal, changes: dict[str, Any]) -> UserModel:
        """Update username, phone, password or address.

        Address changes merge into the stored address field by field.

        Args:
            principal: Caller.
            changes: Fields to change.

        Returns:
            The updated account.
        """
        user = await self.get_profile(principal)

        if changes.get("username"):
            user.username = changes["username"]
        if "phone" in changes:
            user.phone = changes["phone"]
        if changes.get("password"):
            user.password_hash = hash_password(changes["password"])
        if changes.get("address"):
            merged = dict(user.address or {})
            merged.update({k: v for k, v in changes["address"].items() if v is not None})
            user.address = merged

        await self.session.commit()
        logger.info("Profile updated", user_id=user.id, fields=sorted(changes))
        return user

    # ========================================================================
    # Admin Login
    # ========================================================================

    async def admin_login(self, email: str, password: str) -> OtpIssueResult:
        """Check admin credentials and email a login passcode.

        Raises:
            InvalidCredentialsError: If the email or password is wrong.
            OtpBlockedError: If issuance is blocked.
        """
        admin = await self._find_admin(email)
        if admin is None or not verify_password(password, admin.password_hash):
            raise InvalidCredentialsError()

        result = await self.otp.issue_or_resend(admin.email, OtpPurpose.LOGIN, admin.username)
        _raise_for_otp_failure(result, admin.email, OtpPurpose.LOGIN)
        return result

    async def admin_verify_otp(self, email: str, code: str) -> AccessToken:
        """Finish admin login by checking the emailed passcode.

        Raises:
            InvalidCredentialsError: If no admin uses the email.
            OtpInvalidError: If the code is wrong or expired.
            OtpBlockedError: If too many wrong codes were entered.
        """
        admin = await self._find_admin(email)
        if admin is None:
            raise InvalidCredentialsError()

        result = await self.otp.verify(admin.email, OtpPurpose.LOGIN, code)
        _raise_for_otp_failure(result, admin.email, OtpPurpose.LOGIN)

        logger.info("Admin logged in", admin_id=admin.id)
        return _token_for(admin)

    async def admin_resend_otp(self, email: str) -> OtpIssueResult:
        """Email a fresh admin login passcode.

        Raises:
            InvalidCredentialsError: If no admin uses the email.
            OtpBlockedError: If the re-send ceiling has been reached.
        """
        admin = await self._find_admin(email)
        if admin is None:
            raise InvalidCredentialsError()

        result = await self.otp.issue_or_resend(admin.email, OtpPurpose.LOGIN, admin.username)
        _raise_for_otp_failure(result, admin.email, OtpPurpose.LOGIN)
        return result

    async def create_admin(self, username: str, email: str, password: str) -> AdminModel:
        """Create the admin account. Only one admin may exist.

        Raises:
            EmailAlreadyRegisteredError: If an admin already exists.
        """
        existing = await self.session.execute(select(func.count(AdminModel.id)))
        if existing.scalar_one() > 0:
            raise EmailAlreadyRegisteredError(normalize_email(email))

        admin = AdminModel(
            username=username,
            email=normalize_email(email),
            password_hash=hash_password(password),
            role=Role.ADMIN.value,
        )
        self.session.add(admin)
        await self.session.commit()
        logger.info("Admin created", admin_id=admin.id)
        return admin
