"""Authentication API endpoints.

Shopper:
- POST /auth/user/register - create account, email passcode
- POST /auth/user/verify-otp - confirm registration
- POST /auth/user/resend-otp - email a fresh registration passcode
- POST /auth/user/login - password login
- GET/PUT /auth/user/profile - view or edit the account
- POST /auth/user/password-reset/request|confirm - reset a forgotten password

Admin:
- POST /auth/admin/login - check password, email passcode
- POST /auth/admin/verify-otp - finish login
- POST /auth/admin/resend-otp - email a fresh login passcode
"""

from typing import Annotated

from fastapi import APIRouter, Depends, status

from storefront.api.dependencies import CurrentUser, get_auth_service
from storefront.api.schemas import (
    EmailRequest,
    ErrorResponse,
    LoginRequest,
    MessageResponse,
    OtpIssuedResponse,
    OtpVerifyRequest,
    PasswordResetConfirmRequest,
    ProfileResponse,
    ProfileUpdateRequest,
    RegisterRequest,
    TokenResponse,
)
from storefront.application.auth_service import AccessToken, AuthService
from storefront.application.otp_service import OtpIssueResult
from storefront.infrastructure.models import UserModel

router = APIRouter(prefix="/auth", tags=["Auth"])

AuthServiceDep = Annotated[AuthService, Depends(get_auth_service)]


# ============================================================================
# Converters
# ============================================================================


def otp_issued(message: str, email: str, result: OtpIssueResult) -> OtpIssuedResponse:
    return OtpIssuedResponse(
        message=message,
        email=email,
        attempts_remaining=result.attempts_remaining,
        resends_remaining=result.resends_remaining,
        expires_at=result.expires_at,
    )


def token_to_response(token: AccessToken) -> TokenResponse:
    return TokenResponse(
        access_token=token.access_token,
        token_type=token.token_type,
        expires_in=token.expires_in,
        role=token.principal.role.value,
        user_id=token.principal.id,
        username=token.principal.username,
    )


def user_to_profile(user: UserModel) -> ProfileResponse:
    return ProfileResponse(
        id=user.id,
        username=user.username,
        email=user.email,
        phone=user.phone,
        address=user.address,
        is_verified=user.is_verified,
        role=user.role,
        created_at=user.created_at,
    )


# ============================================================================
# Shopper Endpoints
# ============================================================================


@router.post(
    "/user/register",
    response_model=OtpIssuedResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"model": ErrorResponse}, 429: {"model": ErrorResponse}},
    summary="Register",
)
async def register(request: RegisterRequest, service: AuthServiceDep) -> OtpIssuedResponse:
    """Create an unverified account and email a registration passcode."""
    result = await service.register(request.username, request.email, request.password)
    return otp_issued("Registration passcode sent", request.email.lower(), result)


@router.post(
    "/user/verify-otp",
    response_model=MessageResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        429: {"model": ErrorResponse},
    },
    summary="Verify registration",
)
async def verify_registration(request: OtpVerifyRequest, service: AuthServiceDep) -> MessageResponse:
    """Confirm the registration passcode."""
    await service.verify_registration(request.email, request.otp)
    return MessageResponse(message="Account verified")


@router.post(
    "/user/resend-otp",
    response_model=OtpIssuedResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        429: {"model": ErrorResponse},
    },
    summary="Resend registration passcode",
)
async def resend_registration_otp(request: EmailRequest, service: AuthServiceDep) -> OtpIssuedResponse:
    """Email a fresh registration passcode."""
    result = await service.resend_registration_otp(request.email)
    return otp_issued("Registration passcode re-sent", request.email.lower(), result)


@router.post(
    "/user/login",
    response_model=TokenResponse,
    responses={401: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
    summary="Log in",
)
async def login(request: LoginRequest, service: AuthServiceDep) -> TokenResponse:
    """Exchange email and password for an access token."""
    token = await service.login(request.email, request.password)
    return token_to_response(token)


@router.get(
    "/user/profile",
    response_model=ProfileResponse,
    responses={401: {"model": ErrorResponse}},
    summary="Get profile",
)
async def get_profile(principal: CurrentUser, service: AuthServiceDep) -> ProfileResponse:
    user = await service.get_profile(principal)
    return user_to_profile(user)


@router.put(
    "/user/profile",
    response_model=ProfileResponse,
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}},
    summary="Update profile",
)
async def update_profile(
    request: ProfileUpdateRequest,
    principal: CurrentUser,
    service: AuthServiceDep,
) -> ProfileResponse:
    """Change username, password, phone or address. Address fields merge."""
    user = await service.update_profile(principal, request.model_dump(exclude_unset=True))
    return user_to_profile(user)


@router.post(
    "/user/password-reset/request",
    response_model=MessageResponse,
    responses={429: {"model": ErrorResponse}},
    summary="Request password reset",
)
async def request_password_reset(request: EmailRequest, service: AuthServiceDep) -> MessageResponse:
    """Email a reset passcode. The response is the same whether or not the account exists."""
    await service.request_password_reset(request.email)
    return MessageResponse(message="If the account exists, a reset passcode has been sent")


@router.post(
    "/user/password-reset/confirm",
    response_model=MessageResponse,
    responses={400: {"model": ErrorResponse}, 429: {"model": ErrorResponse}},
    summary="Confirm password reset",
)
async def confirm_password_reset(
    request: PasswordResetConfirmRequest, service: AuthServiceDep
) -> MessageResponse:
    await service.confirm_password_reset(request.email, request.otp, request.new_password)
    return MessageResponse(message="Password updated")


# ============================================================================
# Admin Endpoints
# ============================================================================


@router.post(
    "/admin/login",
    response_model=OtpIssuedResponse,
    responses={401: {"model": ErrorResponse}, 429: {"model": ErrorResponse}},
    summary="Admin login, step one",
)
async def admin_login(request: LoginRequest, service: AuthServiceDep) -> OtpIssuedResponse:
    """Check admin credentials and email a login passcode."""
    result = await service.admin_login(request.email, request.password)
    return otp_issued("Login passcode sent", request.email.lower(), result)


@router.post(
    "/admin/verify-otp",
    response_model=TokenResponse,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        429: {"model": ErrorResponse},
    },
    summary="Admin login, step two",
)
async def admin_verify_otp(request: OtpVerifyRequest, service: AuthServiceDep) -> TokenResponse:
    token = await service.admin_verify_otp(request.email, request.otp)
    return token_to_response(token)


@router.post(
    "/admin/resend-otp",
    response_model=OtpIssuedResponse,
    responses={401: {"model": ErrorResponse}, 429: {"model": ErrorResponse}},
    summary="Resend admin login passcode",
)
async def admin_resend_otp(request: EmailRequest, service: AuthServiceDep) -> OtpIssuedResponse:
    result = await service.admin_resend_otp(request.email)
    return otp_issued("Login passcode re-sent", request.email.lower(), result)
