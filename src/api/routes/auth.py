"""Authentication API routes."""

from fastapi import APIRouter

from src.api.deps import CurrentUser
from src.schemas.auth import LoginRequest, LoginResponse, MeResponse
from src.services.auth_service import AuthService

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post(
    "/login",
    response_model=LoginResponse,
    summary="Login",
    description="Sign in with email and password. Guest orders placed with the same email are linked to the account.",
)
async def login(data: LoginRequest) -> LoginResponse:
    """Authenticate with email and password.

    Args:
        data: Login credentials.

    Returns:
        LoginResponse: Tokens, user info and the number of linked guest orders.

    Raises:
        AuthenticationError: 401 if the credentials are rejected.
    """
    service = AuthService()
    result = await service.login(email=data.email, password=data.password)
    return LoginResponse(**result)


@router.get(
    "/me",
    response_model=MeResponse,
    summary="Current identity",
    description="Return the authenticated user's id, email and application role.",
)
async def me(user: CurrentUser) -> MeResponse:
    return MeResponse(user_id=str(user.user_id), email=user.email, role=user.role)
