"""Account endpoints: registration, login and the caller's profile."""

from litestar import Router, delete, get, patch, post
from litestar.status_codes import HTTP_200_OK, HTTP_201_CREATED, HTTP_204_NO_CONTENT

from oura_health_server.api.dependencies import user_dependencies
from oura_health_server.core.auth import jwt_guard
from oura_health_server.schemas.users import (
    LoginRequest,
    LoginResponse,
    ProfileUpdate,
    RegisterRequest,
    UserResponse,
)
from oura_health_server.services.users import UserService


@post("/api/register", status_code=HTTP_201_CREATED)
async def register(data: RegisterRequest, user_service: UserService) -> UserResponse:
    """Create an account.

    Returns:
        The new user's public profile
    """
    return await user_service.register(data.username, data.email, data.password)


@post("/api/login", status_code=HTTP_200_OK)
async def login(data: LoginRequest, user_service: UserService) -> LoginResponse:
    """Exchange username and password for a JWT."""
    token = await user_service.login(data.username, data.password)
    return LoginResponse(token=token)


@get("/api/v1/me", status_code=HTTP_200_OK, guards=[jwt_guard])
async def get_me(current_user_id: str, user_service: UserService) -> UserResponse:
    """Return the authenticated user's profile."""
    return await user_service.get_profile(current_user_id)


@patch("/api/v1/me", status_code=HTTP_200_OK, guards=[jwt_guard])
async def update_me(
    data: ProfileUpdate, current_user_id: str, user_service: UserService
) -> UserResponse:
    """Update the authenticated user's email and/or password."""
    return await user_service.update_profile(current_user_id, data)


@delete("/api/v1/me", status_code=HTTP_204_NO_CONTENT, guards=[jwt_guard])
async def delete_me(current_user_id: str, user_service: UserService) -> None:
    """Delete the authenticated user's account along with their tokens and metrics."""
    await user_service.delete_account(current_user_id)


auth_router = Router(
    path="/",
    route_handlers=[register, login, get_me, update_me, delete_me],
    dependencies=user_dependencies,
    tags=["auth"],
)
