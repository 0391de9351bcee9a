"""Oura OAuth endpoints.

Flow:
1. Authenticated client calls GET /api/oauth/authorize and is redirected to Oura
2. Oura redirects back to GET /api/callback?code=...&state=<user id>
3. The code is exchanged, tokens are stored and the browser lands on /oauth/success
"""

from litestar import Router, delete, get, post
from litestar.params import Parameter
from litestar.response import Redirect
from litestar.status_codes import HTTP_200_OK, HTTP_204_NO_CONTENT, HTTP_303_SEE_OTHER

from oura_health_server.api.dependencies import oauth_dependencies
from oura_health_server.core.auth import jwt_guard
from oura_health_server.core.errors import BadRequestError
from oura_health_server.services.oauth import OAuthService

SUCCESS_PATH = "/oauth/success"


@get("/api/oauth/authorize", status_code=HTTP_303_SEE_OTHER, guards=[jwt_guard])
async def authorize(current_user_id: str, oauth_service: OAuthService) -> Redirect:
    """Redirect the caller to Oura's consent page."""
    auth_url = oauth_service.generate_auth_url(current_user_id)
    return Redirect(path=auth_url, status_code=HTTP_303_SEE_OTHER)


@get("/api/callback", status_code=HTTP_303_SEE_OTHER)
async def oauth_callback(
    oauth_service: OAuthService,
    code: str | None = None,
    oauth_state: str | None = Parameter(default=None, query="state"),
    error: str | None = None,
) -> Redirect:
    """Handle the redirect back from Oura.

    Query Parameters:
        code: Authorization code
        state: User id passed to the authorize step
        error: Set by Oura when the user denied access
    """
    if error:
        raise BadRequestError("authorization was denied by the provider", {"error": error})

    await oauth_service.handle_callback(code or "", oauth_state or "")
    return Redirect(path=SUCCESS_PATH, status_code=HTTP_303_SEE_OTHER)


@get(SUCCESS_PATH, status_code=HTTP_200_OK, sync_to_thread=False)
def oauth_success() -> dict[str, str]:
    """Landing page after a successful authorization."""
    return {"status": "connected", "message": "Oura account connected successfully"}


@post("/api/v1/oauth/refresh", status_code=HTTP_200_OK, guards=[jwt_guard])
async def refresh_token(current_user_id: str, oauth_service: OAuthService) -> dict[str, str]:
    """Refresh the caller's Oura token if it has expired."""
    await oauth_service.refresh_access_token(current_user_id)
    return {"status": "success"}


@delete("/api/v1/oauth/token", status_code=HTTP_204_NO_CONTENT, guards=[jwt_guard])
async def revoke_token(current_user_id: str, oauth_service: OAuthService) -> None:
    """Disconnect the caller's Oura account."""
    await oauth_service.revoke_token(current_user_id)


oauth_router = Router(
    path="/",
    route_handlers=[authorize, oauth_callback, refresh_token, revoke_token],
    dependencies=oauth_dependencies,
    tags=["oauth"],
)

# Kept apart so the landing page works without Oura credentials
oauth_success_router = Router(path="/", route_handlers=[oauth_success], tags=["oauth"])
