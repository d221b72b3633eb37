"""
api/routes/v1/auth.py -- Authentication REST endpoints.

Routes:
  POST /api/v1/auth/login   -- password login; returns a bearer token
  POST /api/v1/auth/logout  -- revokes the presented bearer token
  GET  /api/v1/auth/verify  -- resolves the bearer token to a user profile

Security:
  [H2] POST /login is rate-limited to 10 requests/minute per IP. The limiter
       wraps the endpoint below @router, so FastAPI registers the wrapper and
       every call is counted. Annotations in this module are evaluated eagerly
       (no postponed annotations): FastAPI reads them through the wrapper.
  [C1] AuthService.login() provides timing equalization -- use it, never inline
       find_by_username() + verify_password().
  [M5] Cache-Control: no-store on every login response, success or failure.
  Logout only requires a well-formed Bearer header, not a valid token, so a
  second logout of the same token succeeds instead of returning 401. An
  invalid or expired token is accepted as a no-op and nothing is stored.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.errors import error_response
from api.limiter import LOGIN_LIMIT, limiter
from api.models import LoginRequest, LoginResponse, MessageResponse, UserProfile
from auth.dependencies import get_bearer_token, get_current_user
from auth.models import User
from auth.service import AuthService
from core.errors import InvalidCredentials

# Auth policy:
# - POST /api/v1/auth/login:   public -- login endpoint must be unauthenticated
# - POST /api/v1/auth/logout:  well-formed Bearer header (get_bearer_token)
# - GET  /api/v1/auth/verify:  requires auth (get_current_user)
router = APIRouter()


@router.post("/auth/login", response_model=LoginResponse)
@limiter.limit(LOGIN_LIMIT)  # [H2]
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with username and password; return a bearer token.

    Unknown username and wrong password produce the same 401 body.
    """
    auth_service: AuthService = request.app.state.auth_service
    try:
        token = auth_service.login(body.username, body.password)
    except InvalidCredentials as exc:
        resp = error_response(exc)
        resp.headers["Cache-Control"] = "no-store"  # [M5]
        return resp

    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            token=token,
            token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
            expires_in=auth_service.tokens.expire_seconds,
        ).model_dump(),
    )
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


@router.post("/auth/logout", response_model=MessageResponse)
def logout(request: Request, token: str = Depends(get_bearer_token)) -> MessageResponse:
    """Revoke the presented token. Repeating the call is harmless."""
    auth_service: AuthService = request.app.state.auth_service
    auth_service.logout(token)
    return MessageResponse(message="Logged out.")


@router.get("/auth/verify", response_model=UserProfile)
def verify(current_user: User = Depends(get_current_user)) -> UserProfile:
    """Return the identity behind the bearer token, without sensitive fields."""
    return UserProfile.from_user(current_user)
