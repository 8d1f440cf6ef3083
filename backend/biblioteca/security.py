"""Security wiring: CORS policy, JWT filter and role checks.

The request pipeline is, from the outside in:

1. `CORSMiddleware` answers pre-flight requests and decorates responses
   for the allowed origins.
2. The JWT filter (`jwt_filter`) reads the bearer token through
   `bearer_scheme`, and when it is valid for a registered user stores
   an `AuthContext` on `request.state.auth`. A bad token only leaves
   the request anonymous. The same filter then makes the authorization
   decision: anonymous requests to anything outside `PUBLIC_PATHS` get
   a 401.
3. Route handlers receive the `AuthContext` explicitly through
   `get_auth_context` / `require_roles` dependencies.

No server-side session is ever created; each request carries its token.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

import jwt
from fastapi import Depends, FastAPI, HTTPException, Request, Security, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlmodel import Session
from starlette.concurrency import run_in_threadpool

from . import repositories
from .config import Settings
from .services import JwtService

logger = logging.getLogger("biblioteca.security")

PUBLIC_PATHS = frozenset({
    "/auth/login",
    "/auth/register",
    "/micro/auth/login",
    "/micro/auth/register",
})

CORS_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]
CORS_HEADERS = ["Authorization", "Content-Type", "Accept"]
CORS_EXPOSED_HEADERS = ["Authorization"]

# auto_error=False: the filter decides what an anonymous request may reach
bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class AuthContext:
    """Authenticated principal for the current request."""
    usuario_id: int
    username: str
    role: str


def install_cors(app: FastAPI, settings: Settings) -> None:
    """Register the CORS policy. Must be the last middleware added so it runs first."""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=CORS_METHODS,
        allow_headers=CORS_HEADERS,
        expose_headers=CORS_EXPOSED_HEADERS,
        max_age=settings.CORS_MAX_AGE,
    )


def resolve_principal(jwt_service: JwtService, session_factory: Callable[[], Session], token: str) -> Optional[AuthContext]:
    """Decode `token` and load the user it names.

    Returns `None` for an invalid or expired token, or when the user no
    longer exists. The role comes from the database, not from the token.
    """
    try:
        claims = jwt_service.decode(token)
        usuario_id = int(claims["sub"])
    except jwt.ExpiredSignatureError:
        logger.warning("rejected token: expired")
        return None
    except (jwt.InvalidTokenError, KeyError, ValueError) as exc:
        logger.warning("rejected token: %s", exc)
        return None
    with session_factory() as session:
        usuario = repositories.UsuarioRepository(session).get(usuario_id)
        if usuario is None:
            logger.warning("rejected token: unknown user id %s", usuario_id)
            return None
        return AuthContext(usuario_id=usuario.id, username=usuario.username, role=usuario.role)


def jwt_filter(jwt_service: JwtService, session_factory: Callable[[], Session], public_paths: Iterable[str] = PUBLIC_PATHS):
    """Build the HTTP middleware that authenticates and gates each request."""
    public = frozenset(public_paths)

    async def middleware(request: Request, call_next):
        request.state.auth = None
        creds = await bearer_scheme(request)
        if creds is not None and creds.credentials:
            request.state.auth = await run_in_threadpool(resolve_principal, jwt_service, session_factory, creds.credentials)
        if request.state.auth is None and request.url.path not in public:
            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={"detail": "Not authenticated"},
                headers={"WWW-Authenticate": "Bearer"},
            )
        return await call_next(request)

    return middleware


def get_auth_context(
    request: Request,
    _credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
) -> AuthContext:
    """FastAPI dependency returning the principal set by the JWT filter.

    Depending on `bearer_scheme` also advertises the bearer scheme in the
    OpenAPI document of every protected route.
    """
    ctx = getattr(request.state, "auth", None)
    if ctx is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return ctx


def require_roles(*roles: str):
    """Capability check: dependency that allows only principals holding one of `roles`."""
    allowed = frozenset(roles)

    def check(ctx: AuthContext = Depends(get_auth_context)) -> AuthContext:
        if ctx.role not in allowed:
            logger.warning("forbidden: user=%s role=%s needs one of %s", ctx.username, ctx.role, sorted(allowed))
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="forbidden")
        return ctx

    return check
