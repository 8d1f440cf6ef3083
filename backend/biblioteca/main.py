"""FastAPI application entrypoint and HTTP controllers.

Controllers are thin: they accept requests, delegate to services and
return JSON responses. `create_app` wires everything explicitly at
process start: logging, tables, the bootstrap admin, the JWT filter,
request logging and CORS.

Endpoints implemented:
- POST /auth/register, POST /auth/login (also under /micro/auth)
- POST /libro/crear
- GET /libro/consultar
- PATCH /libro/actualizar/{id}
- POST /autor/crear, GET /autor/consultar
- POST /categoria/crear, GET /categoria/consultar, GET /categoria/existe/{id}
"""

import json
import logging
import time
import uuid
from typing import List

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, Response
from sqlmodel import Session

from . import models, repositories, services
from .config import Settings, settings as default_settings
from .database import create_db_and_tables, engine, get_session
from .schemas import (
    AutorIn, AutorOut, CategoriaExisteOut, CategoriaIn, CategoriaOut,
    LibroCreate, LibroOut, LibroPatch, RegisterIn, TokenOut, UsuarioOut,
)
from .security import AuthContext, install_cors, jwt_filter, require_roles
from .utils.rate_limit import SlidingWindowLimiter

logger = logging.getLogger("biblioteca.api")

ANY_ROLE = (models.ROLE_USER, models.ROLE_ADMIN)


# -- providers: explicit constructor composition per request --

def get_jwt_service(request: Request) -> services.JwtService:
    return request.app.state.jwt_service


def get_auth_service(db: Session = Depends(get_session)) -> services.AuthService:
    return services.AuthService(repositories.UsuarioRepository(db))


def get_categoria_service(db: Session = Depends(get_session)) -> services.CategoriaService:
    return services.CategoriaService(repositories.CategoriaRepository(db))


def get_autor_service(db: Session = Depends(get_session)) -> services.AutorService:
    return services.AutorService(repositories.AutorRepository(db))


def get_libro_service(
    db: Session = Depends(get_session),
    categoria_service: services.CategoriaService = Depends(get_categoria_service),
) -> services.LibroService:
    return services.LibroService(
        repositories.LibroRepository(db),
        repositories.AutorRepository(db),
        repositories.LibroCategoriaRepository(db),
        categoria_service,
    )


def enforce_login_rate_limit(request: Request) -> None:
    # one budget per client shared by /auth/login and /micro/auth/login
    limiter: SlidingWindowLimiter = request.app.state.login_limiter
    key = f"login:{request.client.host if request.client else 'unknown'}"
    allowed, retry_after = limiter.allow(key)
    if not allowed:
        logger.warning("login throttled key=%s retry_after=%s", key, retry_after)
        raise HTTPException(
            status_code=429,
            detail=f"too many login attempts; retry after {retry_after}s",
            headers={"Retry-After": str(retry_after)},
        )


# -- auth (mounted under /auth and /micro/auth) --

auth_router = APIRouter(tags=["auth"])


@auth_router.post('/register', response_model=UsuarioOut)
def register(payload: RegisterIn, auth: services.AuthService = Depends(get_auth_service)):
    """Register a new user with role USER (idempotent).

    Returns the existing user unchanged if the username is taken, which
    keeps automation and tests simple.
    """
    existing = auth.usuario_repo.get_by_username(payload.username)
    if existing:
        return UsuarioOut(id=existing.id, username=existing.username, role=existing.role)
    user = auth.register(payload.username, payload.password)
    return UsuarioOut(id=user.id, username=user.username, role=user.role)


@auth_router.post('/login', response_model=TokenOut, dependencies=[Depends(enforce_login_rate_limit)])
def login(
    payload: RegisterIn,
    response: Response,
    auth: services.AuthService = Depends(get_auth_service),
    jwt_service: services.JwtService = Depends(get_jwt_service),
):
    """Authenticate a user and return a signed JWT.

    The token is returned in the body and in the `Authorization`
    response header, which CORS exposes to browser clients.
    """
    user = auth.authenticate(payload.username, payload.password)
    if not user:
        logger.warning("failed login for username=%s", payload.username)
        raise HTTPException(status_code=401, detail='invalid credentials')
    token = jwt_service.issue(user)
    response.headers["Authorization"] = f"Bearer {token}"
    return TokenOut(access_token=token)


# -- books --

libro_router = APIRouter(prefix="/libro", tags=["libro"])


@libro_router.post('/crear', response_model=LibroOut)
def crear_libro(
    payload: LibroCreate,
    svc: services.LibroService = Depends(get_libro_service),
    ctx: AuthContext = Depends(require_roles(*ANY_ROLE)),
):
    """Create a book, optionally linked to an author and categories."""
    try:
        libro = svc.crear_libro(payload)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    logger.info("libro %s created by %s", libro.id, ctx.username)
    return libro


@libro_router.get('/consultar', response_model=List[LibroOut])
def consultar_libros(
    svc: services.LibroService = Depends(get_libro_service),
    ctx: AuthContext = Depends(require_roles(*ANY_ROLE)),
):
    return svc.obtener_libros()


@libro_router.patch('/actualizar/{libro_id}', response_model=LibroOut)
def actualizar_libro_parcial(
    libro_id: int,
    payload: LibroPatch,
    svc: services.LibroService = Depends(get_libro_service),
    ctx: AuthContext = Depends(require_roles(*ANY_ROLE)),
):
    """Apply a merge-patch to a book.

    Only non-null fields of the body are written. Responds 404 with an
    empty body when the book does not exist.
    """
    try:
        libro = svc.actualizar_parcial(libro_id, payload)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if libro is None:
        return Response(status_code=404)
    logger.info("libro %s updated by %s", libro.id, ctx.username)
    return libro


# -- authors and categories --

autor_router = APIRouter(prefix="/autor", tags=["autor"])


@autor_router.post('/crear', response_model=AutorOut)
def crear_autor(
    payload: AutorIn,
    svc: services.AutorService = Depends(get_autor_service),
    ctx: AuthContext = Depends(require_roles(models.ROLE_ADMIN)),
):
    autor = svc.crear_autor(payload)
    return AutorOut(id=autor.id, nombre=autor.nombre)


@autor_router.get('/consultar', response_model=List[AutorOut])
def consultar_autores(
    svc: services.AutorService = Depends(get_autor_service),
    ctx: AuthContext = Depends(require_roles(*ANY_ROLE)),
):
    return [AutorOut(id=a.id, nombre=a.nombre) for a in svc.obtener_autores()]


categoria_router = APIRouter(prefix="/categoria", tags=["categoria"])


@categoria_router.post('/crear', response_model=CategoriaOut)
def crear_categoria(
    payload: CategoriaIn,
    svc: services.CategoriaService = Depends(get_categoria_service),
    ctx: AuthContext = Depends(require_roles(models.ROLE_ADMIN)),
):
    categoria = svc.crear_categoria(payload)
    return CategoriaOut(id=categoria.id, nombre=categoria.nombre)


@categoria_router.get('/consultar', response_model=List[CategoriaOut])
def consultar_categorias(
    svc: services.CategoriaService = Depends(get_categoria_service),
    ctx: AuthContext = Depends(require_roles(*ANY_ROLE)),
):
    return [CategoriaOut(id=c.id, nombre=c.nombre) for c in svc.obtener_categorias()]


@categoria_router.get('/existe/{categoria_id}', response_model=CategoriaExisteOut)
def existe_categoria(
    categoria_id: int,
    svc: services.CategoriaService = Depends(get_categoria_service),
    ctx: AuthContext = Depends(require_roles(*ANY_ROLE)),
):
    return CategoriaExisteOut(id=categoria_id, existe=svc.validar_existencia_categoria(categoria_id))


# -- application factory --

async def request_context_middleware(request: Request, call_next):
    req_id = request.headers.get("X-Request-ID", uuid.uuid4().hex)
    request.state.request_id = req_id
    started = time.perf_counter()
    info = {
        "request_id": req_id,
        "method": request.method,
        "path": request.url.path,
        "client": request.client.host if request.client else "unknown",
    }
    try:
        response = await call_next(request)
    except Exception:
        info["duration_ms"] = round((time.perf_counter() - started) * 1000.0, 2)
        logger.exception("request_failed %s", json.dumps(info, ensure_ascii=True))
        raise
    response.headers["X-Request-ID"] = req_id
    info["status_code"] = response.status_code
    info["duration_ms"] = round((time.perf_counter() - started) * 1000.0, 2)
    logger.info("request_done %s", json.dumps(info, ensure_ascii=True))
    return response


def create_app(settings: Settings = default_settings) -> FastAPI:
    """Build the application with all collaborators wired explicitly."""
    if not logging.getLogger().handlers:
        logging.basicConfig(level=settings.LOG_LEVEL)

    create_db_and_tables()
    if settings.ADMIN_USERNAME:
        with Session(engine) as session:
            services.AuthService(repositories.UsuarioRepository(session)).ensure_admin(
                settings.ADMIN_USERNAME, settings.ADMIN_PASSWORD
            )

    app = FastAPI(title="Biblioteca API")
    app.state.settings = settings
    app.state.jwt_service = services.JwtService(
        settings.JWT_SECRET, settings.JWT_ALGORITHM, settings.JWT_EXPIRE_MINUTES
    )
    app.state.login_limiter = SlidingWindowLimiter(
        settings.LOGIN_RATE_LIMIT_PER_MIN, settings.LOGIN_RATE_LIMIT_WINDOW_SECONDS
    )

    app.include_router(auth_router, prefix="/auth")
    app.include_router(auth_router, prefix="/micro/auth", include_in_schema=False)
    app.include_router(libro_router)
    app.include_router(autor_router)
    app.include_router(categoria_router)

    # Later middleware wraps earlier middleware: CORS outermost, then
    # request logging, then the JWT filter closest to the routes.
    app.middleware("http")(jwt_filter(app.state.jwt_service, lambda: Session(engine)))
    app.middleware("http")(request_context_middleware)
    install_cors(app, settings)
    return app


app = create_app()
