import time

import jwt
import pytest
from sqlalchemy import event
from sqlalchemy.exc import IntegrityError
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from biblioteca import models, repositories, schemas, services
from biblioteca.utils.rate_limit import SlidingWindowLimiter


@pytest.fixture
def session():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    SQLModel.metadata.create_all(engine)
    with Session(engine) as s:
        yield s


def _libro_service(session):
    return services.LibroService(
        repositories.LibroRepository(session),
        repositories.AutorRepository(session),
        repositories.LibroCategoriaRepository(session),
        services.CategoriaService(repositories.CategoriaRepository(session)),
    )


def test_merge_patch_touches_only_non_null_fields(session):
    autor = repositories.AutorRepository(session).save(models.Autor(nombre='Ursula K. Le Guin'))
    svc = _libro_service(session)
    created = svc.crear_libro(schemas.LibroCreate(titulo='Earthsea', anioPublicacion=1968, autor=schemas.AutorRef(id=autor.id)))

    updated = svc.actualizar_parcial(created.id, schemas.LibroPatch(anioPublicacion=1969))
    assert updated.id == created.id
    assert updated.titulo == 'Earthsea'
    assert updated.anio_publicacion == 1969
    assert updated.autor.nombre == 'Ursula K. Le Guin'
    assert len(svc.obtener_libros()) == 1


def test_merge_patch_missing_book_returns_none(session):
    svc = _libro_service(session)
    assert svc.actualizar_parcial(1, schemas.LibroPatch(titulo='x')) is None
    assert svc.obtener_libros() == []


def test_create_rejects_missing_category(session):
    svc = _libro_service(session)
    with pytest.raises(ValueError):
        svc.crear_libro(schemas.LibroCreate(titulo='x', categorias=[7]))
    assert svc.obtener_libros() == []


def test_out_dto_serializes_camel_case(session):
    svc = _libro_service(session)
    out = svc.crear_libro(schemas.LibroCreate(titulo='Dune', anioPublicacion=1965))
    assert out.model_dump(by_alias=True)['anioPublicacion'] == 1965


def test_authenticate_and_ensure_admin(session):
    auth = services.AuthService(repositories.UsuarioRepository(session))
    user = auth.register('carla', 'secret')
    assert user.password_hash != 'secret'
    assert auth.authenticate('carla', 'secret').id == user.id
    assert auth.authenticate('carla', 'nope') is None

    admin = auth.ensure_admin('root', 'toor')
    assert admin.role == models.ROLE_ADMIN
    assert auth.ensure_admin('root', 'ignored').id == admin.id


def test_jwt_roundtrip_and_tamper():
    svc = services.JwtService('a-test-secret-that-is-long-enough-for-hs256')
    user = models.Usuario(id=5, username='dora', password_hash='', role='USER')
    claims = svc.decode(svc.issue(user))
    assert claims['sub'] == '5'
    assert claims['role'] == 'USER'
    with pytest.raises(jwt.InvalidTokenError):
        svc.decode(svc.issue(user) + 'x')


def test_sliding_window_limiter():
    limiter = SlidingWindowLimiter(max_requests=2, window_seconds=1)
    assert limiter.allow('k') == (True, 0)
    assert limiter.allow('k') == (True, 0)
    allowed, retry_after = limiter.allow('k')
    assert not allowed and retry_after >= 1
    assert limiter.allow('other')[0]
    time.sleep(1.05)
    assert limiter.allow('k')[0]


def test_limiter_evicts_idle_clients():
    limiter = SlidingWindowLimiter(max_requests=1, window_seconds=1)
    assert limiter.allow('10.0.0.1')[0]
    time.sleep(1.05)
    assert limiter.allow('10.0.0.2')[0]
    assert '10.0.0.1' not in limiter._hits
    assert '10.0.0.2' in limiter._hits


@pytest.fixture
def fk_session():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)

    @event.listens_for(engine, "connect")
    def _fk_on(dbapi_connection, _record):
        dbapi_connection.execute("PRAGMA foreign_keys=ON")

    SQLModel.metadata.create_all(engine)
    with Session(engine) as s:
        yield s


def test_failed_category_link_rolls_back_book(fk_session):
    repo = repositories.LibroRepository(fk_session)
    with pytest.raises(IntegrityError):
        repo.create(models.Libro(titulo='Huerfano'), [404])
    assert repo.find_all() == []
