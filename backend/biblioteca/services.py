"""Business logic services used by HTTP controllers.

Services are thin: they validate references, execute the little domain
logic there is (the merge-patch in `LibroService.actualizar_parcial`)
and persist through repositories. They receive their collaborators
through the constructor; wiring happens in `biblioteca.main`.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import jwt
from passlib.context import CryptContext

from . import models, repositories, schemas

PWD_CTX = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

logger = logging.getLogger("biblioteca.services")


class JwtService:
    """Issue and verify signed bearer tokens."""
    def __init__(self, secret: str, algorithm: str = "HS256", expire_minutes: int = 60):
        self.secret = secret
        self.algorithm = algorithm
        self.expire_minutes = expire_minutes

    def issue(self, usuario: models.Usuario) -> str:
        """Return a signed token identifying `usuario`.

        Claims: `sub` (user id as a string), `username`, `role`, `iat`, `exp`.
        """
        now = datetime.now(timezone.utc)
        payload = {
            "sub": str(usuario.id),
            "username": usuario.username,
            "role": usuario.role,
            "iat": now,
            "exp": now + timedelta(minutes=self.expire_minutes),
        }
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def decode(self, token: str) -> dict:
        """Verify signature and expiry and return the claims.

        Raises `jwt.InvalidTokenError` (or a subclass such as
        `jwt.ExpiredSignatureError`) when the token is not acceptable.
        """
        return jwt.decode(token, self.secret, algorithms=[self.algorithm], options={"require": ["sub", "exp"]})


class AuthService:
    """Authentication related operations (register + authenticate)."""
    def __init__(self, usuario_repo: repositories.UsuarioRepository):
        self.usuario_repo = usuario_repo

    def register(self, username: str, password: str, role: str = models.ROLE_USER) -> models.Usuario:
        """Create a new user with a hashed password.

        Returns the persisted `Usuario` instance.
        """
        hashed = PWD_CTX.hash(password)
        u = models.Usuario(username=username, password_hash=hashed, role=role)
        return self.usuario_repo.create(u)

    def authenticate(self, username: str, password: str) -> Optional[models.Usuario]:
        """Verify credentials and return the matching user.

        Returns `None` if the username is unknown or the password is wrong.
        """
        user = self.usuario_repo.get_by_username(username)
        if not user:
            return None
        if not PWD_CTX.verify(password, user.password_hash):
            return None
        return user

    def ensure_admin(self, username: str, password: str) -> models.Usuario:
        """Create the bootstrap ADMIN account unless the username is taken."""
        existing = self.usuario_repo.get_by_username(username)
        if existing:
            return existing
        logger.info("creating bootstrap admin account %s", username)
        return self.register(username, password, role=models.ROLE_ADMIN)


class CategoriaService:
    def __init__(self, categoria_repo: repositories.CategoriaRepository):
        self.categoria_repo = categoria_repo

    def validar_existencia_categoria(self, categoria_id: int) -> bool:
        """Return True if the category exists."""
        return self.categoria_repo.exists_by_id(categoria_id)

    def crear_categoria(self, dto: schemas.CategoriaIn) -> models.Categoria:
        return self.categoria_repo.save(models.Categoria(nombre=dto.nombre))

    def obtener_categorias(self) -> List[models.Categoria]:
        return self.categoria_repo.find_all()


class AutorService:
    def __init__(self, autor_repo: repositories.AutorRepository):
        self.autor_repo = autor_repo

    def crear_autor(self, dto: schemas.AutorIn) -> models.Autor:
        return self.autor_repo.save(models.Autor(nombre=dto.nombre))

    def obtener_autores(self) -> List[models.Autor]:
        return self.autor_repo.find_all()


class LibroService:
    """Create, list and partially update books."""
    def __init__(
        self,
        libro_repo: repositories.LibroRepository,
        autor_repo: repositories.AutorRepository,
        libro_categoria_repo: repositories.LibroCategoriaRepository,
        categoria_service: CategoriaService,
    ):
        self.libro_repo = libro_repo
        self.autor_repo = autor_repo
        self.libro_categoria_repo = libro_categoria_repo
        self.categoria_service = categoria_service

    def crear_libro(self, dto: schemas.LibroCreate) -> schemas.LibroOut:
        """Persist a new book and link it to the requested categories.

        Raises `ValueError` when the author or any category does not
        exist; nothing is stored in that case.
        """
        autor_id = self._resolve_autor(dto.autor)
        # keep first occurrence order, drop repeats
        categoria_ids = list(dict.fromkeys(dto.categorias))
        missing = [cid for cid in categoria_ids if not self.categoria_service.validar_existencia_categoria(cid)]
        if missing:
            raise ValueError(f"categoria not found: {', '.join(str(cid) for cid in missing)}")
        libro = self.libro_repo.create(
            models.Libro(titulo=dto.titulo, anio_publicacion=dto.anio_publicacion, autor_id=autor_id),
            categoria_ids,
        )
        logger.info("libro created id=%s categorias=%s", libro.id, categoria_ids)
        return self._to_out(libro)

    def obtener_libros(self) -> List[schemas.LibroOut]:
        return [self._to_out(libro) for libro in self.libro_repo.find_all()]

    def actualizar_parcial(self, libro_id: int, patch: schemas.LibroPatch) -> Optional[schemas.LibroOut]:
        """Merge the non-null fields of `patch` into book `libro_id`.

        Returns `None` when the book does not exist. `titulo`,
        `anio_publicacion` and `autor` are each overwritten only when the
        incoming value is not null; the id is never touched.
        """
        libro = self.libro_repo.find_by_id(libro_id)
        if libro is None:
            return None
        # resolve before mutating so a bad reference leaves the row as it was
        autor_id = self._resolve_autor(patch.autor) if patch.autor is not None else None
        if patch.titulo is not None:
            libro.titulo = patch.titulo
        if patch.anio_publicacion is not None:
            libro.anio_publicacion = patch.anio_publicacion
        if autor_id is not None:
            libro.autor_id = autor_id
        libro = self.libro_repo.save(libro)
        logger.info("libro updated id=%s", libro.id)
        return self._to_out(libro)

    def _resolve_autor(self, ref: Optional[schemas.AutorRef]) -> Optional[int]:
        if ref is None:
            return None
        if not self.autor_repo.exists_by_id(ref.id):
            raise ValueError(f"autor not found: {ref.id}")
        return ref.id

    def _to_out(self, libro: models.Libro) -> schemas.LibroOut:
        autor = self.autor_repo.get(libro.autor_id) if libro.autor_id is not None else None
        return schemas.LibroOut(
            id=libro.id,
            titulo=libro.titulo,
            anio_publicacion=libro.anio_publicacion,
            autor=schemas.AutorOut(id=autor.id, nombre=autor.nombre) if autor else None,
            categorias=self.libro_categoria_repo.categoria_ids_for_libro(libro.id),
        )
