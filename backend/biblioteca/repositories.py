"""Repository classes encapsulating database operations.

Each repository is small and focused on a single table (users, books,
authors, categories and the book/category link). Repositories return
SQLModel objects and perform commits/refreshes where appropriate.
"""

from typing import Iterable, List, Optional
from sqlmodel import Session, select
from . import models

# Largest value a SQLite INTEGER primary key can hold.
MAX_ID = 2**63 - 1


def storable_id(value: int) -> bool:
    """Return True if `value` fits an integer primary key column.

    Ids outside that range cannot name a stored row, and passing them to
    the driver raises `OverflowError`, so lookups treat them as missing.
    """
    return -MAX_ID - 1 <= value <= MAX_ID


class UsuarioRepository:
    """CRUD operations for `Usuario` objects."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, usuario: models.Usuario) -> models.Usuario:
        """Persist a new user and return the managed instance."""
        self.session.add(usuario)
        self.session.commit()
        self.session.refresh(usuario)
        return usuario

    def get_by_username(self, username: str) -> Optional[models.Usuario]:
        """Return a `Usuario` by username or `None` if not found."""
        stmt = select(models.Usuario).where(models.Usuario.username == username)
        return self.session.exec(stmt).first()

    def get(self, usuario_id: int) -> Optional[models.Usuario]:
        if not storable_id(usuario_id):
            return None
        return self.session.get(models.Usuario, usuario_id)


class LibroRepository:
    """Save/find operations for `Libro` rows."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, libro: models.Libro, categoria_ids: Iterable[int] = ()) -> models.Libro:
        """Insert `libro` and its category links in a single commit.

        The book row is flushed first to obtain its id; a failure on any
        link row rolls back the book as well.
        """
        self.session.add(libro)
        try:
            self.session.flush()
            for cid in categoria_ids:
                self.session.add(models.LibroCategoria(libro_id=libro.id, categoria_id=cid))
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        self.session.refresh(libro)
        return libro

    def save(self, libro: models.Libro) -> models.Libro:
        """Insert or update `libro` and return the refreshed instance.

        A transient instance gets a generated id; a managed one keeps its id.
        """
        self.session.add(libro)
        self.session.commit()
        self.session.refresh(libro)
        return libro

    def find_all(self) -> List[models.Libro]:
        """Return every book in primary key order."""
        stmt = select(models.Libro).order_by(models.Libro.id)
        return self.session.exec(stmt).all()

    def find_by_id(self, libro_id: int) -> Optional[models.Libro]:
        if not storable_id(libro_id):
            return None
        return self.session.get(models.Libro, libro_id)


class AutorRepository:
    def __init__(self, session: Session):
        self.session = session

    def save(self, autor: models.Autor) -> models.Autor:
        self.session.add(autor)
        self.session.commit()
        self.session.refresh(autor)
        return autor

    def find_all(self) -> List[models.Autor]:
        return self.session.exec(select(models.Autor).order_by(models.Autor.id)).all()

    def get(self, autor_id: int) -> Optional[models.Autor]:
        if not storable_id(autor_id):
            return None
        return self.session.get(models.Autor, autor_id)

    def exists_by_id(self, autor_id: int) -> bool:
        if not storable_id(autor_id):
            return False
        stmt = select(models.Autor.id).where(models.Autor.id == autor_id)
        return self.session.exec(stmt).first() is not None


class CategoriaRepository:
    def __init__(self, session: Session):
        self.session = session

    def save(self, categoria: models.Categoria) -> models.Categoria:
        self.session.add(categoria)
        self.session.commit()
        self.session.refresh(categoria)
        return categoria

    def find_all(self) -> List[models.Categoria]:
        return self.session.exec(select(models.Categoria).order_by(models.Categoria.id)).all()

    def exists_by_id(self, categoria_id: int) -> bool:
        """Return True if a category with `categoria_id` is stored."""
        if not storable_id(categoria_id):
            return False
        stmt = select(models.Categoria.id).where(models.Categoria.id == categoria_id)
        return self.session.exec(stmt).first() is not None


class LibroCategoriaRepository:
    """Read the book/category link table."""
    def __init__(self, session: Session):
        self.session = session

    def categoria_ids_for_libro(self, libro_id: int) -> List[int]:
        """List category ids linked to `libro_id`, in link insertion order."""
        stmt = (
            select(models.LibroCategoria.categoria_id)
            .where(models.LibroCategoria.libro_id == libro_id)
            .order_by(models.LibroCategoria.id)
        )
        return list(self.session.exec(stmt).all())
