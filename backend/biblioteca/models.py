"""SQLModel data models.

Each class maps to a table. `LibroCategoria` is the link table between
books and categories; it carries its own surrogate id.
"""

from typing import Optional
from sqlmodel import SQLModel, Field
from datetime import datetime, timezone

ROLE_USER = "USER"
ROLE_ADMIN = "ADMIN"


class Usuario(SQLModel, table=True):
    """A registered account.

    Fields:
    - `username`: unique login name
    - `password_hash`: hashed password string (never store plaintext)
    - `role`: `USER` or `ADMIN`
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    username: str = Field(index=True, nullable=False, unique=True)
    password_hash: str
    role: str = Field(default=ROLE_USER)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class Autor(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    nombre: str


class Categoria(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    nombre: str = Field(index=True)


class Libro(SQLModel, table=True):
    """A catalog entry.

    Every descriptive field is nullable so that partial updates can be
    expressed by leaving fields unset.
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    titulo: Optional[str] = None
    anio_publicacion: Optional[int] = None
    autor_id: Optional[int] = Field(default=None, foreign_key='autor.id')


class LibroCategoria(SQLModel, table=True):
    """Association between a `Libro` and a `Categoria`."""
    id: Optional[int] = Field(default=None, primary_key=True)
    libro_id: int = Field(foreign_key='libro.id', index=True)
    categoria_id: int = Field(foreign_key='categoria.id', index=True)
