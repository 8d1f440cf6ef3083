"""Pydantic request/response schemas used by the API.

Schemas keep API input/output shapes stable. Book payloads use the
camelCase field name `anioPublicacion` on the wire; Python code reads
and writes `anio_publicacion`.
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional


class RegisterIn(BaseModel):
    """Payload for user registration/login endpoints."""
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)


class TokenOut(BaseModel):
    """Authentication response containing an access token."""
    access_token: str
    token_type: str = "bearer"


class UsuarioOut(BaseModel):
    id: int
    username: str
    role: str


class AutorRef(BaseModel):
    """Reference to an existing author by id."""
    id: int


class AutorIn(BaseModel):
    nombre: str = Field(min_length=1)


class AutorOut(BaseModel):
    id: int
    nombre: str


class CategoriaIn(BaseModel):
    nombre: str = Field(min_length=1)


class CategoriaOut(BaseModel):
    id: int
    nombre: str


class CategoriaExisteOut(BaseModel):
    id: int
    existe: bool


class LibroCreate(BaseModel):
    """Input DTO for creating a book.

    `categorias` holds ids of existing categories to link to the new book.
    """
    model_config = ConfigDict(populate_by_name=True)

    titulo: Optional[str] = None
    anio_publicacion: Optional[int] = Field(default=None, alias="anioPublicacion")
    autor: Optional[AutorRef] = None
    categorias: List[int] = Field(default_factory=list)


class LibroPatch(BaseModel):
    """Partial update body: unset or null fields keep their stored value."""
    model_config = ConfigDict(populate_by_name=True)

    titulo: Optional[str] = None
    anio_publicacion: Optional[int] = Field(default=None, alias="anioPublicacion")
    autor: Optional[AutorRef] = None


class LibroOut(BaseModel):
    """Book representation returned by every book endpoint."""
    model_config = ConfigDict(populate_by_name=True)

    id: int
    titulo: Optional[str] = None
    anio_publicacion: Optional[int] = Field(default=None, alias="anioPublicacion")
    autor: Optional[AutorOut] = None
    categorias: List[int] = Field(default_factory=list)
