import importlib.util
from pathlib import Path

from sqlmodel import Session

from biblioteca import repositories
from biblioteca.database import engine

SCRIPT = Path(__file__).resolve().parents[1] / 'scripts' / 'create_user.py'


def _load_script():
    module_spec = importlib.util.spec_from_file_location('create_user', SCRIPT)
    module = importlib.util.module_from_spec(module_spec)
    module_spec.loader.exec_module(module)
    return module


def test_create_admin_from_cli(capsys):
    script = _load_script()
    assert script.main('bibliotecaria', 'pw', admin=True) == 0
    assert 'role ADMIN' in capsys.readouterr().out
    assert script.main('bibliotecaria', 'pw') == 1
    with Session(engine) as session:
        assert repositories.UsuarioRepository(session).get_by_username('bibliotecaria').role == 'ADMIN'
