"""CLI script to create an account in the backend DB.
Usage: python scripts/create_user.py USERNAME PASSWORD [--admin]
"""
import sys
import argparse
import pathlib
# Ensure `backend/` is on sys.path so `biblioteca` imports work when running this script directly
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
from sqlmodel import Session
from biblioteca import models, repositories, services
from biblioteca.database import engine, create_db_and_tables


def main(username: str, password: str, admin: bool = False) -> int:
    """Create `username` unless it already exists.

    Returns a process exit code; results are printed to stdout.
    """
    create_db_and_tables()
    role = models.ROLE_ADMIN if admin else models.ROLE_USER
    with Session(engine) as session:
        repo = repositories.UsuarioRepository(session)
        if repo.get_by_username(username):
            print(f'User {username} already exists')
            return 1
        user = services.AuthService(repo).register(username, password, role=role)
        print(f'Created user {user.username} (id {user.id}, role {user.role})')
    return 0


if __name__ == '__main__':
    parser = argparse.ArgumentParser()
    parser.add_argument('username')
    parser.add_argument('password')
    parser.add_argument('--admin', action='store_true', help='Grant the ADMIN role')
    args = parser.parse_args()
    sys.exit(main(args.username, args.password, admin=args.admin))
