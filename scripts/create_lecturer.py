"""CLI script to create a lecturer account in the backend DB.
Usage: python scripts/create_lecturer.py EMAIL PASSWORD
"""
import sys
import argparse
import pathlib
# Ensure the repository root is on sys.path so `coursemgmt` imports work when running this script directly
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
from sqlmodel import Session
from coursemgmt.database import engine, create_db_and_tables
from coursemgmt import services


def main(email: str, password: str) -> int:
    """Create the tables if needed and register one lecturer.

    Lecturer registration over HTTP is open, but a fresh deployment
    usually wants its first account created from the shell.
    Returns a process exit code.
    """
    create_db_and_tables()
    with Session(engine) as session:
        try:
            user = services.AuthService(session).register_lecturer(email, password)
        except ValueError as e:
            print(f'Could not create lecturer: {e}')
            return 1
    print(f'Created lecturer {user.email} (id={user.id})')
    return 0


if __name__ == '__main__':
    p = argparse.ArgumentParser(description='Create a lecturer account')
    p.add_argument('email')
    p.add_argument('password')
    args = p.parse_args()
    sys.exit(main(args.email, args.password))
