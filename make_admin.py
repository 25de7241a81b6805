"""Grant (or revoke) admin rights from the command line.

    python make_admin.py admin@example.com
    python make_admin.py admin@example.com --revoke
"""
import argparse
import sys

from db import Base, SessionLocal, engine, transaction
from models import User


def set_admin(db, email: str, is_admin: bool = True) -> User | None:
    user = db.query(User).filter(User.email == email.strip().lower()).first()
    if user is None:
        return None
    with transaction(db):
        user.is_admin = is_admin
    return user


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("email")
    parser.add_argument("--revoke", action="store_true", help="remove admin rights instead")
    args = parser.parse_args(argv)

    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        user = set_admin(db, args.email, not args.revoke)
        if user is None:
            print(f"No user with email {args.email}", file=sys.stderr)
            return 1
        print(f"Success! {user.name or user.email} is_admin={user.is_admin}")
        return 0
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
