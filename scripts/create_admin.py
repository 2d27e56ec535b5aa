import argparse

from escolaflow.db import SessionLocal, init_db
from escolaflow.lifecycle import UserRole
from escolaflow.models import Profile


def main():
    parser = argparse.ArgumentParser(description="Create the first admin profile")
    parser.add_argument("full_name")
    parser.add_argument("--email")
    parser.add_argument("--whatsapp")
    args = parser.parse_args()

    init_db()
    session = SessionLocal()
    try:
        profile = Profile(
            full_name=args.full_name,
            role=UserRole.ADMIN,
            email=args.email,
            whatsapp_number=args.whatsapp,
        )
        session.add(profile)
        session.commit()
        print(f"Created admin profile {profile.id}")
    finally:
        session.close()


if __name__ == "__main__":
    main()
