"""
Bootstrap the first admin account.

Every other account is created through POST /admin/users, which needs a
signed-in admin with step-up; this script breaks that loop. Run it once
against the configured DATABASE_URL:

    python seed_admin.py --email ops@exams.example --name "Exam Ops" --password '...'

Pass --two-factor to enroll TOTP right away; the secret and the backup codes
are printed once and never stored in plain text.
"""
import argparse
import sys

from app.database import SessionLocal
from app.services.users import UserAlreadyExistsError, create_admin_user, enroll_two_factor


def main():
    parser = argparse.ArgumentParser(description="Create the first Exam Admin account")
    parser.add_argument("--email", required=True)
    parser.add_argument("--name", required=True)
    parser.add_argument("--password", required=True)
    parser.add_argument("--role", default="admin")
    parser.add_argument("--two-factor", action="store_true", help="Enroll TOTP and print backup codes")
    args = parser.parse_args()

    if len(args.password) < 12:
        print("  ERROR password must be at least 12 characters")
        return 1

    print("\n🌱 Bootstrapping admin account...\n")
    db = SessionLocal()
    try:
        user = create_admin_user(db, email=args.email, name=args.name, role=args.role, password=args.password)
        enrollment = enroll_two_factor(db, user) if args.two_factor else None
        summary = f"{user.email} ({user.role}) → {user.user_id}"
        db.commit()
    except UserAlreadyExistsError:
        db.rollback()
        print(f"  ERROR an account for {args.email} already exists")
        return 1
    finally:
        db.close()

    print(f"  ✓ {summary}")
    if enrollment is not None:
        print(f"\n  TOTP secret:      {enrollment.secret}")
        print(f"  Provisioning URI: {enrollment.provisioning_uri}")
        print("  Backup codes (shown once):")
        for code in enrollment.backup_codes:
            print(f"    {code}")
    print("\n✅ Done. Sign in at POST /auth/login\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
