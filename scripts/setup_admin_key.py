"""
Provision or rotate the system administrator key.

Prints the plaintext key once; only its bcrypt hash is stored.

Usage:
    python scripts/setup_admin_key.py
    python scripts/setup_admin_key.py --allowed-ips 10.0.0.0/8,203.0.113.7
    python scripts/setup_admin_key.py --reset-lockout
"""

import argparse
import logging
import os
import sys

# Add parent directory to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from admin_auth.core.database import SessionLocal, init_db
from admin_auth.core.errors import SystemAdminError
from admin_auth.services.admin_key_service import AdminKeyService
from admin_auth.services.audit_service import AuditService
from admin_auth.services.credential_verifier import CredentialVerifier

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Provision the system administrator key")
    parser.add_argument(
        "--allowed-ips",
        default="*",
        help="Comma-separated IPv4 addresses or CIDR blocks (default: '*')"
    )
    parser.add_argument("--key-id", default=None, help="Key to create or rotate")
    parser.add_argument(
        "--reset-lockout",
        action="store_true",
        help="Only clear failed attempts on the existing key"
    )
    parser.add_argument(
        "--create-tables",
        action="store_true",
        help="Create tables before provisioning (development databases)"
    )
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)

    if args.create_tables:
        init_db()

    verifier = CredentialVerifier(SessionLocal)

    try:
        if args.reset_lockout:
            if not verifier.reset_lockout(args.key_id):
                logger.error("No admin key found")
                return 1
            logger.info("Admin key lockout cleared")
            return 0

        service = AdminKeyService(SessionLocal, verifier, AuditService(SessionLocal))
        allowed_ips = [ip.strip() for ip in args.allowed_ips.split(",") if ip.strip()]
        provisioned = service.provision(allowed_ips=allowed_ips, key_id=args.key_id)
    except SystemAdminError as e:
        logger.error(f"{e.code.value}: {e.message}")
        return 1

    print("=" * 72)
    print(f"Admin key {'rotated' if provisioned.rotated else 'created'}: {provisioned.key_id}")
    print(f"Allowed IPs: {', '.join(provisioned.allowed_ips)}")
    print()
    print(provisioned.secret)
    print()
    print("Store this key now. It cannot be shown again.")
    print("=" * 72)
    return 0


if __name__ == "__main__":
    sys.exit(main())
