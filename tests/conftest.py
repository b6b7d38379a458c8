"""
Shared pytest configuration.

Environment defaults are set before admin_auth is imported so settings,
the bcrypt context and the engine pick them up.
"""

import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ADMIN_KEY_BCRYPT_COST", "4")
os.environ.setdefault("ADMIN_MFA_STORE", "memory")
os.environ.setdefault("LOG_FORMAT", "text")
os.environ.setdefault("BUSINESS_TIMEZONE", "UTC")
os.environ.setdefault("CLEANUP_WORKER_ENABLED", "false")
