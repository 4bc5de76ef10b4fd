"""Adapter configuration and settings."""
import os
from dotenv import load_dotenv

# Load environment variables from .env (if present)
load_dotenv()

# Relational store configuration
SQLALCHEMY_DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./casbin.db")
POLICY_TABLE_NAME = os.getenv("POLICY_TABLE_NAME", "casbin_rule")

# Cache configuration - caching is disabled unless REDIS_URL or REDIS_HOST is set
REDIS_URL = os.getenv("REDIS_URL")
REDIS_HOST = os.getenv("REDIS_HOST")
REDIS_PORT = int(os.getenv("REDIS_PORT", "6379"))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD")
REDIS_DB = int(os.getenv("REDIS_DB", "0"))

CACHE_TTL = int(os.getenv("CACHE_TTL", "3600"))
CACHE_PREFIX = os.getenv("CACHE_PREFIX", "casbin_policies:")
CACHE_SCAN_COUNT = int(os.getenv("CACHE_SCAN_COUNT", "100"))
CACHE_MAX_SCAN_ITERATIONS = int(os.getenv("CACHE_MAX_SCAN_ITERATIONS", "100"))

# Logging configuration
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_DIR = os.getenv("LOG_DIR", "logs")


def cache_enabled() -> bool:
    """True when a cache descriptor is present in the environment."""
    return bool(REDIS_URL or REDIS_HOST)


def cache_options() -> dict:
    """Cache descriptor in the mapping form accepted by ``new_adapter``."""
    return {
        "url": REDIS_URL,
        "host": REDIS_HOST,
        "port": REDIS_PORT,
        "password": REDIS_PASSWORD,
        "database": REDIS_DB,
        "ttl": CACHE_TTL,
        "prefix": CACHE_PREFIX,
        "scan_count": CACHE_SCAN_COUNT,
        "max_scan_iterations": CACHE_MAX_SCAN_ITERATIONS,
    }


# Management API key, enforced by policy_adapter.core.security
ADMIN_API_KEY = os.environ.get("ADMIN_API_KEY")
