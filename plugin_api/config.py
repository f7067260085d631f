"""
Configuration module for the Relay plugin API
"""

import os
from pathlib import Path

def env_bool(key: str, default: bool = False) -> bool:
    """Get boolean value from environment variable"""
    value = os.getenv(key, str(default)).lower()
    return value in ("true", "1", "yes", "on")

def _read_version_from_repo(default: str = "1.0.0") -> str:
    try:
        # repo root: plugin_api/.. (two parents up)
        version_file = Path(__file__).resolve().parents[1] / "VERSION"
        v = version_file.read_text(encoding="utf-8").strip()
        if v:
            return v
    except Exception:
        pass
    return os.getenv("PLUGIN_VERSION", default)

# Plugin identity
PLUGIN_ID = os.getenv("PLUGIN_ID", "ip-lookup-plugin")
PLUGIN_NAME = os.getenv("PLUGIN_NAME", "IP Lookup Plugin")
PLUGIN_VERSION = _read_version_from_repo()
PLUGIN_AUTHOR = os.getenv("PLUGIN_AUTHOR", "Relazio Community")
PLUGIN_CATEGORY = os.getenv("PLUGIN_CATEGORY", "network")
PLUGIN_BASE_URL = os.getenv("PLUGIN_BASE_URL", "http://localhost:3000").rstrip("/")
RATE_LIMIT_PER_MINUTE = int(os.getenv("RATE_LIMIT_PER_MINUTE", "60"))
APP_PORT = int(os.getenv("PORT", "3000"))

# Logging configuration
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv("LOG_FORMAT", "json")
HTTP_LOG_ENABLED = env_bool("HTTP_LOG_ENABLED", True)
HTTP_LOG_EXCLUDE_PATHS = set(os.getenv("HTTP_LOG_EXCLUDE_PATHS", "/health,/metrics").split(","))

# Secret storage: "memory" (default, lost on restart) or "sql"
SECRET_BACKEND = os.getenv("SECRET_BACKEND", "memory").lower()
SECRET_BYTES = int(os.getenv("SECRET_BYTES", "32"))
sqlite_path = os.getenv("SQLITE_PATH", "./plugin.db")
DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{sqlite_path}")

# Webhook delivery
WEBHOOK_TIMEOUT_SEC = float(os.getenv("WEBHOOK_TIMEOUT_SEC", "10"))
WEBHOOK_USER_AGENT = os.getenv("WEBHOOK_USER_AGENT", f"Relazio-Plugin/{PLUGIN_VERSION}")

# Job retention
JOB_TTL_SECONDS = int(os.getenv("JOB_TTL_SECONDS", "3600"))
JOB_EVICT_INTERVAL_SEC = int(os.getenv("JOB_EVICT_INTERVAL_SEC", "60"))

# Transforms
SCAN_STEP_DELAY_SEC = float(os.getenv("SCAN_STEP_DELAY_SEC", "2"))
IPINFO_API_KEY = os.getenv("IPINFO_API_KEY", "")
IPINFO_TIMEOUT_SEC = float(os.getenv("IPINFO_TIMEOUT_SEC", "5"))
GEOIP_MMDB_PATH = os.getenv("GEOIP_MMDB_PATH", "")
