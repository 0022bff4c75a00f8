"""
Application-wide settings and environment configuration
"""

from __future__ import annotations

import os
from pathlib import Path

# Project paths
PROJECT_ROOT = Path(__file__).parent.parent.parent
RSMNEWS_ROOT = Path(__file__).parent.parent

# Environment
ENV = os.getenv("RSMNEWS_ENV", "production")
DEBUG = ENV == "development"

# API Configuration
API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", os.getenv("PORT", "3001")))
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")

# Public site advertised in the digest footer
APP_DOMAIN = os.getenv("APP_DOMAIN", "rsm.ar")

# Google Cloud / Gemini
GOOGLE_CLOUD_PROJECT = os.getenv("GOOGLE_CLOUD_PROJECT")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.0-flash-001")
GEMINI_LOCATION = os.getenv("GEMINI_LOCATION", "us-central1")
GEMINI_MAX_TOKENS = int(os.getenv("GEMINI_MAX_TOKENS", "4096"))
GEMINI_TEMPERATURE = float(os.getenv("GEMINI_TEMPERATURE", "0.7"))

# WhatsApp Cloud API
WHATSAPP_API_URL = os.getenv("WHATSAPP_API_URL", "https://graph.facebook.com")
WHATSAPP_API_VERSION = os.getenv("WHATSAPP_API_VERSION", "v21.0")
WHATSAPP_TOKEN = os.getenv("WHATSAPP_TOKEN")
WHATSAPP_PHONE_NUMBER_ID = os.getenv("WHATSAPP_PHONE_NUMBER_ID")

# Schedule
SCHEDULE_TIMEZONE = os.getenv("SCHEDULE_TIMEZONE", "America/Argentina/Buenos_Aires")


# The helpers below read the environment at call time so a .env loaded after
# import is honoured.


def get_news_portals() -> list[str]:
    """Portal home pages to scrape, from the comma separated NEWS_PORTALS variable."""
    raw = os.getenv("NEWS_PORTALS", "")
    return [portal.strip() for portal in raw.split(",") if portal.strip()]


def get_log_level() -> str:
    return os.getenv("RSMNEWS_LOG_LEVEL", os.getenv("LOG_LEVEL", "INFO")).upper()


def get_google_api_key() -> str | None:
    return os.getenv("GOOGLE_API_KEY") or None


def get_google_cloud_project() -> str | None:
    return os.getenv("GOOGLE_CLOUD_PROJECT") or GOOGLE_CLOUD_PROJECT


def get_whatsapp_verify_token() -> str | None:
    return os.getenv("WHATSAPP_VERIFY_TOKEN") or None


def get_trusted_proxies() -> frozenset[str]:
    """Peer addresses allowed to set X-Forwarded-For (RSMNEWS_TRUSTED_PROXIES, comma separated).

    Empty by default: forwarding headers are ignored unless a proxy is listed.
    """
    raw = os.getenv("RSMNEWS_TRUSTED_PROXIES", "")
    return frozenset(proxy.strip() for proxy in raw.split(",") if proxy.strip())


def send_on_startup() -> bool:
    """Development aid: deliver the digest once shortly after start-up."""
    return os.getenv("RSMNEWS_SEND_ON_STARTUP", "false").lower() == "true"


def is_development() -> bool:
    """Check if running in development"""
    return ENV == "development"
