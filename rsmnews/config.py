"""Centralized configuration for the RSM News backend.

Re-exports everything from rsmnews.infrastructure.settings so modules can
import a single place, then adds typed constants for the database, the refresh
pipeline, the WhatsApp channel, LLM calls and rate limiting. Environment
variable overrides use safe defaults so the app starts without extra env
configuration.
"""

from __future__ import annotations

import os

from rsmnews.infrastructure.settings import *  # noqa: F401, F403

# --- App ---
APP_VERSION: str = "1.0.0"

# --- Database ---
DB_POOL_SIZE: int = int(os.getenv("RSMNEWS_DB_POOL_SIZE", "5"))
DB_POOL_TIMEOUT: float = float(os.getenv("RSMNEWS_DB_POOL_TIMEOUT", "5.0"))
DB_CONNECT_TIMEOUT: float = float(os.getenv("RSMNEWS_DB_CONNECT_TIMEOUT", "30.0"))
DB_TEMP_CONN_MAX: int = int(os.getenv("RSMNEWS_DB_TEMP_CONN_MAX", "10"))
DB_RETRY_MAX: int = int(os.getenv("RSMNEWS_DB_RETRY_MAX", "5"))
DB_RETRY_BASE_DELAY: float = float(os.getenv("RSMNEWS_DB_RETRY_BASE_DELAY", "0.1"))
DB_RETRY_MAX_DELAY: float = float(os.getenv("RSMNEWS_DB_RETRY_MAX_DELAY", "2.0"))

# --- News cache ---
CACHE_MAX_AGE_MINUTES: int = 30
CACHE_HISTORY_SIZE: int = 10
PRINCIPAL_CATEGORY: str = "PRINCIPALES"
TOPICAL_CATEGORIES: tuple[str, ...] = (
    "POLÍTICA",
    "ECONOMÍA",
    "SOCIEDAD",
    "MUNDO",
    "DEPORTES",
    "TECNOLOGÍA",
    "ESPECTÁCULOS",
    "POLICIALES",
)

# --- Scraping ---
PORTAL_TIMEOUT_SECONDS: float = float(os.getenv("RSMNEWS_PORTAL_TIMEOUT", "45"))
ARTICLE_TIMEOUT_SECONDS: float = float(os.getenv("RSMNEWS_ARTICLE_TIMEOUT", "30"))
PORTAL_MAX_CANDIDATES: int = 80
CANDIDATE_TITLE_MIN_CHARS: int = 15
CANDIDATE_TITLE_MAX_CHARS: int = 300
ARTICLE_MIN_PARAGRAPH_CHARS: int = 30
ARTICLE_GOOD_CONTENT_CHARS: int = 200
ENRICH_CONTENT_MAX_CHARS: int = 6000
SCRAPER_USER_AGENT: str = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

# --- Digest ---
DIGEST_MAX_ARTICLES: int = 6
DIGEST_PACING_SECONDS: float = 3.0
DIGEST_FAILURE_BACKOFF_SECONDS: float = 5.0
DIGEST_STARTUP_DELAY_SECONDS: float = 10.0

# --- WhatsApp channel ---
CHANNEL_MAX_MESSAGE_CHARS: int = 4000
CHANNEL_POST_SEND_DELAY_SECONDS: float = 1.5
CHANNEL_TIMEOUT_SECONDS: float = float(os.getenv("RSMNEWS_CHANNEL_TIMEOUT", "20"))

# --- Schedule ---
REFRESH_INTERVAL_MINUTES: int = 30
PRE_SEND_REFRESH_TIME: tuple[int, int] = (5, 55)
DAILY_SEND_TIME: tuple[int, int] = (6, 0)

# --- LLM ---
LLM_TIMEOUT_SECONDS: int = int(os.getenv("RSMNEWS_LLM_TIMEOUT", "60"))
LLM_MAX_RETRIES: int = int(os.getenv("RSMNEWS_LLM_MAX_RETRIES", "3"))
LLM_MAX_WORKERS: int = int(os.getenv("RSMNEWS_LLM_MAX_WORKERS", "6"))
# Upper bound on one model call in the refresh pipeline, retries included
LLM_DEADLINE_SECONDS: float = float(
    os.getenv("RSMNEWS_LLM_DEADLINE", str(LLM_TIMEOUT_SECONDS * LLM_MAX_RETRIES + 15))
)

# --- Rate Limiting (subscription endpoints) ---
RATE_LIMIT_RPM: int = 5
RATE_LIMIT_RPH: int = 30
RATE_LIMIT_MAX_IPS: int = 10000
