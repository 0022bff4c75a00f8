"""
Digest formatting for the chat channel.

The digest carries the first DIGEST_MAX_ARTICLES PRINCIPALES articles of an
entry, in stored order:

    *RSM - Las noticias del dia*

    • *TITLE IN CAPS:* description

    Mas noticias en rsm.ar
"""

from __future__ import annotations

import re

from rsmnews.config import APP_DOMAIN, DIGEST_MAX_ARTICLES
from rsmnews.news.models import Article, CacheEntry

DIGEST_HEADER = "*RSM - Las noticias del dia*"
NO_NEWS_TEXT = "No hay noticias principales disponibles"

# Control chars, specials and the emoji/symbol blocks the channel mangles
_UNSAFE_CHARS = re.compile(
    "["
    "\u0000-\u001f\u007f-\u009f"
    "\ufff0-\uffff"
    "\U0001f300-\U0001f9ff"
    "\u2600-\u26ff"
    "\u2700-\u27bf"
    "\U0001f600-\U0001f64f"
    "\U0001f680-\U0001f6ff"
    "\U0001f1e0-\U0001f1ff"
    "]"
)


def clean_for_channel(text: str) -> str:
    return _UNSAFE_CHARS.sub("", text).strip()


def format_article_block(article: Article) -> str:
    title = clean_for_channel(article.title).upper()
    description = clean_for_channel(article.description)
    return f"• *{title}:* {description}"


def format_digest(entry: CacheEntry | None, domain: str = APP_DOMAIN) -> str:
    """Render the PRINCIPALES digest for an entry (or the no-news text)."""
    principal = entry.principal_articles()[:DIGEST_MAX_ARTICLES] if entry else []
    footer = f"Mas noticias en {domain}"

    if not principal:
        return f"{DIGEST_HEADER}\n\n{NO_NEWS_TEXT}\n\n{footer}"

    blocks = "\n\n".join(format_article_block(article) for article in principal)
    return f"{DIGEST_HEADER}\n\n{blocks}\n\n{footer}"
