"""RSM News - scrape, summarise and deliver a daily news digest over WhatsApp"""

from __future__ import annotations

__version__ = "1.0.0"
