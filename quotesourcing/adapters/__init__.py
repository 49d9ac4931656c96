"""Source adapters for quote sourcing."""

from quotesourcing.adapters.base import SourceAdapter
from quotesourcing.adapters.remote import RemoteProcedureAdapter
from quotesourcing.adapters.scraped import (
    AUTOLABOR_PROFILE,
    NEXPART_PARTS_PROFILE,
    ScrapedAdapter,
    SiteProfile,
    browser_session,
)
from quotesourcing.adapters.static_db import StaticDatabaseAdapter

# Built-in site profiles, keyed by scraping credential section
SITE_PROFILES: dict[str, SiteProfile] = {
    "nexpart": NEXPART_PARTS_PROFILE,
    "autolabor": AUTOLABOR_PROFILE,
}

__all__ = [
    "SourceAdapter",
    "ScrapedAdapter",
    "SiteProfile",
    "browser_session",
    "NEXPART_PARTS_PROFILE",
    "AUTOLABOR_PROFILE",
    "RemoteProcedureAdapter",
    "StaticDatabaseAdapter",
    "SITE_PROFILES",
]
