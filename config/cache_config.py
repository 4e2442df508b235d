# coding: utf-8
"""
Cache configuration for the in-process TTL cache

TTL per entity category:
- user profiles change on every balance mutation but are read constantly
- message lists change on every send, so they live much shorter
- performer lists are expensive listing queries that change rarely
"""
import os


class CacheTTL:
    """
    Time-to-live (TTL) settings for different cache categories in seconds
    """

    USER = int(os.getenv("CACHE_TTL_USER", "300"))
    """User profile (includes coin balance) - 5 minutes, evicted on every ledger write"""

    CONVERSATION = int(os.getenv("CACHE_TTL_CONVERSATION", "300"))
    """Conversation metadata - 5 minutes"""

    MESSAGES = int(os.getenv("CACHE_TTL_MESSAGES", "30"))
    """Message list of a conversation - 30 seconds, evicted on every new message"""

    PERFORMERS = int(os.getenv("CACHE_TTL_PERFORMERS", "120"))
    """Performer listing pages - 2 minutes"""

    DEFAULT = int(os.getenv("CACHE_TTL_DEFAULT", "300"))
    """Fallback TTL"""


class CacheConfig:
    """
    General cache settings
    """

    CACHE_ENABLED = os.getenv("CACHE_ENABLED", "true").lower() == "true"
    """Set to false to run with a no-op cache"""

    SWEEP_INTERVAL_SECONDS = int(os.getenv("CACHE_SWEEP_INTERVAL", "60"))
    """How often the background job removes expired entries"""

    MAX_ENTRIES = int(os.getenv("CACHE_MAX_ENTRIES", "10000"))
    """Soft upper bound; expired entries are swept first, then the oldest"""
