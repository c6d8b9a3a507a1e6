"""Constants used throughout urlpurifier.

This module contains enums, default values, and static configurations
to ensure consistency across the application.
"""

from enum import Enum


class InstancePickMode(str, Enum):
    """How a redirect provider chooses among its instances."""
    FIRST = "first"
    RANDOM = "random"


class HashStatus(Enum):
    """Outcome of a ruleset synchronization."""
    UP_TO_DATE = "hash_status_code_1"
    UPDATED = "hash_status_code_2"
    HASH_MISMATCH = "hash_status_code_3"
    UNKNOWN_ERROR = "hash_status_code_4"
    DOWNLOAD_FAILED = "hash_status_code_5"


RULES_URL = "https://rules2.clearurls.xyz/data.minify.json"
HASH_URL = "https://rules2.clearurls.xyz/rules.minify.hash"

# Upper bound on full provider passes before cleaning is declared divergent
MAX_CLEANING_PASSES = 200

# Schemes whose empty path serializes as "/"
SPECIAL_SCHEMES = frozenset({"http", "https", "ftp", "ws", "wss"})

# Rule added to every complete provider
CATCH_ALL_RULE = ".*"

CACHE_RULES_FILE = "rules.json"
CACHE_HASH_FILE = "rules.hash"


# Application-wide defaults
DEFAULTS = {
    "timeout": 30,
    "max_passes": MAX_CLEANING_PASSES,
    "instance_pick_mode": InstancePickMode.FIRST.value,
    "referral_marketing_excluded": False,
    "domain_blocking": True,
    "apply_redirect_providers": False,
    "cache_dir": "~/.cache/urlpurifier",
}
