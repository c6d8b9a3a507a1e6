"""Tracking removal and alternative-instance redirection.

This package provides the URL cleaning engine:
- Provider: Apply one site's rules to a URL
- RedirectProvider: Point a service's URLs at an alternative instance
- CleaningPipeline: Run URLs through all providers until they stop changing
- REDIRECT_MAPPINGS: Services that alternative front-ends can replace
"""

from urlpurifier.engine.provider import Provider
from urlpurifier.engine.redirect_provider import RedirectProvider
from urlpurifier.engine.pipeline import CleaningPipeline, RuleSnapshot
from urlpurifier.engine.mappings import REDIRECT_MAPPINGS

__all__ = [
    "Provider",
    "RedirectProvider",
    "CleaningPipeline",
    "RuleSnapshot",
    "REDIRECT_MAPPINGS",
]
