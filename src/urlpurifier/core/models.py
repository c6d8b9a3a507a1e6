"""Core data models for urlpurifier.

This module defines the data structures shared by the engine, the
synchronizer and the CLI: the parsed rule database, redirect mappings and
services, the per-provider outcome variants, and cleaning options/results.
"""

from dataclasses import dataclass, field
from typing import Any, Iterable, Optional, Union

from urlpurifier.core.exceptions import RuleSetError


def _unique(values: Iterable[str]) -> tuple[str, ...]:
    """Drop duplicates while keeping first-seen order."""
    return tuple(dict.fromkeys(values))


# ============================================================================
# Rule Set Models
# ============================================================================

# JSON key -> ProviderDefinition attribute for the list-valued rule families
_RULE_FAMILIES = {
    "rules": "rules",
    "rawRules": "raw_rules",
    "referralMarketing": "referral_marketing",
    "exceptions": "exceptions",
    "redirections": "redirections",
    "methods": "methods",
}


@dataclass(frozen=True)
class ProviderDefinition:
    """Rules for one site, as published in the rule database.

    Every rule family is a de-duplicated tuple in declaration order.
    """
    name: str
    url_pattern: str
    rules: tuple[str, ...] = ()
    raw_rules: tuple[str, ...] = ()
    referral_marketing: tuple[str, ...] = ()
    exceptions: tuple[str, ...] = ()
    redirections: tuple[str, ...] = ()
    methods: tuple[str, ...] = ()
    complete_provider: bool = False
    force_redirection: bool = False

    def __post_init__(self) -> None:
        for attr in _RULE_FAMILIES.values():
            object.__setattr__(self, attr, _unique(getattr(self, attr)))

    @classmethod
    def from_dict(cls, name: str, data: dict[str, Any]) -> "ProviderDefinition":
        """Build a definition from its camelCase JSON form.

        Raises:
            RuleSetError: If a field is missing or has the wrong type
        """
        if not isinstance(data, dict):
            raise RuleSetError(f"Provider '{name}' must be an object")

        url_pattern = data.get("urlPattern")
        if not isinstance(url_pattern, str) or not url_pattern:
            raise RuleSetError(f"Provider '{name}' is missing 'urlPattern'")

        families: dict[str, tuple[str, ...]] = {}
        for key, attr in _RULE_FAMILIES.items():
            values = data.get(key, [])
            if values is None:
                values = []
            if not isinstance(values, list) or not all(isinstance(v, str) for v in values):
                raise RuleSetError(f"Provider '{name}': '{key}' must be a list of strings")
            families[attr] = tuple(values)

        for flag in ("completeProvider", "forceRedirection"):
            if not isinstance(data.get(flag, False), bool):
                raise RuleSetError(f"Provider '{name}': '{flag}' must be a boolean")

        return cls(
            name=name,
            url_pattern=url_pattern,
            complete_provider=data.get("completeProvider", False),
            force_redirection=data.get("forceRedirection", False),
            **families,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert back to the camelCase JSON form."""
        data: dict[str, Any] = {"urlPattern": self.url_pattern}
        for key, attr in _RULE_FAMILIES.items():
            values = getattr(self, attr)
            if values:
                data[key] = list(values)
        if self.complete_provider:
            data["completeProvider"] = True
        if self.force_redirection:
            data["forceRedirection"] = True
        return data


@dataclass(frozen=True)
class RuleSet:
    """Parsed rule database: provider name -> definition, in declaration order."""
    providers: dict[str, ProviderDefinition] = field(default_factory=dict)
    source_hash: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any], source_hash: Optional[str] = None) -> "RuleSet":
        """Parse the ``{"providers": {...}}`` rule database shape.

        Raises:
            RuleSetError: If the document is not a valid rule database
        """
        if not isinstance(data, dict) or not isinstance(data.get("providers"), dict):
            raise RuleSetError("Rule database must contain a 'providers' object")

        providers = {
            name: ProviderDefinition.from_dict(name, definition)
            for name, definition in data["providers"].items()
        }
        return cls(providers=providers, source_hash=source_hash)

    def to_dict(self) -> dict[str, Any]:
        return {
            "providers": {
                name: definition.to_dict()
                for name, definition in self.providers.items()
            }
        }

    def __len__(self) -> int:
        return len(self.providers)


# ============================================================================
# Redirect Models
# ============================================================================

@dataclass(frozen=True)
class RedirectMapping:
    """A hostile service and the alternative front-ends that can replace it."""
    name: str
    url_pattern: str
    targets: frozenset[str]


@dataclass(frozen=True)
class Service:
    """An alternative front-end type and its known instances."""
    type: str
    instances: tuple[str, ...] = ()


@dataclass(frozen=True)
class RedirectResult:
    url: str
    changed: bool = False


# ============================================================================
# Provider Outcomes
# ============================================================================

@dataclass(frozen=True)
class Redirect:
    """The URL wraps another destination; clean that one instead."""
    target: str
    force_redirect: bool = False


@dataclass(frozen=True)
class Cancel:
    """The request should be blocked entirely."""


@dataclass(frozen=True)
class Unchanged:
    """The provider does not apply or removed nothing."""


@dataclass(frozen=True)
class Changed:
    url: str


Outcome = Union[Redirect, Cancel, Unchanged, Changed]


# ============================================================================
# Cleaning Options and Results
# ============================================================================

@dataclass(frozen=True)
class CleanOptions:
    """Per-call cleaning switches."""
    remove_fields: bool = True
    apply_redirect_providers: bool = False
    referral_marketing_excluded: bool = False
    domain_blocking: bool = True
    method: Optional[str] = None            # HTTP method of the request, if known


@dataclass
class CleanResult:
    """Result of cleaning one URL.

    A cancelled result has no URL: the host should block the request.
    """
    original: str
    url: Optional[str]
    cancelled: bool = False
    redirected: bool = False
    force_redirect: bool = False
    passes: int = 0
    matched_providers: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        """Check if cleaning produced something other than the input."""
        return self.cancelled or self.url != self.original
