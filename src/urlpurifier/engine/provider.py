"""Per-site tracking removal.

A Provider bundles the rules that apply to one site. Applying it to a URL
yields exactly one outcome: the URL is a wrapper around another destination
(``Redirect``), the whole request should be blocked (``Cancel``), tracking
was removed (``Changed``), or nothing happened (``Unchanged``).
"""

import logging
import re
from typing import Optional
from urllib.parse import SplitResult

from urlpurifier.core.constants import CATCH_ALL_RULE
from urlpurifier.core.exceptions import InvalidRuleError
from urlpurifier.core.models import (
    Cancel,
    Changed,
    CleanOptions,
    Outcome,
    ProviderDefinition,
    Redirect,
    Unchanged,
)
from urlpurifier.core.utils import (
    FieldParams,
    decode_url,
    parse_url,
    url_without_params_and_hash,
)


logger = logging.getLogger(__name__)

_UNCHANGED = Unchanged()
_CANCEL = Cancel()


class Provider:
    """Compiled, immutable form of a ProviderDefinition.

    All patterns are compiled case-insensitively at construction. Field
    rules must match a whole query or fragment key, never a substring.
    """

    def __init__(self, definition: ProviderDefinition):
        """Compile a provider definition.

        Args:
            definition: Parsed provider rules

        Raises:
            InvalidRuleError: If a pattern does not compile, or a redirection
                pattern has no capture group
        """
        self.definition = definition
        self.name = definition.name
        self.complete_provider = definition.complete_provider
        self.force_redirection = definition.force_redirection
        self.methods = frozenset(m.upper() for m in definition.methods)

        self.url_pattern = self._compile(definition.url_pattern, "urlPattern")
        self.exceptions = tuple(
            self._compile(p, "exceptions") for p in definition.exceptions
        )
        self.redirections = tuple(
            self._compile(p, "redirections") for p in definition.redirections
        )
        self.raw_rules = tuple(
            self._compile(p, "rawRules") for p in definition.raw_rules
        )

        field_rules = definition.rules
        if self.complete_provider:
            field_rules = (CATCH_ALL_RULE,) + tuple(
                r for r in field_rules if r != CATCH_ALL_RULE
            )
        self.rules = tuple(self._compile(p, "rules") for p in field_rules)
        self.referral_marketing = tuple(
            self._compile(p, "referralMarketing")
            for p in definition.referral_marketing
            if p not in field_rules
        )

        for pattern in self.redirections:
            if pattern.groups < 1:
                raise InvalidRuleError(
                    f"Provider '{self.name}': redirection '{pattern.pattern}' "
                    "has no capture group"
                )

    def _compile(self, pattern: str, family: str) -> re.Pattern:
        try:
            return re.compile(pattern, re.IGNORECASE)
        except re.error as e:
            raise InvalidRuleError(
                f"Provider '{self.name}': invalid {family} pattern '{pattern}': {e}"
            ) from e

    def __repr__(self) -> str:
        return f"Provider({self.name!r})"

    # ------------------------------------------------------------------------
    # Matching
    # ------------------------------------------------------------------------

    def matches(self, url: str, method: Optional[str] = None) -> bool:
        """Check the pattern gate for ``url``.

        The URL pattern must match, no exception may match, and when both
        the request method and a method allow-list are known the method
        must be listed.
        """
        if method is not None and self.methods and method.upper() not in self.methods:
            return False
        if not self.url_pattern.search(url):
            return False
        return not any(e.search(url) for e in self.exceptions)

    def get_redirection(self, url: str) -> Optional[str]:
        """Return the raw destination captured by the first matching redirection.

        A match whose first group captured nothing counts as no redirection.
        """
        for pattern in self.redirections:
            match = pattern.search(url)
            if match:
                return match.group(1) or None
        return None

    def active_rules(self, referral_marketing_excluded: bool) -> tuple[re.Pattern, ...]:
        if referral_marketing_excluded:
            return self.rules + self.referral_marketing
        return self.rules

    # ------------------------------------------------------------------------
    # Rule Application
    # ------------------------------------------------------------------------

    def apply(self, url: str, options: Optional[CleanOptions] = None) -> Outcome:
        """Apply this provider's rules to ``url``.

        Args:
            url: URL to clean
            options: Per-call switches; defaults to CleanOptions()

        Returns:
            Redirect, Cancel, Changed or Unchanged

        Raises:
            InvalidURLError: If ``url`` (or the URL left after raw rules)
                cannot be parsed
        """
        options = options or CleanOptions()
        parts = parse_url(url)

        if not self.matches(url, options.method):
            return _UNCHANGED

        destination = self.get_redirection(url)
        if destination is not None:
            target = decode_url(destination)
            logger.debug(f"{self.name}: unwrapped redirect to {target}")
            return Redirect(target=target, force_redirect=self.force_redirection)

        if self.complete_provider and options.domain_blocking:
            logger.debug(f"{self.name}: blocking {url}")
            return _CANCEL

        cleaned, changes = self._apply_raw_rules(url)
        if changes:
            parts = parse_url(cleaned)
        cleaned, removed = self._strip_fields(
            cleaned, parts, self.active_rules(options.referral_marketing_excluded)
        )

        if changes or removed:
            return Changed(url=cleaned)
        return _UNCHANGED

    def _apply_raw_rules(self, url: str) -> tuple[str, bool]:
        changes = False
        for pattern in self.raw_rules:
            replaced = pattern.sub("", url)
            if replaced != url:
                changes = True
                url = replaced
        return url, changes

    def _strip_fields(
        self,
        url: str,
        parts: SplitResult,
        rules: tuple[re.Pattern, ...],
    ) -> tuple[str, bool]:
        """Remove query and fragment fields whose whole key matches a rule.

        Each rule checks the keys present when that rule starts; removing
        one key never causes a later key to be skipped.
        Surviving fields keep their raw text.
        """
        fields = FieldParams(parts.query)
        fragments = FieldParams(parts.fragment)

        if not fields and not fragments:
            return url, False

        removed = False
        for rule in rules:
            for params in (fields, fragments):
                for key in params.keys():
                    if rule.fullmatch(key):
                        params.delete(key)
                        removed = True

        if not removed:
            return url, False

        cleaned = url_without_params_and_hash(parts)
        if fields:
            cleaned += f"?{fields}"
        if fragments:
            cleaned += f"#{fragments}"

        return cleaned, True
