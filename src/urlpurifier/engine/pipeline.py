"""Cleaning pipeline.

This module provides the CleaningPipeline class that owns the active
providers and redirect providers and runs URLs through them until no
provider changes the URL any further.
"""

import logging
import random
from dataclasses import dataclass
from typing import Iterable, Optional

from urlpurifier.core.constants import MAX_CLEANING_PASSES, InstancePickMode
from urlpurifier.core.exceptions import NonConvergenceError
from urlpurifier.core.models import (
    Cancel,
    Changed,
    CleanOptions,
    CleanResult,
    Redirect,
    RedirectMapping,
    RedirectResult,
    RuleSet,
    Service,
)
from urlpurifier.core.utils import parse_url
from urlpurifier.engine.mappings import REDIRECT_MAPPINGS
from urlpurifier.engine.provider import Provider
from urlpurifier.engine.redirect_provider import RedirectProvider


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RuleSnapshot:
    """Immutable set of compiled providers in use by the pipeline."""
    providers: tuple[Provider, ...] = ()
    redirect_providers: tuple[RedirectProvider, ...] = ()
    source_hash: Optional[str] = None


class CleaningPipeline:
    """Runs URLs through providers until they stop changing.

    The pipeline holds a single RuleSnapshot reference. Loading rules builds
    a complete new snapshot first and then replaces the reference, so a
    concurrent ``clean`` call sees either the old rules or the new ones,
    never a mix.

    Example:
        >>> pipeline = CleaningPipeline(RuleSet.from_dict(data))
        >>> pipeline.clean("https://example.com/?utm_source=x").url
        'https://example.com/'
    """

    def __init__(
        self,
        ruleset: Optional[RuleSet] = None,
        services: Iterable[Service] = (),
        *,
        mappings: Iterable[RedirectMapping] = REDIRECT_MAPPINGS,
        pick_mode: InstancePickMode | str = InstancePickMode.FIRST,
        max_passes: int = MAX_CLEANING_PASSES,
        rng: Optional[random.Random] = None,
    ):
        if max_passes < 1:
            raise ValueError("max_passes must be at least 1")

        self.mappings = tuple(mappings)
        self.pick_mode = InstancePickMode(pick_mode)
        self.max_passes = max_passes
        self._rng = rng
        self._services: tuple[Service, ...] = tuple(services)
        self._snapshot = RuleSnapshot(
            redirect_providers=self._build_redirect_providers(self._services)
        )

        if ruleset is not None:
            self.load(ruleset)

    # ------------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------------

    def load(self, ruleset: RuleSet, services: Optional[Iterable[Service]] = None) -> None:
        """Replace the active rules.

        Args:
            ruleset: Parsed rule database
            services: New alternative-instance services; None keeps the
                current ones

        Raises:
            InvalidRuleError: If any rule fails to compile. The previously
                loaded rules stay active.
        """
        new_services = self._services if services is None else tuple(services)

        providers = tuple(
            Provider(definition) for definition in ruleset.providers.values()
        )
        snapshot = RuleSnapshot(
            providers=providers,
            redirect_providers=self._build_redirect_providers(new_services),
            source_hash=ruleset.source_hash,
        )
        self._services = new_services
        self._snapshot = snapshot

        logger.info(
            f"Loaded {len(snapshot.providers)} providers and "
            f"{len(snapshot.redirect_providers)} redirect providers"
        )

    def _build_redirect_providers(
        self, services: tuple[Service, ...]
    ) -> tuple[RedirectProvider, ...]:
        return tuple(
            RedirectProvider(mapping, services, self.pick_mode, rng=self._rng)
            for mapping in self.mappings
        )

    @property
    def snapshot(self) -> RuleSnapshot:
        return self._snapshot

    @property
    def providers(self) -> tuple[Provider, ...]:
        return self._snapshot.providers

    @property
    def redirect_providers(self) -> tuple[RedirectProvider, ...]:
        return self._snapshot.redirect_providers

    # ------------------------------------------------------------------------
    # Cleaning
    # ------------------------------------------------------------------------

    def clean(self, url: str, options: Optional[CleanOptions] = None) -> CleanResult:
        """Remove tracking from ``url``.

        Providers are tried in declaration order. A provider that changes
        the URL or unwraps a redirect restarts the scan from the first
        provider on the new URL; a full scan in which nothing changes ends
        cleaning. Alternative-instance redirects run once afterwards when
        enabled.

        Args:
            url: URL to clean
            options: Per-call switches; defaults to CleanOptions()

        Returns:
            CleanResult. A cancelled result has ``url`` None.

        Raises:
            InvalidURLError: If a URL cannot be parsed
            NonConvergenceError: If the URL keeps changing after
                ``max_passes`` scans
        """
        options = options or CleanOptions()
        snapshot = self._snapshot
        parse_url(url)

        result = CleanResult(original=url, url=url)

        if options.remove_fields:
            self._run_to_fixpoint(snapshot, result, options)
            if result.cancelled:
                return result

        if options.apply_redirect_providers:
            result.url = self._redirect(snapshot, result.url).url

        return result

    def _run_to_fixpoint(
        self,
        snapshot: RuleSnapshot,
        result: CleanResult,
        options: CleanOptions,
    ) -> None:
        current = result.url

        for passes in range(1, self.max_passes + 1):
            result.passes = passes
            changed = False

            for provider in snapshot.providers:
                outcome = provider.apply(current, options)

                if isinstance(outcome, Redirect):
                    current = outcome.target
                    result.redirected = True
                    result.force_redirect = result.force_redirect or outcome.force_redirect
                elif isinstance(outcome, Cancel):
                    result.url = None
                    result.cancelled = True
                    result.matched_providers.append(provider.name)
                    return
                elif isinstance(outcome, Changed):
                    current = outcome.url
                else:
                    continue

                result.matched_providers.append(provider.name)
                logger.debug(f"{provider.name}: {type(outcome).__name__.lower()} -> {current}")
                changed = True
                break

            if not changed:
                result.url = current
                return

        logger.error(f"Cleaning did not converge after {self.max_passes} passes: {result.original}")
        raise NonConvergenceError(
            f"URL still changing after {self.max_passes} passes: {result.original}"
        )

    def clean_url(self, url: str, options: Optional[CleanOptions] = None) -> Optional[str]:
        """Clean ``url`` and return the result, or None if it should be blocked."""
        return self.clean(url, options).url

    # ------------------------------------------------------------------------
    # Alternative Instances
    # ------------------------------------------------------------------------

    def redirect_single(self, url: str) -> RedirectResult:
        """Apply every redirect provider once, in mapping order.

        Raises:
            InvalidURLError: If ``url`` cannot be parsed
        """
        return self._redirect(self._snapshot, url)

    @staticmethod
    def _redirect(snapshot: RuleSnapshot, url: str) -> RedirectResult:
        parse_url(url)
        current = url

        for redirect_provider in snapshot.redirect_providers:
            current = redirect_provider.redirect(current).url

        return RedirectResult(url=current, changed=current != url)
