"""Rewrite URLs to alternative front-end instances."""

import logging
import random
import re
from typing import Iterable, Optional

from urlpurifier.core.constants import InstancePickMode
from urlpurifier.core.exceptions import InvalidRuleError, InvalidURLError
from urlpurifier.core.models import RedirectMapping, RedirectResult, Service
from urlpurifier.core.utils import parse_url, replace_host


logger = logging.getLogger(__name__)


class RedirectProvider:
    """Points URLs of one service at one of its alternative instances.

    Instances are gathered, in service order, from every service whose type
    is a target of the mapping. An instance string may list several
    ``|``-separated addresses; only the first is used.
    """

    def __init__(
        self,
        mapping: RedirectMapping,
        services: Iterable[Service] = (),
        mode: InstancePickMode | str = InstancePickMode.FIRST,
        *,
        rng: Optional[random.Random] = None,
    ):
        """Build a redirect provider.

        Args:
            mapping: Service pattern and target service types
            services: Known services; those not targeted are ignored
            mode: Instance pick mode ("first" or "random")
            rng: Random source for "random" mode

        Raises:
            InvalidRuleError: If the pattern or an instance address is invalid
        """
        self.mapping = mapping
        self.name = mapping.name
        self.mode = InstancePickMode(mode)
        self._rng = rng or random.Random()

        try:
            self.url_pattern = re.compile(mapping.url_pattern, re.IGNORECASE)
        except re.error as e:
            raise InvalidRuleError(
                f"Redirect mapping '{self.name}': invalid urlPattern: {e}"
            ) from e

        self.instances = tuple(
            instance
            for service in services
            if service.type in mapping.targets
            for instance in service.instances
        )

        for instance in self.instances:
            try:
                parse_url(self._target(instance))
            except InvalidURLError as e:
                raise InvalidRuleError(
                    f"Redirect mapping '{self.name}': invalid instance '{instance}'"
                ) from e

    @staticmethod
    def _target(instance: str) -> str:
        return instance.split("|")[0]

    def __repr__(self) -> str:
        return f"RedirectProvider({self.name!r}, instances={len(self.instances)})"

    def matches(self, url: str) -> bool:
        return bool(self.url_pattern.search(url))

    def pick_instance(self) -> Optional[str]:
        """Choose the instance address to redirect to, if any."""
        if not self.instances:
            return None
        if self.mode == InstancePickMode.RANDOM:
            return self._target(self._rng.choice(self.instances))
        return self._target(self.instances[0])

    def redirect(self, url: str) -> RedirectResult:
        """Rewrite ``url`` to an alternative instance.

        Returns:
            RedirectResult; ``changed`` is False when the pattern does not
            match or there are no instances

        Raises:
            InvalidURLError: If ``url`` cannot be parsed
        """
        parse_url(url)

        if not self.matches(url):
            return RedirectResult(url=url, changed=False)

        instance = self.pick_instance()
        if instance is None:
            return RedirectResult(url=url, changed=False)

        redirected = replace_host(url, instance)
        logger.debug(f"{self.name}: {url} -> {redirected}")
        return RedirectResult(url=redirected, changed=redirected != url)
