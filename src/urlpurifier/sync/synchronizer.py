"""Rule database download, verification and caching."""

import hashlib
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import httpx

from urlpurifier.core.config import PurifierSettings
from urlpurifier.core.constants import CACHE_HASH_FILE, CACHE_RULES_FILE, HashStatus
from urlpurifier.core.exceptions import HashMismatchError, RuleSetError, SyncError
from urlpurifier.core.models import RuleSet


logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    status: HashStatus
    ruleset: RuleSet


def sha256_hex(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


class RulesetSynchronizer:
    """Keeps a local copy of the published rule database up to date.

    The remote publishes the rules and, separately, the SHA-256 of the
    rules text. Rules are only downloaded when the published hash differs
    from the cached one, and only cached when the download matches it.
    """

    def __init__(
        self,
        settings: PurifierSettings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize synchronizer.

        Args:
            settings: Rule URLs, cache directory and timeout
            transport: Custom httpx transport (used by tests)
        """
        self.settings = settings
        self.cache_dir = Path(settings.cache_dir)
        self.rules_path = self.cache_dir / CACHE_RULES_FILE
        self.hash_path = self.cache_dir / CACHE_HASH_FILE
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.settings.timeout,
            follow_redirects=True,
            transport=self._transport,
        )

    # ------------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------------

    def cached_hash(self) -> Optional[str]:
        if not self.hash_path.exists():
            return None
        return self.hash_path.read_text(encoding="utf-8").strip() or None

    def load_cached(self) -> Optional[RuleSet]:
        """Load the cached rule database, if there is one.

        Raises:
            SyncError: If the cache exists but cannot be parsed
        """
        if not self.rules_path.exists():
            return None

        try:
            data = json.loads(self.rules_path.read_text(encoding="utf-8"))
            return RuleSet.from_dict(data, source_hash=self.cached_hash())
        except (OSError, json.JSONDecodeError, RuleSetError) as e:
            raise SyncError(f"Cached rules at {self.rules_path} are unusable: {e}") from e

    def _store(self, text: str, digest: str) -> None:
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            self.rules_path.write_text(text, encoding="utf-8")
            self.hash_path.write_text(digest, encoding="utf-8")
        except OSError as e:
            raise SyncError(f"Failed to write rules cache: {e}") from e

    def _fallback(self, status: HashStatus, error: SyncError) -> SyncResult:
        cached = self.load_cached()
        if cached is None:
            raise error
        logger.warning(f"Using cached rules ({status.name.lower()}): {error}")
        return SyncResult(status=status, ruleset=cached)

    # ------------------------------------------------------------------------
    # Remote
    # ------------------------------------------------------------------------

    async def fetch_text(self, client: httpx.AsyncClient, url: str) -> str:
        """Download ``url`` and return its trimmed body.

        Raises:
            SyncError: On transport errors, non-2xx status, or an empty body
        """
        try:
            response = await client.get(url)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise SyncError(f"Download of {url} failed: HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise SyncError(f"Download of {url} failed: {e}") from e

        text = response.text.strip()
        if not text:
            raise SyncError(f"Download of {url} returned an empty body")
        return text

    async def sync(self) -> SyncResult:
        """Bring the local rules up to date.

        Returns:
            SyncResult with the status and the rules to use

        Raises:
            SyncError: If nothing usable could be downloaded and no cache exists
            HashMismatchError: If the download does not match the published
                hash and no cache exists
        """
        async with self._client() as client:
            try:
                remote_hash = await self.fetch_text(client, self.settings.hash_url)
            except SyncError as e:
                logger.error(f"Could not download the rules hash: {e}")
                return self._fallback(HashStatus.DOWNLOAD_FAILED, e)

            if remote_hash == self.cached_hash():
                cached = self.load_cached()
                if cached is not None:
                    logger.info("Rules are up to date")
                    return SyncResult(status=HashStatus.UP_TO_DATE, ruleset=cached)

            try:
                text = await self.fetch_text(client, self.settings.rules_url)
            except SyncError as e:
                logger.error(f"Could not download the rules: {e}")
                return self._fallback(HashStatus.DOWNLOAD_FAILED, e)

        digest = sha256_hex(text)
        if digest != remote_hash:
            logger.error(f"The hash does not match. Expected '{remote_hash}' got '{digest}'")
            return self._fallback(
                HashStatus.HASH_MISMATCH,
                HashMismatchError(f"Expected hash {remote_hash}, got {digest}"),
            )

        try:
            ruleset = RuleSet.from_dict(json.loads(text), source_hash=digest)
        except (json.JSONDecodeError, RuleSetError) as e:
            logger.error(f"Downloaded rules are invalid: {e}")
            return self._fallback(HashStatus.UNKNOWN_ERROR, SyncError(f"Invalid rules: {e}"))

        self._store(text, digest)
        logger.info(f"Updated rules: {len(ruleset)} providers")
        return SyncResult(status=HashStatus.UPDATED, ruleset=ruleset)
