"""URL field utilities for the cleaning engine.

The engine treats a URL as three parts: everything up to the path (the
"domain"), the query string and the fragment. Query and fragment are both
read as ``key=value`` lists so tracking fields can be removed from either.
"""

import re
from typing import Iterator
from urllib.parse import SplitResult, unquote, unquote_plus, urlsplit, urlunsplit

from urlpurifier.core.constants import SPECIAL_SCHEMES
from urlpurifier.core.exceptions import InvalidURLError


_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.\-]*$")


def parse_url(url: str) -> SplitResult:
    """Split a URL, rejecting anything that is not an absolute URL.

    Args:
        url: URL to parse

    Returns:
        SplitResult for the URL

    Raises:
        InvalidURLError: If the URL is empty, has no scheme, has no host for
            a web scheme, or carries an invalid port
    """
    if not url or not isinstance(url, str):
        raise InvalidURLError(f"Invalid URL: {url!r}")

    try:
        parts = urlsplit(url)
        # Accessing .port validates it
        parts.port
    except ValueError as e:
        raise InvalidURLError(f"Failed to parse URL '{url}': {e}") from e

    if not parts.scheme or not _SCHEME_RE.match(parts.scheme):
        raise InvalidURLError(f"URL has no valid scheme: {url}")

    if parts.scheme.lower() in SPECIAL_SCHEMES and not parts.hostname:
        raise InvalidURLError(f"URL has no host: {url}")

    return parts


class FieldParams:
    """Ordered ``key=value`` fields of a query string or fragment.

    Keys are compared in decoded form. Each surviving field is written back
    exactly as it appeared in the input, so cleaning never re-encodes
    values it did not touch.
    """

    def __init__(self, text: str = ""):
        self._fields: list[tuple[str, str]] = []
        for segment in text.split("&"):
            if not segment:
                continue
            raw_key = segment.split("=", 1)[0]
            self._fields.append((unquote_plus(raw_key), segment))

    def keys(self) -> list[str]:
        """Distinct decoded keys, in order of first appearance."""
        return list(dict.fromkeys(key for key, _ in self._fields))

    def delete(self, key: str) -> None:
        """Remove every field named ``key``."""
        self._fields = [f for f in self._fields if f[0] != key]

    def __contains__(self, key: object) -> bool:
        return any(k == key for k, _ in self._fields)

    def __iter__(self) -> Iterator[str]:
        return iter(self.keys())

    def __len__(self) -> int:
        return len(self._fields)

    def __str__(self) -> str:
        return "&".join(segment for _, segment in self._fields)


def url_without_params_and_hash(parts: SplitResult) -> str:
    """Return scheme, authority and path only."""
    path = parts.path
    if not path and parts.scheme.lower() in SPECIAL_SCHEMES:
        path = "/"
    return urlunsplit((parts.scheme, parts.netloc, path, "", ""))


def is_encoded(text: str) -> bool:
    """Check if one more decoding pass would change the text."""
    return text != unquote(text)


def decode_url(text: str) -> str:
    """Decode a URL that may be percent-encoded several times over.

    Decoding repeats until the text is stable. A result without an
    ``http`` scheme prefix gets ``http://`` prepended.

    Args:
        text: Encoded URL, typically captured from a wrapper link

    Returns:
        Fully decoded URL
    """
    decoded = unquote(text)
    while is_encoded(decoded):
        decoded = unquote(decoded)

    if not decoded.startswith("http"):
        decoded = "http://" + decoded

    return decoded


def replace_host(url: str, instance: str) -> str:
    """Point ``url`` at the scheme and host of ``instance``.

    Userinfo, path, query and fragment of ``url`` are kept.

    Raises:
        InvalidURLError: If either argument is not a valid URL
    """
    parts = parse_url(url)
    target = parse_url(instance)

    host = target.netloc.rpartition("@")[2]
    userinfo = parts.netloc.rpartition("@")[0]
    netloc = f"{userinfo}@{host}" if userinfo else host

    path = parts.path
    if not path and target.scheme.lower() in SPECIAL_SCHEMES:
        path = "/"

    return urlunsplit((target.scheme, netloc, path, parts.query, parts.fragment))
