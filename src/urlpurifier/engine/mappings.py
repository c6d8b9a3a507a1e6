"""Redirect mapping table.

Each mapping names a service whose pages can be served by alternative
front-ends, and the service types (see ``Service.type``) that provide them.
Mappings are applied in table order. Adapted from Farside's service mappings.
"""

from urlpurifier.core.models import RedirectMapping


REDIRECT_MAPPINGS: tuple[RedirectMapping, ...] = (
    RedirectMapping(
        name="YouTube",
        url_pattern=r"^https?://(www\.)?youtu(\.be|be\.com)",
        targets=frozenset({"piped", "invidious"}),
    ),
    RedirectMapping(
        name="Twitter",
        url_pattern=r"^https?://(www\.)?(twitter|x)\.com",
        targets=frozenset({"nitter"}),
    ),
    RedirectMapping(
        name="Reddit",
        url_pattern=r"^https?://(www\.)?reddit\.com",
        targets=frozenset({"libreddit", "redlib", "teddit"}),
    ),
    RedirectMapping(
        name="Google Search",
        url_pattern=r"^https?://(www\.)?google\.com",
        targets=frozenset({"whoogle", "searxng"}),
    ),
    RedirectMapping(
        name="Instagram",
        url_pattern=r"^https?://(www\.)?instagram\.com",
        targets=frozenset({"proxigram"}),
    ),
    RedirectMapping(
        name="Wikipedia",
        url_pattern=r"^https?://(www\.)?wikipedia\.org",
        targets=frozenset({"wikiless"}),
    ),
    RedirectMapping(
        name="Medium",
        url_pattern=r"^https?://(www\.)?medium\.com",
        targets=frozenset({"scribe"}),
    ),
    RedirectMapping(
        name="Odysee",
        url_pattern=r"^https?://(www\.)?odysee\.com",
        targets=frozenset({"librarian"}),
    ),
    RedirectMapping(
        name="Imgur",
        url_pattern=r"^https?://(www\.)?imgur\.com",
        targets=frozenset({"rimgo"}),
    ),
    RedirectMapping(
        name="Google Translate",
        url_pattern=r"^https?://translate\.google\.com",
        targets=frozenset({"lingva", "simplytranslate"}),
    ),
    RedirectMapping(
        name="TikTok",
        url_pattern=r"^https?://(www\.)?tiktok\.com",
        targets=frozenset({"proxitok"}),
    ),
    RedirectMapping(
        name="Fandom",
        url_pattern=r"^https?://.*fandom\.com",
        targets=frozenset({"breezewiki"}),
    ),
    RedirectMapping(
        name="IMDB",
        url_pattern=r"^https?://(www\.)?imdb\.com",
        targets=frozenset({"libremdb"}),
    ),
    RedirectMapping(
        name="Quora",
        url_pattern=r"^https?://(www\.)?quora\.com",
        targets=frozenset({"quetre"}),
    ),
    RedirectMapping(
        name="GitHub",
        url_pattern=r"^https?://(www\.)?github\.com",
        targets=frozenset({"gothub"}),
    ),
    RedirectMapping(
        name="StackOverflow",
        url_pattern=r"^https?://(www\.)?stackoverflow\.com",
        targets=frozenset({"anonymousoverflow"}),
    ),
)


def get_mapping(name: str) -> RedirectMapping:
    """Look up a mapping by name (case-insensitive).

    Raises:
        KeyError: If no mapping has that name
    """
    for mapping in REDIRECT_MAPPINGS:
        if mapping.name.lower() == name.lower():
            return mapping
    raise KeyError(name)
