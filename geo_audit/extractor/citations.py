"""
Citation extraction from a single answer text.

Two kinds of citations are recovered:

Explicit citations come from the text itself: http(s) URLs, "www." bare
domains, bare domains with a known TLD and markdown links [title](url).

Implicit citations cover generative answers that name an entity without
linking it. Every brand, alias or competitor name found in the text yields
a synthesized citation https://<slug>.com marked inferred=True. The domain
is a proxy for "the answer referenced this entity", not a verified site.

Results are deduplicated by normalized domain and keep the order in which
domains first appear. Explicit citations always take priority over
implicit ones for the same domain. Extraction is idempotent.

Example:
    >>> citations = extract_citations(
    ...     "Try [Acme](https://acme.com/pricing) or www.bumble.com", "Acme"
    ... )
    >>> [c.domain for c in citations]
    ['acme.com', 'bumble.com']
"""

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, replace
from urllib.parse import urlparse

KNOWN_TLDS = ("com", "org", "net", "io", "co", "ai", "dev", "app", "edu", "gov", "info")

_URL_CHARS = r"[^\s<>\"{}|\\^`\[\]]"

HTTP_URL_PATTERN = re.compile(rf"https?://{_URL_CHARS}+")
WWW_DOMAIN_PATTERN = re.compile(
    rf"(?:^|\s)(www\.[a-zA-Z0-9][a-zA-Z0-9-]*\.[a-zA-Z]{{2,}}{_URL_CHARS}*)"
)
BARE_DOMAIN_PATTERN = re.compile(
    rf"(?:^|\s)([a-zA-Z0-9][a-zA-Z0-9-]*\.(?:{'|'.join(KNOWN_TLDS)})\b{_URL_CHARS}*)"
)
MARKDOWN_LINK_PATTERN = re.compile(r"\[([^\]]+)\]\(([^)\s]+)\)")

TRAILING_PUNCTUATION = re.compile(r"[.,;:!?)]+$")

# Bare matches with no path and a host shorter than this are dropped
MIN_BARE_HOST_LENGTH = 5

# Names shorter than this never produce implicit citations
MIN_IMPLICIT_NAME_LENGTH = 2

IMPLICIT_SNIPPET = "Mentioned in AI response"


@dataclass(frozen=True)
class Citation:
    """
    A source referenced by an answer.

    Attributes:
        url: Absolute URL (https:// added to protocol-less matches)
        domain: Lowercase host without "www."
        title: Link text, page title or entity name
        position: 1-based order of first appearance within the answer
        snippet: Optional supporting text
        is_brand_owned: Domain belongs to the audited brand
        inferred: Synthesized from a plain-text mention, not extracted
    """

    url: str
    domain: str
    title: str = ""
    position: int = 0
    snippet: str | None = None
    is_brand_owned: bool = False
    inferred: bool = False

    def to_dict(self) -> dict:
        return {
            "url": self.url,
            "domain": self.domain,
            "title": self.title,
            "position": self.position,
            "snippet": self.snippet,
            "is_brand_owned": self.is_brand_owned,
            "inferred": self.inferred,
        }


def normalize_domain(url: str) -> str:
    """
    Lowercase host of a URL with any "www." prefix removed.

    Protocol-less input is accepted. Returns "" when no host can be parsed.

    Examples:
        >>> normalize_domain("https://WWW.Acme.com/pricing")
        'acme.com'
        >>> normalize_domain("bumble.com")
        'bumble.com'
    """
    if not url:
        return ""
    candidate = url.strip()
    if not re.match(r"^[a-zA-Z][a-zA-Z0-9+.-]*://", candidate):
        candidate = f"https://{candidate}"
    try:
        host = urlparse(candidate).hostname or ""
    except ValueError:
        return ""
    return host.lower().removeprefix("www.")


def slugify_name(name: str) -> str:
    """Lowercase a name and drop every non-alphanumeric character."""
    return re.sub(r"[^a-z0-9]", "", name.lower())


def _clean_url(raw: str) -> str:
    return TRAILING_PUNCTUATION.sub("", raw.strip())


def _with_protocol(url: str) -> str:
    if re.match(r"^https?://", url, re.IGNORECASE):
        return url
    return f"https://{url}"


def _is_short_bare_host(url: str) -> bool:
    parsed = urlparse(url)
    has_path = parsed.path not in ("", "/") or bool(parsed.query)
    host = (parsed.hostname or "").removeprefix("www.")
    return not has_path and len(host) < MIN_BARE_HOST_LENGTH


def _explicit_matches(text: str) -> list[tuple[int, str, str]]:
    """Collect (offset, url, title) for every explicit reference in text."""
    matches: list[tuple[int, str, str]] = []

    for match in MARKDOWN_LINK_PATTERN.finditer(text):
        title = match.group(1).strip()
        url = _clean_url(match.group(2))
        if url:
            matches.append((match.start(), _with_protocol(url), title))

    for match in HTTP_URL_PATTERN.finditer(text):
        url = _clean_url(match.group(0))
        if url:
            matches.append((match.start(), url, ""))

    for pattern in (WWW_DOMAIN_PATTERN, BARE_DOMAIN_PATTERN):
        for match in pattern.finditer(text):
            start = match.start(1)
            # Part of an http(s) URL or an e-mail address
            if start > 0 and text[start - 1] in "/@.":
                continue
            url = _with_protocol(_clean_url(match.group(1)))
            if pattern is BARE_DOMAIN_PATTERN and _is_short_bare_host(url):
                continue
            matches.append((start, url, ""))

    matches.sort(key=lambda item: item[0])
    return matches


def extract_explicit_citations(text: str) -> list[Citation]:
    """
    Extract URL, bare-domain and markdown-link citations from text.

    Returns:
        Citations deduplicated by domain in order of first appearance.
        A markdown link title is kept even when a plain URL for the same
        domain appears first.
    """
    if not text:
        return []

    by_domain: dict[str, Citation] = {}
    for _offset, url, title in _explicit_matches(text):
        domain = normalize_domain(url)
        if not domain or "." not in domain:
            continue

        existing = by_domain.get(domain)
        if existing is None:
            by_domain[domain] = Citation(
                url=url,
                domain=domain,
                title=title or domain,
                position=len(by_domain) + 1,
            )
        elif title and existing.title == existing.domain:
            by_domain[domain] = replace(existing, title=title)

    return list(by_domain.values())


def extract_implicit_citations(
    text: str,
    brand_name: str,
    aliases: Sequence[str] = (),
    competitors: Sequence[str] = (),
) -> list[Citation]:
    """
    Synthesize https://<slug>.com citations for entities named in text.

    Brand and alias citations are brand-owned; competitor citations are
    not. Names shorter than two characters are ignored.
    """
    if not text:
        return []

    lowered = text.lower()
    brand_terms = [brand_name, *aliases]
    parties = [(name, True) for name in brand_terms] + [
        (name, False) for name in competitors
    ]

    citations: dict[str, Citation] = {}
    for name, is_brand in parties:
        name = (name or "").strip()
        if len(name) < MIN_IMPLICIT_NAME_LENGTH or name.lower() not in lowered:
            continue
        slug = slugify_name(name)
        if not slug:
            continue
        domain = f"{slug}.com"
        if domain in citations:
            continue
        citations[domain] = Citation(
            url=f"https://{domain}",
            domain=domain,
            title=name,
            position=len(citations) + 1,
            snippet=IMPLICIT_SNIPPET,
            is_brand_owned=is_brand,
            inferred=True,
        )
    return list(citations.values())


def merge_citation_lists(
    primary: Iterable[Citation], secondary: Iterable[Citation]
) -> list[Citation]:
    """
    Append secondary citations whose domain is not already in primary.

    Positions are renumbered to the merged order.
    """
    merged: list[Citation] = []
    seen: set[str] = set()
    for citation in [*primary, *secondary]:
        if citation.domain in seen:
            continue
        seen.add(citation.domain)
        merged.append(replace(citation, position=len(merged) + 1))
    return merged


def is_brand_domain(
    citation: Citation, brand_terms: Sequence[str], brand_domain: str | None
) -> bool:
    """
    Whether a citation points at the brand's own site.

    True when the domain or URL contains brand_domain, or when the domain's
    first label equals the slug of the brand or an alias ("acme.com",
    "acme.io" for "Acme").
    """
    if brand_domain:
        needle = brand_domain.lower()
        if needle in citation.domain or needle in citation.url.lower():
            return True

    label = citation.domain.split(".", 1)[0]
    slugs = {slugify_name(term) for term in brand_terms if term}
    slugs.discard("")
    return label in slugs


def mark_brand_owned(
    citations: Iterable[Citation],
    brand_terms: Sequence[str],
    brand_domain: str | None = None,
) -> list[Citation]:
    """Set is_brand_owned on citations that point at the brand's own site."""
    return [
        replace(
            c,
            is_brand_owned=c.is_brand_owned or is_brand_domain(c, brand_terms, brand_domain),
        )
        for c in citations
    ]


def extract_citations(
    text: str,
    brand_name: str,
    aliases: Sequence[str] = (),
    competitors: Sequence[str] = (),
    brand_domain: str | None = None,
) -> list[Citation]:
    """
    Explicit citations followed by implicit ones for unseen domains.

    Brand ownership is resolved against the brand name, aliases and the
    optional brand_domain.
    """
    explicit = extract_explicit_citations(text)
    implicit = extract_implicit_citations(text, brand_name, aliases, competitors)
    merged = merge_citation_lists(explicit, implicit)
    return mark_brand_owned(merged, [brand_name, *aliases], brand_domain)
