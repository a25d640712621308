"""
Tests for extractor.citations module.

Tests cover:
- Domain normalization
- Explicit citations: URLs, www domains, bare domains, markdown links
- Deduplication by domain in order of first appearance
- Implicit citations synthesized from named entities
- Brand-owned detection via brand domain and name slugs
- Idempotent extraction
"""

from geo_audit.extractor.citations import (
    IMPLICIT_SNIPPET,
    Citation,
    extract_citations,
    extract_explicit_citations,
    extract_implicit_citations,
    is_brand_domain,
    mark_brand_owned,
    merge_citation_lists,
    normalize_domain,
    slugify_name,
)


class TestNormalizeDomain:
    """Test suite for normalize_domain()."""

    def test_strips_www_and_lowercases(self):
        assert normalize_domain("https://WWW.Acme.com/pricing") == "acme.com"

    def test_protocol_less(self):
        assert normalize_domain("bumble.com/about") == "bumble.com"

    def test_keeps_subdomains(self):
        assert normalize_domain("https://docs.acme.io") == "docs.acme.io"

    def test_empty(self):
        assert normalize_domain("") == ""


class TestSlugifyName:
    """Test suite for slugify_name()."""

    def test_drops_non_alphanumerics(self):
        assert slugify_name("Acme Corp.") == "acmecorp"
        assert slugify_name("Zenith-42") == "zenith42"


class TestExplicitCitations:
    """Test suite for extract_explicit_citations()."""

    def test_http_url(self):
        citations = extract_explicit_citations("See https://www.acme.com/pricing.")

        assert len(citations) == 1
        assert citations[0].url == "https://www.acme.com/pricing"
        assert citations[0].domain == "acme.com"
        assert citations[0].title == "acme.com"
        assert citations[0].position == 1

    def test_bare_domain_gets_protocol(self):
        citations = extract_explicit_citations("Visit bumble.com today")

        assert [c.url for c in citations] == ["https://bumble.com"]

    def test_www_domain(self):
        citations = extract_explicit_citations("Go to www.zenith.org for more")

        assert citations[0].domain == "zenith.org"
        assert citations[0].url == "https://www.zenith.org"

    def test_short_bare_host_dropped(self):
        assert extract_explicit_citations("it is x.co now") == []

    def test_email_is_not_a_citation(self):
        assert extract_explicit_citations("mail info@acme.com") == []

    def test_dedup_by_domain_keeps_first_url(self):
        citations = extract_explicit_citations(
            "https://acme.com/a and later https://acme.com/b"
        )

        assert len(citations) == 1
        assert citations[0].url == "https://acme.com/a"

    def test_order_of_first_appearance(self):
        citations = extract_explicit_citations(
            "First https://bumble.com then https://acme.com then bumble.com"
        )

        assert [c.domain for c in citations] == ["bumble.com", "acme.com"]
        assert [c.position for c in citations] == [1, 2]

    def test_markdown_title(self):
        citations = extract_explicit_citations("Read [Acme Guide](https://acme.com/guide)")

        assert len(citations) == 1
        assert citations[0].title == "Acme Guide"
        assert citations[0].url == "https://acme.com/guide"

    def test_markdown_title_upgrades_plain_url(self):
        citations = extract_explicit_citations(
            "https://acme.com then [Acme Docs](https://acme.com/docs)"
        )

        assert len(citations) == 1
        assert citations[0].url == "https://acme.com"
        assert citations[0].title == "Acme Docs"

    def test_empty_text(self):
        assert extract_explicit_citations("") == []


class TestImplicitCitations:
    """Test suite for extract_implicit_citations()."""

    def test_brand_and_competitors(self):
        citations = extract_implicit_citations(
            "Acme and Bumble are options", "Acme", (), ["Bumble", "Hinge"]
        )

        assert [c.domain for c in citations] == ["acme.com", "bumble.com"]
        assert citations[0].is_brand_owned is True
        assert citations[1].is_brand_owned is False
        assert all(c.inferred for c in citations)
        assert citations[0].snippet == IMPLICIT_SNIPPET
        assert citations[0].title == "Acme"

    def test_alias_is_brand_owned(self):
        citations = extract_implicit_citations("Try AcmeCo", "Acme Corporation", ["AcmeCo"])

        assert citations[0].domain == "acmeco.com"
        assert citations[0].is_brand_owned is True

    def test_single_character_names_ignored(self):
        assert extract_implicit_citations("X marks the spot", "X") == []


class TestBrandOwnership:
    """Test suite for is_brand_domain() and mark_brand_owned()."""

    def test_brand_domain_substring(self):
        citation = Citation(url="https://shop.acmecorp.net/x", domain="shop.acmecorp.net")

        assert is_brand_domain(citation, ["Acme"], "acmecorp.net") is True

    def test_first_label_matches_slug(self):
        citation = Citation(url="https://acme.io", domain="acme.io")

        assert is_brand_domain(citation, ["Acme"], None) is True

    def test_similar_domain_is_not_owned(self):
        citation = Citation(url="https://acmefans.com", domain="acmefans.com")

        assert is_brand_domain(citation, ["Acme"], None) is False

    def test_mark_brand_owned_keeps_existing_flag(self):
        citations = [
            Citation(url="https://acme.com", domain="acme.com"),
            Citation(url="https://x.org", domain="x.org", is_brand_owned=True),
            Citation(url="https://bumble.com", domain="bumble.com"),
        ]

        marked = mark_brand_owned(citations, ["Acme"])

        assert [c.is_brand_owned for c in marked] == [True, True, False]


class TestMergeCitationLists:
    """Test suite for merge_citation_lists()."""

    def test_primary_wins_and_positions_renumbered(self):
        primary = [Citation(url="https://acme.com/a", domain="acme.com", position=1)]
        secondary = [
            Citation(url="https://acme.com", domain="acme.com", inferred=True),
            Citation(url="https://bumble.com", domain="bumble.com", inferred=True),
        ]

        merged = merge_citation_lists(primary, secondary)

        assert [c.domain for c in merged] == ["acme.com", "bumble.com"]
        assert merged[0].inferred is False
        assert [c.position for c in merged] == [1, 2]


class TestExtractCitations:
    """Test suite for extract_citations()."""

    def test_explicit_before_implicit(self):
        citations = extract_citations(
            "Try [Acme](https://acme.com/pricing) or Bumble", "Acme", (), ["Bumble"]
        )

        assert [c.domain for c in citations] == ["acme.com", "bumble.com"]
        assert citations[0].inferred is False
        assert citations[0].is_brand_owned is True
        assert citations[1].inferred is True

    def test_idempotent(self):
        text = (
            "1. Acme - https://acme.com\n2. Bumble (www.bumble.com)\n"
            "See [review](https://reviews.org/crm) and zenith.io"
        )

        first = extract_citations(text, "Acme", (), ["Bumble", "Zenith"], "acme.com")
        second = extract_citations(text, "Acme", (), ["Bumble", "Zenith"], "acme.com")

        assert first == second

    def test_unique_domains(self):
        text = "https://acme.com https://acme.com/x www.acme.com Acme"

        citations = extract_citations(text, "Acme")

        assert [c.domain for c in citations] == ["acme.com"]
