"""Tests for per-type validation and normalization of enriched values."""

import pytest

from cellfill.models.enrichment import DataType
from cellfill.validators.response_validator import coerce_data_type, validate_response

# ─── Email ────────────────────────────────────────────────────────────────────


class TestEmail:
    """Email extraction, lowercasing and validity."""

    def test_clean_email_untouched(self):
        """Already-normalized email → valid, no corrections, full confidence."""
        result = validate_response("jane.doe@acme.com", DataType.EMAIL)
        assert result.is_valid
        assert result.value == "jane.doe@acme.com"
        assert result.corrections == []
        assert result.confidence == 1.0

    def test_label_and_case_removed(self):
        """'Contact: John.Doe@Acme.com' → label stripped and lowercased."""
        result = validate_response("Contact: John.Doe@Acme.com", "email")
        assert result.is_valid
        assert result.value == "john.doe@acme.com"
        assert "Removed label prefix" in result.corrections
        assert "Lowercased email" in result.corrections
        assert result.confidence == 0.9

    def test_email_pulled_from_sentence(self):
        """Email inside prose → extracted without the trailing period."""
        result = validate_response("The best contact is jane@acme.io.", DataType.EMAIL)
        assert result.value == "jane@acme.io"
        assert "Extracted email from text" in result.corrections

    def test_not_an_email(self):
        """No address present → invalid with low confidence."""
        result = validate_response("not available", DataType.EMAIL)
        assert not result.is_valid
        assert result.confidence == 0.3

    @pytest.mark.parametrize(
        "raw",
        ["Email: SALES@Example.ORG", "reach them at info@globex.com today", "ceo@initech.com"],
    )
    def test_valid_email_always_has_one_at_and_dotted_domain(self, raw):
        """Every valid email result has exactly one @ and a dot after it."""
        result = validate_response(raw, DataType.EMAIL)
        assert result.is_valid
        local, _, domain = result.value.partition("@")
        assert result.value.count("@") == 1
        assert local and "." in domain
        assert " " not in result.value


# ─── URL ──────────────────────────────────────────────────────────────────────


class TestUrl:
    """URL prefixing and cleanup."""

    def test_bare_domain_gets_scheme(self):
        """'acme.com' → 'https://acme.com'."""
        result = validate_response("acme.com", DataType.URL)
        assert result.is_valid
        assert result.value == "https://acme.com"
        assert "Added https:// prefix" in result.corrections

    def test_trailing_slash_removed(self):
        """Trailing slash is dropped."""
        result = validate_response("https://www.acme.com/", DataType.URL)
        assert result.value == "https://www.acme.com"
        assert "Removed trailing slash" in result.corrections

    def test_url_extracted_from_text(self):
        """URL inside a sentence → URL alone."""
        result = validate_response("Their site is https://globex.com/about.", DataType.URL)
        assert result.value == "https://globex.com/about"


# ─── Phone ────────────────────────────────────────────────────────────────────


class TestPhone:
    """US phone formatting."""

    @pytest.mark.parametrize("raw", ["(415) 555-1234", "415.555.1234", "4155551234", "1-415-555-1234"])
    def test_us_numbers_reformatted(self, raw):
        """Ten digits (or 1 + ten digits) without '+' → +1-XXX-XXX-XXXX."""
        result = validate_response(raw, DataType.PHONE)
        assert result.is_valid
        assert result.value == "+1-415-555-1234"
        assert "Formatted as US phone number" in result.corrections

    def test_international_left_alone(self):
        """Numbers with an explicit country code keep their format."""
        result = validate_response("+44 20 7946 0958", DataType.PHONE)
        assert result.is_valid
        assert result.value == "+44 20 7946 0958"
        assert result.corrections == []

    def test_phone_label_removed(self):
        """'Phone: 415-555-1234' → label stripped then formatted."""
        result = validate_response("Phone: 415-555-1234", DataType.PHONE)
        assert result.value == "+1-415-555-1234"
        assert "Removed label prefix" in result.corrections

    def test_too_short(self):
        """Fewer than ten digits → invalid."""
        result = validate_response("555-1234", DataType.PHONE)
        assert not result.is_valid
        assert result.confidence == 0.3


# ─── Currency ─────────────────────────────────────────────────────────────────


class TestCurrency:
    """Dollar formatting and shorthand expansion."""

    def test_million_expanded(self):
        """'$5 million' → '$5,000,000' with extraction and expansion noted."""
        result = validate_response("$5 million", DataType.CURRENCY)
        assert result.is_valid
        assert result.value == "$5,000,000"
        assert "Extracted currency from text" in result.corrections
        assert any(c.startswith("Expanded") for c in result.corrections)
        assert result.confidence == 0.9

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("$2.5B", "$2,500,000,000"),
            ("$750k", "$750,000"),
            ("Revenue was about $12.3 million in 2023", "$12,300,000"),
            ("1200000", "$1,200,000"),
        ],
    )
    def test_amounts_normalized(self, raw, expected):
        """Shorthand, prose and bare numbers all come out as $X,XXX."""
        assert validate_response(raw, DataType.CURRENCY).value == expected

    def test_cents_kept(self):
        """Non-integral amounts keep two decimals."""
        result = validate_response("$1,234.50", DataType.CURRENCY)
        assert result.value == "$1,234.50"
        assert result.corrections == []

    def test_no_amount(self):
        """No number at all → invalid at 0.5."""
        result = validate_response("undisclosed", DataType.CURRENCY)
        assert not result.is_valid
        assert result.confidence == 0.5


# ─── Date ─────────────────────────────────────────────────────────────────────


class TestDate:
    """ISO date normalization."""

    @pytest.mark.parametrize(
        "raw",
        ["March 15, 2024", "03/15/2024", "15 March 2024", "Mar 15th, 2024", "2024-03-15"],
    )
    def test_formats_standardized(self, raw):
        """Common date spellings → YYYY-MM-DD."""
        result = validate_response(raw, DataType.DATE)
        assert result.is_valid
        assert result.value == "2024-03-15"

    def test_year_only(self):
        """A bare year → January 1 of that year, lower confidence."""
        result = validate_response("Founded in 2019", DataType.DATE)
        assert result.is_valid
        assert result.value == "2019-01-01"
        assert result.confidence == 0.6

    def test_day_first_date(self):
        """'13/01/2024' cannot be month-first → read as 13 January."""
        result = validate_response("13/01/2024", DataType.DATE)
        assert result.is_valid
        assert result.value == "2024-01-13"
        assert "Read as day/month/year" in result.corrections

    def test_unparseable_date_not_reduced_to_year(self):
        """A full date that parses neither way → invalid, never January 1."""
        result = validate_response("31/31/2024", DataType.DATE)
        assert not result.is_valid
        assert result.value == "31/31/2024"
        assert result.confidence == 0.4
        assert "Could not parse '31/31/2024'" in result.corrections

    def test_no_date(self):
        """Nothing date-like → invalid at 0.4."""
        result = validate_response("a long time ago", DataType.DATE)
        assert not result.is_valid
        assert result.confidence == 0.4


# ─── Names ────────────────────────────────────────────────────────────────────


class TestName:
    """Person names: titles, labels, casing and extraction."""

    def test_honorific_removed(self):
        """'Dr. Jane Doe' → 'Jane Doe'."""
        result = validate_response("Dr. Jane Doe", DataType.NAME)
        assert result.is_valid
        assert result.value == "Jane Doe"
        assert "Removed title/prefix" in result.corrections

    def test_label_and_casing(self):
        """'CEO: john smith' → 'John Smith'."""
        result = validate_response("CEO: john smith", DataType.CEO)
        assert result.value == "John Smith"
        assert "Normalized capitalization" in result.corrections

    def test_name_from_sentence(self):
        """'The CEO of Acme Corp is Jane Doe.' → 'Jane Doe'."""
        result = validate_response("The CEO of Acme Corp is Jane Doe.", DataType.CEO)
        assert result.is_valid
        assert result.value == "Jane Doe"

    def test_name_before_role(self):
        """'Jane Doe, CEO' → 'Jane Doe'."""
        assert validate_response("Jane Doe, CEO", DataType.CEO).value == "Jane Doe"

    def test_mixed_case_name_preserved(self):
        """'John McDonald' keeps its internal capital but is flagged for review."""
        result = validate_response("John McDonald", DataType.NAME)
        assert not result.is_valid
        assert result.value == "John McDonald"
        assert any("check it by hand" in c for c in result.corrections)

    @pytest.mark.parametrize("raw", ["Satya McDonald", "J. Smith", "Mary O'Brien", "Anne Smith-Jones"])
    def test_unusual_forms_invalid(self, raw):
        """Initials, apostrophes, hyphens and inner capitals → invalid at 0.5."""
        result = validate_response(raw, DataType.CEO)
        assert not result.is_valid
        assert result.confidence == 0.5

    def test_suffix_removed(self):
        """Generational suffixes are dropped."""
        assert validate_response("Robert Downey Jr.", DataType.NAME).value == "Robert Downey"


# ─── Numbers and text ─────────────────────────────────────────────────────────


class TestNumberAndText:
    """Numbers, ranges and free text."""

    def test_thousands_separators(self):
        """'12,500' → '12500'."""
        result = validate_response("12,500", DataType.NUMBER)
        assert result.value == "12500"
        assert "Removed thousands separators" in result.corrections

    def test_range_preserved(self):
        """'100 to 500 employees' → '100-500'."""
        assert validate_response("100 to 500 employees", DataType.NUMBER).value == "100-500"

    def test_text_always_valid(self):
        """Text passes through trimmed at 0.8."""
        result = validate_response("  Makes widgets  ", DataType.TEXT)
        assert result.is_valid
        assert result.value == "Makes widgets"
        assert result.confidence == 0.8

    def test_unknown_type_is_text(self):
        """Unknown type strings fall back to text."""
        assert coerce_data_type("mystery") == DataType.TEXT
        assert validate_response("anything", "mystery").confidence == 0.8


# ─── Cross-type properties ────────────────────────────────────────────────────


class TestProperties:
    """Empty input and idempotence hold for every type."""

    @pytest.mark.parametrize("data_type", list(DataType))
    @pytest.mark.parametrize("raw", ["", "   ", None])
    def test_empty_input(self, data_type, raw):
        """Empty or whitespace → invalid, confidence 0, 'Empty value'."""
        result = validate_response(raw, data_type)
        assert not result.is_valid
        assert result.confidence == 0.0
        assert result.corrections == ["Empty value"]

    @pytest.mark.parametrize(
        "raw,data_type",
        [
            ("Contact: John.Doe@Acme.com", DataType.EMAIL),
            ("acme.com/", DataType.URL),
            ("(415) 555-1234", DataType.PHONE),
            ("$5 million", DataType.CURRENCY),
            ("March 15, 2024", DataType.DATE),
            ("Founded in 2019", DataType.DATE),
            ("Dr. jane doe", DataType.NAME),
            ("The founder is Jane Doe", DataType.FOUNDER),
            ("12,500", DataType.NUMBER),
            ("Makes widgets", DataType.TEXT),
        ],
    )
    def test_normalization_is_idempotent(self, raw, data_type):
        """Normalizing a normalized value changes nothing."""
        once = validate_response(raw, data_type)
        twice = validate_response(once.value, data_type)
        assert twice.value == once.value
        assert twice.is_valid == once.is_valid
