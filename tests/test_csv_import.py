"""
Tests for bulk-upload CSV parsing and validation.

Tests cover:
- Line splitting with quotes, escaped quotes and commas inside quotes
- Header validation (required columns, case-insensitivity)
- Row validation (column counts, required values, numeric ranges)
- All-or-nothing behaviour and row numbering
- Upload pre-checks (extension, size, encoding)
"""

import pytest

from app.core.errors import CsvValidationError
from app.services.csv_import import (
    CsvRecord,
    decode_csv_upload,
    parse_csv,
    parse_csv_line,
    validate_upload,
)

HEADER = "name,location,description,contact_email"


class TestParseCsvLine:
    def test_simple_values(self):
        assert parse_csv_line("a,b,c") == ["a", "b", "c"]

    def test_values_are_trimmed(self):
        assert parse_csv_line(" a , b ,c ") == ["a", "b", "c"]

    def test_comma_inside_quotes(self):
        assert parse_csv_line('Acme,"Great, agency",x') == ["Acme", "Great, agency", "x"]

    def test_escaped_quotes(self):
        assert parse_csv_line('"She said ""hi""",b') == ['She said "hi"', "b"]

    def test_empty_fields(self):
        assert parse_csv_line("a,,c,") == ["a", "", "c", ""]

    def test_strips_bom(self):
        assert parse_csv_line("\ufeffname,location") == ["name", "location"]


class TestParseCsv:
    def test_quoted_comma_and_defaults(self):
        """Comma inside quotes is preserved and numeric defaults are applied."""
        content = 'name,location,description,contact_email\nAcme Edu,Pune,"Great, agency",a@b.com'

        records = parse_csv(content)

        assert records == [
            CsvRecord(
                name="Acme Edu",
                location="Pune",
                description="Great, agency",
                contact_email="a@b.com",
                trust_score=0,
                price=0,
            )
        ]

    def test_n_rows_give_n_records(self):
        rows = [f"Agency {i},City {i},Desc {i},a{i}@b.com" for i in range(25)]
        records = parse_csv("\n".join([HEADER] + rows))

        assert len(records) == 25
        assert [r.name for r in records] == [f"Agency {i}" for i in range(25)]
        for record in records:
            assert record.name and record.location and record.description and record.contact_email
            assert 0 <= record.trust_score <= 100
            assert record.price >= 0

    def test_all_columns(self):
        content = (
            "name,location,description,contact_email,trust_score,price,contact_phone,website,business_hours\n"
            'Acme,Pune,Desc,a@b.com,85.5,1200,+91 98765 43210,https://acme.edu,"Mon-Fri, 9-5"'
        )
        record = parse_csv(content)[0]

        assert record.trust_score == 85.5
        assert record.price == 1200
        assert record.contact_phone == "+91 98765 43210"
        assert record.website == "https://acme.edu"
        assert record.business_hours == "Mon-Fri, 9-5"

    def test_headers_case_insensitive_and_any_order(self):
        content = "Contact_Email, NAME ,Description,LOCATION\na@b.com,Acme,Desc,Pune"
        record = parse_csv(content)[0]
        assert record.name == "Acme"
        assert record.location == "Pune"
        assert record.contact_email == "a@b.com"

    def test_unknown_columns_ignored(self):
        content = f"{HEADER},rating\nAcme,Pune,Desc,a@b.com,5"
        record = parse_csv(content)[0]
        assert not hasattr(record, "rating")

    def test_bom_and_crlf(self):
        content = f"\ufeff{HEADER}\r\nAcme,Pune,Desc,a@b.com\r\n"
        assert len(parse_csv(content)) == 1

    def test_blank_lines_skipped(self):
        content = f"{HEADER}\n\nAcme,Pune,Desc,a@b.com\n   \nBeta,Goa,Desc,b@b.com\n"
        assert [r.name for r in parse_csv(content)] == ["Acme", "Beta"]

    def test_reparse_is_idempotent(self):
        content = f'{HEADER},trust_score\nAcme,Pune,"Desc, long",a@b.com,40\nBeta,Goa,Desc,b@b.com,'
        assert parse_csv(content) == parse_csv(content)

    def test_numeric_prefix_parsing(self):
        """Values like "80%" use their leading number."""
        content = f"{HEADER},trust_score,price\nAcme,Pune,Desc,a@b.com,80%,1500INR"
        record = parse_csv(content)[0]
        assert record.trust_score == 80
        assert record.price == 1500

    def test_empty_optional_numbers_default_to_zero(self):
        content = f"{HEADER},trust_score,price\nAcme,Pune,Desc,a@b.com,,"
        record = parse_csv(content)[0]
        assert record.trust_score == 0
        assert record.price == 0

    def test_to_insert_payload(self):
        record = parse_csv(f"{HEADER}\nAcme,Pune,Desc,a@b.com")[0]
        payload = record.to_insert_payload("admin-1")

        assert payload["owner_id"] == "admin-1"
        assert payload["status"] == "pending"
        assert payload["trust_score"] == 0
        assert payload["website"] == ""


class TestParseCsvErrors:
    @pytest.mark.parametrize("content", ["", HEADER, f"\n{HEADER}\n\n"])
    def test_needs_header_and_data_row(self, content):
        with pytest.raises(CsvValidationError, match="must contain a header row and at least one data row"):
            parse_csv(content)

    @pytest.mark.parametrize("missing", ["name", "location", "description", "contact_email"])
    def test_missing_required_header(self, missing):
        headers = [h for h in HEADER.split(",") if h != missing]
        content = ",".join(headers) + "\n" + ",".join("x" for _ in headers)

        with pytest.raises(CsvValidationError) as exc_info:
            parse_csv(content)

        assert str(exc_info.value) == f"Missing required column: {missing}"
        assert exc_info.value.column == missing

    def test_column_count_mismatch_names_row(self):
        content = f"{HEADER}\nAcme,Pune,Desc,a@b.com\nBeta,Goa,b@b.com"

        with pytest.raises(CsvValidationError) as exc_info:
            parse_csv(content)

        assert str(exc_info.value) == "Error in row 3: Row 3 has 3 columns but should have 4"
        assert exc_info.value.row == 3

    def test_missing_required_value(self):
        content = f"{HEADER}\nAcme,,Desc,a@b.com"

        with pytest.raises(CsvValidationError) as exc_info:
            parse_csv(content)

        assert str(exc_info.value) == "Error in row 2: Missing required value for location in row 2"
        assert exc_info.value.column == "location"

    def test_trust_score_out_of_range(self):
        """A trust_score of 150 fails the whole parse."""
        content = f"{HEADER},trust_score\nAcme,Pune,Desc,a@b.com,50\nBeta,Goa,Desc,b@b.com,150"

        with pytest.raises(CsvValidationError) as exc_info:
            parse_csv(content)

        assert "row 3" in str(exc_info.value)
        assert "Trust score must be between 0 and 100" in str(exc_info.value)

    @pytest.mark.parametrize("value", ["-1", "abc", "100.1"])
    def test_invalid_trust_scores(self, value):
        with pytest.raises(CsvValidationError, match="Trust score must be between 0 and 100 in row 2"):
            parse_csv(f"{HEADER},trust_score\nAcme,Pune,Desc,a@b.com,{value}")

    @pytest.mark.parametrize("value", ["-5", "free"])
    def test_invalid_prices(self, value):
        with pytest.raises(CsvValidationError, match="Price must be a positive number in row 2"):
            parse_csv(f"{HEADER},price\nAcme,Pune,Desc,a@b.com,{value}")

    def test_bad_row_discards_earlier_good_rows(self):
        content = f"{HEADER}\nAcme,Pune,Desc,a@b.com\nBeta,Goa,Desc,b@b.com\nGamma,,Desc,c@b.com"
        with pytest.raises(CsvValidationError) as exc_info:
            parse_csv(content)
        assert exc_info.value.row == 4

    def test_row_numbers_ignore_blank_lines(self):
        content = f"{HEADER}\n\n\nAcme,,Desc,a@b.com"
        with pytest.raises(CsvValidationError, match="Error in row 2"):
            parse_csv(content)


class TestUploadChecks:
    def test_accepts_csv(self):
        validate_upload("agencies.CSV", 1024)

    @pytest.mark.parametrize("filename", ["agencies.xlsx", "agencies", None])
    def test_rejects_other_extensions(self, filename):
        with pytest.raises(CsvValidationError, match="Please upload a CSV file"):
            validate_upload(filename, 10)

    def test_rejects_large_files(self):
        with pytest.raises(CsvValidationError, match="File size must be less than 5MB"):
            validate_upload("agencies.csv", 5 * 1024 * 1024 + 1)

    def test_exactly_at_limit_is_allowed(self):
        validate_upload("agencies.csv", 5 * 1024 * 1024)

    def test_decode_strips_bom(self):
        assert decode_csv_upload("\ufeffname".encode("utf-8")) == "name"

    def test_decode_rejects_non_utf8(self):
        with pytest.raises(CsvValidationError, match="UTF-8"):
            decode_csv_upload(b"\xff\xfe\x00n\x00a")
