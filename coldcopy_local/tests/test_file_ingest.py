from pathlib import Path
import sys

import openpyxl
import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[2]))

from coldcopy_local.utils.file_ingest import (
    UploadValidationError,
    build_prospect_rows,
    derive_column_map,
    read_csv_table,
    row_error_message,
    safe_file_name_part,
    store_upload,
    validate_required_columns,
    validate_rows,
)


HEADERS = ["First Name", "Last Name", "Company", "Website", "Activity Context", "Email Address"]


class TestColumnMapping:
    def test_exact_and_loose_matches(self):
        column_map = derive_column_map(["FIRSTNAME", "Last  Name", "Company Name", "Company URL", "Notes"])

        assert column_map["firstName"] == "FIRSTNAME"
        assert column_map["lastName"] == "Last  Name"
        assert column_map["company"] == "Company Name"
        assert column_map["website"] == "Company URL"
        assert column_map["activityContext"] == "Notes"
        assert column_map["email"] is None

    def test_combined_website_header_is_not_reused_for_context(self):
        column_map = derive_column_map(["First Name", "Last Name", "Company", "Website / Activity URL"])

        assert column_map["website"] == "Website / Activity URL"
        assert column_map["activityContext"] is None

    def test_required_columns(self):
        assert validate_required_columns(derive_column_map(HEADERS)) == []
        missing = validate_required_columns(derive_column_map(["First Name", "Company"]))
        assert missing == ["lastName", "websiteOrActivityContext"]


class TestRowValidation:
    def test_rows_need_required_values_and_context(self):
        column_map = derive_column_map(HEADERS)
        rows = [
            {"First Name": "Dana", "Last Name": "Lee", "Company": "Acme", "Website": "acme.com", "Activity Context": ""},
            {"First Name": "", "Last Name": "Ortiz", "Company": "Globex", "Website": "", "Activity Context": ""},
        ]

        errors = validate_rows(rows, column_map)

        assert errors == [{"row_number": 3, "missing_required": ["First Name"], "missing_context": True}]
        assert row_error_message(errors[0]) == (
            "Row validation failed at row 3: missing required values: First Name; "
            "must include either Website / Activity URL OR Activity Context."
        )

    def test_errors_are_capped(self):
        column_map = derive_column_map(HEADERS)
        rows = [{"First Name": "", "Company": "Acme", "Last Name": "Lee", "Website": "x.com"}] * 9
        assert len(validate_rows(rows, column_map)) == 5


def test_safe_file_name_part():
    assert safe_file_name_part("my list (final).csv") == "my_list_final_.csv"


def test_store_csv_upload(tmp_path, prospects_csv):
    uploads = tmp_path / "uploads"

    stored = store_upload(str(prospects_csv), str(uploads))

    assert Path(stored["stored_path"]).parent == uploads
    assert Path(stored["stored_path"]).name.startswith("upload_")
    assert stored["original_filename"] == "prospects.csv"
    assert stored["total_rows"] == 2
    assert stored["column_map"]["activityContext"] == "Activity Context"
    assert stored["preview"][1]["Company"] == "Globex"


def test_store_rejects_missing_columns_and_cleans_up(tmp_path):
    source = tmp_path / "bad.csv"
    source.write_text("First Name,Company\nDana,Acme\n", encoding="utf-8")
    uploads = tmp_path / "uploads"

    with pytest.raises(UploadValidationError, match="Missing required columns: Last Name"):
        store_upload(str(source), str(uploads))
    assert list(uploads.iterdir()) == []


def test_store_rejects_invalid_row(tmp_path):
    source = tmp_path / "rows.csv"
    source.write_text("First Name,Last Name,Company,Website\nDana,Lee,,acme.com\n", encoding="utf-8")

    with pytest.raises(UploadValidationError, match="row 2: missing required values: Company"):
        store_upload(str(source), str(tmp_path / "uploads"))


def test_store_rejects_unsupported_and_empty_files(tmp_path):
    text_file = tmp_path / "list.txt"
    text_file.write_text("hello", encoding="utf-8")
    with pytest.raises(UploadValidationError, match="Only CSV or Excel"):
        store_upload(str(text_file), str(tmp_path / "uploads"))

    empty = tmp_path / "empty.csv"
    empty.write_text("", encoding="utf-8")
    with pytest.raises(UploadValidationError, match="no header row"):
        store_upload(str(empty), str(tmp_path / "uploads"))

    with pytest.raises(FileNotFoundError):
        store_upload(str(tmp_path / "missing.csv"), str(tmp_path / "uploads"))


def test_store_xlsx_converts_to_csv(tmp_path):
    workbook = openpyxl.Workbook()
    sheet = workbook.active
    sheet.append(["First Name", "Last Name", "Company", "Website", None])
    sheet.append([" Dana ", "Lee", "Acme", "acme.example.com", "stray"])
    sheet.append([None, None, None, None, None])
    sheet.append(["Sam", "Ortiz", "Globex", "globex.example.com", None])
    source = tmp_path / "prospects.xlsx"
    workbook.save(source)

    stored = store_upload(str(source), str(tmp_path / "uploads"))

    assert stored["stored_path"].endswith(".csv")
    assert stored["headers"] == ["First Name", "Last Name", "Company", "Website"]
    assert stored["total_rows"] == 2
    assert stored["preview"][0]["First Name"] == "Dana"

    headers, rows = read_csv_table(stored["stored_path"])
    assert headers == stored["headers"]
    assert rows[1]["Company"] == "Globex"


def test_build_prospect_rows_normalizes_website():
    column_map = derive_column_map(HEADERS)
    rows = [{"First Name": "Dana", "Last Name": "Lee", "Company": "Acme", "Website": "acme.example.com/team",
             "Activity Context": "", "Email Address": "dana@acme.example.com"}]

    prospects = build_prospect_rows(rows, column_map)

    assert prospects[0]["website"] == "https://acme.example.com/team"
    assert prospects[0]["email"] == "dana@acme.example.com"
    assert prospects[0]["our_services"] == ""
    assert prospects[0]["original_row"] == rows[0]
