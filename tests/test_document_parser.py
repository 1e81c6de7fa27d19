from __future__ import annotations

import io
import json

import fitz
import openpyxl
from docx import Document

from reportbot.services.document_parser import PAGE_BREAK, TRUNCATION_MARKER, DocumentParser


def _xlsx_bytes() -> bytes:
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "Sales"
    ws.append(["region", "units"])
    ws.append(["east", 10])
    ws.append([None, None])
    ws.append(["west", 20.5])
    notes = wb.create_sheet("Notes")
    notes.append(["only a heading"])
    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


def _docx_bytes() -> bytes:
    doc = Document()
    doc.add_paragraph("Quarterly summary")
    doc.add_paragraph("")
    doc.add_paragraph("Revenue grew in every region.")
    table = doc.add_table(rows=2, cols=2)
    table.cell(0, 0).text = "region"
    table.cell(0, 1).text = "units"
    table.cell(1, 0).text = "east"
    table.cell(1, 1).text = "10"
    buf = io.BytesIO()
    doc.save(buf)
    return buf.getvalue()


def _pdf_bytes(*pages: str) -> bytes:
    doc = fitz.open()
    for text in pages:
        page = doc.new_page()
        page.insert_text((72, 72), text)
    data = doc.tobytes()
    doc.close()
    return data


def test_sales_csv_reports_numeric_and_categorical_columns():
    result = DocumentParser().parse(b"region,units\neast,10\nwest,20\n", "sales.csv", "text/csv")

    assert result.error is None
    assert len(result.tables) == 1
    table = result.tables[0]
    assert table.name == "sales"
    assert table.headers == ["region", "units"]
    assert table.insights.numeric_columns == ["units"]
    assert table.insights.categorical_columns == ["region"]
    assert table.insights.row_count == 2
    assert result.metadata.format == "csv"
    assert result.metadata.row_count == 2
    assert result.text.startswith("CSV file: sales.csv\nHeaders: region, units\nRows: 2")


def test_csv_quoted_fields_keep_embedded_commas():
    content = b'name,notes,amount\n"Smith, John","likes a, b",10\nJane,plain,20\n'
    table = DocumentParser().parse(content, "people.csv").tables[0]

    assert table.rows[0] == ["Smith, John", "likes a, b", "10"]
    assert table.rows[1] == ["Jane", "plain", "20"]
    assert table.insights.numeric_columns == ["amount"]


def test_large_csv_caps_rows_and_reports_true_count():
    body = "".join(f"{i},{i * 2}\n" for i in range(5000))
    result = DocumentParser().parse(("id,value\n" + body).encode(), "big.csv")

    table = result.tables[0]
    assert len(table.rows) == 1000
    assert table.insights.row_count == 5000
    assert result.metadata.row_count == 5000


def test_numeric_detection_ignores_rows_after_sample():
    body = "".join(f"{i}\n" for i in range(10)) + "n/a\n"
    table = DocumentParser().parse(("amount\n" + body).encode(), "amounts.csv").tables[0]
    assert table.insights.numeric_columns == ["amount"]


def test_empty_csv_has_no_tables():
    result = DocumentParser().parse(b"\n\n", "empty.csv")
    assert result.tables == []
    assert result.summary == "Empty CSV file"
    assert result.error is None


def test_text_is_truncated_with_marker():
    result = DocumentParser(max_text_chars=100).parse(b"a" * 500, "notes.txt")
    assert result.text == "a" * 100 + TRUNCATION_MARKER
    assert result.metadata.char_count == 500


def test_excel_workbook_sheets_and_tables():
    result = DocumentParser().parse(_xlsx_bytes(), "book.xlsx")

    assert result.error is None
    assert result.metadata.format == "excel"
    assert result.metadata.sheets == ["Sales", "Notes"]
    assert result.metadata.sheet_count == 2
    assert "=== Sheet: Sales ===" in result.text
    assert "=== Sheet: Notes ===" in result.text
    assert len(result.tables) == 1
    table = result.tables[0]
    assert table.name == "Sales"
    assert table.rows == [["east", "10"], ["west", "20.5"]]
    assert table.insights.numeric_columns == ["units"]


def test_malformed_excel_sets_error_instead_of_raising():
    result = DocumentParser().parse(b"definitely not a zip", "broken.xlsx")
    assert result.error
    assert result.text == "Error parsing file: broken.xlsx"
    assert result.metadata.format == "excel"
    assert result.tables == []


def test_docx_paragraphs_and_table_rows():
    result = DocumentParser().parse(_docx_bytes(), "memo.docx")

    assert result.error is None
    assert result.metadata.format == "docx"
    assert result.metadata.paragraph_count == 2
    assert "Quarterly summary" in result.text
    assert "region | units" in result.text
    assert "east | 10" in result.text


def test_malformed_docx_sets_error():
    result = DocumentParser().parse(b"garbage", "memo.docx")
    assert result.error
    assert result.text == "Error parsing file: memo.docx"


def test_pdf_pages_joined_with_page_break():
    result = DocumentParser().parse(_pdf_bytes("Revenue table by region", "Closing remarks"), "report.pdf")

    assert result.error is None
    assert result.metadata.format == "pdf"
    assert result.metadata.page_count == 2
    assert result.metadata.has_tables is True
    assert result.metadata.has_images is False
    assert PAGE_BREAK in result.text
    assert "Closing remarks" in result.text


def test_legacy_doc_is_metadata_only():
    result = DocumentParser().parse(b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1" + b"\x00" * 64, "old.doc")
    assert result.error is None
    assert result.metadata.format == "binary"
    assert result.metadata.size == 72
    assert result.text.startswith("Legacy Word document: old.doc")


def test_json_keeps_structured_payload():
    result = DocumentParser().parse(json.dumps({"a": 1, "b": [1, 2]}).encode(), "data.json")
    assert result.structured == {"a": 1, "b": [1, 2]}
    assert result.metadata.keys == "a, b"
    assert '"a": 1' in result.text


def test_invalid_json_reports_error():
    result = DocumentParser().parse(b"{not json", "data.json")
    assert result.error == "Invalid JSON"
    assert result.structured is None


def test_generic_binary_content_is_described_not_decoded():
    content = b"\x89PNG\r\n\x1a\n\x00\xff\xfe"
    result = DocumentParser().parse(content, "image.bin")
    assert result.metadata.format == "binary"
    assert result.text == f"Binary file: image.bin ({len(content)} bytes)"


def test_generic_text_content_is_decoded():
    result = DocumentParser().parse("plain words here".encode(), "notes.unknown")
    assert result.metadata.format == "generic"
    assert result.text == "plain words here"


def test_metadata_dict_uses_camel_case_keys():
    meta = DocumentParser().parse(b"region,units\neast,10\n", "sales.csv").metadata_dict()
    assert meta["fileName"] == "sales.csv"
    assert meta["rowCount"] == 1
    assert meta["format"] == "csv"


def test_csv_rows_wider_than_header_are_aligned():
    table = DocumentParser().parse(b"a,b\n1,2,3\n4,5\n", "wide.csv").tables[0]
    assert table.headers == ["a", "b"]
    assert table.rows == [["1", "2"], ["4", "5"]]
    assert table.insights.numeric_columns == ["a", "b"]
