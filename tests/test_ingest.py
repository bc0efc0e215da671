import pytest

from resume_tree import ingest
from resume_tree.errors import UnreadableDocument

LONG_TEXT = "Jane Doe\njane@example.com\nExperience\nEngineer at Acme 2020 - 2022\n- Built the billing service"


def test_unsupported_extension_raises_value_error():
    with pytest.raises(ValueError):
        ingest.extract_text("resume.txt")


def test_pdf_goes_through_pdf_reader(monkeypatch):
    monkeypatch.setattr(ingest, "read_pdf_text", lambda path: LONG_TEXT)
    assert ingest.extract_text("x.PDF") == LONG_TEXT


def test_too_little_text_is_unreadable(monkeypatch):
    monkeypatch.setattr(ingest, "read_pdf_text", lambda path: "  Jane \n Doe  ")
    with pytest.raises(UnreadableDocument) as ei:
        ingest.extract_text("scan.pdf")
    assert ei.value.context == {"chars": 8, "minimum": ingest.MIN_TEXT_CHARS}


def test_reader_crash_is_unreadable(monkeypatch):
    def broken(path):
        raise RuntimeError("cannot open broken document")

    monkeypatch.setattr(ingest, "read_docx_text", broken)
    with pytest.raises(UnreadableDocument):
        ingest.extract_text("x.docx")


def test_docx_paragraphs_and_tables(tmp_path):
    from docx import Document

    d = Document()
    d.add_paragraph("Jane Doe")
    d.add_paragraph("")
    d.add_paragraph("Backend engineer with ten years of experience in payments.")
    table = d.add_table(rows=1, cols=2)
    table.rows[0].cells[0].text = "Python"
    table.rows[0].cells[1].text = "SQL"
    path = tmp_path / "cv.docx"
    d.save(str(path))

    text = ingest.extract_text(str(path))
    assert text.splitlines() == [
        "Jane Doe",
        "Backend engineer with ten years of experience in payments.",
        "Python | SQL",
    ]


def test_pdf_blocks_in_reading_order(tmp_path):
    import fitz

    doc = fitz.open()
    page = doc.new_page()
    page.insert_text((72, 144), "Experience: Engineer at Acme, 2020 - 2022, payments platform")
    page.insert_text((72, 72), "Jane Doe, backend engineer, jane@example.com")
    path = tmp_path / "cv.pdf"
    doc.save(str(path))
    doc.close()

    text = ingest.read_pdf_text(str(path))
    assert text.index("Jane Doe") < text.index("Experience")
