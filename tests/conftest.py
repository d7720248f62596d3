"""Shared fixtures: in-memory storage, a coordinator and in-process document builders."""
from __future__ import annotations

import io
import logging
import zipfile
from pathlib import Path
from typing import Iterator, List

import docx
import pytest

from knowledge_ingest import logging_config
from knowledge_ingest.ingest.models import StoredFile
from knowledge_ingest.ingest.pipeline import IngestionCoordinator
from knowledge_ingest.storage import InMemoryBlobStore, InMemoryIngestStore, Storage


def build_pdf(lines: List[str], *, title: str | None = None, extra_stream: str = "") -> bytes:
    """Assemble a single-page PDF with a valid cross-reference table."""

    operators = "".join(f"BT\n/F1 12 Tf\n72 {720 - 20 * index} Td\n({line}) Tj\nET\n" for index, line in enumerate(lines))
    stream = operators + extra_stream
    objects = [
        "<< /Type /Catalog /Pages 2 0 R >>",
        "<< /Type /Pages /Kids [3 0 R] /Count 1 >>",
        "<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] /Contents 4 0 R "
        "/Resources << /Font << /F1 5 0 R >> >> >>",
        f"<< /Length {len(stream.encode('latin-1'))} >>\nstream\n{stream}endstream",
        "<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>",
    ]
    if title is not None:
        objects.append(f"<< /Title ({title}) >>")

    output = io.BytesIO()
    output.write(b"%PDF-1.4\n")
    offsets = []
    for number, body in enumerate(objects, start=1):
        offsets.append(output.tell())
        output.write(f"{number} 0 obj\n{body}\nendobj\n".encode("latin-1"))
    xref_offset = output.tell()
    output.write(f"xref\n0 {len(objects) + 1}\n0000000000 65535 f \n".encode("latin-1"))
    for offset in offsets:
        output.write(f"{offset:010d} 00000 n \n".encode("latin-1"))
    trailer = f"<< /Size {len(objects) + 1} /Root 1 0 R"
    if title is not None:
        trailer += f" /Info {len(objects)} 0 R"
    output.write(f"trailer\n{trailer} >>\nstartxref\n{xref_offset}\n%%EOF\n".encode("latin-1"))
    return output.getvalue()


def build_docx(*, title: str = "Employee Handbook") -> bytes:
    document = docx.Document()
    document.core_properties.title = title
    document.core_properties.author = "People Team"
    document.add_heading("Introduction", level=1)
    document.add_paragraph("Welcome to the company.")
    document.add_heading("Benefits", level=2)
    document.add_paragraph("Health insurance is provided.")
    table = document.add_table(rows=2, cols=2)
    table.cell(0, 0).text = "Name"
    table.cell(0, 1).text = "Role"
    table.cell(1, 0).text = "Ada"
    table.cell(1, 1).text = "Engineer"
    output = io.BytesIO()
    document.save(output)
    return output.getvalue()


_MANUAL_DOCUMENT_XML = """<?xml version="1.0" encoding="UTF-8" standalone="yes"?>
<w:document xmlns:w="http://schemas.openxmlformats.org/wordprocessingml/2006/main"
            xmlns:r="http://schemas.openxmlformats.org/officeDocument/2006/relationships">
  <w:body>
    <w:p><w:r><w:t>Terms &amp; Conditions</w:t></w:r></w:p>
    <w:p>
      <w:r><w:t xml:space="preserve">Visit </w:t></w:r>
      <w:hyperlink r:id="rId7"><w:r><w:t>our site</w:t></w:r></w:hyperlink>
      <w:r><w:t xml:space="preserve"> or </w:t></w:r>
      <w:hyperlink r:id="rId99"><w:r><w:t>the archive</w:t></w:r></w:hyperlink>
      <w:r><w:t xml:space="preserve"> and </w:t></w:r>
      <w:hyperlink w:anchor="scope"><w:r><w:t>scope</w:t></w:r></w:hyperlink>
    </w:p>
    <w:p><w:r><w:t>Line one</w:t><w:br/><w:t>Line two</w:t></w:r></w:p>
  </w:body>
</w:document>
"""

_MANUAL_RELS_XML = """<?xml version="1.0" encoding="UTF-8" standalone="yes"?>
<Relationships xmlns="http://schemas.openxmlformats.org/package/2006/relationships">
  <Relationship Id="rId7" Type="http://schemas.openxmlformats.org/officeDocument/2006/relationships/hyperlink"
                Target="https://example.com/terms" TargetMode="External"/>
</Relationships>
"""

_MANUAL_CORE_XML = """<?xml version="1.0" encoding="UTF-8" standalone="yes"?>
<cp:coreProperties xmlns:cp="http://schemas.openxmlformats.org/package/2006/metadata/core-properties"
                   xmlns:dc="http://purl.org/dc/elements/1.1/">
  <dc:title>Service Terms</dc:title>
  <dc:creator>Legal</dc:creator>
  <dc:subject>Contracts</dc:subject>
</cp:coreProperties>
"""


def build_manual_docx() -> bytes:
    """A bare ZIP package python-docx rejects (no content types part)."""

    output = io.BytesIO()
    with zipfile.ZipFile(output, "w") as archive:
        archive.writestr("word/document.xml", _MANUAL_DOCUMENT_XML)
        archive.writestr("word/_rels/document.xml.rels", _MANUAL_RELS_XML)
        archive.writestr("docProps/core.xml", _MANUAL_CORE_XML)
    return output.getvalue()


def _reset_audit_logger() -> None:
    audit_logger = logging.getLogger(logging_config.AUDIT_LOGGER_NAME)
    for handler in list(audit_logger.handlers):
        audit_logger.removeHandler(handler)
        handler.close()
    setattr(audit_logger, "_audit_configured", False)


@pytest.fixture(autouse=True)
def audit_log_path(tmp_path, monkeypatch) -> Iterator[Path]:
    """Send audit lines to a per-test file instead of ./logs."""

    path = tmp_path / "logs" / "ingest_audit.log"
    monkeypatch.setattr(logging_config, "_AUDIT_LOG_PATH", path)
    _reset_audit_logger()
    yield path
    _reset_audit_logger()


@pytest.fixture()
def memory_storage() -> Storage:
    return Storage(blobs=InMemoryBlobStore(), store=InMemoryIngestStore(), backend="memory")


@pytest.fixture()
def coordinator(memory_storage: Storage) -> Iterator[IngestionCoordinator]:
    instance = IngestionCoordinator(
        memory_storage.store,
        memory_storage.blobs,
        memory_storage.store,
        max_workers=2,
    )
    yield instance
    instance.shutdown(wait=True)


@pytest.fixture()
def store_file(memory_storage: Storage):
    """Store bytes under a filename and return the :class:`StoredFile`."""

    def _store(filename: str, data: bytes, content_type: str = "") -> StoredFile:
        blob_ref = memory_storage.blobs.put(data, filename=filename)
        return memory_storage.store.add_file(
            StoredFile(
                file_id=f"file-{filename}",
                filename=filename,
                blob_ref=blob_ref,
                content_type=content_type,
                size=len(data),
            )
        )

    return _store
