import io
import os
import tempfile
import threading
from typing import Dict, Iterable, List, Optional

import pytest

# Keep log and temp files out of the working tree; must run before config is imported.
_TEST_ROOT = tempfile.mkdtemp(prefix="field_extractor_tests_")
os.environ.setdefault("LOG_FILE", os.path.join(_TEST_ROOT, "test.log"))
os.environ.setdefault("TEMP_DIR", os.path.join(_TEST_ROOT, "temp"))

import google.api_core.exceptions as google_exceptions  # noqa: E402
from pypdf import PdfReader, PdfWriter  # noqa: E402

from models import FieldDescriptor, OcrChunkResult  # noqa: E402

BASE_PAGE_WIDTH = 100


def build_pdf(page_count: int) -> bytes:
    """Blank PDF whose page i is BASE_PAGE_WIDTH + i points wide, so pages stay identifiable after splitting."""
    writer = PdfWriter()
    for index in range(page_count):
        writer.add_blank_page(width=BASE_PAGE_WIDTH + index, height=200)
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


def page_indexes(pdf_bytes: bytes) -> List[int]:
    reader = PdfReader(io.BytesIO(pdf_bytes))
    return [round(float(page.mediabox.width)) - BASE_PAGE_WIDTH for page in reader.pages]


class FakeOcrClient:
    """Returns canned text per original 0-based page index; can fail chunks or omit page boundaries."""

    def __init__(
        self,
        page_texts: Optional[Dict[int, str]] = None,
        fail_pages: Iterable[int] = (),
        without_boundaries: bool = False,
    ):
        self.page_texts = page_texts or {}
        self.fail_pages = set(fail_pages)
        self.without_boundaries = without_boundaries
        self.calls: List[List[int]] = []
        self._lock = threading.Lock()

    def process(self, pdf_bytes: bytes) -> OcrChunkResult:
        indexes = page_indexes(pdf_bytes)
        with self._lock:
            self.calls.append(indexes)
        if self.fail_pages.intersection(indexes):
            raise google_exceptions.ServiceUnavailable("OCR backend unavailable")
        texts = [self.page_texts.get(index, "") for index in indexes]
        if self.without_boundaries:
            return OcrChunkResult(text="\n".join(texts))
        return OcrChunkResult(text="\n".join(texts), page_texts=texts)


CERTIFICATE_PAGE = """CERTIFICATE OF ORIGIN
Reference No: CO-2024-001234
Date: 2024-01-15
Exporter: ABC Trading Company
Consignee: XYZ Import Corp
Gross Weight: 1,250.5 KG
Country of Origin: Korea"""


@pytest.fixture
def keyword_fields() -> List[FieldDescriptor]:
    return [
        FieldDescriptor(id="1", key="referenceNo", label="Reference No"),
        FieldDescriptor(id="2", key="date", label="Date"),
        FieldDescriptor(id="3", key="grossWeight", label="Gross Weight"),
    ]
