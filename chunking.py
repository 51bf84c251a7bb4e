# chunking.py
import io
import math
from typing import Iterator, List, Tuple

from pypdf import PdfReader, PdfWriter

from models import Chunk
from utils import log


class DocumentStructureError(ValueError):
    """The source PDF cannot be read or split into sub-documents."""


def plan_chunks(total_pages: int, chunk_size: int) -> List[Chunk]:
    """
    Partitions pages [0, total_pages) into contiguous ranges of at most chunk_size pages.
    The last chunk may be shorter. Order follows the source document.
    """
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    if total_pages < 0:
        raise ValueError(f"total_pages must not be negative, got {total_pages}")

    chunks = []
    for index, start in enumerate(range(0, total_pages, chunk_size)):
        chunks.append(Chunk(index=index, start_page=start, end_page=min(start + chunk_size, total_pages)))
    log.debug(f"Planned {len(chunks)} chunks for {total_pages} pages (expected {math.ceil(total_pages / chunk_size)})")
    return chunks


def _open_pdf(pdf_bytes: bytes) -> PdfReader:
    if not pdf_bytes:
        raise DocumentStructureError("Empty document: no bytes received")
    try:
        reader = PdfReader(io.BytesIO(pdf_bytes))
        page_count = len(reader.pages)
    except Exception as e:
        log.error(f"Failed to read PDF for chunking: {type(e).__name__} - {e}")
        raise DocumentStructureError(f"Malformed PDF: {e!s}") from e
    if page_count == 0:
        raise DocumentStructureError("PDF contains no pages")
    return reader


def _build_sub_document(reader: PdfReader, chunk: Chunk) -> bytes:
    writer = PdfWriter()
    for page_index in range(chunk.start_page, chunk.end_page):
        writer.add_page(reader.pages[page_index])
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


def iter_chunk_documents(pdf_bytes: bytes, chunk_size: int) -> Iterator[Tuple[Chunk, bytes]]:
    """
    Yields (Chunk, sub-document bytes) one at a time in source page order.
    Each sub-document is a standalone PDF holding exactly the chunk's pages.
    Any failure here is structural and aborts the run.
    """
    reader = _open_pdf(pdf_bytes)
    chunks = plan_chunks(len(reader.pages), chunk_size)
    log.info(f"Splitting {len(reader.pages)} pages into {len(chunks)} chunks of up to {chunk_size} pages")

    for chunk in chunks:
        try:
            chunk_bytes = _build_sub_document(reader, chunk)
        except Exception as e:
            log.exception(f"Failed to build sub-document for {chunk.describe()}: {e}")
            raise DocumentStructureError(f"Could not build sub-document for {chunk.describe()}: {e!s}") from e
        log.debug(f"Built sub-document for {chunk.describe()} ({len(chunk_bytes)} bytes)")
        yield chunk, chunk_bytes
