# processing.py
import concurrent.futures
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Sequence

import pandas as pd

from config import settings
from models import (
    PAGE_COLUMN,
    Chunk,
    ExtractionRun,
    FieldDescriptor,
    FieldDescriptorSet,
    OcrChunkResult,
    PageRecord,
    PageText,
)
from chunking import iter_chunk_documents
from extraction import compile_pattern, extract
from utils import log


class OcrClient(Protocol):
    def process(self, pdf_bytes: bytes) -> OcrChunkResult:
        ...


# --- Chunk Submission ---

def _ocr_chunks(
    pdf_bytes: bytes, ocr_client: OcrClient, chunk_size: int, max_workers: int
) -> tuple[Dict[Chunk, OcrChunkResult], List[Chunk]]:
    """
    Submits every chunk to the OCR client concurrently. Results are keyed by their Chunk,
    so completion order does not matter. A failing chunk is logged and reported, never raised.
    """
    results: Dict[Chunk, OcrChunkResult] = {}
    failed: List[Chunk] = []

    executor = concurrent.futures.ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="OcrChunk")
    future_to_chunk = {}
    try:
        # Sub-documents are built sequentially; a structural error here aborts the run.
        for chunk, chunk_bytes in iter_chunk_documents(pdf_bytes, chunk_size):
            log.info(f"Submitting {chunk.describe()} for OCR")
            future_to_chunk[executor.submit(ocr_client.process, chunk_bytes)] = chunk
    except Exception:
        log.error(f"Aborting OCR after a structural error; cancelling {len(future_to_chunk)} submitted chunks")
        executor.shutdown(wait=False, cancel_futures=True)
        raise

    with executor:
        for future in concurrent.futures.as_completed(future_to_chunk):
            chunk = future_to_chunk[future]
            try:
                results[chunk] = future.result()
                log.info(f"OCR finished for {chunk.describe()}")
            except Exception as exc:
                log.error(f"OCR failed for {chunk.describe()}, skipping its pages. Error: {type(exc).__name__} - {exc}")
                failed.append(chunk)

    failed.sort(key=lambda c: c.index)
    return results, failed


# --- Page Text Aggregator ---

def aggregate_page_texts(chunk_results: Dict[Chunk, OcrChunkResult]) -> List[PageText]:
    """
    Merges per-chunk OCR output into page texts numbered by original page.
    Chunks missing from the mapping (failed) leave gaps that are kept as-is.
    """
    page_texts: List[PageText] = []
    for chunk in sorted(chunk_results, key=lambda c: c.start_page):
        result = chunk_results[chunk]
        if not result.page_texts:
            # No page boundaries in the response: the whole text stands for the chunk's first page.
            log.warning(f"OCR response for {chunk.describe()} has no page boundaries; treating it as one page")
            page_texts.append(PageText(page=chunk.page_numbers[0], text=result.text))
            continue

        if len(result.page_texts) > chunk.page_count:
            log.warning(
                f"OCR returned {len(result.page_texts)} pages for {chunk.describe()}; "
                f"ignoring the {len(result.page_texts) - chunk.page_count} extra"
            )
        for page_number, text in zip(chunk.page_numbers, result.page_texts):
            page_texts.append(PageText(page=page_number, text=text))
    return page_texts


# --- Result Filter ---

def filter_page_records(records: Sequence[PageRecord]) -> List[PageRecord]:
    """Drops pages where every field resolved to a sentinel."""
    return [record for record in records if record.has_value()]


def extract_page_records(page_texts: Sequence[PageText], fields: Sequence[FieldDescriptor]) -> List[PageRecord]:
    return [PageRecord(page=page.page, values=extract(page.text, fields)) for page in page_texts]


def _log_invalid_patterns(fields: Sequence[FieldDescriptor]) -> None:
    for field in fields:
        if field.pattern:
            compiled = compile_pattern(field.pattern)
            if not compiled.ok:
                log.warning(f"Pattern for field '{field.key}' does not compile ({compiled.error}); it will report PATTERN_ERROR")


def run_extraction(
    pdf_bytes: bytes,
    fields: Sequence[FieldDescriptor],
    ocr_client: OcrClient,
    chunk_size: Optional[int] = None,
    max_workers: Optional[int] = None,
) -> ExtractionRun:
    """
    Runs the whole pipeline for one PDF: chunk, OCR, aggregate, extract, filter.
    Raises DocumentStructureError for an unreadable document; chunk and field
    failures are absorbed into the result.
    """
    if chunk_size is None:
        chunk_size = settings.OCR_CHUNK_SIZE
    if max_workers is None:
        max_workers = settings.MAX_WORKERS
    # Duplicate keys are rejected before any chunk is submitted.
    enabled = FieldDescriptorSet(list(fields)).enabled()
    _log_invalid_patterns(enabled)

    chunk_results, failed_chunks = _ocr_chunks(pdf_bytes, ocr_client, chunk_size, max_workers)
    page_count = sum(chunk.page_count for chunk in list(chunk_results) + failed_chunks)

    page_texts = aggregate_page_texts(chunk_results)
    records = filter_page_records(extract_page_records(page_texts, enabled))

    if failed_chunks:
        log.warning(f"{len(failed_chunks)} of {len(chunk_results) + len(failed_chunks)} chunks failed OCR: "
                    f"{', '.join(c.describe() for c in failed_chunks)}")
    if not records:
        log.warning("No page yielded any extracted field")
    log.info(f"Extraction finished: {page_count} pages in source, {len(page_texts)} recovered, {len(records)} kept")

    return ExtractionRun(page_count=page_count, records=records, failed_chunks=failed_chunks)


# --- Excel Export ---

def write_run_to_excel(run: ExtractionRun, fields: Sequence[FieldDescriptor], output_excel_path: Path) -> str:
    """Writes the kept page rows to an Excel file. Raises RuntimeError if saving fails."""
    keys = [field.key for field in FieldDescriptorSet(list(fields)).enabled()]
    columns = [PAGE_COLUMN] + keys + ["coverage"]

    if not run.records:
        log.warning("No data rows were generated for the Excel file.")
        df = pd.DataFrame([{"Status": "No extractable fields found"}])
    else:
        log.info(f"Creating DataFrame from {len(run.records)} page records.")
        rows = []
        for record in run.records:
            row = record.to_row()
            row["coverage"] = round(record.coverage, 2)
            rows.append(row)
        df = pd.DataFrame(rows, columns=columns)

    try:
        log.info(f"Saving extracted data to Excel: {output_excel_path}")
        output_excel_path.parent.mkdir(parents=True, exist_ok=True)
        df.to_excel(output_excel_path, index=False, engine='openpyxl')
        log.info("Excel file saved successfully.")
        return str(output_excel_path)
    except Exception as e:
        log.exception(f"Failed to save DataFrame to Excel file '{output_excel_path}': {e}")
        raise RuntimeError(f"Failed to save results to Excel: {e!s}")
