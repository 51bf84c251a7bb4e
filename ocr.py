# ocr.py
import random
import time
from typing import Any, List, Optional

import google.api_core.exceptions as google_exceptions
from google.api_core.client_options import ClientOptions
from google.cloud import documentai

from config import settings
from models import OcrChunkResult
from utils import log

PDF_MIME_TYPE = "application/pdf"

RETRYABLE_ERRORS = (
    google_exceptions.ResourceExhausted,
    google_exceptions.TooManyRequests,
    google_exceptions.ServiceUnavailable,
    google_exceptions.DeadlineExceeded,
)


def _call_document_ai_with_retry(
    client: Any,
    request: Any,
    max_retries: int = 1,
    initial_delay: float = 1.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
    timeout: Optional[float] = None,
) -> Any: # Returns the ProcessResponse
    """Calls Document AI process_document with bounded exponential backoff on transient errors."""
    num_retries = 0
    delay = initial_delay
    while True:
        try:
            log.debug(f"Attempting Document AI call (Attempt {num_retries + 1}/{max_retries + 1})")
            response = client.process_document(request=request, timeout=timeout)
            log.debug(f"Document AI call successful (Attempt {num_retries + 1}/{max_retries + 1})")
            return response
        except RETRYABLE_ERRORS as e:
            num_retries += 1
            if num_retries > max_retries:
                log.error(
                    f"Max retries ({max_retries}) exceeded for Document AI call. "
                    f"Last error: {type(e).__name__} - {e}"
                )
                raise
            actual_delay = delay
            if jitter:
                actual_delay += random.uniform(0, delay * 0.25)
            log.warning(
                f"Document AI call failed with {type(e).__name__} (Attempt {num_retries}/{max_retries}). "
                f"Retrying in {actual_delay:.2f} seconds..."
            )
            time.sleep(actual_delay)
            delay *= exponential_base


def _segment_bounds(segment: Any) -> tuple[int, int]:
    # Proto3 omits zero-valued offsets, so a missing start_index means 0.
    return int(getattr(segment, "start_index", 0) or 0), int(getattr(segment, "end_index", 0) or 0)


def split_document_pages(document: Any) -> List[str]:
    """
    Slices the document's full text into per-physical-page texts using each page's
    text anchor segments. Returns an empty list when the response carries no page
    boundaries at all; a page without segments inside a bounded response is blank.
    """
    full_text = getattr(document, "text", "") or ""
    pages = list(getattr(document, "pages", None) or [])
    page_segments = []
    for page in pages:
        layout = getattr(page, "layout", None)
        anchor = getattr(layout, "text_anchor", None) if layout is not None else None
        page_segments.append(list(getattr(anchor, "text_segments", None) or []))

    if not any(page_segments):
        return []

    page_texts = []
    for segments in page_segments:
        parts = []
        for segment in segments:
            start, end = _segment_bounds(segment)
            parts.append(full_text[start:end])
        page_texts.append("".join(parts))
    return page_texts


class DocumentAIOcrClient:
    """
    Submits one PDF sub-document to a Document AI processor and returns the recovered
    text split per page. Transient API errors get a bounded retry; anything else raises.
    """

    def __init__(
        self,
        project_id: str,
        location: str,
        processor_id: str,
        api_endpoint: Optional[str] = None,
        client: Any = None,
        max_retries: int = 1,
        initial_delay: float = 1.0,
        timeout: Optional[float] = None,
    ):
        if not processor_id:
            raise ValueError("A Document AI processor id is required")
        self.processor_name = f"projects/{project_id}/locations/{location}/processors/{processor_id}"
        self.max_retries = max_retries
        self.initial_delay = initial_delay
        self.timeout = timeout
        if client is None:
            endpoint = api_endpoint or f"{location}-documentai.googleapis.com"
            log.info(f"Creating Document AI client for endpoint '{endpoint}'")
            client = documentai.DocumentProcessorServiceClient(
                client_options=ClientOptions(api_endpoint=endpoint)
            )
        self._client = client

    def process(self, pdf_bytes: bytes) -> OcrChunkResult:
        request = documentai.ProcessRequest(
            name=self.processor_name,
            raw_document=documentai.RawDocument(content=pdf_bytes, mime_type=PDF_MIME_TYPE),
        )
        response = _call_document_ai_with_retry(
            self._client,
            request,
            max_retries=self.max_retries,
            initial_delay=self.initial_delay,
            timeout=self.timeout,
        )
        document = response.document
        page_texts = split_document_pages(document)
        log.debug(f"Document AI returned {len(document.text or '')} characters across {len(page_texts)} page slices")
        return OcrChunkResult(text=document.text or "", page_texts=page_texts)


def create_ocr_client() -> DocumentAIOcrClient:
    """Builds the Document AI client from settings."""
    log.info(
        f"Initializing Document AI OCR for project='{settings.GOOGLE_CLOUD_PROJECT}', "
        f"location='{settings.DOCUMENT_AI_LOCATION}', processor='{settings.DOCUMENT_AI_PROCESSOR_ID}'"
    )
    return DocumentAIOcrClient(
        project_id=settings.GOOGLE_CLOUD_PROJECT,
        location=settings.DOCUMENT_AI_LOCATION,
        processor_id=settings.DOCUMENT_AI_PROCESSOR_ID,
        api_endpoint=settings.DOCUMENT_AI_ENDPOINT,
        max_retries=settings.OCR_MAX_RETRIES,
        initial_delay=settings.OCR_RETRY_INITIAL_DELAY,
        timeout=settings.OCR_TIMEOUT_SECONDS,
    )
