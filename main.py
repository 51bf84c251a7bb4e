# main.py
import os
import tempfile
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

import pydantic # For pydantic.ValidationError
from fastapi import BackgroundTasks, Depends, FastAPI, File, Form, HTTPException, UploadFile
from fastapi.responses import FileResponse

from config import settings
from models import FieldDescriptor, FieldDescriptorSet
from chunking import DocumentStructureError
from ocr import create_ocr_client
from processing import OcrClient, run_extraction, write_run_to_excel
from utils import clean_filename, is_supported_file_type, log

# Ensure temp processing directory exists
os.makedirs(settings.TEMP_DIR, exist_ok=True)

app = FastAPI(title="Customs Document Field Extraction Service", version="1.0.0")


@lru_cache(maxsize=1)
def get_ocr_client() -> OcrClient:
    try:
        return create_ocr_client()
    except ValueError as e:
        log.error(f"OCR client is not configured: {e}")
        raise HTTPException(status_code=500, detail=f"OCR service is not configured: {e}")


def cleanup_file(file_path: str):
    """Background task to delete a file."""
    try:
        os.remove(file_path)
        log.info(f"Cleaned up temporary file: {file_path}")
    except OSError as e:
        log.error(f"Error cleaning up file {file_path}: {e}")


def parse_fields(fields_json: Optional[str]) -> List[FieldDescriptor]:
    """Parses the caller's field list, falling back to the default set when none is sent."""
    if fields_json is None or not fields_json.strip():
        log.info("No field list supplied, using default fields")
        return list(settings.DEFAULT_FIELDS)
    try:
        descriptor_set = FieldDescriptorSet.model_validate_json(fields_json)
    except pydantic.ValidationError as val_err:
        log.error(f"Invalid field list: {val_err}")
        raise HTTPException(status_code=400, detail=f"Invalid field list: {val_err!s}")
    return list(descriptor_set)


async def _read_pdf_upload(pdf: UploadFile) -> bytes:
    if not is_supported_file_type(pdf.filename, pdf.content_type):
        log.error(f"Invalid file type uploaded: {pdf.filename} ({pdf.content_type}). Only PDF files are accepted.")
        raise HTTPException(status_code=400, detail="Invalid file type. Please upload a PDF file.")

    log.info(f"Received file: {pdf.filename}, Content-Type: {pdf.content_type}")
    try:
        return await pdf.read()
    except Exception as e:
        log.exception(f"Failed to read uploaded file {pdf.filename}: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to read uploaded file: {e}")
    finally:
        await pdf.close()


def _run(pdf_bytes: bytes, fields: List[FieldDescriptor], ocr_client: OcrClient, filename: Optional[str]):
    try:
        log.info(f"Starting extraction for '{filename}' with {len([f for f in fields if f.enabled])} enabled fields")
        return run_extraction(pdf_bytes, fields, ocr_client)
    except DocumentStructureError as de: # Unreadable or unsplittable PDF
        log.error(f"Structural error for '{filename}': {de}")
        raise HTTPException(status_code=400, detail=str(de))
    except Exception as e:
        log.exception(f"An unexpected error occurred while processing '{filename}': {e}")
        raise HTTPException(status_code=500, detail=f"An internal server error occurred: {e}")


@app.post("/ocr/pdf")
async def extract_pdf_fields(
    pdf: UploadFile = File(...),
    fields: Optional[str] = Form(None),
    ocr_client: OcrClient = Depends(get_ocr_client),
):
    """
    Accepts a PDF and a JSON list of field descriptors, OCRs the document in
    page chunks and returns one row per page that yielded at least one field.
    """
    pdf_bytes = await _read_pdf_upload(pdf)
    field_list = parse_fields(fields)
    run = _run(pdf_bytes, field_list, ocr_client, pdf.filename)
    return run.to_rows()


@app.post("/ocr/pdf/excel", response_class=FileResponse)
async def extract_pdf_fields_to_excel(
    background_tasks: BackgroundTasks,
    pdf: UploadFile = File(...),
    fields: Optional[str] = Form(None),
    ocr_client: OcrClient = Depends(get_ocr_client),
):
    """Same as /ocr/pdf but returns the rows as an Excel spreadsheet."""
    pdf_bytes = await _read_pdf_upload(pdf)
    field_list = parse_fields(fields)
    run = _run(pdf_bytes, field_list, ocr_client, pdf.filename)

    stem = clean_filename(Path(pdf.filename or "document").stem) or "document"
    with tempfile.NamedTemporaryFile(delete=False, suffix=".xlsx", prefix=f"{stem}_", dir=settings.TEMP_DIR) as temp_xlsx:
        output_path = Path(temp_xlsx.name)

    try:
        write_run_to_excel(run, field_list, output_path)
    except RuntimeError as re: # Excel saving failure
        log.error(f"Runtime Error during export: {re}")
        cleanup_file(str(output_path))
        raise HTTPException(status_code=500, detail=str(re))

    background_tasks.add_task(cleanup_file, str(output_path))
    return FileResponse(
        path=str(output_path),
        filename=f"{stem}_{settings.OUTPUT_FILENAME.name}",
        media_type='application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'
    )


@app.get("/fields/defaults")
async def default_fields():
    return [field.model_dump() for field in settings.DEFAULT_FIELDS]


@app.get("/")
async def root():
    return {"message": "Welcome to the Document Field Extraction API. Use the /ocr/pdf endpoint to upload a PDF."}

# --- To run the server (e.g., using uvicorn) ---
# uvicorn main:app --reload --host 0.0.0.0 --port 8000
