# config.py
from pathlib import Path
from typing import Dict, List, Optional

from dotenv import load_dotenv
from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from models import FieldDescriptor

load_dotenv()


class AppSettings(BaseSettings):
    """Service settings; environment variables override .env, which overrides the defaults below."""

    # --- Document AI (OCR) Configuration ---
    GOOGLE_CLOUD_PROJECT: str = Field(default="customs-broker-ocr")
    DOCUMENT_AI_LOCATION: str = Field(default="us")
    DOCUMENT_AI_PROCESSOR_ID: str = Field(default="")
    DOCUMENT_AI_API_ENDPOINT: Optional[str] = Field(default=None) # Derived from location when unset

    # --- Chunking and OCR Submission ---
    OCR_CHUNK_SIZE: int = Field(default=10) # Pages per OCR submission
    MAX_WORKERS: int = Field(default=4) # Concurrent chunk submissions
    OCR_MAX_RETRIES: int = Field(default=1)
    OCR_RETRY_INITIAL_DELAY: float = Field(default=1.0)
    OCR_TIMEOUT_SECONDS: float = Field(default=120.0)

    # --- Supported File Types ---
    SUPPORTED_MIME_TYPES: Dict[str, str] = {
        "application/pdf": "PDF",
    }
    SUPPORTED_FILE_EXTENSIONS: List[str] = [".pdf"]

    # --- Default Field Descriptors ---
    # Used when the caller does not send its own field list.
    DEFAULT_FIELDS: List[FieldDescriptor] = Field(
        default=[
            FieldDescriptor(id="1", key="referenceNo", label="Reference No",
                            pattern=r"(?:(?:Reference|Ref\.?|Certificate)\s*No\.?|번호)\s*[:\-]?\s*([A-Z0-9\-/가-힣]+)"),
            FieldDescriptor(id="2", key="date", label="Date",
                            pattern=r"(?:Date|발급일자?)\s*[:\-]?\s*(\d{4}[-/.]\d{1,2}[-/.]\d{1,2}|\d{1,2}[-/.]\d{1,2}[-/.]\d{2,4})"),
            FieldDescriptor(id="3", key="grossWeight", label="Gross Weight",
                            pattern=r"(?:Gross\s*Weight|(?:총\s*)?중량)\s*[:\-]?\s*([\d,.]+\s*(?:KGS?|LBS?|MT|TONS?|T|킬로그램|키로|톤)\b)"),
        ]
    )

    # --- Processing Configuration ---
    TEMP_DIR_PATH_STR: str = Field(default="temp_processing", validation_alias=AliasChoices("TEMP_DIR", "TEMP_DIR_PATH_STR"))
    OUTPUT_FILENAME_STR: str = Field(default="extracted_fields.xlsx", validation_alias=AliasChoices("OUTPUT_FILENAME", "OUTPUT_FILENAME_STR"))

    # --- Logging Configuration ---
    LOG_FILE_PATH_STR: str = Field(default="app_log.log", validation_alias=AliasChoices("LOG_FILE", "LOG_FILE_PATH_STR"))
    LOG_LEVEL: str = Field(default="INFO")

    @field_validator('OCR_CHUNK_SIZE', 'MAX_WORKERS')
    @classmethod
    def _positive(cls, v: int, info):
        if v <= 0:
            raise ValueError(f"{info.field_name} must be a positive integer")
        return v

    @field_validator('OCR_MAX_RETRIES')
    @classmethod
    def _non_negative(cls, v: int):
        if v < 0:
            raise ValueError("OCR_MAX_RETRIES must not be negative")
        return v

    # --- Derived Properties ---
    @property
    def TEMP_DIR(self) -> Path:
        return Path(self.TEMP_DIR_PATH_STR)

    @property
    def OUTPUT_FILENAME(self) -> Path:
        return Path(self.OUTPUT_FILENAME_STR)

    @property
    def LOG_FILE(self) -> Path:
        return Path(self.LOG_FILE_PATH_STR)

    @property
    def DOCUMENT_AI_ENDPOINT(self) -> str:
        return self.DOCUMENT_AI_API_ENDPOINT or f"{self.DOCUMENT_AI_LOCATION}-documentai.googleapis.com"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )


settings = AppSettings()
