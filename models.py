# models.py
from typing import Optional, Dict, List, Union, Iterator
from pydantic import BaseModel, ConfigDict, Field, RootModel, field_validator, model_validator

# --- Sentinel Values ---
# Field-level failures are reported as values so partial results stay representable.
EXTRACTION_FAILED = "EXTRACTION_FAILED"
PATTERN_ERROR = "PATTERN_ERROR"
SENTINEL_VALUES = frozenset({EXTRACTION_FAILED, PATTERN_ERROR})

# Column name used for the page number in flattened output rows.
PAGE_COLUMN = "page"


def is_sentinel(value: str) -> bool:
    return value in SENTINEL_VALUES


# --- Pydantic Models for Field Descriptors ---

class FieldDescriptor(BaseModel):
    """
    Describes one field the caller wants extracted from every page.

    `label` is the keyword used by the fallback search; `pattern` is an optional
    regular expression whose first capture group holds the value.
    """
    model_config = ConfigDict(frozen=True)

    id: Optional[Union[str, int, float]] = None
    key: str
    label: str
    enabled: bool = True
    pattern: Optional[str] = None

    @field_validator('key', 'label')
    @classmethod
    def _not_blank(cls, v: str, info):
        if not v or not v.strip():
            raise ValueError(f"'{info.field_name}' must not be empty")
        return v

    @field_validator('key')
    @classmethod
    def _not_reserved(cls, v: str):
        if v == PAGE_COLUMN:
            raise ValueError(f"'{PAGE_COLUMN}' is reserved for the page number column")
        return v

    @field_validator('pattern')
    @classmethod
    def _pattern_not_blank(cls, v: Optional[str]):
        if v is not None and not v.strip():
            raise ValueError("'pattern' must not be empty when supplied; omit it instead")
        return v


class FieldDescriptorSet(RootModel[List[FieldDescriptor]]):
    """Ordered descriptor catalog for one extraction run. Keys are unique."""

    @model_validator(mode='after')
    def _unique_keys(self):
        seen = set()
        duplicates = []
        for descriptor in self.root:
            if descriptor.key in seen:
                duplicates.append(descriptor.key)
            seen.add(descriptor.key)
        if duplicates:
            raise ValueError(f"Duplicate field keys: {', '.join(sorted(set(duplicates)))}")
        return self

    def __iter__(self) -> Iterator[FieldDescriptor]:
        return iter(self.root)

    def __len__(self) -> int:
        return len(self.root)

    def enabled(self) -> List[FieldDescriptor]:
        return [descriptor for descriptor in self.root if descriptor.enabled]


# --- Pydantic Models for Pipeline Data ---

class Chunk(BaseModel):
    """A contiguous 0-based, half-open page range [start_page, end_page) of the source PDF."""
    model_config = ConfigDict(frozen=True)

    index: int = Field(..., ge=0)
    start_page: int = Field(..., ge=0)
    end_page: int = Field(..., ge=0)

    @property
    def page_count(self) -> int:
        return self.end_page - self.start_page

    @property
    def page_numbers(self) -> List[int]:
        """1-based page numbers of the source document covered by this chunk."""
        return list(range(self.start_page + 1, self.end_page + 1))

    def describe(self) -> str:
        return f"chunk {self.index} (pages {self.start_page + 1}-{self.end_page})"


class OcrChunkResult(BaseModel):
    """
    OCR output for one chunk: the full recovered text plus per-physical-page slices.
    `page_texts` is empty when the OCR response carried no page boundaries.
    """
    text: str = ""
    page_texts: List[str] = Field(default_factory=list)


class PageText(BaseModel):
    page: int = Field(..., ge=1)
    text: str


class PageRecord(BaseModel):
    """Extracted values for one page, keyed by descriptor key."""
    page: int = Field(..., ge=1)
    values: Dict[str, str]

    def has_value(self) -> bool:
        return any(not is_sentinel(value) for value in self.values.values())

    @property
    def coverage(self) -> float:
        """Advisory share of fields that produced a real value."""
        if not self.values:
            return 0.0
        extracted = sum(1 for value in self.values.values() if not is_sentinel(value))
        return extracted / len(self.values)

    def to_row(self) -> Dict[str, Union[int, str]]:
        row: Dict[str, Union[int, str]] = {PAGE_COLUMN: self.page}
        row.update(self.values)
        return row


class ExtractionRun(BaseModel):
    """Result of one extraction run over a document."""
    page_count: int = 0
    records: List[PageRecord] = Field(default_factory=list)
    failed_chunks: List[Chunk] = Field(default_factory=list)

    def to_rows(self) -> List[Dict[str, Union[int, str]]]:
        return [record.to_row() for record in self.records]
