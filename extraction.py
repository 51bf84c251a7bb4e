# extraction.py
"""
Per-page field extraction.

Each enabled field is resolved by an ordered list of strategies; the first one
that returns a value wins:

1. the field's explicit pattern, searched over the page text with line breaks
   collapsed to single spaces;
2. a keyword search for the field's label over the original lines, taking the
   text after the first colon (or, on lines without a colon, the text trailing
   the label), else the next line;
3. otherwise the EXTRACTION_FAILED sentinel.

A pattern that does not compile yields PATTERN_ERROR and stops that field only.
Nothing in this module performs I/O or keeps mutable state between calls.
"""
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, Dict, List, Optional, Sequence

from models import EXTRACTION_FAILED, PATTERN_ERROR, FieldDescriptor


@dataclass(frozen=True)
class CompiledPattern:
    """Outcome of compiling a caller-supplied pattern: a matcher or the compile error."""
    matcher: Optional[re.Pattern] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.matcher is not None


@lru_cache(maxsize=256)
def compile_pattern(pattern: str) -> CompiledPattern:
    try:
        return CompiledPattern(matcher=re.compile(pattern, re.IGNORECASE))
    # Oversized repeat counts raise OverflowError and deep nesting RecursionError, not re.error.
    except (re.error, OverflowError, RecursionError) as e:
        return CompiledPattern(error=f"{type(e).__name__}: {e}")


@lru_cache(maxsize=256)
def _label_regex(label: str) -> re.Pattern:
    return re.compile(re.escape(label), re.IGNORECASE)


@lru_cache(maxsize=256)
def _trailing_regex(label: str) -> re.Pattern:
    return re.compile(re.escape(label) + r"\s*(.*)$", re.IGNORECASE)


def collapse_line_breaks(text: str) -> str:
    """Joins wrapped OCR lines into one line, replacing each break and its surrounding whitespace with a space."""
    return re.sub(r"\s*[\r\n]+\s*", " ", text).strip()


@dataclass(frozen=True)
class PageContext:
    """Views of one page's text shared by all fields on that page."""
    text: str
    flat_text: str
    lines: List[str]
    fields: Sequence[FieldDescriptor]

    @classmethod
    def build(cls, page_text: str, fields: Sequence[FieldDescriptor]) -> "PageContext":
        return cls(
            text=page_text,
            flat_text=collapse_line_breaks(page_text),
            lines=page_text.splitlines(),
            fields=fields,
        )

    def other_labels(self, field: FieldDescriptor) -> List[str]:
        return [f.label for f in self.fields if f.key != field.key]


# --- Keyword sub-rules ---

def value_after_colon(line: str) -> Optional[str]:
    if ':' not in line:
        return None
    value = line.split(':', 1)[1].strip()
    return value or None


def value_after_label(line: str, label: str) -> Optional[str]:
    match = _trailing_regex(label).search(line)
    if not match:
        return None
    value = match.group(1).strip()
    return value or None


def value_on_next_line(lines: Sequence[str], index: int, other_labels: Sequence[str]) -> Optional[str]:
    if index + 1 >= len(lines):
        return None
    candidate = lines[index + 1].strip()
    if not candidate:
        return None
    # The next line may be another field's heading rather than this field's value.
    if any(_label_regex(label).search(candidate) for label in other_labels):
        return None
    return candidate


# --- Strategies ---
# A strategy returns a value (possibly a sentinel that ends the search) or None to fall through.

Strategy = Callable[[FieldDescriptor, PageContext], Optional[str]]


def explicit_pattern_strategy(field: FieldDescriptor, page: PageContext) -> Optional[str]:
    if not field.pattern:
        return None
    compiled = compile_pattern(field.pattern)
    if not compiled.ok:
        return PATTERN_ERROR
    match = compiled.matcher.search(page.flat_text)
    if not match:
        return None
    value = match.group(1) if compiled.matcher.groups else match.group(0)
    if value is None:
        return None
    return value.strip() or None


def keyword_line_strategy(field: FieldDescriptor, page: PageContext) -> Optional[str]:
    label_re = _label_regex(field.label)
    other_labels = page.other_labels(field)
    for index, line in enumerate(page.lines):
        if not label_re.search(line):
            continue
        if ':' in line:
            value = value_after_colon(line)
        else:
            value = value_after_label(line, field.label)
        value = value or value_on_next_line(page.lines, index, other_labels)
        if value:
            return value
        # Keep scanning: a later occurrence of the label may carry the value.
    return None


STRATEGIES: List[Strategy] = [
    explicit_pattern_strategy,
    keyword_line_strategy,
]


def extract_field(field: FieldDescriptor, page: PageContext) -> str:
    for strategy in STRATEGIES:
        value = strategy(field, page)
        if value is not None:
            return value
    return EXTRACTION_FAILED


def extract(page_text: str, fields: Sequence[FieldDescriptor]) -> Dict[str, str]:
    """
    Extracts every enabled field from one page of text.
    Returns a mapping of descriptor key to value or sentinel, in descriptor order.
    Disabled descriptors are left out entirely.
    """
    enabled = [field for field in fields if field.enabled]
    page = PageContext.build(page_text, enabled)
    return {field.key: extract_field(field, page) for field in enabled}
