import pydantic
import pytest

from models import (
    EXTRACTION_FAILED,
    PATTERN_ERROR,
    Chunk,
    FieldDescriptor,
    FieldDescriptorSet,
    PageRecord,
)


@pytest.mark.parametrize(
    "payload",
    [
        {"key": "ref", "label": ""},
        {"key": "ref", "label": "   "},
        {"key": "", "label": "Reference No"},
        {"key": "ref", "label": "Reference No", "pattern": ""},
        {"key": "page", "label": "Page"},
    ],
)
def test_descriptor_rejects_caller_errors(payload):
    with pytest.raises(pydantic.ValidationError):
        FieldDescriptor(**payload)


def test_descriptor_accepts_frontend_payload():
    descriptor = FieldDescriptor.model_validate(
        {"id": 1718000000.123, "label": "Date", "key": "date", "enabled": False}
    )

    assert descriptor.pattern is None
    assert descriptor.enabled is False


def test_descriptor_is_immutable():
    descriptor = FieldDescriptor(key="date", label="Date")

    with pytest.raises(pydantic.ValidationError):
        descriptor.label = "Other"


def test_descriptor_set_rejects_duplicate_keys_even_when_disabled():
    with pytest.raises(pydantic.ValidationError, match="Duplicate field keys: date"):
        FieldDescriptorSet.model_validate_json(
            '[{"key": "date", "label": "Date"}, {"key": "date", "label": "Issue Date", "enabled": false}]'
        )


def test_descriptor_set_enabled_preserves_order():
    descriptors = FieldDescriptorSet.model_validate([
        {"key": "b", "label": "B"},
        {"key": "a", "label": "A", "enabled": False},
        {"key": "c", "label": "C"},
    ])

    assert [d.key for d in descriptors.enabled()] == ["b", "c"]
    assert len(descriptors) == 3


def test_page_record_row_and_coverage():
    record = PageRecord(page=3, values={"ref": "A-1", "date": EXTRACTION_FAILED, "gw": PATTERN_ERROR, "x": "y"})

    assert record.to_row() == {"page": 3, "ref": "A-1", "date": EXTRACTION_FAILED, "gw": PATTERN_ERROR, "x": "y"}
    assert record.has_value()
    assert record.coverage == 0.5


def test_page_record_with_only_sentinels_has_no_value():
    record = PageRecord(page=1, values={"ref": EXTRACTION_FAILED, "gw": PATTERN_ERROR})

    assert not record.has_value()
    assert record.coverage == 0.0


def test_chunk_describes_one_based_pages():
    chunk = Chunk(index=1, start_page=10, end_page=20)

    assert chunk.page_count == 10
    assert chunk.describe() == "chunk 1 (pages 11-20)"
