import math

import pytest

from chunking import DocumentStructureError, iter_chunk_documents, plan_chunks
from conftest import build_pdf, page_indexes


@pytest.mark.parametrize(
    "total_pages, chunk_size",
    [(1, 10), (10, 10), (11, 10), (25, 10), (7, 3), (300, 10), (5, 1)],
)
def test_plan_chunks_partitions_pages_exactly_once(total_pages, chunk_size):
    chunks = plan_chunks(total_pages, chunk_size)

    assert len(chunks) == math.ceil(total_pages / chunk_size)
    assert all(0 < chunk.page_count <= chunk_size for chunk in chunks)
    covered = [page for chunk in chunks for page in range(chunk.start_page, chunk.end_page)]
    assert covered == list(range(total_pages))
    assert [chunk.index for chunk in chunks] == list(range(len(chunks)))


def test_plan_chunks_last_chunk_may_be_shorter():
    chunks = plan_chunks(25, 10)

    assert [(c.start_page, c.end_page) for c in chunks] == [(0, 10), (10, 20), (20, 25)]
    assert chunks[-1].page_numbers == [21, 22, 23, 24, 25]


def test_plan_chunks_with_no_pages_is_empty():
    assert plan_chunks(0, 10) == []


@pytest.mark.parametrize("chunk_size", [0, -3])
def test_plan_chunks_rejects_non_positive_size(chunk_size):
    with pytest.raises(ValueError):
        plan_chunks(10, chunk_size)


def test_iter_chunk_documents_builds_ordered_sub_documents():
    pdf_bytes = build_pdf(23)

    emitted = list(iter_chunk_documents(pdf_bytes, 10))

    assert [chunk.index for chunk, _ in emitted] == [0, 1, 2]
    assert [page_indexes(data) for _, data in emitted] == [
        list(range(0, 10)),
        list(range(10, 20)),
        list(range(20, 23)),
    ]


def test_iter_chunk_documents_is_lazy():
    chunks = iter_chunk_documents(build_pdf(12), 5)

    chunk, data = next(chunks)

    assert (chunk.start_page, chunk.end_page) == (0, 5)
    assert page_indexes(data) == [0, 1, 2, 3, 4]


@pytest.mark.parametrize("payload", [b"", b"not a pdf at all", b"%PDF-1.7\n garbage"])
def test_malformed_source_is_structural_failure(payload):
    with pytest.raises(DocumentStructureError):
        list(iter_chunk_documents(payload, 10))


def test_structural_failure_is_a_value_error():
    assert issubclass(DocumentStructureError, ValueError)
