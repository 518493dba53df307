"""Tests for query batching."""

import pytest

from apex_test_runner.batching import MAX_QUERY_LENGTH, chunk_queries, quote_id
from apex_test_runner.fetcher import TEST_RESULT_QUERY

QUERY_START = "SELECT Id FROM ApexTestResult WHERE QueueItemId IN "


def make_ids(count: int) -> list[str]:
    """Create distinct 18-character identifiers."""
    return [f"7092M{i:013d}" for i in range(count)]


def test_empty_input_yields_no_queries() -> None:
    """Returns no queries for no identifiers."""
    assert chunk_queries(QUERY_START, []) == []


def test_single_identifier() -> None:
    """Builds one quoted IN clause."""
    assert chunk_queries(QUERY_START, ["7092M000000Vt94QAC"]) == [
        f"{QUERY_START}('7092M000000Vt94QAC')"
    ]


def test_exactly_fitting_input_yields_one_query() -> None:
    """Keeps a query whose length equals the limit."""
    ids = ["a1", "b2"]
    max_length = len(f"{QUERY_START}('a1','b2')")

    queries = chunk_queries(QUERY_START, ids, max_length)

    assert queries == [f"{QUERY_START}('a1','b2')"]


def test_closes_batch_when_next_identifier_does_not_fit() -> None:
    """Starts a new query once the limit would be exceeded."""
    ids = ["a1", "b2", "c3"]
    max_length = len(f"{QUERY_START}('a1','b2')")

    queries = chunk_queries(QUERY_START, ids, max_length)

    assert queries == [f"{QUERY_START}('a1','b2')", f"{QUERY_START}('c3')"]


def test_test_result_query_carries_120_ids() -> None:
    """Splits 700 test result ids with the first query holding 120."""
    ids = make_ids(700)

    queries = chunk_queries(TEST_RESULT_QUERY, ids)

    assert len(queries) == 6
    assert queries[0] == TEST_RESULT_QUERY + "('" + "','".join(ids[:120]) + "')"
    assert queries[-1] == TEST_RESULT_QUERY + "('" + "','".join(ids[600:]) + "')"


@pytest.mark.parametrize("count", [1, 119, 120, 121, 240, 700, 1000])
def test_batches_cover_every_id_within_limit(count: int) -> None:
    """Covers each id once, in order, with every query under the limit."""
    ids = make_ids(count)

    queries = chunk_queries(TEST_RESULT_QUERY, ids)

    seen: list[str] = []
    for query in queries:
        assert len(query) <= MAX_QUERY_LENGTH
        assert query.startswith(TEST_RESULT_QUERY + "(")
        inner = query.removeprefix(TEST_RESULT_QUERY + "(").removesuffix(")")
        seen.extend(value.strip("'") for value in inner.split(","))
    assert seen == ids
    assert len(queries) == -(-count // 120)


def test_greedy_packing_is_minimal() -> None:
    """Uses the fewest queries for uneven identifier lengths."""
    ids = ["a", "bbbbbbbb", "c", "dd", "eeeeee"]
    max_length = len(QUERY_START) + 20

    queries = chunk_queries(QUERY_START, ids, max_length)

    assert all(len(query) <= max_length for query in queries)
    assert queries == [
        f"{QUERY_START}('a','bbbbbbbb','c')",
        f"{QUERY_START}('dd','eeeeee')",
    ]


def test_identifier_too_long_for_any_query() -> None:
    """Raises when a single identifier cannot fit."""
    with pytest.raises(ValueError, match="does not fit"):
        chunk_queries(QUERY_START, ["abc"], len(QUERY_START) + 4)


def test_quote_id_escapes_quotes_and_backslashes() -> None:
    """Escapes characters that would end the literal."""
    assert quote_id("O'Brien\\x") == "'O\\'Brien\\\\x'"
