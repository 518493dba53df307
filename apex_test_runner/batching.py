"""Splitting identifier sets into length-bounded queries."""

from collections.abc import Sequence

# Longest query string accepted by the remote query endpoint.
MAX_QUERY_LENGTH = 2750


def quote_id(value: str) -> str:
    """Quote an identifier as a query string literal."""
    escaped = value.replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"


def chunk_queries(
    query_start: str,
    ids: Sequence[str],
    max_length: int = MAX_QUERY_LENGTH,
) -> Sequence[str]:
    """Build the fewest ``IN (...)`` queries covering all identifiers.

    Identifiers are packed greedily in their original order; a query is
    closed as soon as the next identifier would push it past max_length.

    Args:
        query_start: Query text up to and including ``IN `` (e.g.,
            "SELECT Id FROM ApexTestResult WHERE QueueItemId IN ")
        ids: Identifiers to select, in order
        max_length: Maximum length of a complete query

    Returns:
        Complete queries, one per batch (empty when ids is empty)

    Raises:
        ValueError: If a single identifier does not fit in a query

    """
    queries: list[str] = []
    batch: list[str] = []
    # Prefix plus opening and closing parentheses.
    length = len(query_start) + 2

    for value in ids:
        quoted = quote_id(value)
        added = len(quoted) + (1 if batch else 0)

        if batch and length + added > max_length:
            queries.append(_build_query(query_start, batch))
            batch = []
            length = len(query_start) + 2
            added = len(quoted)

        if length + added > max_length:
            raise ValueError(
                f"Identifier {value!r} does not fit in a query of {max_length} characters"
            )

        batch.append(quoted)
        length += added

    if batch:
        queries.append(_build_query(query_start, batch))

    return queries


def _build_query(query_start: str, quoted_ids: Sequence[str]) -> str:
    return f"{query_start}({','.join(quoted_ids)})"
