"""Unit tests for database URL handling."""

import pytest

from grounded_qa.infrastructure.database.session import _get_async_url


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        ("postgresql://u:p@db:5432/qa", "postgresql+asyncpg://u:p@db:5432/qa"),
        ("postgres://u:p@db/qa", "postgresql+asyncpg://u:p@db/qa"),
        ("postgresql+asyncpg://u:p@db/qa", "postgresql+asyncpg://u:p@db/qa"),
    ],
)
def test_get_async_url(url, expected):
    assert _get_async_url(url) == expected
