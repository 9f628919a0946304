from __future__ import annotations

import pytest

from reservation_report.util.errors import PaginationExhaustedError
from reservation_report.util.pagination import paginate


def test_paginate_yields_all_items_and_pages_in_order() -> None:
    calls = []
    pages = {
        None: (["a", "b"], "next"),
        "next": (["c"], None),
    }

    def fetch(page):
        calls.append(page)
        return pages[page]

    items = list(paginate(fetch))
    assert items == ["a", "b", "c"]
    assert calls == [None, "next"]


def test_paginate_stops_on_empty_token() -> None:
    calls = []

    def fetch(page):
        calls.append(page)
        return ([1], "")

    assert list(paginate(fetch)) == [1]
    assert calls == [None]


def test_paginate_raises_when_tokens_never_stop() -> None:
    calls = []

    def fetch(page):
        calls.append(page)
        return ([len(calls)], f"t{len(calls)}")

    with pytest.raises(PaginationExhaustedError):
        list(paginate(fetch, max_pages=3))
    assert len(calls) == 3


def test_paginate_allows_exactly_max_pages() -> None:
    pages = {None: ([1], "a"), "a": ([2], "b"), "b": ([3], None)}

    assert list(paginate(lambda p: pages[p], max_pages=3)) == [1, 2, 3]
