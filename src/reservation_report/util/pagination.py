from __future__ import annotations

from typing import Callable, Generator, Optional, Sequence, Tuple, TypeVar

from .errors import PaginationExhaustedError

T = TypeVar("T")

DEFAULT_MAX_PAGES = 1000


def paginate(
    fetch: Callable[[str | None], Tuple[Sequence[T], str | None]],
    *,
    max_pages: Optional[int] = DEFAULT_MAX_PAGES,
) -> Generator[T, None, None]:
    """
    Generic paginator yielding items from a fetch(page_token) function.
    The fetch function must return (items, next_page_token). If next_page_token
    is falsy, pagination stops.

    At most max_pages requests are issued; a provider that still hands back a
    token after that raises PaginationExhaustedError. max_pages=None disables the bound.
    """
    page: str | None = None
    requests = 0
    while True:
        if max_pages is not None and requests >= max_pages:
            raise PaginationExhaustedError(
                f"Pagination did not terminate after {requests} pages (last token: {page!r})"
            )
        items, next_page = fetch(page)
        requests += 1
        for it in items:
            yield it
        if not next_page:
            break
        page = next_page
