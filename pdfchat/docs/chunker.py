"""Page grouping - deterministic split of a page count into extraction groups."""

from pdfchat.models.documents import PageGroup


def group_pages(page_count: int, *, group_size: int = 5) -> list[PageGroup]:
    """Split pages 1..page_count into contiguous fixed-size groups.

    Pure function with no I/O. The final group may be shorter than
    group_size.

    Args:
        page_count: Total pages in the document
        group_size: Pages per group (default 5)

    Returns:
        ceil(page_count / group_size) groups where:
        - index is 0-based and strictly increasing
        - start_page/end_page are 1-based and inclusive
        - consecutive groups are adjacent (next.start_page == prev.end_page + 1)
        - the union of all groups is exactly [1, page_count]

    Raises:
        ValueError: If group_size < 1 or page_count < 0
    """
    if group_size < 1:
        raise ValueError(f"group_size must be >= 1, got {group_size}")
    if page_count < 0:
        raise ValueError(f"page_count must be >= 0, got {page_count}")

    groups: list[PageGroup] = []
    for index, start in enumerate(range(1, page_count + 1, group_size)):
        end = min(start + group_size - 1, page_count)
        groups.append(PageGroup(index=index, start_page=start, end_page=end))
    return groups
