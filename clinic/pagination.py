from typing import Optional


def paginate(qs, page: Optional[int], page_size: Optional[int], default_size: Optional[int] = None):
    """Slice ``qs`` by page; returns the page and pagination metadata."""
    total = qs.count()
    page = page or 1
    page_size = page_size or default_size
    if page_size:
        start = (page - 1) * page_size
        qs = qs[start:start + page_size]
    return qs, {'total': total, 'page': page, 'pageSize': page_size or total}
