"""
MAAP Check-ins
Blueprint helpers shared by the HTTP layer.
"""

from flask import request

from maap.utils.helpers import parse_int


def paginate_query(query, default_limit=50, max_limit=200):
    """Apply ``?limit=&offset=`` to a SQLAlchemy query.

    ``limit`` is clamped to 1..max_limit and ``offset`` to >= 0; unparseable
    values fall back to the defaults.

    Returns:
        (items_list, total_count)
    """
    limit = parse_int(request.args.get("limit"))
    limit = default_limit if limit is None else min(max(limit, 1), max_limit)
    offset = max(parse_int(request.args.get("offset")) or 0, 0)
    return query.limit(limit).offset(offset).all(), query.count()
