import re
from typing import Mapping

from tracker.core.exceptions import BadRequestError
from tracker.repositories.base import PageRequest

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def page_request(page: int, size: int, sort_by: str, sort_dir: str, allowed: Mapping[str, object]) -> PageRequest:
    """
    Validate paging input before it reaches a repository.

    ``sort_by`` may be camelCase (``createdAt``) or snake_case; anything not in
    ``allowed`` is rejected. Only ``desc`` (any case) sorts descending.
    """
    if page < 0:
        raise BadRequestError("Page index must not be less than zero")
    if size < 1:
        raise BadRequestError("Page size must not be less than one")

    field = _CAMEL_BOUNDARY.sub("_", sort_by or "createdAt").lower()
    if field not in allowed:
        raise BadRequestError(f"Invalid sort field: {sort_by}")

    return PageRequest(
        page=page,
        size=size,
        sort_field=field,
        descending=(sort_dir or "desc").lower() == "desc",
    )
