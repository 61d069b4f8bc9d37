"""Translate SearchCriteria into IMAP SEARCH keys.

Each present field becomes one search key; absent fields are omitted
rather than sent as wildcards. Keys are implicitly ANDed by the server.
``unseen=True`` adds UNSEEN; ``unseen=False`` adds nothing. No fields at
all degrades to ALL.
"""

from datetime import date
from typing import Any, List, Mapping, Optional, Union

from mailbridge.core.models.email import SearchCriteria
from mailbridge.utils.errors import ValidationError

_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


def quote_string(value: str) -> str:
    """IMAP quoted string with backslashes and double quotes escaped."""
    escaped = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def format_date(value: date) -> str:
    """IMAP date (``01-Jan-2024``), independent of the process locale."""
    return f"{value.day:02d}-{_MONTHS[value.month - 1]}-{value.year}"


def to_criteria(criteria: Union[SearchCriteria, Mapping[str, Any], None]) -> SearchCriteria:
    if criteria is None:
        return SearchCriteria()
    if isinstance(criteria, SearchCriteria):
        return criteria
    try:
        return SearchCriteria.model_validate(dict(criteria))
    except ValueError as e:
        raise ValidationError(
            f"Invalid search criteria: {str(e)}", details={"criteria": dict(criteria)}
        ) from e


def build_search_criteria(
    criteria: Union[SearchCriteria, Mapping[str, Any], None],
) -> List[str]:
    """Map a structured filter onto IMAP SEARCH keys.

    Args:
        criteria: SearchCriteria or a plain mapping using the same keys

    Returns:
        Search keys ready to pass to the SEARCH command
    """
    criteria = to_criteria(criteria)
    terms: List[str] = []

    text_terms: List[tuple[str, Optional[str]]] = [
        ("FROM", criteria.sender),
        ("TO", criteria.to),
        ("SUBJECT", criteria.subject),
        ("BODY", criteria.body),
    ]
    for key, value in text_terms:
        if value:
            terms.extend([key, quote_string(value)])

    if criteria.since:
        terms.extend(["SINCE", format_date(criteria.since)])
    if criteria.before:
        terms.extend(["BEFORE", format_date(criteria.before)])

    if criteria.unseen is True:
        terms.append("UNSEEN")

    return terms or ["ALL"]
