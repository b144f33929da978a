"""
Typed result shapes for extracted papers.

The extraction service returns loosely structured JSON.  Before the
orchestrator uses a response it is run through
:func:`parse_result_data`, which checks the shape against the paper
schema and converts it into :class:`Paper` objects.  A response that
does not fit fails fast with :class:`ExtractionFailure` instead of
leaking untyped data into persistence.

Field categories:

* required: ``name`` (non-empty string)
* required by the schema but repaired here: ``author`` (defaults to
  ``"Unknown"``) and ``year`` (normalised, ``None`` when unusable)
* optional, nullable: ``abstract``, ``doi``, ``research_question``,
  ``major_findings``, ``suggestions``
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

import pandas as pd  # type: ignore
from dateutil import parser as date_parser  # type: ignore

from .errors import ExtractionFailure

UNKNOWN_AUTHOR = 'Unknown'
OPTIONAL_FIELDS = ('abstract', 'doi', 'research_question', 'major_findings', 'suggestions')

_NO_YEAR = datetime(1, 1, 1)


@dataclass(frozen=True)
class Paper:
    name: str
    author: str = UNKNOWN_AUTHOR
    year: Optional[int] = None
    abstract: Optional[str] = None
    doi: Optional[str] = None
    research_question: Optional[str] = None
    major_findings: Optional[str] = None
    suggestions: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ResultData:
    papers: List[Paper] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {'papers': [p.to_dict() for p in self.papers]}


def normalize_year(value: Any) -> Optional[int]:
    """Coerce a variety of date representations into a four‑digit year.

    Returns an integer year if one can be extracted and falls within
    1900–2100, otherwise returns ``None``.  Strings are parsed with
    `dateutil.parser.parse` and numeric values are cast directly.
    """
    if isinstance(value, (list, tuple, dict, bool)):
        return None
    if value is None or value == '' or pd.isna(value):
        return None
    try:
        if isinstance(value, (int, float)):
            year = int(value)
        else:
            # year 1 marks strings without a year of their own
            year = date_parser.parse(str(value), default=_NO_YEAR).year
        return year if 1900 <= year <= 2100 else None
    except (ValueError, OverflowError):
        # fall back to regex search for a 4‑digit year
        match = re.search(r"\b(19|20)\d{2}\b", str(value))
        if match:
            return int(match.group())
    return None


def optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_paper(item: Any, index: int = 0) -> Paper:
    """Validate a single paper mapping from the extraction response."""
    if not isinstance(item, Mapping):
        raise ExtractionFailure(f"Paper #{index} is not an object: {type(item).__name__}")
    name = item.get('name')
    if not isinstance(name, str) or not name.strip():
        raise ExtractionFailure(f"Paper #{index} has no name")
    author = optional_text(item.get('author')) or UNKNOWN_AUTHOR
    optional = {key: optional_text(item.get(key)) for key in OPTIONAL_FIELDS}
    return Paper(name=name.strip(), author=author, year=normalize_year(item.get('year')), **optional)


def parse_result_data(response: Any) -> ResultData:
    """Validate an extraction response and return typed result data.

    Raises:
        ExtractionFailure: if the response has no ``data`` object or the
            papers list does not match the expected shape.
    """
    if not isinstance(response, Mapping):
        raise ExtractionFailure('Invalid response from extraction service')
    data = response.get('data')
    if data is None:
        raise ExtractionFailure('Invalid response from extraction service')
    if not isinstance(data, Mapping):
        raise ExtractionFailure(f"Response data must be an object, got {type(data).__name__}")
    papers = data.get('papers')
    if papers is None:
        return ResultData()
    if not isinstance(papers, list):
        raise ExtractionFailure(f"Response papers must be a list, got {type(papers).__name__}")
    return ResultData(papers=[parse_paper(item, i) for i, item in enumerate(papers)])
