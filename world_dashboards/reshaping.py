import logging
import re
from typing import Any, Iterable, Mapping

import numpy as np
import pandas as pd

from .config import MAX_YEAR, MIN_YEAR
from .resolver import IdentifierIndex, resolve, text_of

logger = logging.getLogger(__name__)

SeriesTable = dict[str, dict[int, float]]

_YEAR = re.compile(r"^\d{4}$")
_SUFFIXES = {"k": 1e3, "M": 1e6, "B": 1e9}


def parse_number(value: Any) -> float | None:
    """
    Convert cells like '2650', '407k', '3.28M' to floats.

    Empty, non-numeric and non-finite cells give None.
    """
    text = text_of(value)
    if not text:
        return None

    scale = 1.0
    if text[-1] in _SUFFIXES:
        scale = _SUFFIXES[text[-1]]
        text = text[:-1]

    try:
        number = float(text) * scale
    except ValueError:
        return None
    if not np.isfinite(number):
        return None
    return number


def detect_year_columns(columns: Iterable[Any]) -> dict[int, Any]:
    """Map year -> original column name, for 4-digit headers within bounds."""
    years: dict[int, Any] = {}
    for column in columns:
        key = str(column).strip()
        if _YEAR.match(key) and MIN_YEAR <= int(key) <= MAX_YEAR:
            years[int(key)] = column
    return dict(sorted(years.items()))


def as_frame(table: pd.DataFrame | Iterable[Mapping[str, Any]]) -> pd.DataFrame:
    if isinstance(table, pd.DataFrame):
        return table
    return pd.DataFrame(list(table))


def reshape_wide_table(
    table: pd.DataFrame | Iterable[Mapping[str, Any]],
    index: IdentifierIndex | None = None,
) -> SeriesTable:
    """
    Reshape a one-row-per-country, one-column-per-year table into
    ``{alpha3: {year: value}}``.

    Unresolved rows and rows without a single numeric year are dropped.
    Missing cells are left out rather than stored as zero.
    """
    df = as_frame(table)
    year_columns = detect_year_columns(df.columns)
    if not year_columns:
        return {}

    # year-shaped headers are never identifier columns, even out of bounds
    id_columns = [c for c in df.columns if not _YEAR.match(str(c).strip())]

    out: SeriesTable = {}
    unresolved = 0
    for _, row in df.iterrows():
        fields = {str(c): row[c] for c in id_columns}
        code = resolve(fields, index, scan_tokens=True)
        if not code:
            unresolved += 1
            continue

        values: dict[int, float] = {}
        for year, column in year_columns.items():
            number = parse_number(row[column])
            if number is not None:
                values[year] = number

        if values:
            out[code] = values

    if unresolved:
        logger.debug(f"Could not resolve {unresolved} of {len(df)} rows to a country code")
    return out