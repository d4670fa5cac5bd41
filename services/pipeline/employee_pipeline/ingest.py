"""
Source file reading and row cleaning for the producer.

- Rows are read in chunks with every column kept as a string, NA conversion off
- Column names are stripped; rows are yielded in file order with their line number
- clean_row turns a raw row into an EmployeeRecord or raises RecordValidationError
"""
import os
from typing import Any, Dict, Iterator, Tuple

import pandas as pd
from pydantic import ValidationError

from .errors import RecordValidationError, SourceFileError
from .schemas import EmployeeRecord

KNOWN_FIELDS = ("name", "age", "location")


def check_source(path: str) -> None:
    if not os.path.isfile(path):
        raise SourceFileError(path, "file not found")
    if not os.access(path, os.R_OK):
        raise SourceFileError(path, "file is not readable")


def read_rows(path: str, chunksize: int = 10_000, delimiter: str = ",") -> Iterator[Tuple[int, Dict[str, Any]]]:
    """Yield (line_number, row) for every data row of a delimited file."""
    check_source(path)
    line_no = 1  # header
    try:
        reader = pd.read_csv(path, chunksize=chunksize, dtype=str, keep_default_na=False,
                             skipinitialspace=True, sep=delimiter)
        for chunk in reader:
            chunk.columns = [str(c).strip() for c in chunk.columns]
            for row in chunk.to_dict(orient="records"):
                line_no += 1
                yield line_no, row
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError, OSError) as e:
        raise SourceFileError(path, f"{type(e).__name__} near line {line_no}: {e}") from e


def _text(value: Any) -> str:
    # short rows come back as NaN even with NA conversion off
    return value.strip() if isinstance(value, str) else ""


def clean_row(row: Dict[str, Any]) -> EmployeeRecord:
    name = _text(row.get("name"))
    if not name:
        raise RecordValidationError("name is required")

    raw_age = _text(row.get("age"))
    try:
        age = int(raw_age) if raw_age else None
    except ValueError:
        raise RecordValidationError(f"age is not an integer: {raw_age!r}") from None

    location = _text(row.get("location")) or None

    extras = {k: v for k, v in row.items() if k not in KNOWN_FIELDS and isinstance(v, str)}
    try:
        return EmployeeRecord.model_validate({**extras, "name": name, "age": age, "location": location})
    except ValidationError as e:
        raise RecordValidationError(str(e)) from None
