from __future__ import annotations

import pytest

from employee_pipeline.errors import RecordValidationError, SourceFileError
from employee_pipeline.ingest import clean_row, read_rows


def test_clean_row_trims_and_parses() -> None:
    record = clean_row({"name": "  Alice ", "age": " 30", "location": " NYC  "})

    assert record.name == "Alice"
    assert record.age == 30
    assert record.location == "NYC"


def test_clean_row_blank_optional_fields_become_none() -> None:
    record = clean_row({"name": "Bob", "age": "", "location": "   "})

    assert record.age is None
    assert record.location is None


@pytest.mark.parametrize("row", [{"age": "25"}, {"name": "", "age": "25"}, {"name": "   "}])
def test_clean_row_requires_name(row: dict) -> None:
    with pytest.raises(RecordValidationError, match="name is required"):
        clean_row(row)


def test_clean_row_rejects_unparsable_age() -> None:
    with pytest.raises(RecordValidationError, match="age is not an integer"):
        clean_row({"name": "Dave", "age": "thirty"})


def test_clean_row_carries_extra_columns() -> None:
    record = clean_row({"name": "Erin", "age": "29", "department": "ops"})

    assert record.model_dump()["department"] == "ops"


def test_clean_row_treats_missing_cells_as_blank() -> None:
    record = clean_row({"name": "Frank", "age": float("nan"), "location": float("nan")})

    assert record.age is None
    assert record.location is None


def test_read_rows_keeps_source_order_and_line_numbers(write_csv) -> None:
    path = write_csv("name, age ,location\nAlice,30,NYC\nBob,,London\n,25,Paris\n")

    rows = list(read_rows(str(path)))

    assert [line for line, _ in rows] == [2, 3, 4]
    assert [row["name"] for _, row in rows] == ["Alice", "Bob", ""]
    # values stay strings; nothing is converted to NaN or numbers
    assert rows[0][1]["age"] == "30"
    assert rows[1][1]["age"] == ""


def test_read_rows_small_chunks_preserve_order(write_csv) -> None:
    body = "".join(f"name{i},{i},here\n" for i in range(25))
    path = write_csv("name,age,location\n" + body)

    names = [row["name"] for _, row in read_rows(str(path), chunksize=4)]

    assert names == [f"name{i}" for i in range(25)]


def test_read_rows_missing_file(tmp_path) -> None:
    with pytest.raises(SourceFileError, match="file not found"):
        list(read_rows(str(tmp_path / "nope.csv")))


def test_read_rows_empty_file_is_a_source_error(write_csv) -> None:
    path = write_csv("")

    with pytest.raises(SourceFileError):
        list(read_rows(str(path)))


def test_clean_row_rejects_nul_characters() -> None:
    with pytest.raises(RecordValidationError, match="NUL"):
        clean_row({"name": "Al\x00ice", "age": "30"})
