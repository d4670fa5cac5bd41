from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class EmployeeRecord(BaseModel):
    """One employee row, as published to and consumed from the queue.

    Columns other than name/age/location are carried along untouched.
    """
    model_config = ConfigDict(extra="allow", str_strip_whitespace=True)

    name: str = Field(..., min_length=1)
    age: Optional[int] = None
    location: Optional[str] = None

    @field_validator("name", "location")
    @classmethod
    def no_nul_characters(cls, v):
        # PostgreSQL text columns cannot hold NUL
        if v is not None and "\x00" in v:
            raise ValueError("must not contain NUL (0x00) characters")
        return v

    @field_validator("location")
    @classmethod
    def empty_location_is_none(cls, v):
        return v or None

    def to_message(self) -> bytes:
        return self.model_dump_json(exclude_none=True).encode("utf-8")
