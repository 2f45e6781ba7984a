"""Request payload models for the dispatcher operations.

Wire names are camelCase; snake_case is accepted too. Unknown keys are
ignored so that callers may send extra UI state along.
"""

from typing import Any, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

ObjectKind = Literal["tables", "views", "procedures", "functions"]


class Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class IdPayload(Payload):
    id: str = Field(..., min_length=1, description="Saved connection id")

    @field_validator("id", mode="before")
    @classmethod
    def strip_id(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v


class ObjectsPayload(IdPayload):
    kind: ObjectKind = Field(..., description="Object kind to list")

    @field_validator("kind", mode="before")
    @classmethod
    def lower_kind(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v


class TablePayload(IdPayload):
    table_name: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("tableName", "table_name", "table"),
        description="Table or collection name",
    )


class StatementPayload(IdPayload):
    """Statement text is kept byte for byte; it is never trimmed or parsed."""

    text: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("text", "query"),
        description="Statement text",
    )
    timeout: Optional[int] = Field(None, gt=0, description="Timeout in milliseconds")
