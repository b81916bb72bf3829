"""
Base Models

Foundation class for Folio documents. Remote documents use camelCase field
names; models expose snake_case attributes and keep the wire names as aliases.
"""

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict


def utc_now_iso() -> str:
    """Current UTC time in the ISO-8601 form stored in documents."""
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


class FolioModel(BaseModel):
    """Base model for all Folio documents."""

    model_config = ConfigDict(
        populate_by_name=True,
        str_strip_whitespace=True,
        validate_assignment=True,
        extra="allow",
    )

    def to_document(self) -> dict[str, Any]:
        """Serialize with wire (alias) names, ready for the document store or a snapshot."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
