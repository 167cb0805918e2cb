"""
RepositoryEntry — one plugin repository to clone.

Entries are produced by the repository list loader from raw text lines
and are read-only for the rest of the run.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, field_validator


class RepositoryEntry(BaseModel):
    """A source URL and the directory it is cloned into."""

    model_config = ConfigDict(frozen=True)

    source_url: str
    destination_name: str
    special_case: str | None = None   # registry key that overrode the name

    @field_validator("destination_name")
    @classmethod
    def _non_empty(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("destination_name must not be empty")
        return value

    @property
    def key(self) -> str:
        """Collision key: directory names compare case-insensitively."""
        return self.destination_name.casefold()
