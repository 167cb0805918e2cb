"""
Repository list loader — plugin list text → RepositoryEntry values.

The list is newline-delimited: one repository URL per line, blank lines
and ``#`` comments ignored, Windows line endings tolerated. Each URL is
mapped to the directory it is cloned into. Parsing is pure: the same
lines always yield the same entries and warnings in the same order.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from pathlib import Path

from comfyprov.core.models.repository import RepositoryEntry

logger = logging.getLogger(__name__)

# Plugins whose on-disk directory must not follow the repository name.
DEFAULT_SPECIAL_CASES: dict[str, str] = {
    "comfyui-manager": "comfyui-manager",
}

_SEGMENT_SPLIT = re.compile(r"[/:]")


def repository_basename(url: str) -> str:
    """Last path segment of a repository URL, without ``.git``.

    Handles ``https://host/org/repo(.git)``, ``git@host:org/repo.git`` and
    trailing slashes. Returns an empty string when nothing usable is left.
    """
    trimmed = url.strip().rstrip("/")
    segment = _SEGMENT_SPLIT.split(trimmed)[-1] if trimmed else ""
    if segment.lower().endswith(".git"):
        segment = segment[: -len(".git")]
    return segment.strip()


@dataclass
class RepositoryList:
    """Entries produced by one parse call, plus what was dropped and why."""

    entries: list[RepositoryEntry] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.entries)

    def destination_names(self) -> list[str]:
        return [e.destination_name for e in self.entries]

    def to_dict(self) -> dict:
        return {
            "entries": [e.model_dump(mode="json") for e in self.entries],
            "warnings": list(self.warnings),
        }


class RepositoryListLoader:
    """Parse plugin repository lists.

    Args:
        special_cases: Basename (case-insensitive) → canonical directory
            name. Defaults to :data:`DEFAULT_SPECIAL_CASES`.
    """

    def __init__(self, special_cases: dict[str, str] | None = None):
        cases = DEFAULT_SPECIAL_CASES if special_cases is None else special_cases
        self._special_cases = {k.casefold(): v for k, v in cases.items()}

    def _scan(self, lines: Iterable[str]) -> Iterator[RepositoryEntry | str]:
        """Yield entries in input order, and warning strings for rejected lines."""
        claimed: dict[str, RepositoryEntry] = {}

        for line_num, raw in enumerate(lines, start=1):
            line = raw.rstrip("\r\n").rstrip()
            if not line:
                continue
            url = line.lstrip()
            if url.startswith("#"):
                continue

            basename = repository_basename(url)
            special = self._special_cases.get(basename.casefold()) if basename else None
            destination = special or basename
            if not destination:
                yield f"line {line_num}: cannot derive a directory name from {url!r}"
                continue

            entry = RepositoryEntry(
                source_url=url,
                destination_name=destination,
                special_case=basename.casefold() if special else None,
            )

            first = claimed.get(entry.key)
            if first is not None:
                yield (
                    f"line {line_num}: duplicate destination '{destination}' "
                    f"({url}), already claimed by {first.source_url}"
                )
                continue

            claimed[entry.key] = entry
            yield entry

    def iter_entries(self, lines: Iterable[str]) -> Iterator[RepositoryEntry]:
        """Lazily yield accepted entries; warnings are logged."""
        for item in self._scan(lines):
            if isinstance(item, str):
                logger.warning("⚠️  %s", item)
            else:
                yield item

    def parse(self, lines: Iterable[str]) -> RepositoryList:
        """Parse all lines into a RepositoryList."""
        result = RepositoryList()
        for item in self._scan(lines):
            if isinstance(item, str):
                result.warnings.append(item)
            else:
                result.entries.append(item)
        return result


def read_repository_lines(path: Path) -> list[str]:
    """Read a repository list file as UTF-8 (a leading BOM is ignored)."""
    return path.read_text(encoding="utf-8-sig").splitlines()


def load_repository_file(
    path: Path,
    special_cases: dict[str, str] | None = None,
    extra: Iterable[str] = (),
) -> RepositoryList:
    """Parse a list file, followed by ``extra`` lines (e.g. required plugins).

    Raises:
        OSError: If the file cannot be read.
    """
    lines = read_repository_lines(path)
    logger.debug("Read %d lines from %s", len(lines), path)
    return RepositoryListLoader(special_cases).parse([*lines, *extra])
