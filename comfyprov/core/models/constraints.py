"""
VersionConstraintSet — exact package pins that must survive every install.

Pins are written as ``package==version`` pairs. Package names are
normalized the way pip compares them (case-insensitive, ``-``/``_``/``.``
equivalent) so that ``OpenCV_Python`` and ``opencv-python`` are one pin.
"""

from __future__ import annotations

import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

_NORMALIZE_RE = re.compile(r"[-_.]+")


def normalize_package_name(name: str) -> str:
    """PEP 503 normalized form of a distribution name."""
    return _NORMALIZE_RE.sub("-", name.strip()).lower()


def parse_pin(spec: str) -> tuple[str, str]:
    """Split ``name==version`` into its parts.

    Raises:
        ValueError: If the spec is not an exact ``==`` pin.
    """
    name, sep, version = spec.strip().partition("==")
    name, version = name.strip(), version.strip()
    if not sep or not name or not version or "=" in version:
        raise ValueError(f"Expected an exact pin 'package==version', got {spec!r}")
    return name, version


class VersionConstraintSet(BaseModel):
    """Mapping of package name to exact version string."""

    model_config = ConfigDict(frozen=True)

    pins: dict[str, str] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _wrap_bare(cls, value: Any) -> Any:
        # provision.yml lists pins directly: `pins: [name==version, ...]`
        if isinstance(value, dict) and set(value) == {"pins"}:
            return value
        if value is None or isinstance(value, (list, tuple, dict)):
            return {"pins": value}
        return value

    @field_validator("pins", mode="before")
    @classmethod
    def _coerce_pins(cls, value: Any) -> dict[str, str]:
        if value is None:
            return {}
        if isinstance(value, (list, tuple)):
            pairs = [parse_pin(str(spec)) for spec in value]
        elif isinstance(value, dict):
            pairs = [(str(k), str(v)) for k, v in value.items()]
        else:
            raise ValueError(f"pins must be a list of 'name==version' or a mapping, got {type(value).__name__}")

        pins: dict[str, str] = {}
        for name, version in pairs:
            key = normalize_package_name(name)
            if not key or not version.strip():
                raise ValueError(f"Invalid pin: {name!r}=={version!r}")
            if key in pins and pins[key] != version.strip():
                raise ValueError(
                    f"Conflicting pins for {key}: {pins[key]} and {version.strip()}"
                )
            pins[key] = version.strip()
        return pins

    @classmethod
    def from_specs(cls, specs: list[str]) -> VersionConstraintSet:
        """Build from a list of ``name==version`` strings."""
        return cls(pins=specs)

    @property
    def packages(self) -> list[str]:
        """Pinned package names, in declaration order."""
        return list(self.pins)

    def requirement_specs(self) -> list[str]:
        """Pins as installer arguments (``name==version``)."""
        return [f"{name}=={version}" for name, version in self.pins.items()]

    def constraints_text(self) -> str:
        """Body of a pip constraints file."""
        return "".join(f"{spec}\n" for spec in self.requirement_specs())

    def version_of(self, package: str) -> str | None:
        return self.pins.get(normalize_package_name(package))

    def __len__(self) -> int:
        return len(self.pins)

    def __bool__(self) -> bool:
        return bool(self.pins)
