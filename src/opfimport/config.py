"""Runtime configuration for package imports."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import os
from typing import Mapping


DEFAULT_MAX_WORKERS = 4


class LoadFailurePolicy(str, Enum):
    """What the folder loader does when one manifest file cannot be loaded."""

    SKIP = "skip"
    ABORT = "abort"


class UniqueIdFallback(str, Enum):
    """How the book identity is chosen when the declared unique identifier is unmatched."""

    FIRST_IDENTIFIER = "first-identifier"
    SYNTHESIZE = "synthesize"
    NONE = "none"


def _parse_choice(enum_type, *, name: str, raw_value: str):
    normalized = raw_value.strip().lower()
    for member in enum_type:
        if member.value == normalized:
            return member
    allowed = ", ".join(member.value for member in enum_type)
    raise ValueError(f"{name} must be one of: {allowed}")


def _parse_positive_int(*, name: str, raw_value: str, minimum: int = 1) -> int:
    try:
        value = int(raw_value)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer") from exc
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}")
    return value


@dataclass(frozen=True, slots=True)
class ImportSettings:
    """Validated strictness and concurrency settings for one importer."""

    load_failure_policy: LoadFailurePolicy = LoadFailurePolicy.SKIP
    unique_id_fallback: UniqueIdFallback = UniqueIdFallback.FIRST_IDENTIFIER
    max_workers: int = DEFAULT_MAX_WORKERS

    def __post_init__(self) -> None:
        if self.max_workers < 1:
            raise ValueError("max_workers must be >= 1")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ImportSettings":
        source: Mapping[str, str] = os.environ if environ is None else environ

        policy_raw = source.get("OPFIMPORT_LOAD_FAILURE_POLICY", LoadFailurePolicy.SKIP.value).strip()
        fallback_raw = source.get("OPFIMPORT_UNIQUE_ID_FALLBACK", UniqueIdFallback.FIRST_IDENTIFIER.value).strip()
        workers_raw = source.get("OPFIMPORT_MAX_WORKERS", str(DEFAULT_MAX_WORKERS)).strip()

        if not policy_raw:
            raise ValueError("OPFIMPORT_LOAD_FAILURE_POLICY cannot be empty")
        if not fallback_raw:
            raise ValueError("OPFIMPORT_UNIQUE_ID_FALLBACK cannot be empty")
        if not workers_raw:
            raise ValueError("OPFIMPORT_MAX_WORKERS cannot be empty")

        return cls(
            load_failure_policy=_parse_choice(
                LoadFailurePolicy,
                name="OPFIMPORT_LOAD_FAILURE_POLICY",
                raw_value=policy_raw,
            ),
            unique_id_fallback=_parse_choice(
                UniqueIdFallback,
                name="OPFIMPORT_UNIQUE_ID_FALLBACK",
                raw_value=fallback_raw,
            ),
            max_workers=_parse_positive_int(
                name="OPFIMPORT_MAX_WORKERS",
                raw_value=workers_raw,
                minimum=1,
            ),
        )
