"""
StageList -- a tenant's ordered production stages.

Responsibility:
    Parse the tenant's stored stage configuration exactly once, at the
    service boundary, into an immutable ordered sequence of stage names.
    Stage arithmetic (first stage, next stage, position) only ever runs
    against a StageList, never against the raw stored value.

Architecture position:
    Kernel > Domain -- pure value object, zero I/O.

Invariants enforced:
    - A StageList is never empty.
    - Stage names are non-blank strings, unique within the list.
    - Anything else (None, malformed JSON, non-list, empty list) is
      "not configured" and raises StagesNotConfiguredError; there is no
      default list.

Failure modes:
    - StagesNotConfiguredError from StageList.parse().
"""

import json
from dataclasses import dataclass
from typing import Iterator

from shopfloor_kernel.exceptions import StagesNotConfiguredError


@dataclass(frozen=True)
class StageList:
    """Immutable ordered stage names for one tenant."""

    stages: tuple[str, ...]

    def __post_init__(self):
        if not self.stages:
            raise StagesNotConfiguredError(detail="stage list is empty")
        seen: set[str] = set()
        for stage in self.stages:
            if not isinstance(stage, str) or not stage.strip():
                raise StagesNotConfiguredError(detail=f"invalid stage name {stage!r}")
            if stage in seen:
                raise StagesNotConfiguredError(detail=f"duplicate stage {stage!r}")
            seen.add(stage)

    @classmethod
    def parse(cls, raw: object, tenant_id: object = None) -> "StageList":
        """
        Build a StageList from stored configuration.

        Accepts a list/tuple of names or a JSON string encoding one.
        """
        tenant = str(tenant_id) if tenant_id is not None else None
        value = raw
        if isinstance(value, (bytes, bytearray)):
            value = value.decode("utf-8")
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except json.JSONDecodeError as exc:
                raise StagesNotConfiguredError(tenant, f"malformed stage list: {exc.msg}") from exc
        if value is None:
            raise StagesNotConfiguredError(tenant)
        if not isinstance(value, (list, tuple)):
            raise StagesNotConfiguredError(tenant, "stage list is not an array")
        try:
            return cls(tuple(value))
        except StagesNotConfiguredError as exc:
            raise StagesNotConfiguredError(tenant, exc.detail) from exc

    def first(self) -> str:
        return self.stages[0]

    def last(self) -> str:
        return self.stages[-1]

    def index_of(self, stage: str | None) -> int | None:
        """Position of ``stage`` or None when it is a custom/unlisted stage."""
        if stage is None:
            return None
        try:
            return self.stages.index(stage)
        except ValueError:
            return None

    def next_after(self, stage: str | None) -> str | None:
        """Stage following ``stage``; None if it is last or unlisted."""
        index = self.index_of(stage)
        if index is None or index == len(self.stages) - 1:
            return None
        return self.stages[index + 1]

    def is_backward(self, current: str | None, target: str | None) -> bool:
        """True only when both stages are listed and target precedes current."""
        i = self.index_of(current)
        j = self.index_of(target)
        if i is None or j is None:
            return False
        return j < i

    def to_list(self) -> list[str]:
        return list(self.stages)

    def __contains__(self, stage: object) -> bool:
        return stage in self.stages

    def __iter__(self) -> Iterator[str]:
        return iter(self.stages)

    def __len__(self) -> int:
        return len(self.stages)
