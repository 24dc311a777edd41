# src/pipeline/versioning.py — v1
"""Build numbers and artifact tags.

Every run gets a build number strictly greater than any number handed out
before for the same artifact name, so re-running a revision never reuses
a tag.
"""

from __future__ import annotations

import re

from shipyard.core.models import Revision

_TAG_RE = re.compile(r"^b(?P<build>\d+)-")


def artifact_tag(build_number: int, revision: Revision) -> str:
    """Tag format: ``b<build>-<commit[:8]>``."""
    return f"b{build_number}-{revision.commit[:8]}"


def parse_build_number(tag: str) -> int | None:
    match = _TAG_RE.match(tag)
    return int(match.group("build")) if match else None


class BuildCounter:
    """Strictly increasing build numbers per artifact name."""

    def __init__(self) -> None:
        self._last: dict[str, int] = {}

    def seed(self, name: str, tags: list[str]) -> None:
        """Account for tags already present in the artifact store."""
        numbers = [n for n in (parse_build_number(t) for t in tags) if n is not None]
        self._last[name] = max(self._last.get(name, 0), max(numbers, default=0))

    def is_seeded(self, name: str) -> bool:
        return name in self._last

    def allocate(self, name: str, revision: Revision) -> int:
        """Return max(revision.build_number, last + 1) and remember it."""
        number = max(revision.build_number, self._last.get(name, 0) + 1)
        self._last[name] = number
        return number

    def last(self, name: str) -> int | None:
        return self._last.get(name)
