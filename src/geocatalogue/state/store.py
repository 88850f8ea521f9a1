"""In-memory catalogue store.

This is the only component allowed to mutate catalogue sections. Sections
are keyed by ``section_type`` and kept in first-arrival order.
"""

from __future__ import annotations

import copy
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any

from geocatalogue.models.catalogue import CatalogueSection
from geocatalogue.models.value import as_map


def _merge_patch(target: dict[str, Any], patch: dict[str, Any]) -> None:
    """Keys in the patch overwrite; keys not in the patch are untouched."""
    if not patch:
        return
    target.update(copy.deepcopy(patch))


def _merge_patch_fill_missing(target: dict[str, Any], patch: dict[str, Any]) -> None:
    """Apply a patch without overwriting existing keys.

    Used when restoring from cache: cached items fill gaps but must not
    revert fresher live content.
    """
    if not patch:
        return
    for key, value in patch.items():
        if key not in target:
            target[key] = copy.deepcopy(value)


class CatalogueStore:
    """Sections keyed by type, with first-arrival ordering.

    Every mutation (upsert, fill, remove, clear, prune) runs under one
    re-entrant lock, so pruning never observes a half-applied upsert.
    Readers get deep copies.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._sections: dict[str, CatalogueSection] = {}
        self._order: list[str] = []

    @contextmanager
    def locked(self) -> Iterator[None]:
        """Hold the store lock across several operations."""
        with self._lock:
            yield

    def upsert(self, section_type: str, display_title: str, content: Any) -> None:
        """Insert a section or merge keyed items into it.

        - non-map ``content``: replace the section wholesale
        - existing map section: per-key last-write-wins merge
        - existing non-map section: replace wholesale
        - new section: create and append to the order list
        """
        self._apply(section_type, display_title, content, _merge_patch)

    def fill_gaps(self, section_type: str, display_title: str, content: Any) -> None:
        """Merge *content* without overwriting keys already present.

        Only missing sections or missing keys are added. A live section is
        never replaced, whatever the shape on either side.
        """
        with self._lock:
            existing = self._sections.get(section_type)
            if existing is not None and (as_map(content) is None or as_map(existing.content) is None):
                return
            self._apply(section_type, display_title, content, _merge_patch_fill_missing)

    def _apply(
        self,
        section_type: str,
        display_title: str,
        content: Any,
        merge: Callable[[dict[str, Any], dict[str, Any]], None],
    ) -> None:
        with self._lock:
            incoming = as_map(content)
            existing = self._sections.get(section_type)
            if incoming is None or existing is None:
                self._replace(section_type, display_title, content)
                return
            existing_map = as_map(existing.content)
            if existing_map is None:
                self._replace(section_type, display_title, content)
                return
            merge(existing_map, incoming)

    def _replace(self, section_type: str, display_title: str, content: Any) -> None:
        self._sections[section_type] = CatalogueSection(
            section_type=section_type,
            display_title=display_title,
            content=copy.deepcopy(content),
        )
        if section_type not in self._order:
            self._order.append(section_type)

    def set_content(self, section_type: str, content: dict[str, Any]) -> None:
        """Replace the content map of an existing section, keeping its position."""
        with self._lock:
            section = self._sections.get(section_type)
            if section is not None:
                section.content = content

    def remove(self, section_type: str) -> None:
        with self._lock:
            self._sections.pop(section_type, None)
            self._order = [entry for entry in self._order if entry != section_type]

    def has(self, section_type: str) -> bool:
        with self._lock:
            return section_type in self._sections

    def get(self, section_type: str) -> CatalogueSection | None:
        with self._lock:
            section = self._sections.get(section_type)
            return section.model_copy(deep=True) if section is not None else None

    def ordered_sections(self) -> list[CatalogueSection]:
        """Sections in arrival order; order entries without a section are skipped."""
        with self._lock:
            return [
                self._sections[section_type].model_copy(deep=True)
                for section_type in self._order
                if section_type in self._sections
            ]

    def section_types(self) -> list[str]:
        with self._lock:
            return [section_type for section_type in self._order if section_type in self._sections]

    def snapshot(self) -> tuple[list[CatalogueSection], list[str]]:
        """Consistent deep copy of ``(ordered sections, order list)``."""
        with self._lock:
            return self.ordered_sections(), self.section_types()

    def clear_all(self) -> None:
        with self._lock:
            self._sections.clear()
            self._order.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sections)

    def __contains__(self, section_type: object) -> bool:
        with self._lock:
            return section_type in self._sections
