# SPDX-License-Identifier: Apache-2.0
"""Pattern router mapping action tags to the most specific registered handler."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List

from storefront.messages import ActionTag, TagLike

from .base import AmbiguousPatternError, Handler, NoHandlerError

log = logging.getLogger(__name__)


@dataclass(slots=True)
class Route:
    pattern: ActionTag
    handler: Handler


def _conflicts(a: ActionTag, b: ActionTag) -> bool:
    """Patterns conflict when some tag could match both and neither is more specific."""
    left, right = a.as_dict(), b.as_dict()
    if any(left[k] != right[k] for k in left.keys() & right.keys()):
        return False
    return not (a.keys() < b.keys() or b.keys() < a.keys())


class PatternRouter:
    """Registry of (pattern, handler) pairs.

    Registration rejects any pattern that could tie with an existing one, so the
    patterns matching a given tag always form a chain of strict subsets and the
    longest of them is the unique most specific match.
    """

    def __init__(self, name: str = "router"):
        self.name = name
        self._routes: List[Route] = []

    def register(self, pattern: TagLike, handler: Handler) -> None:
        pattern = ActionTag.of(pattern)
        if not len(pattern):
            raise ValueError(f"router {self.name}: pattern must name at least one field")
        for route in self._routes:
            if _conflicts(route.pattern, pattern):
                raise AmbiguousPatternError(
                    f"router {self.name}: pattern '{pattern}' is ambiguous with '{route.pattern}'"
                )
        self._routes.append(Route(pattern=pattern, handler=handler))
        log.debug("router %s registered %s", self.name, pattern)

    def resolve(self, tag: TagLike) -> Handler:
        tag = ActionTag.of(tag)
        candidates = [route for route in self._routes if tag.matches(route.pattern)]
        if not candidates:
            raise NoHandlerError(f"router {self.name}: no handler for '{tag}'")
        return max(candidates, key=lambda route: len(route.pattern)).handler

    def patterns(self) -> List[ActionTag]:
        return [route.pattern for route in self._routes]

    def __len__(self) -> int:
        return len(self._routes)
