# SPDX-License-Identifier: Apache-2.0
"""Message envelope shared across the dispatcher, router, transport and services."""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Mapping, Optional, Tuple, Union

from storefront.actions.base import InvalidPayload

TagLike = Union["ActionTag", Mapping[str, Any], str]


@dataclass(frozen=True, slots=True)
class ActionTag:
    """Immutable set of string fields used to route an action to a handler."""

    fields: Tuple[Tuple[str, str], ...]

    @classmethod
    def of(cls, value: TagLike) -> "ActionTag":
        if isinstance(value, ActionTag):
            return value
        if isinstance(value, str):
            return parse_tag(value)
        if isinstance(value, Mapping):
            return cls(tuple(sorted((str(k).strip(), str(v).strip()) for k, v in value.items())))
        raise TypeError(f"cannot build an action tag from {type(value)}")

    def as_dict(self) -> Dict[str, str]:
        return dict(self.fields)

    def keys(self) -> frozenset[str]:
        return frozenset(k for k, _ in self.fields)

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        for k, v in self.fields:
            if k == key:
                return v
        return default

    def matches(self, pattern: "ActionTag") -> bool:
        """True when every field of `pattern` is present here with the same value."""
        own = self.as_dict()
        return all(own.get(k) == v for k, v in pattern.fields)

    def __len__(self) -> int:
        return len(self.fields)

    def __iter__(self) -> Iterator[Tuple[str, str]]:
        return iter(self.fields)

    def __str__(self) -> str:
        return ",".join(f"{k}:{v}" for k, v in self.fields)


def parse_tag(text: str) -> ActionTag:
    """Parse `role:cart,cmd:get` into a tag. Whitespace around parts is ignored."""
    pairs: Dict[str, str] = {}
    for chunk in text.split(","):
        if not chunk.strip():
            continue
        key, sep, value = chunk.partition(":")
        if not sep or not key.strip():
            raise ValueError(f"malformed tag field '{chunk}' in '{text}'")
        pairs[key.strip()] = value.strip()
    return ActionTag.of(pairs)


@dataclass(slots=True)
class ActionRequest:
    """A single command issued through a dispatcher."""

    tag: ActionTag
    payload: Dict[str, Any] = field(default_factory=dict)
    issued_at: float = field(default_factory=time.perf_counter)

    @property
    def role(self) -> str:
        return self.tag.get("role", "") or ""

    @property
    def cmd(self) -> str:
        return self.tag.get("cmd", "") or ""

    def require(self, *names: str) -> Tuple[Any, ...] | Any:
        missing = [name for name in names if self.payload.get(name) is None]
        if missing:
            raise InvalidPayload(f"{self.tag} missing payload field(s): {', '.join(missing)}")
        values = tuple(self.payload[name] for name in names)
        return values[0] if len(values) == 1 else values


@dataclass(slots=True)
class ActionResult:
    """Outcome of one request: either `value` or `error` is meaningful."""

    request: ActionRequest
    value: Any = None
    error: Optional[BaseException] = None

    @classmethod
    def success(cls, request: ActionRequest, value: Any) -> "ActionResult":
        return cls(request=request, value=value)

    @classmethod
    def failure(cls, request: ActionRequest, error: BaseException) -> "ActionResult":
        return cls(request=request, error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> Any:
        if self.error is not None:
            raise self.error
        return self.value
