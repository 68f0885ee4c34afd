# SPDX-License-Identifier: Apache-2.0
"""Handler contract and error taxonomy shared by every action path."""
from __future__ import annotations

from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, Type

if TYPE_CHECKING:
    from storefront.messages import ActionRequest

Handler = Callable[["ActionRequest"], Awaitable[Any]]
Continuation = Callable[..., Any]


class ActionError(Exception):
    """Base class for failures delivered through an action's error slot."""


class DispatchError(ActionError):
    pass


class NoHandlerError(DispatchError):
    pass


class AmbiguousPatternError(DispatchError):
    pass


class TransportError(ActionError):
    pass


class InvalidPayload(ActionError, ValueError):
    pass


class NotFound(ActionError, LookupError):
    pass


class RemoteActionError(ActionError):
    """A remote handler failed with an error type the caller does not know."""

    def __init__(self, kind: str, message: str):
        super().__init__(f"{kind}: {message}")
        self.kind = kind


# errors re-raised as themselves when they come back over the wire
WIRE_ERRORS: Dict[str, Type[ActionError]] = {
    cls.__name__: cls for cls in (NoHandlerError, InvalidPayload, NotFound)
}


def error_from_wire(kind: str, message: str) -> ActionError:
    cls = WIRE_ERRORS.get(kind)
    if cls is None:
        return RemoteActionError(kind, message)
    return cls(message)
