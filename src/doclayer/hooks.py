"""Before/after hook chains around CRUD actions.

A handler is ``handler(payload)``, plain or ``async``. Returning continues the
chain, raising stops it. Every handler of a chain sees the same payload object
and may mutate it in place.

Supported chains::

    before: insert, remove
    after:  insert, update, upsert, remove
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Awaitable, Callable, Iterable, Optional, Sequence, TypeVar, Union

from .exceptions import ConfigurationError, HookError

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=StrEnum)


class Phase(StrEnum):
    BEFORE = "before"
    AFTER = "after"


class Action(StrEnum):
    INSERT = "insert"
    UPDATE = "update"
    UPSERT = "upsert"
    REMOVE = "remove"


SUPPORTED_ACTIONS: dict[Phase, tuple[Action, ...]] = {
    Phase.BEFORE: (Action.INSERT, Action.REMOVE),
    Phase.AFTER: (Action.INSERT, Action.UPDATE, Action.UPSERT, Action.REMOVE),
}


@dataclass
class HookPayload:
    """What a handler receives.

    In a fan-out every document gets its own payload with ``docs=[doc]``;
    ``batch`` is the whole batch and ``index`` the document's position in it.
    Clearing ``docs`` drops the document from the stage result.
    """

    action: Optional[Action] = None
    docs: list[Any] = field(default_factory=list)
    batch: tuple[Any, ...] = ()
    index: int = 0


Handler = Callable[[HookPayload], Union[None, Awaitable[None]]]


def _handler_name(handler: Any) -> str:
    return getattr(handler, "__qualname__", None) or repr(handler)


async def run_hooks(handlers: Iterable[Handler], payload: Any) -> Any:
    """Run ``handlers`` in order over ``payload`` and return it.

    The first failing handler stops the chain; the raised HookError carries the
    payload as mutated so far.
    """
    for handler in list(handlers):
        try:
            result = handler(payload)
            if inspect.isawaitable(result):
                await result
        except HookError:
            raise
        except Exception as exc:
            name = _handler_name(handler)
            logger.warning("Hook %s failed: %s", name, exc)
            raise HookError(f"Hook {name} failed: {exc}", payload=payload, handler=handler) from exc
    return payload


async def run_fan_out(
    handlers: Sequence[Handler],
    target: Any,
    *,
    action: Optional[Action] = None,
) -> list[Any]:
    """Run one independent chain per document, concurrently.

    A single (non-list) target behaves like ``run_hooks`` on one payload. For a
    batch, all chains run to completion; when any failed, a HookError is raised
    whose payload is the flattened batch (succeeded documents keep their
    mutations). Returns the flattened ``docs`` of every payload.
    """
    if not isinstance(target, (list, tuple)):
        payload = HookPayload(action=action, docs=[target], batch=(target,), index=0)
        await run_hooks(handlers, payload)
        return payload.docs

    batch = tuple(target)
    if not handlers:
        return list(batch)

    payloads = [HookPayload(action=action, docs=[doc], batch=batch, index=i) for i, doc in enumerate(batch)]
    results = await asyncio.gather(*(run_hooks(handlers, p) for p in payloads), return_exceptions=True)
    docs = [doc for p in payloads for doc in p.docs]

    errors = [r for r in results if isinstance(r, BaseException)]
    if errors:
        first = errors[0]
        if not isinstance(first, HookError):
            raise first
        if len(errors) > 1:
            logger.warning("%d of %d hook chains failed for %s", len(errors), len(payloads), action)
        raise HookError(str(first), payload=docs, handler=first.handler) from (first.__cause__ or first)
    return docs


def _coerce(enum_cls: type[E], value: Any, what: str) -> E:
    try:
        return enum_cls(value)
    except ValueError:
        raise ConfigurationError(f"Unknown hook {what}: {value!r}") from None


class HookRegistry:
    """Ordered handler chains keyed by (phase, action)."""

    def __init__(self) -> None:
        self._chains: dict[tuple[Phase, Action], list[Handler]] = {
            (phase, action): [] for phase, actions in SUPPORTED_ACTIONS.items() for action in actions
        }

    def register(
        self,
        phase: Union[Phase, str],
        action: Union[Action, str],
        handler: Handler,
        *,
        prepend: bool = False,
    ) -> Handler:
        phase = _coerce(Phase, phase, "phase")
        action = _coerce(Action, action, "action")
        chain = self._chains.get((phase, action))
        if chain is None:
            raise ConfigurationError(f"{phase.value.capitalize()}-hook for action not supported: {action.value}")
        if not callable(handler):
            raise ConfigurationError(f"Hook handler for {phase.value} {action.value} is not callable")
        if prepend:
            chain.insert(0, handler)
        else:
            chain.append(handler)
        return handler

    def before(self, action: Union[Action, str], handler: Optional[Handler] = None):
        """Register a before-hook; usable as ``@registry.before("insert")``."""
        if handler is None:
            return lambda fn: self.register(Phase.BEFORE, action, fn)
        return self.register(Phase.BEFORE, action, handler)

    def after(self, action: Union[Action, str], handler: Optional[Handler] = None):
        """Register an after-hook; usable as ``@registry.after("update")``."""
        if handler is None:
            return lambda fn: self.register(Phase.AFTER, action, fn)
        return self.register(Phase.AFTER, action, handler)

    def handlers(self, phase: Union[Phase, str], action: Union[Action, str]) -> list[Handler]:
        phase = _coerce(Phase, phase, "phase")
        action = _coerce(Action, action, "action")
        return list(self._chains.get((phase, action), []))

    async def run(self, phase: Union[Phase, str], action: Union[Action, str], target: Any) -> list[Any]:
        return await run_fan_out(self.handlers(phase, action), target, action=_coerce(Action, action, "action"))
