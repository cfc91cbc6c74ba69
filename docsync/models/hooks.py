"""
Hook pipeline.

Hooks are callbacks registered on a model class to run before or after a
named action. A hook receives the HookPayload and returns one of:

    None        continue with the next hook
    Abort(...)  stop now, skip every remaining hook, fail the action
    RETRY       abandon this attempt and run the action again

Execution of one action:

    1. Run "before" hooks ascending by order, ties by registration order.
    2. A hook raising an error marks it pending: from then on only hooks
       registered with handle_errors=True run. A handling hook may clear
       ``payload.errors`` to absorb the failure, or raise to replace it.
    3. If an error is still pending after the before phase, raise it.
    4. Run the core operation. Its error becomes the pending error.
    5. Run "after" hooks under the same rules, with ``payload.result`` set.
    6. Raise the pending error if any, else return the result.

A Transaction is created per action and reused across retries; more than
three attempts fail with TOO_MANY_RETRIES.

Hooks are inherited: a hook registered on a declared model applies to every
class derived from it. The hook list is read again before each step, so a
hook registered while a phase is running still takes part in it.
"""

from __future__ import annotations

import inspect
import itertools
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal

from docsync.errors import CoreError, ErrorCodes

if TYPE_CHECKING:
    from docsync.models.model import Model

logger = logging.getLogger(__name__)

Phase = Literal["before", "after"]

MAX_ATTEMPTS = 3

_sequence = itertools.count()


# =============================================================================
# Hook results
# =============================================================================


@dataclass(frozen=True, slots=True)
class Abort:
    """Stop the action. ``error`` becomes the cause of the raised error."""

    error: BaseException | None = None


class _Retry:
    def __repr__(self) -> str:
        return "RETRY"


RETRY = _Retry()


# =============================================================================
# Payload
# =============================================================================


@dataclass
class Transaction:
    """Context of one action, shared by all of its attempts."""

    model: str
    action: str
    retries: int = 0


@dataclass
class HookPayload:
    model: type[Model]
    action: str
    args: dict[str, Any]
    transaction: Transaction
    result: Any = None
    errors: list[BaseException] = field(default_factory=list)


HookFn = Callable[[HookPayload], "Abort | _Retry | None | Awaitable[Abort | _Retry | None]"]


@dataclass(frozen=True, slots=True)
class Hook:
    phase: Phase
    action: str
    fn: HookFn
    order: float = 0
    handle_errors: bool = False
    seq: int = field(default_factory=lambda: next(_sequence))


# =============================================================================
# Registration
# =============================================================================


def register_hook(
    model: type[Model],
    phase: Phase,
    action: str,
    fn: HookFn,
    *,
    order: float = 0,
    handle_errors: bool = False,
) -> Callable[[], None]:
    """
    Register a hook on ``model``.

    Returns:
        Callable removing the hook
    """
    if phase not in ("before", "after"):
        raise CoreError(f"Invalid hook phase {phase!r}", code=ErrorCodes.INVALID_PARAMS)

    hooks: list[Hook] = model.__dict__.get("_hooks")
    if hooks is None:
        hooks = []
        model._hooks = hooks

    hook = Hook(phase=phase, action=action, fn=fn, order=order, handle_errors=handle_errors)
    hooks.append(hook)

    def unregister() -> None:
        if hook in hooks:
            hooks.remove(hook)

    return unregister


def collect_hooks(model: type[Model], phase: Phase, action: str) -> list[Hook]:
    """Hooks applying to ``model`` for one phase and action, in run order."""
    found = [
        hook
        for klass in model.__mro__
        for hook in klass.__dict__.get("_hooks", ())
        if hook.phase == phase and hook.action == action
    ]
    return sorted(found, key=lambda h: (h.order, h.seq))


# =============================================================================
# Driver
# =============================================================================


async def _run_phase(phase: Phase, payload: HookPayload) -> _Retry | None:
    ran: set[int] = set()

    while True:
        pending = [h for h in collect_hooks(payload.model, phase, payload.action) if h.seq not in ran]
        if not pending:
            return None

        hook = pending[0]
        ran.add(hook.seq)

        if payload.errors and not hook.handle_errors:
            continue

        try:
            outcome = hook.fn(payload)
            if inspect.isawaitable(outcome):
                outcome = await outcome
        except Exception as e:
            logger.debug(f"[hooks] {phase} {payload.action} hook failed on {payload.transaction.model}: {e}")
            payload.errors.append(e)
            continue

        if isinstance(outcome, Abort):
            logger.info(f"[hooks] {payload.transaction.model}.{payload.action} aborted by {phase} hook")
            raise CoreError(
                f"Execution of {payload.action} aborted",
                code=ErrorCodes.EXECUTION_ABORTED,
            ) from outcome.error

        if outcome is RETRY:
            return RETRY


async def run_pipeline(
    model: type[Model],
    action: str,
    args: dict[str, Any],
    core: Callable[[HookPayload], Awaitable[Any]],
) -> Any:
    """
    Run ``core`` wrapped by the before/after hooks of ``model`` for ``action``.

    Args:
        model: Model class the hooks are collected from
        action: Action name (get, get_list, create_one, ...)
        args: Arguments of the action, readable and writable by hooks
        core: Coroutine function performing the action

    Returns:
        Result of the core operation, as left by the after hooks

    Raises:
        CoreError: EXECUTION_ABORTED or TOO_MANY_RETRIES
        Exception: The last pending hook or core error
    """
    transaction = Transaction(model=model.slug, action=action)

    while True:
        payload = HookPayload(model=model, action=action, args=args, transaction=transaction)

        if await _run_phase("before", payload) is RETRY:
            _count_retry(transaction)
            continue
        if payload.errors:
            raise payload.errors[-1]

        try:
            payload.result = await core(payload)
        except Exception as e:
            payload.errors.append(e)

        if await _run_phase("after", payload) is RETRY:
            _count_retry(transaction)
            continue
        if payload.errors:
            raise payload.errors[-1]

        return payload.result


def _count_retry(transaction: Transaction) -> None:
    transaction.retries += 1
    if transaction.retries >= MAX_ATTEMPTS:
        raise CoreError(
            f"Too many retries for {transaction.model}.{transaction.action}",
            code=ErrorCodes.TOO_MANY_RETRIES,
        )
    logger.info(
        f"[hooks] Retrying {transaction.model}.{transaction.action} "
        f"(attempt {transaction.retries + 1}/{MAX_ATTEMPTS})"
    )
