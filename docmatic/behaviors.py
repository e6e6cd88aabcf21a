"""
Behavior dispatcher.

Runs before/after hook chains around save and delete. Capability-scoped hooks
run first, then type-specific hooks, each in registration order.
"""
import logging
from typing import Any, Callable, Iterable, Sequence

logger = logging.getLogger("BehaviorDispatcher")


def run_before(
    entity: Any,
    capability_hooks: Iterable[Callable[[Any], Any]],
    type_hooks: Iterable[Callable[[Any], Any]],
) -> bool:
    """
    Evaluate every before-hook predicate.

    All predicates run exactly once, even after one has returned False, so
    side effects inside predicates are not skipped.

    Returns:
        False if any predicate returned a falsy value, True otherwise
    """
    allowed = True
    for predicate in _chain(capability_hooks, type_hooks):
        if not predicate(entity):
            logger.debug(f"{_hook_name(predicate)} rejected {type(entity).__name__}({entity.id})")
            allowed = False
    return allowed


def run_after(
    entity: Any,
    capability_hooks: Iterable[Callable[[Any], Any]],
    type_hooks: Iterable[Callable[[Any], Any]],
) -> None:
    """Run every after-hook action unconditionally."""
    for action in _chain(capability_hooks, type_hooks):
        action(entity)


def _chain(*groups: Iterable[Callable[[Any], Any]]) -> Sequence[Callable[[Any], Any]]:
    # Snapshot so hooks registered by a hook do not run in the same dispatch
    return [hook for group in groups for hook in group]


def _hook_name(hook: Callable[..., Any]) -> str:
    return getattr(hook, "__qualname__", None) or type(hook).__name__
