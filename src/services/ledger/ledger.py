"""
MooncrestBot - Points Ledger
============================

Pure arithmetic for climbing points (xp) and guide points.

Rules:
    - add:    xp, weekly_xp, monthly_xp += amount; every expedition
              counter += 1; mountain/difficulty counters += 1 when given
    - remove: mirror of add, every field floored at 0; map counters that
              reach 0 are deleted, absent keys stay absent
    - set:    xp := amount, nothing else moves
    - bonus:  xp, weekly_xp, monthly_xp += amount, no expedition change

Guide points follow the same four actions without expedition coupling.
Functions mutate and return the record; persistence is the caller's job.
"""

from typing import Callable, Dict, Optional, Union

from src.core.errors import InvalidArgument
from src.services.ledger.models import ActionContext, PointsAction, UserRecord


_XP_FIELDS = ("xp", "weekly_xp", "monthly_xp")
_EXPEDITION_FIELDS = ("expeditions", "weekly_expeditions", "monthly_expeditions")
_GUIDE_FIELDS = ("guide_points", "weekly_guide_points", "monthly_guide_points")


# =============================================================================
# Helpers
# =============================================================================

def _coerce_action(action: Union[PointsAction, str]) -> PointsAction:
    try:
        return PointsAction(action)
    except ValueError:
        raise InvalidArgument(f"Unknown action: {action}") from None


def _check_amount(amount: int) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidArgument("Amount must be a whole number")
    if amount < 0:
        raise InvalidArgument("Amount cannot be negative")
    return amount


def _increment(user: UserRecord, fields, amount: int) -> None:
    for name in fields:
        setattr(user, name, getattr(user, name) + amount)


def _decrement(user: UserRecord, fields, amount: int) -> None:
    for name in fields:
        setattr(user, name, max(0, getattr(user, name) - amount))


def _bump_key(counter: Dict[str, int], key: Optional[str]) -> None:
    if key:
        counter[key] = counter.get(key, 0) + 1


def _drop_key(counter: Dict[str, int], key: Optional[str]) -> None:
    if not key or key not in counter:
        return
    remaining = counter[key] - 1
    if remaining > 0:
        counter[key] = remaining
    else:
        del counter[key]


# =============================================================================
# Climbing Points
# =============================================================================

def _xp_add(user: UserRecord, amount: int, context: ActionContext) -> None:
    _increment(user, _XP_FIELDS, amount)
    _increment(user, _EXPEDITION_FIELDS, 1)
    _bump_key(user.expedition_history, context.mountain_name)
    _bump_key(user.difficulty_stats, context.difficulty)


def _xp_remove(user: UserRecord, amount: int, context: ActionContext) -> None:
    _decrement(user, _XP_FIELDS, amount)
    _decrement(user, _EXPEDITION_FIELDS, 1)
    _drop_key(user.expedition_history, context.mountain_name)
    _drop_key(user.difficulty_stats, context.difficulty)


def _xp_set(user: UserRecord, amount: int, context: ActionContext) -> None:
    user.xp = amount


def _xp_bonus(user: UserRecord, amount: int, context: ActionContext) -> None:
    _increment(user, _XP_FIELDS, amount)


_XP_DISPATCH: Dict[PointsAction, Callable[[UserRecord, int, ActionContext], None]] = {
    PointsAction.ADD: _xp_add,
    PointsAction.REMOVE: _xp_remove,
    PointsAction.SET: _xp_set,
    PointsAction.BONUS: _xp_bonus,
}


def apply_points_action(
    user: UserRecord,
    action: Union[PointsAction, str],
    amount: int,
    context: Optional[ActionContext] = None,
) -> UserRecord:
    """
    Apply a climbing points action to a record.

    Raises:
        InvalidArgument: Unknown action or negative amount. Nothing is
            mutated in that case.
    """
    kind = _coerce_action(action)
    _check_amount(amount)
    _XP_DISPATCH[kind](user, amount, context or ActionContext())
    return user


# =============================================================================
# Guide Points
# =============================================================================

def _guide_add(user: UserRecord, amount: int) -> None:
    _increment(user, _GUIDE_FIELDS, amount)


def _guide_remove(user: UserRecord, amount: int) -> None:
    _decrement(user, _GUIDE_FIELDS, amount)


def _guide_set(user: UserRecord, amount: int) -> None:
    user.guide_points = amount


_GUIDE_DISPATCH: Dict[PointsAction, Callable[[UserRecord, int], None]] = {
    PointsAction.ADD: _guide_add,
    PointsAction.REMOVE: _guide_remove,
    PointsAction.SET: _guide_set,
    PointsAction.BONUS: _guide_add,
}


def apply_guide_action(
    user: UserRecord,
    action: Union[PointsAction, str],
    amount: int,
) -> UserRecord:
    """Apply a guide points action to a record."""
    kind = _coerce_action(action)
    _check_amount(amount)
    _GUIDE_DISPATCH[kind](user, amount)
    return user


# Every action needs a handler in both tables
for _table in (_XP_DISPATCH, _GUIDE_DISPATCH):
    _missing = set(PointsAction) - set(_table)
    if _missing:
        raise RuntimeError(f"Unhandled points actions: {sorted(a.value for a in _missing)}")
