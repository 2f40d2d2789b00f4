"""Workflow state schemas with per-field reducers, plus the iteration guard."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, get_type_hints

from .config import get_workflow_max_iterations

Reducer = Callable[[Any, Any], Any]

ITERATION_FIELD = "iteration"
MAX_ITERATIONS_FIELD = "max_iterations"


class StateSchemaError(ValueError):
    """Raised when a state schema declares an invalid reducer set."""


class InvalidUpdateError(ValueError):
    """Raised when a node update does not fit the state schema."""


def replace(current: Any, update: Any) -> Any:
    """Last write wins."""
    del current
    return update


def append(current: Any, update: Any) -> list[Any]:
    """Concatenate the update onto the existing list; a scalar update is appended as one item."""
    existing = list(current) if current else []
    if update is None:
        return existing
    if isinstance(update, (list, tuple)):
        return existing + list(update)
    return existing + [update]


def merge_object(current: Any, update: Any) -> dict[str, Any]:
    """Shallow-merge the update's keys into the existing mapping."""
    merged = dict(current) if current else {}
    if update is None:
        return merged
    if not isinstance(update, Mapping):
        raise InvalidUpdateError(f"merge_object expects a mapping update, got {type(update).__name__}")
    merged.update(update)
    return merged


_REDUCER_DEFAULTS: dict[Reducer, Callable[[], Any]] = {
    append: list,
    merge_object: dict,
}


@dataclass(frozen=True)
class StateField:
    name: str
    reducer: Reducer

    def default(self) -> tuple[bool, Any]:
        factory = _REDUCER_DEFAULTS.get(self.reducer)
        if factory is None:
            return False, None
        return True, factory()


def _reducers_from_hint(name: str, hint: Any) -> Reducer:
    metadata = getattr(hint, "__metadata__", ())
    reducers = [item for item in metadata if callable(item)]
    if len(reducers) > 1:
        raise StateSchemaError(f"State field {name!r} declares {len(reducers)} reducers; exactly one is allowed")
    return reducers[0] if reducers else replace


class StateSchema:
    """Field/reducer table built from an ``Annotated`` TypedDict or a plain mapping.

    Fields without a reducer annotation use ``replace``.
    """

    def __init__(self, schema: type | Mapping[str, Reducer]) -> None:
        if isinstance(schema, Mapping):
            self.name = "State"
            items = []
            for name, reducer in schema.items():
                if not callable(reducer):
                    raise StateSchemaError(f"State field {name!r} reducer is not callable")
                items.append(StateField(str(name), reducer))
        else:
            self.name = getattr(schema, "__name__", "State")
            hints = get_type_hints(schema, include_extras=True)
            items = [StateField(name, _reducers_from_hint(name, hint)) for name, hint in hints.items()]
        if not items:
            raise StateSchemaError(f"State schema {self.name!r} declares no fields")
        self._fields: dict[str, StateField] = {item.name: item for item in items}

    @property
    def field_names(self) -> tuple[str, ...]:
        return tuple(self._fields)

    def reducer_for(self, name: str) -> Reducer:
        try:
            return self._fields[name].reducer
        except KeyError:
            raise InvalidUpdateError(f"Unknown state field {name!r} for {self.name}") from None

    def _check_keys(self, values: Mapping[str, Any], origin: str) -> None:
        unknown = sorted(key for key in values if key not in self._fields)
        if unknown:
            raise InvalidUpdateError(f"{origin} sets undeclared field(s) {unknown} on {self.name}")

    def initial_state(self, values: Mapping[str, Any] | None = None) -> dict[str, Any]:
        """Seed accumulator defaults, then take caller-supplied values as-is."""
        provided = dict(values or {})
        self._check_keys(provided, "initial state")
        state: dict[str, Any] = {}
        for item in self._fields.values():
            has_default, default = item.default()
            if has_default:
                state[item.name] = default
        state.update(provided)
        return state

    def apply_update(
        self,
        state: Mapping[str, Any],
        update: Mapping[str, Any] | None,
        *,
        origin: str = "update",
    ) -> dict[str, Any]:
        """Return a new state with each updated field run through its reducer."""
        new_state = dict(state)
        if not update:
            return new_state
        if not isinstance(update, Mapping):
            raise InvalidUpdateError(f"{origin} must return a mapping, got {type(update).__name__}")
        self._check_keys(update, origin)
        for key, value in update.items():
            new_state[key] = self._fields[key].reducer(new_state.get(key), value)
        return new_state


def read_only(state: Mapping[str, Any]) -> Mapping[str, Any]:
    """Read-only view handed to node callables."""
    return MappingProxyType(dict(state))


def iteration_limit_reached(
    state: Mapping[str, Any],
    *,
    counter: str = ITERATION_FIELD,
    limit: str = MAX_ITERATIONS_FIELD,
) -> bool:
    """Iteration guard: True once ``state[counter]`` reaches the run's maximum.

    Cyclic routing functions must check this before any condition that could
    re-enter the cycle. An explicit ``state[limit]`` must be an integer of at
    least 1; the env default applies only when the field is unset.
    """
    raw_limit = state.get(limit)
    if raw_limit is None:
        maximum = get_workflow_max_iterations()
    elif isinstance(raw_limit, bool) or not isinstance(raw_limit, int) or raw_limit < 1:
        raise ValueError(f"{limit} must be an integer of at least 1, got {raw_limit!r}")
    else:
        maximum = raw_limit
    try:
        current = int(state.get(counter) or 0)
    except (TypeError, ValueError):
        current = 0
    return current >= max(1, maximum)
