import logging
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from ._extractor import FieldFailure, Stage

logger = logging.getLogger(__name__)

Transform = Callable[[Any], Any]
"""A function producing the destination value from the source value."""


@dataclass(frozen=True)
class DestinationKey:
    """Copies the source value verbatim to ``key``."""

    key: str


@dataclass(frozen=True)
class TransformedKey:
    """Writes ``transform(value)`` to ``key`` (or the value itself if ``transform`` is ``None``)."""

    key: str
    transform: None | Transform = None


@dataclass(frozen=True)
class FanOut:
    """Applies each of the rules to the same source value."""

    rules: tuple[DestinationKey | TransformedKey, ...]


MappingRule = DestinationKey | TransformedKey | FanOut
"""A rule describing where (and how) a source field ends up in the final object."""

MappingSpec = Mapping[str, MappingRule]
"""Source field name to its rule."""


def _as_single_rule(rule: Any) -> DestinationKey | TransformedKey:
    if isinstance(rule, DestinationKey | TransformedKey):
        return rule
    if isinstance(rule, str):
        return DestinationKey(rule)
    if isinstance(rule, Mapping):
        unknown = set(rule) - {"key", "transform"}
        if unknown:
            raise ValueError(f"Unknown fields in a mapping rule: {sorted(unknown)}")
        key = rule.get("key")
        if not isinstance(key, str):
            raise TypeError(f"`key` of a mapping rule must be a string, got {type(key).__name__}")
        transform = rule.get("transform")
        if transform is not None and not callable(transform):
            raise TypeError(f"`transform` of the mapping rule for `{key}` must be callable")
        return TransformedKey(key, transform)
    raise TypeError(f"Unsupported mapping rule: {rule!r}")


def as_rule(rule: Any) -> MappingRule:
    """
    Creates a mapping rule from its loose form: a destination key string,
    a dictionary ``{"key": ..., "transform": ...}`` (``transform`` is optional),
    or a list of those.
    Rule objects are returned as is.
    """
    if isinstance(rule, FanOut):
        return rule
    if isinstance(rule, Sequence) and not isinstance(rule, str):
        return FanOut(tuple(_as_single_rule(item) for item in rule))
    return _as_single_rule(rule)


def as_mapping_spec(spec: None | Mapping[str, Any]) -> dict[str, MappingRule]:
    """Creates a mapping specification from a dictionary of loose rules (see :py:func:`as_rule`)."""
    if spec is None:
        return {}
    if not isinstance(spec, Mapping):
        raise TypeError(f"Mapping specification must be a dictionary, got {type(spec).__name__}")

    rules = {}
    for source, rule in spec.items():
        if not isinstance(source, str):
            raise TypeError(f"Source field names must be strings, got {type(source).__name__}")
        try:
            rules[source] = as_rule(rule)
        except (TypeError, ValueError) as exc:
            raise type(exc)(f"Invalid mapping rule for `{source}`: {exc}") from exc
    return rules


def _flatten(rule: MappingRule) -> Iterable[DestinationKey | TransformedKey]:
    if isinstance(rule, FanOut):
        return rule.rules
    return (rule,)


@dataclass(frozen=True)
class MappingOutcome:
    """The final object and the destination fields that could not be produced."""

    values: dict[str, Any]
    failures: tuple[FieldFailure, ...]


def apply_mapping(values: Mapping[str, Any], spec: MappingSpec) -> MappingOutcome:
    """
    Remaps the extracted ``values`` according to ``spec``.

    Fields mentioned in ``spec`` are written to their destination keys only
    (a rule has to name the source field explicitly to keep it).
    Fields not mentioned in ``spec`` are passed through under their own names.
    Rules for fields absent from ``values`` are skipped.

    If a transform raises, its destination key is omitted and the error is recorded;
    other rules are unaffected.
    If several rules write to the same key, the last one wins
    (in the order of ``values``, then in the order of rules within a fan-out).
    """
    result: dict[str, Any] = {}
    failures = []

    for source, value in values.items():
        if source not in spec:
            result[source] = value
            continue

        for rule in _flatten(spec[source]):
            if isinstance(rule, DestinationKey) or rule.transform is None:
                result[rule.key] = value
                continue

            try:
                result[rule.key] = rule.transform(value)
            except Exception as exc:  # noqa: BLE001
                logger.warning("Transform of `%s` into `%s` failed: %s", source, rule.key, exc)
                failures.append(FieldFailure(rule.key, Stage.TRANSFORM, exc))

    return MappingOutcome(values=result, failures=tuple(failures))
