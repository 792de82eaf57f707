import logging
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

import anyio
from ethereum_rpc import Address

from ._client import ReadCaller
from ._contract_abi import AbiEntry
from ._converters import ConverterRegistry

logger = logging.getLogger(__name__)


class Stage(Enum):
    """The stage of the pipeline where a field was lost."""

    CALL = "call"
    """The contract call failed (reverted, timed out, no code at the address etc)."""

    CONVERT = "convert"
    """The type converter raised an exception."""

    TRANSFORM = "transform"
    """A mapping transform raised an exception."""


@dataclass(frozen=True)
class FieldFailure:
    """A field omitted from the result because of an error."""

    field: str
    """
    The name of the field: the accessor name for call and conversion failures,
    the destination key for transform failures.
    """

    stage: Stage
    """Where the error happened."""

    error: BaseException
    """The error raised."""


@dataclass(frozen=True)
class Extraction:
    """Converted values of the accessors of a contract."""

    values: dict[str, Any]
    """Accessor name to the converted value, in the declaration order."""

    failures: tuple[FieldFailure, ...]
    """Accessors that were omitted from ``values``, in the declaration order."""


class _Missing:
    pass


async def _extract_one(
    caller: ReadCaller,
    address: Address,
    entry: AbiEntry,
    registry: ConverterRegistry,
    call_timeout: None | float,
) -> Any:
    assert entry.name is not None  # noqa: S101
    try:
        if call_timeout is None:
            raw_value = await caller.call(address, entry)
        else:
            with anyio.fail_after(call_timeout):
                raw_value = await caller.call(address, entry)
    except Exception as exc:  # noqa: BLE001
        logger.warning("Call to `%s()` at %s failed: %s", entry.name, address, exc)
        return FieldFailure(entry.name, Stage.CALL, exc)

    try:
        return registry.convert_output(entry, raw_value)
    except Exception as exc:  # noqa: BLE001
        logger.warning(
            "Could not convert the output of `%s()` as `%s`: %s", entry.name, entry.output_type, exc
        )
        return FieldFailure(entry.name, Stage.CONVERT, exc)


async def extract(
    caller: ReadCaller,
    address: Address,
    accessors: Sequence[AbiEntry],
    registry: ConverterRegistry,
    *,
    max_concurrency: None | int = None,
    call_timeout: None | float = None,
) -> Extraction:
    """
    Calls every accessor at ``address`` concurrently and converts the outputs.

    If ``max_concurrency`` is given, at most that many calls are in flight at the same time.
    If ``call_timeout`` is given, each call that takes longer is abandoned
    and recorded as a failure.
    Every accessor is called exactly once, and the function returns
    only after all of the calls are finished.
    A failed call or conversion does not affect other accessors:
    the accessor is omitted from the values and recorded in the failures.
    """
    if max_concurrency is not None and max_concurrency < 1:
        raise ValueError(f"`max_concurrency` must be a positive integer, got {max_concurrency}")

    limiter = anyio.CapacityLimiter(max_concurrency) if max_concurrency is not None else None

    # Results are stored by the position of the accessor, regardless of the completion order.
    results: list[Any] = [_Missing] * len(accessors)

    async def run(position: int, entry: AbiEntry) -> None:
        if limiter is None:
            results[position] = await _extract_one(caller, address, entry, registry, call_timeout)
        else:
            async with limiter:
                results[position] = await _extract_one(
                    caller, address, entry, registry, call_timeout
                )

    async with anyio.create_task_group() as task_group:
        for position, entry in enumerate(accessors):
            task_group.start_soon(run, position, entry)

    values = {}
    failures = []
    for entry, result in zip(accessors, results, strict=True):
        assert entry.name is not None  # noqa: S101
        if isinstance(result, FieldFailure):
            failures.append(result)
        else:
            values[entry.name] = result

    logger.debug(
        "Extracted %d of %d accessors at %s", len(values), len(accessors), address
    )
    return Extraction(values=values, failures=tuple(failures))
