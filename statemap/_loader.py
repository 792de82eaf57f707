import json
import logging
from collections.abc import Iterable, Mapping, Sequence
from os import PathLike
from pathlib import Path
from typing import Any

from ._contract_abi import ContractDescriptor

logger = logging.getLogger(__name__)

ContractsSource = (
    str | Sequence[str] | Mapping[str, ContractDescriptor | Sequence[Any] | Mapping[str, Any]]
)
"""
Where to take contract interfaces from: a glob pattern, a list of glob patterns,
or a dictionary of pre-loaded interfaces keyed by contract name.
"""


class ContractLoadingError(Exception):
    """Raised when contract interfaces cannot be loaded."""


def _descriptor_from_json(name: str, contents: Any) -> ContractDescriptor:
    # Compiler artifacts (Truffle, Hardhat, Foundry) keep the ABI under the `abi` key.
    if isinstance(contents, Mapping):
        if "abi" not in contents:
            raise ContractLoadingError(f"`{name}` is neither a JSON ABI nor a compiler artifact")
        contents = contents["abi"]
    try:
        return ContractDescriptor.from_json(name, contents)
    except ValueError as exc:
        raise ContractLoadingError(str(exc)) from exc


def _load_file(path: Path) -> ContractDescriptor:
    try:
        contents = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ContractLoadingError(f"Could not read `{path}`: {exc}") from exc

    name = path.stem
    if isinstance(contents, Mapping) and isinstance(contents.get("contractName"), str):
        name = contents["contractName"]

    descriptor = _descriptor_from_json(name, contents)
    logger.debug("Loaded `%s` (%d ABI entries) from %s", name, len(descriptor), path)
    return descriptor


def _glob(patterns: Iterable[str], working_directory: Path) -> list[Path]:
    paths: list[Path] = []
    for pattern in patterns:
        if Path(pattern).is_absolute():
            anchor = Path(Path(pattern).anchor)
            root, relative = anchor, str(Path(pattern).relative_to(anchor))
        else:
            root, relative = working_directory, pattern
        matched = sorted(path for path in root.glob(relative) if path.is_file())
        if not matched:
            logger.warning("No contract files matched `%s` in %s", pattern, working_directory)
        paths.extend(path for path in matched if path not in paths)
    return paths


def load_contracts(
    contracts: ContractsSource, working_directory: None | str | PathLike[str] = None
) -> dict[str, ContractDescriptor]:
    """
    Loads contract interfaces keyed by contract name.

    ``contracts`` is either a dictionary of pre-loaded interfaces
    (:py:class:`ContractDescriptor` objects, JSON ABI lists or compiler artifacts),
    or a glob pattern (or a list of them) matching JSON files,
    resolved relative to ``working_directory`` (the current directory by default).

    A file containing a list is a JSON ABI named after the file;
    a file containing a dictionary is a compiler artifact with the ABI under the ``abi`` key,
    named by its ``contractName`` if present, or after the file otherwise.
    """
    if isinstance(contracts, Mapping):
        loaded = {}
        for name, contents in contracts.items():
            if isinstance(contents, ContractDescriptor):
                loaded[name] = contents
            else:
                loaded[name] = _descriptor_from_json(name, contents)
        return loaded

    patterns = [contracts] if isinstance(contracts, str) else list(contracts)
    root = Path(working_directory) if working_directory is not None else Path.cwd()

    loaded = {}
    for path in _glob(patterns, root):
        descriptor = _load_file(path)
        if descriptor.name in loaded:
            raise ContractLoadingError(
                f"Contract `{descriptor.name}` is declared more than once (found again in {path})"
            )
        loaded[descriptor.name] = descriptor
    return loaded
