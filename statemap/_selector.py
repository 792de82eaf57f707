import logging

from ._contract_abi import AbiEntry, ContractDescriptor

logger = logging.getLogger(__name__)


def select_accessors(descriptor: ContractDescriptor) -> list[AbiEntry]:
    """
    Returns the entries of the contract that can be called automatically:
    regular methods marked ``pure`` or ``view`` that take no arguments.

    The entries are returned in the declaration order.
    Constructors, events, errors, fallback and receive methods are never selected.
    """
    accessors = []
    seen_names = set()
    for entry in descriptor.entries:
        if not entry.is_accessor:
            continue

        # Overloads must differ in their inputs, so there can only be one
        # zero-argument method with a given name in a valid ABI.
        if entry.name in seen_names:
            logger.warning(
                "Skipping a duplicate declaration of `%s()` in the ABI of `%s`",
                entry.name,
                descriptor.name,
            )
            continue

        seen_names.add(entry.name)
        accessors.append(entry)

    return accessors
