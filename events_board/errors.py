from __future__ import annotations


class StateDecodeError(ValueError):
    """Persisted contract state could not be decoded."""


class EventIdExhaustedError(ValueError):
    """The u16 event id counter has no ids left to assign."""


class UnknownMethodError(ValueError):
    """No operation of the requested kind is registered under this name."""


class ContractBusyError(ValueError):
    """Another command currently holds the contract lock."""
