"""Request dispatch pipeline."""

from collectra.dispatch.dispatcher import (
    Batch,
    DispatchOutcome,
    OperationDispatcher,
    Single,
    classify_payload,
    deep_merge,
)

__all__ = [
    "Batch",
    "DispatchOutcome",
    "OperationDispatcher",
    "Single",
    "classify_payload",
    "deep_merge",
]
