"""Hook system types for Collectra.

Defines the core data structures for the request hook pipeline:
- HookPhase: the four fixed phases around an operation
- OperationArgs: the payload every hook receives
- CollectionHooks: ordered hook lists per phase for one collection
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from collectra.core.types import Operation

if TYPE_CHECKING:
    from collectra.context import RequestContext


class HookPhase(Enum):
    """Hook phases, in the order the dispatcher runs them."""

    BEFORE_OPERATION = "beforeOperation"
    VALIDATE_INPUT = "validateInput"
    MODIFY_INPUT = "modifyInput"
    AFTER_OPERATION = "afterOperation"


@dataclass
class OperationArgs:
    """Payload passed to every hook of one request.

    Attributes:
        ctx: The request context (hooks may only write custom_vars and response)
        operation: The operation being performed
        existing_data: Rows matched by ``where`` before an update/delete
        input_data: Request body; validateInput/modifyInput may transform it
    """

    ctx: "RequestContext"
    operation: Operation
    existing_data: Any = None
    input_data: Any = None


# Hook signatures. Each may be a plain or an async function.
BeforeOperation = Callable[[OperationArgs], bool | None | Awaitable[bool | None]]
ValidateInput = Callable[[OperationArgs], None | Awaitable[None]]
ModifyInput = Callable[[OperationArgs], Any]
AfterOperation = Callable[[OperationArgs], None | Awaitable[None]]
HookFn = BeforeOperation | ValidateInput | ModifyInput | AfterOperation


@dataclass(frozen=True)
class CollectionHooks:
    """Hooks declared on one collection, in declaration order per phase."""

    before_operation: tuple[BeforeOperation, ...] = ()
    validate_input: tuple[ValidateInput, ...] = ()
    modify_input: tuple[ModifyInput, ...] = ()
    after_operation: tuple[AfterOperation, ...] = ()

    def for_phase(self, phase: HookPhase) -> tuple[HookFn, ...]:
        return {
            HookPhase.BEFORE_OPERATION: self.before_operation,
            HookPhase.VALIDATE_INPUT: self.validate_input,
            HookPhase.MODIFY_INPUT: self.modify_input,
            HookPhase.AFTER_OPERATION: self.after_operation,
        }[phase]

    def count(self) -> int:
        return sum(len(self.for_phase(phase)) for phase in HookPhase)

    @classmethod
    def from_dict(
        cls,
        data: dict[str, list[Any]] | None,
        resolve: Callable[[str], HookFn],
    ) -> "CollectionHooks":
        """Build hooks from a phase-keyed dict.

        Entries may be callables or names of registered hooks, which are
        looked up with ``resolve``. Unknown phase keys raise ValueError.

        Args:
            data: e.g. {"beforeOperation": ["adminOnly", some_callable]}
            resolve: Name -> hook function lookup (usually HookRegistry.get)
        """
        if not data:
            return cls()

        by_phase: dict[HookPhase, list[HookFn]] = {phase: [] for phase in HookPhase}
        for key, entries in data.items():
            try:
                phase = HookPhase(key)
            except ValueError:
                valid = ", ".join(p.value for p in HookPhase)
                raise ValueError(f"Unknown hook phase '{key}'. Expected one of: {valid}")
            if not isinstance(entries, (list, tuple)):
                entries = [entries]
            for entry in entries:
                by_phase[phase].append(resolve(entry) if isinstance(entry, str) else entry)

        return cls(
            before_operation=tuple(by_phase[HookPhase.BEFORE_OPERATION]),
            validate_input=tuple(by_phase[HookPhase.VALIDATE_INPUT]),
            modify_input=tuple(by_phase[HookPhase.MODIFY_INPUT]),
            after_operation=tuple(by_phase[HookPhase.AFTER_OPERATION]),
        )
