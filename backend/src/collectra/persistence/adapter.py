"""Persistence protocols: the handle the dispatcher calls into."""

from typing import Any, Protocol, runtime_checkable

from collectra.metadata.loader import CollectionRegistry


@runtime_checkable
class CollectionHandle(Protocol):
    """Per-collection CRUD primitives.

    Arguments follow the Prisma client shape the HTTP bodies use:
    ``where``/``data``/``orderBy``/``take``/``skip``/``distinct``/``select``.
    Methods may be plain or async; the dispatcher handles both.
    """

    def find_many(
        self,
        where: dict[str, Any] | None = None,
        orderBy: dict[str, str] | list[dict[str, str]] | None = None,
        take: int | None = None,
        skip: int | None = None,
        distinct: list[str] | None = None,
        select: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]: ...

    def create(
        self, data: dict[str, Any], select: dict[str, Any] | None = None
    ) -> dict[str, Any]: ...

    def create_many(
        self, data: list[dict[str, Any]], skip_duplicates: bool = False
    ) -> dict[str, int]: ...

    def update(self, where: dict[str, Any], data: dict[str, Any]) -> dict[str, Any]: ...

    def update_many(
        self,
        where: dict[str, Any] | None,
        data: dict[str, Any] | list[dict[str, Any]],
    ) -> dict[str, int]: ...

    def delete(self, where: dict[str, Any]) -> dict[str, Any]: ...

    def delete_many(self, where: dict[str, Any] | None = None) -> dict[str, int]: ...


@runtime_checkable
class PersistenceAdapter(Protocol):
    """Interface all persistence adapters must implement."""

    def connect(self) -> None: ...

    def close(self) -> None: ...

    def initialize(self, registry: CollectionRegistry) -> None: ...

    def collection(self, name: str) -> CollectionHandle: ...
