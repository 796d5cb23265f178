"""Load and resolve collection metadata from YAML files."""

import copy
import logging
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any

import yaml

from collectra.core.types import (
    ID_STRATEGIES,
    NUMBER_SUBTYPES,
    RELATION_TYPE,
    SCALAR_TYPES,
)
from collectra.errors import ConfigurationError
from collectra.hooks.registry import HookRegistry
from collectra.hooks.types import CollectionHooks, HookFn
from collectra.webhooks.types import Webhook

logger = logging.getLogger(__name__)

# DateTime defaults handled by the persistence adapter, not the template.
TIMESTAMP_DEFAULTS = ("now", "updatedAt")


@dataclass(frozen=True)
class FieldDefinition:
    """One field of a collection.

    Attributes:
        name: Field name as seen by API callers and hooks
        type: String, Json, number, Boolean, DateTime or relation
        subtype: Int, BigInt, Float or Decimal for number fields
        ref: Target collection name for relation fields
        many: Relation cardinality (True is the list side, no column)
        unique, required, index: Storage constraints
        map: Storage column name override
        default: Static default, or "now"/"updatedAt" for DateTime
    """

    name: str
    type: str
    subtype: str | None = None
    ref: str | None = None
    many: bool = False
    unique: bool = False
    required: bool = False
    index: bool = False
    map: str | None = None
    default: Any = None

    @property
    def is_relation(self) -> bool:
        return self.type == RELATION_TYPE

    @property
    def column_name(self) -> str:
        return self.map or self.name

    @property
    def has_column(self) -> bool:
        """List-side relations are virtual and have no storage column."""
        return not (self.is_relation and self.many)

    @classmethod
    def from_dict(cls, name: str, data: dict[str, Any]) -> "FieldDefinition":
        """Convert a field dict to a FieldDefinition.

        Accepts ``default`` or ``defaultValue``. A DateTime default of
        ``{"kind": "now"}`` is normalized to ``"now"``.
        """
        field_type = data.get("type", "String")
        if field_type not in SCALAR_TYPES and field_type != RELATION_TYPE:
            raise ConfigurationError(f"Field '{name}' has unknown type '{field_type}'")

        subtype = data.get("subtype")
        if field_type == "number":
            subtype = subtype or "Int"
            if subtype not in NUMBER_SUBTYPES:
                raise ConfigurationError(
                    f"Field '{name}' has unknown number subtype '{subtype}'"
                )

        if field_type == RELATION_TYPE and not data.get("ref"):
            raise ConfigurationError(f"Relation field '{name}' has no ref")

        default = data.get("default", data.get("defaultValue"))
        if isinstance(default, dict) and "kind" in default:
            default = default["kind"]

        return cls(
            name=name,
            type=field_type,
            subtype=subtype,
            ref=data.get("ref"),
            many=bool(data.get("many", False)),
            unique=bool(data.get("unique", False)),
            required=bool(data.get("required", False)),
            index=bool(data.get("index", False)),
            map=data.get("map"),
            default=default,
        )


@dataclass(frozen=True)
class Collection:
    """A declared entity type: fields, id strategy, hooks and webhooks."""

    name: str
    fields: Mapping[str, FieldDefinition]
    slug: str | None = None
    id_strategy: str = "autoincrement"
    id_field: str = "id"
    hooks: CollectionHooks = field(default_factory=CollectionHooks)
    webhooks: tuple[Webhook, ...] = ()

    @property
    def route_slug(self) -> str:
        return self.slug or self.name

    @property
    def columns(self) -> list[FieldDefinition]:
        return [f for f in self.fields.values() if f.has_column]

    def default_template(self) -> dict[str, Any]:
        """Static default values, merged under caller data on writes.

        Returns a fresh deep copy on every call so callers may mutate it.
        """
        template: dict[str, Any] = {}
        for f in self.fields.values():
            if f.default is None or f.is_relation:
                continue
            if f.type == "DateTime" and f.default in TIMESTAMP_DEFAULTS:
                continue
            template[f.name] = copy.deepcopy(f.default)
        return template

    @classmethod
    def from_dict(
        cls,
        name: str,
        data: dict[str, Any],
        resolve_hook: Callable[[str], HookFn] = HookRegistry.get,
    ) -> "Collection":
        """Create a Collection from a YAML/JSON dict or a Python literal.

        Fields may be dicts or FieldDefinition instances. Hook entries
        may be callables or names resolved through ``resolve_hook``.
        """
        fields: dict[str, FieldDefinition] = {}
        for field_name, field_data in (data.get("fields") or {}).items():
            if isinstance(field_data, FieldDefinition):
                fields[field_name] = field_data
            else:
                fields[field_name] = FieldDefinition.from_dict(field_name, field_data or {})

        id_data = data.get("id") or {}
        strategy = id_data.get("strategy") or id_data.get("type") or "autoincrement"
        if strategy not in ID_STRATEGIES:
            raise ConfigurationError(
                f"Collection '{name}' has unknown id strategy '{strategy}'"
            )
        id_field = id_data.get("name", "id")
        if id_field in fields:
            raise ConfigurationError(
                f"Collection '{name}' declares field '{id_field}', which is its id field"
            )

        try:
            hooks = CollectionHooks.from_dict(data.get("hooks"), resolve_hook)
        except ValueError as e:
            raise ConfigurationError(f"Collection '{name}': {e}") from e

        webhooks = tuple(
            w if isinstance(w, Webhook) else Webhook.from_dict(w)
            for w in data.get("webhooks") or []
        )

        return cls(
            name=name,
            fields=MappingProxyType(fields),
            slug=data.get("slug"),
            id_strategy=strategy,
            id_field=id_field,
            hooks=hooks,
            webhooks=webhooks,
        )


def users_collection(slug: str = "users") -> Collection:
    """The built-in collection backing session users."""
    return Collection(
        name="users",
        slug=slug,
        fields=MappingProxyType({
            "email": FieldDefinition(name="email", type="String", unique=True, required=True),
            "name": FieldDefinition(name="name", type="String"),
            "password": FieldDefinition(name="password", type="String"),
            "role": FieldDefinition(name="role", type="String", default="user"),
        }),
    )


class CollectionRegistry(Mapping[str, Collection]):
    """Immutable, ordered name -> Collection mapping resolved at boot.

    Construction validates relations and slugs and raises
    ConfigurationError on the first inconsistency.
    """

    def __init__(self, collections: Mapping[str, Collection] | list[Collection]):
        if isinstance(collections, Mapping):
            items = dict(collections)
        else:
            items = {c.name: c for c in collections}
        self._collections = MappingProxyType(items)
        self._by_slug = {c.route_slug: c for c in items.values()}
        self._validate()

    def __getitem__(self, name: str) -> Collection:
        return self._collections[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._collections)

    def __len__(self) -> int:
        return len(self._collections)

    def by_slug(self, slug: str) -> Collection | None:
        """Get a collection by its route slug."""
        return self._by_slug.get(slug)

    def slugs(self) -> list[str]:
        return list(self._by_slug.keys())

    def _validate(self) -> None:
        if len(self._by_slug) != len(self._collections):
            raise ConfigurationError("Collection slugs must be unique")

        for collection in self._collections.values():
            for f in collection.fields.values():
                if not f.is_relation:
                    continue
                target = self._collections.get(f.ref or "")
                if target is None:
                    raise ConfigurationError(
                        f"Relation '{collection.name}.{f.name}' references "
                        f"unknown collection '{f.ref}'"
                    )
                if not f.many:
                    continue
                # List side needs an owning side on the target.
                inverse = [
                    g for g in target.fields.values()
                    if g.is_relation and g.ref == collection.name
                ]
                if not inverse:
                    raise ConfigurationError(
                        f"Relation '{collection.name}.{f.name}' is a list but "
                        f"'{target.name}' declares no relation back to it"
                    )
                if all(g.many for g in inverse):
                    raise ConfigurationError(
                        f"Relation '{collection.name}.{f.name}' and its inverse on "
                        f"'{target.name}' are both lists; one side must hold the key"
                    )


class MetadataLoader:
    """Loads collection and global webhook definitions from YAML files.

    Layout::

        metadata/
          collections/*.yaml   one collection per file (key ``collection``)
          webhooks.yaml        global webhooks (key ``webhooks``)
    """

    def __init__(self, metadata_path: Path):
        self.metadata_path = metadata_path
        self.collections: dict[str, Collection] = {}
        self.webhooks: list[Webhook] = []

    def load_all(self) -> None:
        """Load all collections and global webhooks."""
        self._load_collections()
        self._load_webhooks()

    def _load_collections(self) -> None:
        collections_path = self.metadata_path / "collections"
        if not collections_path.exists():
            return

        for yaml_file in sorted(collections_path.glob("*.yaml")):
            with open(yaml_file) as f:
                data = yaml.safe_load(f)
            if not data or "collection" not in data:
                logger.warning("Skipping %s: no 'collection' key", yaml_file.name)
                continue
            collection = Collection.from_dict(data["collection"], data)
            self.collections[collection.name] = collection

    def _load_webhooks(self) -> None:
        webhooks_file = self.metadata_path / "webhooks.yaml"
        if not webhooks_file.exists():
            return

        with open(webhooks_file) as f:
            data = yaml.safe_load(f) or {}
        self.webhooks = [Webhook.from_dict(w) for w in data.get("webhooks", [])]

    def get_collection(self, name: str) -> Collection | None:
        """Get a resolved collection by name."""
        return self.collections.get(name)

    def list_collections(self) -> list[str]:
        """List all collection names."""
        return list(self.collections.keys())

    def build_registry(self, users_slug: str | None = "users") -> CollectionRegistry:
        """Build the registry, adding the built-in users collection.

        The built-in collection is skipped when ``users_slug`` is None
        or when the content already declares a ``users`` collection.
        """
        return build_registry(list(self.collections.values()), users_slug)


def build_registry(
    collections: list[Collection], users_slug: str | None = "users"
) -> CollectionRegistry:
    """Build a registry, adding the built-in users collection.

    The built-in collection is skipped when ``users_slug`` is falsy or
    when ``collections`` already declares a ``users`` collection.
    """
    by_name = {c.name: c for c in collections}
    if users_slug and "users" not in by_name:
        by_name["users"] = users_collection(users_slug)
    return CollectionRegistry(by_name)
