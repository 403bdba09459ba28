"""Document type catalog loaded from a YAML schema definition.

The catalog answers two questions for the import pipeline: does a document
type exist, and which fields (with which declared kind) does it carry. Field
kinds form a closed set so converters can dispatch on them explicitly.
"""

from __future__ import annotations

import enum
import hashlib
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

import yaml
from flask import current_app


class SchemaCatalogError(RuntimeError):
    """Raised when the schema catalog cannot be loaded or validated."""


class FieldKind(str, enum.Enum):
    STRING = "string"
    INTEGER = "integer"
    LONG = "long"
    DOUBLE = "double"
    BOOLEAN = "boolean"
    DATE = "date"
    LIST_OF_PRIMITIVE = "list_of_primitive"
    LIST_OF_COMPLEX = "list_of_complex"
    BLOB_REFERENCE = "blob"


PRIMITIVE_KINDS = frozenset(
    {
        FieldKind.STRING,
        FieldKind.INTEGER,
        FieldKind.LONG,
        FieldKind.DOUBLE,
        FieldKind.BOOLEAN,
        FieldKind.DATE,
    }
)

LIST_PREFIX = "list:"


@dataclass(frozen=True)
class FieldDefinition:
    """A single declared field of a schema."""

    name: str
    kind: FieldKind
    item_kind: FieldKind | None = None

    @property
    def local_name(self) -> str:
        return self.name.split(":", 1)[-1]


@dataclass(frozen=True)
class DocumentTypeSchema:
    """Fields available on one document type, keyed by prefixed name."""

    name: str
    fields: Mapping[str, FieldDefinition]

    def _lookup(self, field_name: str) -> FieldDefinition | None:
        field = self.fields.get(field_name)
        if field is not None:
            return field
        if ":" in field_name:
            return None
        # Unprefixed names match when exactly one schema declares them.
        matches = [definition for definition in self.fields.values() if definition.local_name == field_name]
        return matches[0] if len(matches) == 1 else None

    def has_field(self, field_name: str) -> bool:
        return self._lookup(field_name) is not None

    def get_field(self, field_name: str) -> FieldDefinition | None:
        return self._lookup(field_name)


@dataclass(frozen=True)
class SchemaCatalog:
    """Registry of document types known to the store."""

    types: Mapping[str, DocumentTypeSchema]
    checksum: str = ""
    path: Path | None = None

    def get_document_type(self, type_name: str) -> DocumentTypeSchema | None:
        return self.types.get(type_name)

    def has_document_type(self, type_name: str) -> bool:
        return type_name in self.types

    @property
    def type_names(self) -> tuple[str, ...]:
        return tuple(sorted(self.types))


def parse_field_kind(raw: Any, *, field_name: str) -> tuple[FieldKind, FieldKind | None]:
    """
    Parse a YAML field declaration such as ``string``, ``date``, ``blob``,
    ``list:string`` or ``list:complex`` into a (kind, item kind) pair.
    """

    token = str(raw or "").strip().lower()
    if token.startswith(LIST_PREFIX):
        item_token = token[len(LIST_PREFIX) :].strip()
        if item_token == "complex":
            return FieldKind.LIST_OF_COMPLEX, None
        try:
            item_kind = FieldKind(item_token)
        except ValueError as exc:
            raise SchemaCatalogError(f"Field '{field_name}' declares unknown list item type '{item_token}'.") from exc
        if item_kind not in PRIMITIVE_KINDS:
            raise SchemaCatalogError(f"Field '{field_name}' list items must be primitive or 'complex'.")
        return FieldKind.LIST_OF_PRIMITIVE, item_kind

    try:
        kind = FieldKind(token)
    except ValueError as exc:
        raise SchemaCatalogError(f"Field '{field_name}' declares unknown type '{token}'.") from exc
    if kind in (FieldKind.LIST_OF_PRIMITIVE, FieldKind.LIST_OF_COMPLEX):
        raise SchemaCatalogError(f"Field '{field_name}' must use the 'list:<type>' syntax.")
    return kind, None


def build_schema_catalog(raw: Mapping[str, Any], *, path: Path | None = None) -> SchemaCatalog:
    """Validate a parsed YAML payload and build the catalog."""

    try:
        schemas_payload = raw["schemas"]
        types_payload = raw["types"]
    except KeyError as exc:
        raise SchemaCatalogError(f"Missing required schema catalog attribute: {exc}") from exc
    if not isinstance(schemas_payload, Mapping) or not isinstance(types_payload, Mapping):
        raise SchemaCatalogError("'schemas' and 'types' must both be mappings.")

    schemas: dict[str, dict[str, FieldDefinition]] = {}
    for schema_name, schema_payload in schemas_payload.items():
        if not isinstance(schema_payload, Mapping):
            raise SchemaCatalogError(f"Schema '{schema_name}' must be a mapping, got {schema_payload!r}")
        prefix = str(schema_payload.get("prefix") or schema_name).strip()
        fields: dict[str, FieldDefinition] = {}
        for local_name, declaration in (schema_payload.get("fields") or {}).items():
            qualified = f"{prefix}:{local_name}"
            kind, item_kind = parse_field_kind(declaration, field_name=qualified)
            fields[qualified] = FieldDefinition(name=qualified, kind=kind, item_kind=item_kind)
        schemas[str(schema_name)] = fields

    types: dict[str, DocumentTypeSchema] = {}
    for type_name, type_payload in types_payload.items():
        if isinstance(type_payload, Mapping):
            schema_names = type_payload.get("schemas") or ()
        else:
            schema_names = type_payload or ()
        merged: dict[str, FieldDefinition] = {}
        for schema_name in schema_names:
            if schema_name not in schemas:
                raise SchemaCatalogError(f"Type '{type_name}' references unknown schema '{schema_name}'.")
            merged.update(schemas[schema_name])
        types[str(type_name)] = DocumentTypeSchema(name=str(type_name), fields=merged)

    return SchemaCatalog(types=types, checksum=_compute_checksum(raw), path=path)


def load_schema_catalog(path: str | Path) -> SchemaCatalog:
    """
    Load and validate a YAML schema catalog.
    """

    path = Path(path)
    if not path.exists():
        raise SchemaCatalogError(f"Schema catalog not found at {path}")

    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:  # pragma: no cover - YAML parser errors
        raise SchemaCatalogError(f"Failed to parse schema catalog YAML at {path}: {exc}") from exc

    return build_schema_catalog(raw, path=path)


def get_active_schema_catalog() -> SchemaCatalog:
    """
    Load the configured schema catalog (cached per app).
    The cache is invalidated when the file modification time changes.
    """

    config_path = current_app.config.get("IMPORTER_SCHEMA_PATH")
    if not config_path:
        raise SchemaCatalogError("IMPORTER_SCHEMA_PATH is not configured.")
    config_path = Path(config_path)
    if not config_path.exists():
        raise SchemaCatalogError(f"Schema catalog not found at {config_path}")

    cache: dict[str, tuple[SchemaCatalog, float]] = current_app.extensions.setdefault(
        "_importer_schema_catalog_cache", {}
    )
    current_mtime = config_path.stat().st_mtime
    cached_entry = cache.get(str(config_path))
    if cached_entry and cached_entry[1] == current_mtime:
        return cached_entry[0]

    if cached_entry:
        current_app.logger.debug("Schema catalog changed, reloading: %s", config_path)
    catalog = load_schema_catalog(config_path)
    cache[str(config_path)] = (catalog, current_mtime)
    return catalog


def _compute_checksum(payload: Mapping[str, Any]) -> str:
    serialized = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(serialized.encode("utf-8")).hexdigest()
