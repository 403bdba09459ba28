"""Header interpretation and row-to-properties mapping for CSV imports."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Sequence

from docimport.importer.schema_catalog import DocumentTypeSchema, FieldDefinition, SchemaCatalog

from .converters import FieldConverter
from .errors import InvalidNameError, MissingNameError, MissingTypeError, UnknownFieldError, UnknownTypeError
from .naming import NamingStrategy

NAME_COL = "name"
TYPE_COL = "type"
AUTOIMPORT_COL = "autofileimport"
AUTOIMPORT_ENABLED = "1"
CONTENT_FIELD = "file:content"
NAMESPACE_SEPARATOR = ":"
PATH_SEPARATORS = ("/", "\\")


def _sanitize_header(header: str | None) -> str:
    token = (header or "").strip()
    return token.lstrip("\ufeff")


def _check_name(name: str) -> str:
    """Documents are created directly under the import parent; names cannot address other folders."""
    if name in (".", "..") or any(separator in name for separator in PATH_SEPARATORS) or "\x00" in name:
        raise InvalidNameError(name)
    return name


@dataclass(frozen=True)
class HeaderLayout:
    """Column labels plus the positions of the reserved columns."""

    labels: tuple[str, ...]
    name_index: int | None = None
    type_index: int | None = None
    autoimport_index: int | None = None

    @classmethod
    def from_header(cls, header: Sequence[str]) -> "HeaderLayout":
        labels = tuple(_sanitize_header(label) for label in header)
        indices: dict[str, int] = {}
        for index, label in enumerate(labels):
            if label in (NAME_COL, TYPE_COL, AUTOIMPORT_COL):
                indices.setdefault(label, index)
        return cls(
            labels=labels,
            name_index=indices.get(NAME_COL),
            type_index=indices.get(TYPE_COL),
            autoimport_index=indices.get(AUTOIMPORT_COL),
        )

    @property
    def reserved_indices(self) -> frozenset[int]:
        return frozenset(
            index for index in (self.name_index, self.type_index, self.autoimport_index) if index is not None
        )

    def pad(self, cells: Sequence[str]) -> tuple[str, ...]:
        """Align a row with the header: short rows get blank cells, extra cells are dropped."""

        width = len(self.labels)
        values = tuple((cell or "").strip() for cell in cells[:width])
        return values + ("",) * (width - len(values))


@dataclass(frozen=True)
class MappedRow:
    doc_type: str
    name: str
    properties: dict[str, Any]


class RowMapper:
    """
    Turn one data row into a typed property mapping for a document type.

    Every failure is raised as an ``ImportRowError`` subclass; the mapper never
    returns a partially converted row.
    """

    def __init__(
        self,
        catalog: SchemaCatalog,
        converter: FieldConverter,
        naming_strategy: NamingStrategy,
        *,
        default_type: str,
    ) -> None:
        self.catalog = catalog
        self.converter = converter
        self.naming_strategy = naming_strategy
        self.default_type = default_type

    def map_row(self, layout: HeaderLayout, cells: Sequence[str]) -> MappedRow:
        values = layout.pad(cells)
        schema = self.resolve_type(layout, values)
        properties = self.build_properties(layout, values, schema)
        name = self.resolve_name(layout, values, properties)
        return MappedRow(doc_type=schema.name, name=name, properties=properties)

    def resolve_type(self, layout: HeaderLayout, values: Sequence[str]) -> DocumentTypeSchema:
        type_name = values[layout.type_index] if layout.type_index is not None else self.default_type
        if not type_name:
            raise MissingTypeError()
        schema = self.catalog.get_document_type(type_name)
        if schema is None:
            raise UnknownTypeError(type_name)
        return schema

    def resolve_field(self, schema: DocumentTypeSchema, label: str) -> FieldDefinition:
        field = schema.get_field(label)
        if field is None and NAMESPACE_SEPARATOR in label:
            field = schema.get_field(label.split(NAMESPACE_SEPARATOR, 1)[1])
        if field is None:
            raise UnknownFieldError(label, schema.name)
        return field

    def build_properties(
        self, layout: HeaderLayout, values: Sequence[str], schema: DocumentTypeSchema
    ) -> dict[str, Any]:
        properties: dict[str, Any] = {}
        reserved = layout.reserved_indices
        for index, label in enumerate(layout.labels):
            if index in reserved or not label:
                continue
            field = self.resolve_field(schema, label)
            value = values[index]
            if not value:
                continue
            properties[field.name] = self.converter.convert(field, label, value)
        return properties

    def resolve_name(self, layout: HeaderLayout, values: Sequence[str], properties: dict[str, Any]) -> str:
        if layout.name_index is not None:
            name = values[layout.name_index]
            if not name:
                raise MissingNameError()
            return _check_name(name)

        name = self.naming_strategy.derive_name(properties)
        if not name or not name.strip():
            raise MissingNameError()
        _check_name(name)
        if layout.autoimport_index is not None and values[layout.autoimport_index] == AUTOIMPORT_ENABLED:
            properties[CONTENT_FIELD] = self.converter.find_blob_by_prefix(name)
        return name
