"""
Document store strategies consumed by the import engine.

The engine only talks to the store through ``DocumentFactory``. Each strategy
runs its mutations inside a SAVEPOINT so that a rejected row leaves the
surrounding batch transaction usable.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Callable, Mapping, Protocol, Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from docimport.models import Document
from docimport.models.document import join_path

from .converters import BlobReference
from .errors import DocumentStoreError
from .naming import (
    BUILDING_FIELD,
    DOCUMENT_DATE_FIELD,
    DOCUMENT_FIELD,
    SECTOR_FIELD,
    SUBJECT_FIELD,
)

DEFAULT_MATCH_FIELDS = (BUILDING_FIELD, SECTOR_FIELD, SUBJECT_FIELD, DOCUMENT_FIELD, DOCUMENT_DATE_FIELD)


@dataclass(frozen=True)
class DocumentRef:
    """Address of a row's target document."""

    parent_path: str
    name: str
    doc_type: str

    @property
    def path(self) -> str:
        return join_path(self.parent_path, self.name)


class DocumentFactory(Protocol):
    key: str

    def exists(self, parent_path: str, name: str, doc_type: str, properties: Mapping[str, Any]) -> bool:
        ...

    def create_document(
        self, parent_path: str, name: str, doc_type: str, properties: Mapping[str, Any]
    ) -> DocumentRef:
        ...

    def update_document(self, ref: DocumentRef, properties: Mapping[str, Any]) -> DocumentRef:
        ...


def to_storable(value: Any) -> Any:
    """Convert converted cell values into JSON-compatible property values."""

    if isinstance(value, BlobReference):
        return value.as_dict()
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return [to_storable(item) for item in value]
    return value


def _storable_properties(properties: Mapping[str, Any]) -> dict[str, Any]:
    return {key: to_storable(value) for key, value in properties.items()}


def _run_in_savepoint(session: Session, action: str, operation: Callable[[], Document]) -> Document:
    try:
        with session.begin_nested():
            document = operation()
            session.flush()
    except SQLAlchemyError as exc:
        raise DocumentStoreError(f"Failed to {action}") from exc
    return document


class PathDocumentFactory:
    """A document exists when one is stored at ``parent_path/name``."""

    key = "default"

    def __init__(self, session: Session) -> None:
        self.session = session

    def _get(self, path: str) -> Document | None:
        try:
            return self.session.execute(select(Document).where(Document.path == path)).scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise DocumentStoreError(f"Failed to look up {path}") from exc

    def exists(self, parent_path: str, name: str, doc_type: str, properties: Mapping[str, Any]) -> bool:
        return self._get(join_path(parent_path, name)) is not None

    def create_document(
        self, parent_path: str, name: str, doc_type: str, properties: Mapping[str, Any]
    ) -> DocumentRef:
        ref = DocumentRef(parent_path=parent_path, name=name, doc_type=doc_type)

        def _create() -> Document:
            document = Document(
                path=ref.path,
                parent_path=join_path(parent_path, ""),
                name=name,
                doc_type=doc_type,
                properties=_storable_properties(properties),
            )
            self.session.add(document)
            return document

        _run_in_savepoint(self.session, f"create {ref.path}", _create)
        return ref

    def update_document(self, ref: DocumentRef, properties: Mapping[str, Any]) -> DocumentRef:
        document = self._get(ref.path)
        if document is None:
            raise DocumentStoreError(f"No document at {ref.path}")

        def _update() -> Document:
            document.properties = {**(document.properties or {}), **_storable_properties(properties)}
            return document

        _run_in_savepoint(self.session, f"update {ref.path}", _update)
        return ref


class PropertyMatchDocumentFactory:
    """
    Deduplicate on business keys as well as on path.

    A row matches an existing document when a document is stored at the
    target path, or when a document of the same type under the same parent
    carries the same values for every configured match field. Rows missing
    any match field only match by path.
    """

    key = "property_match"

    def __init__(self, session: Session, match_fields: Sequence[str] = DEFAULT_MATCH_FIELDS) -> None:
        if not match_fields:
            raise ValueError("PropertyMatchDocumentFactory requires at least one match field.")
        self.session = session
        self.match_fields = tuple(match_fields)

    def _find(self, parent_path: str, name: str, doc_type: str, properties: Mapping[str, Any]) -> Document | None:
        path = join_path(parent_path, name)
        try:
            document = self.session.execute(select(Document).where(Document.path == path)).scalar_one_or_none()
            if document is not None:
                return document

            wanted = {field: to_storable(properties.get(field)) for field in self.match_fields}
            if any(value in (None, "") for value in wanted.values()):
                return None
            candidates = self.session.execute(
                select(Document)
                .where(Document.parent_path == join_path(parent_path, ""), Document.doc_type == doc_type)
                .order_by(Document.id)
            ).scalars()
        except SQLAlchemyError as exc:
            raise DocumentStoreError(f"Failed to look up {path}") from exc

        for candidate in candidates:
            stored = candidate.properties or {}
            if all(stored.get(field) == value for field, value in wanted.items()):
                return candidate
        return None

    def exists(self, parent_path: str, name: str, doc_type: str, properties: Mapping[str, Any]) -> bool:
        return self._find(parent_path, name, doc_type, properties) is not None

    def create_document(
        self, parent_path: str, name: str, doc_type: str, properties: Mapping[str, Any]
    ) -> DocumentRef:
        ref = DocumentRef(parent_path=parent_path, name=name, doc_type=doc_type)

        def _create() -> Document:
            document = Document(
                path=ref.path,
                parent_path=join_path(parent_path, ""),
                name=name,
                doc_type=doc_type,
                properties=_storable_properties(properties),
            )
            self.session.add(document)
            return document

        _run_in_savepoint(self.session, f"create {ref.path}", _create)
        return ref

    def update_document(self, ref: DocumentRef, properties: Mapping[str, Any]) -> DocumentRef:
        document = self._find(ref.parent_path, ref.name, ref.doc_type, properties)
        if document is None:
            raise DocumentStoreError(f"No document matching {ref.path}")

        def _update() -> Document:
            document.properties = {**(document.properties or {}), **_storable_properties(properties)}
            return document

        _run_in_savepoint(self.session, f"update {document.path}", _update)
        return DocumentRef(parent_path=ref.parent_path, name=document.name, doc_type=document.doc_type)


_DOCUMENT_FACTORIES: dict[str, type] = {
    PathDocumentFactory.key: PathDocumentFactory,
    PropertyMatchDocumentFactory.key: PropertyMatchDocumentFactory,
}


def get_document_factory(key: str, session: Session, **kwargs: Any) -> DocumentFactory:
    try:
        factory_cls = _DOCUMENT_FACTORIES[key]
    except KeyError as exc:
        raise ValueError(
            f"Unknown document factory '{key}'. Expected one of: {', '.join(sorted(_DOCUMENT_FACTORIES))}."
        ) from exc
    return factory_cls(session, **kwargs)
