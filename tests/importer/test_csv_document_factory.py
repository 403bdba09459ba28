from datetime import datetime
from pathlib import Path

import pytest
from sqlalchemy import select

from docimport.importer.pipeline.converters import BlobReference
from docimport.importer.pipeline.document_factory import (
    DocumentRef,
    PathDocumentFactory,
    PropertyMatchDocumentFactory,
    get_document_factory,
    to_storable,
)
from docimport.importer.pipeline.errors import DocumentStoreError
from docimport.models import Document, db

BUILDING_PROPERTIES = {
    "bg:IDBuilding": "FOOBAR 6",
    "bg:IDSector": "D",
    "bg:IDSubject": "D",
    "bg:IDDocument": "9",
    "bg:IDDocumentDate": "20100416",
}


def _stored(path: str) -> Document:
    return db.session.execute(select(Document).where(Document.path == path)).scalar_one()


def test_to_storable_converts_typed_values():
    blob = BlobReference(filename="a.pdf", path=Path("/blobs/a.pdf"), mime_type="application/pdf", length=3)

    assert to_storable(datetime(2010, 10, 1)) == "2010-10-01T00:00:00"
    assert to_storable(("a", "b")) == ["a", "b"]
    assert to_storable(blob) == {
        "filename": "a.pdf",
        "path": "/blobs/a.pdf",
        "mime_type": "application/pdf",
        "length": 3,
    }
    assert to_storable(12) == 12


def test_document_ref_path():
    assert DocumentRef(parent_path="/archive/", name="plan", doc_type="File").path == "/archive/plan"
    assert DocumentRef(parent_path="archive", name="plan", doc_type="File").path == "/archive/plan"


def test_path_factory_create_and_update():
    factory = PathDocumentFactory(db.session)

    assert factory.exists("/archive", "plan", "File", {}) is False
    ref = factory.create_document("/archive", "plan", "File", {"dc:title": "Plan"})
    assert ref.path == "/archive/plan"
    assert factory.exists("/archive", "plan", "File", {}) is True

    factory.update_document(ref, {"dc:description": "Ground floor"})
    db.session.commit()

    document = _stored("/archive/plan")
    assert document.parent_path == "/archive"
    assert document.properties == {"dc:title": "Plan", "dc:description": "Ground floor"}


def test_path_factory_duplicate_create_keeps_session_usable():
    factory = PathDocumentFactory(db.session)
    factory.create_document("/archive", "plan", "File", {})

    with pytest.raises(DocumentStoreError) as excinfo:
        factory.create_document("/archive", "plan", "File", {})
    assert excinfo.value.__cause__ is not None

    factory.create_document("/archive", "plan-2", "File", {})
    db.session.commit()
    assert db.session.execute(select(Document)).scalars().all()[-1].name == "plan-2"


def test_path_factory_update_missing_document():
    factory = PathDocumentFactory(db.session)

    with pytest.raises(DocumentStoreError, match="No document at /archive/plan"):
        factory.update_document(DocumentRef("/archive", "plan", "File"), {})


def test_property_match_factory_matches_business_keys():
    factory = PropertyMatchDocumentFactory(db.session)
    factory.create_document("/archive", "legacy-name", "File", BUILDING_PROPERTIES)
    db.session.commit()

    assert factory.exists("/archive", "FOOBAR 6 D.D.20100416.9", "File", BUILDING_PROPERTIES) is True
    assert factory.exists("/archive", "FOOBAR 6 D.D.20100416.9", "Note", BUILDING_PROPERTIES) is False
    assert factory.exists("/elsewhere", "FOOBAR 6 D.D.20100416.9", "File", BUILDING_PROPERTIES) is False

    partial = {key: value for key, value in BUILDING_PROPERTIES.items() if key != "bg:IDDocument"}
    assert factory.exists("/archive", "other", "File", partial) is False

    ref = factory.update_document(
        DocumentRef("/archive", "FOOBAR 6 D.D.20100416.9", "File"),
        {**BUILDING_PROPERTIES, "dc:title": "Matched"},
    )
    db.session.commit()

    assert ref.name == "legacy-name"
    assert _stored("/archive/legacy-name").properties["dc:title"] == "Matched"


def test_property_match_factory_requires_fields():
    with pytest.raises(ValueError):
        PropertyMatchDocumentFactory(db.session, match_fields=())


def test_get_document_factory():
    assert isinstance(get_document_factory("default", db.session), PathDocumentFactory)
    factory = get_document_factory("property_match", db.session, match_fields=("bg:IDBuilding",))
    assert factory.match_fields == ("bg:IDBuilding",)
    with pytest.raises(ValueError, match="Unknown document factory"):
        get_document_factory("remote_store", db.session)
