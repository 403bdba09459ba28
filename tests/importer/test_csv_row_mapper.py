from datetime import datetime

import pytest

from docimport.importer.pipeline.converters import BlobReference
from docimport.importer.pipeline.errors import (
    FieldConversionError,
    InvalidNameError,
    MissingBlobError,
    MissingNameError,
    MissingTypeError,
    UnknownFieldError,
    UnknownTypeError,
)
from docimport.importer.pipeline.naming import NoDerivedNameStrategy
from docimport.importer.pipeline.row_mapper import CONTENT_FIELD, HeaderLayout, RowMapper

BUILDING_HEADER = ["bg:IDBuilding", "bg:IDSector", "bg:IDSubject", "bg:IDDocument", "bg:IDDocumentDate"]
BUILDING_ROW = ["FOOBAR 6", "D", "D", "9", "20100416"]


def test_header_layout_locates_reserved_columns():
    layout = HeaderLayout.from_header(["\ufeffname", " type ", "dc:title", "autofileimport"])

    assert layout.labels == ("name", "type", "dc:title", "autofileimport")
    assert layout.name_index == 0
    assert layout.type_index == 1
    assert layout.autoimport_index == 3
    assert layout.reserved_indices == frozenset({0, 1, 3})


def test_header_layout_pads_and_truncates_rows():
    layout = HeaderLayout.from_header(["name", "type", "dc:title"])

    assert layout.pad(["doc"]) == ("doc", "", "")
    assert layout.pad([" doc ", "File", "Title", "extra"]) == ("doc", "File", "Title")


def test_map_row_converts_typed_properties(row_mapper):
    layout = HeaderLayout.from_header(["name", "type", "dc:title", "dc:issued", "bg:floors", "dc:subjects"])

    row = row_mapper.map_row(layout, ["plan-1", "File", "Ground floor", "10/01/2010", "3", "maps|plans"])

    assert row.name == "plan-1"
    assert row.doc_type == "File"
    assert row.properties == {
        "dc:title": "Ground floor",
        "dc:issued": datetime(2010, 10, 1),
        "bg:floors": 3,
        "dc:subjects": ("maps", "plans"),
    }


def test_map_row_omits_blank_cells(row_mapper):
    layout = HeaderLayout.from_header(["name", "dc:title", "dc:description"])

    row = row_mapper.map_row(layout, ["plan-1", "Title", ""])

    assert row.properties == {"dc:title": "Title"}


def test_map_row_uses_default_type_without_type_column(row_mapper):
    layout = HeaderLayout.from_header(["name", "dc:title"])

    row = row_mapper.map_row(layout, ["plan-1", "Title"])

    assert row.doc_type == "File"


def test_map_row_blank_type_cell(row_mapper):
    layout = HeaderLayout.from_header(["name", "type"])

    with pytest.raises(MissingTypeError) as excinfo:
        row_mapper.map_row(layout, ["plan-1", ""])
    assert excinfo.value.message == "Missing 'type' value"


def test_map_row_unknown_type(row_mapper):
    layout = HeaderLayout.from_header(["name", "type"])

    with pytest.raises(UnknownTypeError) as excinfo:
        row_mapper.map_row(layout, ["plan-1", "Blueprint"])
    assert excinfo.value.message == "The type 'Blueprint' does not exist"


def test_map_row_unknown_field(row_mapper):
    layout = HeaderLayout.from_header(["name", "type", "note:note"])

    with pytest.raises(UnknownFieldError) as excinfo:
        row_mapper.map_row(layout, ["plan-1", "File", "hello"])
    assert excinfo.value.message == "Field 'note:note' does not exist on type 'File'"


def test_map_row_unknown_field_fails_even_with_blank_value(row_mapper):
    layout = HeaderLayout.from_header(["name", "type", "note:note"])

    with pytest.raises(UnknownFieldError):
        row_mapper.map_row(layout, ["plan-1", "File", ""])


def test_resolve_field_accepts_unprefixed_and_foreign_prefix(row_mapper, catalog):
    schema = catalog.get_document_type("File")

    assert row_mapper.resolve_field(schema, "title").name == "dc:title"
    assert row_mapper.resolve_field(schema, "dublincore:title").name == "dc:title"


def test_map_row_conversion_failure(row_mapper):
    layout = HeaderLayout.from_header(["name", "dc:issued"])

    with pytest.raises(FieldConversionError) as excinfo:
        row_mapper.map_row(layout, ["plan-1", "10012010"])
    assert excinfo.value.message == "Unable to convert field 'dc:issued' with value '10012010'"


def test_map_row_blank_name_cell(row_mapper):
    layout = HeaderLayout.from_header(["name", "dc:title"])

    with pytest.raises(MissingNameError):
        row_mapper.map_row(layout, ["", "Title"])


def test_map_row_derives_building_name(row_mapper):
    layout = HeaderLayout.from_header(BUILDING_HEADER)

    row = row_mapper.map_row(layout, BUILDING_ROW)

    assert row.name == "FOOBAR 6 D.D.20100416.9"


def test_map_row_derived_name_undefined(row_mapper):
    layout = HeaderLayout.from_header(BUILDING_HEADER)

    with pytest.raises(MissingNameError) as excinfo:
        row_mapper.map_row(layout, ["FOOBAR 6", "D", "", "9", "20100416"])
    assert excinfo.value.message == "Missing 'name' value or incorrect parameter name"


def test_map_row_without_naming_strategy(catalog, converter):
    mapper = RowMapper(catalog, converter, NoDerivedNameStrategy(), default_type="File")
    layout = HeaderLayout.from_header(BUILDING_HEADER)

    with pytest.raises(MissingNameError):
        mapper.map_row(layout, BUILDING_ROW)


def test_map_row_auto_imports_content(row_mapper, blobs_folder):
    (blobs_folder / "FOOBAR 6 D.D.20100416.9.pdf").write_bytes(b"%PDF")
    layout = HeaderLayout.from_header([*BUILDING_HEADER, "autofileimport"])

    row = row_mapper.map_row(layout, [*BUILDING_ROW, "1"])

    content = row.properties[CONTENT_FIELD]
    assert isinstance(content, BlobReference)
    assert content.filename == "FOOBAR 6 D.D.20100416.9.pdf"


def test_map_row_auto_import_disabled(row_mapper):
    layout = HeaderLayout.from_header([*BUILDING_HEADER, "autofileimport"])

    row = row_mapper.map_row(layout, [*BUILDING_ROW, "0"])

    assert CONTENT_FIELD not in row.properties


def test_map_row_auto_import_missing_blob(row_mapper):
    layout = HeaderLayout.from_header([*BUILDING_HEADER, "autofileimport"])

    with pytest.raises(MissingBlobError) as excinfo:
        row_mapper.map_row(layout, [*BUILDING_ROW, "1"])
    assert excinfo.value.message == "The file 'FOOBAR 6 D.D.20100416.9' does not exist"


@pytest.mark.parametrize("name", ["../../etc/evil", "sub/child", "..", ".", "back\\slash"])
def test_map_row_rejects_names_addressing_other_folders(row_mapper, name):
    layout = HeaderLayout.from_header(["name", "dc:title"])

    with pytest.raises(InvalidNameError) as excinfo:
        row_mapper.map_row(layout, [name, "Title"])
    assert excinfo.value.message == f"Invalid document name '{name}'"


def test_map_row_rejects_derived_name_with_separator(row_mapper):
    layout = HeaderLayout.from_header(BUILDING_HEADER)

    with pytest.raises(InvalidNameError):
        row_mapper.map_row(layout, ["FOOBAR/6", "D", "D", "9", "20100416"])
