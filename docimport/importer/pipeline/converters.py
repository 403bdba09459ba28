"""Schema-driven conversion of raw CSV cells into typed field values."""

from __future__ import annotations

import logging
import mimetypes
import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Callable

from docimport.importer.schema_catalog import FieldDefinition, FieldKind

from .errors import FieldConversionError, MissingBlobError

logger = logging.getLogger(__name__)

INT_MIN, INT_MAX = -(2**31), 2**31 - 1
LONG_MIN, LONG_MAX = -(2**63), 2**63 - 1


@dataclass(frozen=True)
class BlobReference:
    """Pointer to a file under the blob root, attached to a content field."""

    filename: str
    path: Path
    mime_type: str | None = None
    length: int | None = None

    @classmethod
    def from_path(cls, path: Path) -> "BlobReference":
        mime_type, _ = mimetypes.guess_type(path.name)
        return cls(filename=path.name, path=path, mime_type=mime_type, length=path.stat().st_size)

    def as_dict(self) -> dict[str, Any]:
        return {
            "filename": self.filename,
            "path": str(self.path),
            "mime_type": self.mime_type,
            "length": self.length,
        }


def _parse_bounded_int(value: str, minimum: int, maximum: int) -> int:
    number = int(value)
    if number < minimum or number > maximum:
        raise ValueError(f"{number} is out of range")
    return number


def _parse_boolean(value: str) -> bool:
    if value == "true":
        return True
    if value == "false":
        return False
    raise ValueError(f"not a boolean literal: {value!r}")


class FieldConverter:
    """
    Convert cell strings according to a field's declared kind.

    One converter is built per job: the date pattern, the list separator and
    the blob root are fixed for the whole run.
    """

    def __init__(self, *, date_format: str, list_separator_regex: str, blobs_folder: Path | None = None) -> None:
        self.date_format = date_format
        self.list_separator = re.compile(list_separator_regex)
        self.blobs_folder = blobs_folder.resolve() if blobs_folder else None
        self._primitive_parsers: dict[FieldKind, Callable[[str], Any]] = {
            FieldKind.STRING: lambda value: value,
            FieldKind.INTEGER: lambda value: _parse_bounded_int(value, INT_MIN, INT_MAX),
            FieldKind.LONG: lambda value: _parse_bounded_int(value, LONG_MIN, LONG_MAX),
            FieldKind.DOUBLE: float,
            FieldKind.BOOLEAN: _parse_boolean,
            FieldKind.DATE: lambda value: datetime.strptime(value, self.date_format),
        }

    def convert(self, field: FieldDefinition, label: str, value: str) -> Any:
        """
        Return the typed value for ``value``.

        Raises ``MissingBlobError`` for unknown blob files and
        ``FieldConversionError`` for unparsable primitives.
        """

        if field.kind is FieldKind.BLOB_REFERENCE:
            return self.resolve_blob(value)
        if field.kind in (FieldKind.LIST_OF_PRIMITIVE, FieldKind.LIST_OF_COMPLEX):
            return self.split_list(value)

        parser = self._primitive_parsers[field.kind]
        try:
            return parser(value)
        except (TypeError, ValueError) as exc:
            logger.debug("Conversion of %s=%r failed", label, value, exc_info=exc)
            raise FieldConversionError(label, value) from exc

    def split_list(self, value: str) -> list[str]:
        return [item.strip() for item in self.list_separator.split(value)]

    def resolve_blob(self, filename: str) -> BlobReference:
        try:
            path = self._resolve_under_root(filename)
            if path is None or not path.is_file():
                raise MissingBlobError(filename)
            return BlobReference.from_path(path)
        except (OSError, ValueError) as exc:
            # Unusable file names (too long, embedded NUL) only reject the row.
            logger.debug("Blob lookup of %r failed", filename, exc_info=exc)
            raise MissingBlobError(filename) from exc

    def find_blob_by_prefix(self, prefix: str) -> BlobReference:
        """Return the first file (by name) in the blob root starting with ``prefix``."""

        if self.blobs_folder is None:
            raise MissingBlobError(prefix)
        try:
            if not self.blobs_folder.is_dir():
                raise MissingBlobError(prefix)
            candidates = sorted(
                path for path in self.blobs_folder.iterdir() if path.is_file() and path.name.startswith(prefix)
            )
            if not candidates:
                raise MissingBlobError(prefix)
            return BlobReference.from_path(candidates[0])
        except OSError as exc:
            logger.debug("Blob lookup by prefix %r failed", prefix, exc_info=exc)
            raise MissingBlobError(prefix) from exc

    def _resolve_under_root(self, filename: str) -> Path | None:
        if self.blobs_folder is None:
            return None
        candidate = (self.blobs_folder / filename).resolve()
        if candidate != self.blobs_folder and self.blobs_folder not in candidate.parents:
            return None
        return candidate
