"""Error taxonomy for the CSV import pipeline.

Row-scoped failures are raised as ``ImportRowError`` subclasses and turned
into exactly one ERROR log entry by the engine; they never abort a job.
"""

from __future__ import annotations

MAX_UNWRAP_DEPTH = 32


class ImportRowError(Exception):
    """Base class for failures that abandon a single CSV line."""

    message_template = "Error while importing line: %s"
    localized_message = "label.csv.importer.errorImportingLine"

    def __init__(self, *params: object) -> None:
        self.params = tuple(params)
        super().__init__(self.message)

    @property
    def message(self) -> str:
        return self.message_template % self.params if self.params else self.message_template


class MissingTypeError(ImportRowError):
    message_template = "Missing 'type' value"
    localized_message = "label.csv.importer.missingTypeValue"


class UnknownTypeError(ImportRowError):
    message_template = "The type '%s' does not exist"
    localized_message = "label.csv.importer.notExistingType"


class UnknownFieldError(ImportRowError):
    message_template = "Field '%s' does not exist on type '%s'"
    localized_message = "label.csv.importer.notExistingField"


class MissingBlobError(ImportRowError):
    message_template = "The file '%s' does not exist"
    localized_message = "label.csv.importer.notExistingFile"


class FieldConversionError(ImportRowError):
    message_template = "Unable to convert field '%s' with value '%s'"
    localized_message = "label.csv.importer.cannotConvertFieldValue"


class MissingNameError(ImportRowError):
    message_template = "Missing 'name' value or incorrect parameter name"
    localized_message = "label.csv.importer.missingNameValue"


class InvalidNameError(ImportRowError):
    message_template = "Invalid document name '%s'"
    localized_message = "label.csv.importer.invalidNameValue"


class DocumentStoreError(Exception):
    """Raised by document factories when the store rejects an operation."""


def unwrap_exception(exc: BaseException, *, max_depth: int = MAX_UNWRAP_DEPTH) -> BaseException:
    """
    Follow the cause chain of ``exc`` down to its innermost exception.

    Only explicit causes (``raise ... from``) are followed. The walk stops
    after ``max_depth`` hops or when an exception repeats, returning the
    innermost exception seen so far.
    """

    current = exc
    seen = {id(current)}
    for _ in range(max_depth):
        cause = current.__cause__
        if cause is None or id(cause) in seen:
            break
        seen.add(id(cause))
        current = cause
    return current


def root_message(exc: BaseException) -> str:
    root = unwrap_exception(exc)
    return str(root) or root.__class__.__name__
