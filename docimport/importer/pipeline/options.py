"""Job options and engine settings for CSV imports."""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field, replace
from pathlib import Path
from typing import Any, Mapping

DEFAULT_BATCH_SIZE = 50
DEFAULT_DATE_FORMAT = "%m/%d/%Y"
DEFAULT_LIST_SEPARATOR_REGEX = r"\|"
DEFAULT_DOCUMENT_TYPE = "File"
DEFAULT_DOCUMENT_FACTORY = "default"
DEFAULT_NAMING_STRATEGY = "building"


def _coerce_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    value_str = str(value).strip().lower()
    if value_str in {"1", "true", "yes", "on"}:
        return True
    if value_str in {"0", "false", "no", "off"}:
        return False
    return default


@dataclass(frozen=True)
class ImporterOptions:
    """
    Per-job configuration recognised by the importer.

    ``document_factory`` and ``naming_strategy`` are registry keys so the
    options stay JSON-serialisable for queued runs.
    """

    batch_size: int = DEFAULT_BATCH_SIZE
    date_format: str = DEFAULT_DATE_FORMAT
    list_separator_regex: str = DEFAULT_LIST_SEPARATOR_REGEX
    update_existing: bool = True
    send_email: bool = False
    document_factory: str = DEFAULT_DOCUMENT_FACTORY
    naming_strategy: str = DEFAULT_NAMING_STRATEGY
    default_type: str = DEFAULT_DOCUMENT_TYPE

    def __post_init__(self) -> None:
        if self.batch_size < 1:
            raise ValueError("batch_size must be at least 1.")
        if not self.date_format:
            raise ValueError("date_format cannot be empty.")
        try:
            re.compile(self.list_separator_regex)
        except re.error as exc:
            raise ValueError(f"Invalid list separator regex: {exc}") from exc
        if not self.list_separator_regex:
            raise ValueError("list_separator_regex cannot be empty.")

    @classmethod
    def coerce(cls, payload: Mapping[str, Any] | None = None, *, defaults: "ImporterOptions | None" = None) -> "ImporterOptions":
        """
        Build options from mixed user input (form fields, CLI flags, stored JSON).

        Unknown keys are ignored; missing keys fall back to ``defaults``.
        """

        base = defaults or cls()
        payload = payload or {}
        changes: dict[str, Any] = {}

        if payload.get("batch_size") not in (None, ""):
            try:
                changes["batch_size"] = int(payload["batch_size"])
            except (TypeError, ValueError) as exc:
                raise ValueError(f"batch_size must be an integer, got {payload['batch_size']!r}") from exc
        for key in ("date_format", "list_separator_regex", "document_factory", "naming_strategy", "default_type"):
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                changes[key] = value if key == "list_separator_regex" else value.strip()
        for key in ("update_existing", "send_email"):
            if key in payload:
                changes[key] = _coerce_bool(payload[key], getattr(base, key))

        return replace(base, **changes)

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "ImporterOptions":
        """Application-wide defaults taken from the Flask config."""

        return cls.coerce(
            {
                "batch_size": config.get("IMPORTER_BATCH_SIZE"),
                "date_format": config.get("IMPORTER_DATE_FORMAT"),
                "list_separator_regex": config.get("IMPORTER_LIST_SEPARATOR_REGEX"),
                "default_type": config.get("IMPORTER_DEFAULT_DOCUMENT_TYPE"),
            }
        )

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


DEFAULT_OPTIONS = ImporterOptions()


@dataclass(frozen=True)
class ImporterSettings:
    """Deployment settings injected into the engine at construction."""

    repository: str = "default"
    blobs_folder: Path | None = None
    mail_to: tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_app(cls, app) -> "ImporterSettings":
        config = app.config
        blobs_folder = config.get("IMPORTER_BLOBS_FOLDER")
        raw_mail_to = config.get("IMPORTER_MAIL_TO") or ()
        if isinstance(raw_mail_to, str):
            raw_mail_to = raw_mail_to.split(",")
        return cls(
            repository=config.get("IMPORTER_REPOSITORY_NAME") or "default",
            blobs_folder=Path(blobs_folder) if blobs_folder else None,
            mail_to=tuple(address.strip() for address in raw_mail_to if address and address.strip()),
        )
