"""
Naming strategies used when a CSV has no ``name`` column.

A strategy derives the document name from properties that were already
converted for the row. Returning ``None`` means the name is undefined and the
row is rejected by the engine.
"""

from __future__ import annotations

from typing import Any, Mapping, Protocol

BUILDING_FIELD = "bg:IDBuilding"
SECTOR_FIELD = "bg:IDSector"
SUBJECT_FIELD = "bg:IDSubject"
DOCUMENT_FIELD = "bg:IDDocument"
DOCUMENT_DATE_FIELD = "bg:IDDocumentDate"


class NamingStrategy(Protocol):
    key: str

    def derive_name(self, properties: Mapping[str, Any]) -> str | None:
        ...


def _text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class BuildingNamingStrategy:
    """
    Building archive convention: ``"<building> <sector>.<subject>.<date>.<document>"``.

    >>> BuildingNamingStrategy().derive_name({
    ...     "bg:IDBuilding": "FOOBAR 6", "bg:IDSector": "D", "bg:IDSubject": "D",
    ...     "bg:IDDocument": "9", "bg:IDDocumentDate": "20100416",
    ... })
    'FOOBAR 6 D.D.20100416.9'
    """

    key = "building"

    def derive_name(self, properties: Mapping[str, Any]) -> str | None:
        building = _text(properties.get(BUILDING_FIELD))
        sector = _text(properties.get(SECTOR_FIELD))
        subject = _text(properties.get(SUBJECT_FIELD))
        document = _text(properties.get(DOCUMENT_FIELD))
        document_date = _text(properties.get(DOCUMENT_DATE_FIELD))
        if None in (building, sector, subject, document, document_date):
            return None
        return f"{building} {sector}.{subject}.{document_date}.{document}"


class NoDerivedNameStrategy:
    """Never derives a name; rows must carry an explicit ``name`` column."""

    key = "none"

    def derive_name(self, properties: Mapping[str, Any]) -> str | None:
        return None


_NAMING_STRATEGIES: dict[str, type] = {
    BuildingNamingStrategy.key: BuildingNamingStrategy,
    NoDerivedNameStrategy.key: NoDerivedNameStrategy,
}


def get_naming_strategy(key: str) -> NamingStrategy:
    try:
        return _NAMING_STRATEGIES[key]()
    except KeyError as exc:
        raise ValueError(
            f"Unknown naming strategy '{key}'. Expected one of: {', '.join(sorted(_NAMING_STRATEGIES))}."
        ) from exc
