"""
Registry of the pluggable importer strategies.

Descriptors let the CLI and API list and validate strategy keys without
building a store session or an engine.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from typing import Mapping

from .pipeline.options import ImporterOptions


@dataclass(frozen=True)
class StrategyDescriptor:
    """Metadata describing a document factory or naming strategy."""

    name: str
    title: str
    summary: str | None = None


def get_document_factory_registry() -> Mapping[str, StrategyDescriptor]:
    return OrderedDict(
        (
            (
                "default",
                StrategyDescriptor(
                    name="default",
                    title="Path match",
                    summary="A row updates the document stored at parent path + name.",
                ),
            ),
            (
                "property_match",
                StrategyDescriptor(
                    name="property_match",
                    title="Property match",
                    summary="Also matches documents of the same type and parent carrying the same building keys.",
                ),
            ),
        )
    )


def get_naming_strategy_registry() -> Mapping[str, StrategyDescriptor]:
    return OrderedDict(
        (
            (
                "building",
                StrategyDescriptor(
                    name="building",
                    title="Building archive name",
                    summary="Derive '<building> <sector>.<subject>.<date>.<document>' from the bg: fields.",
                ),
            ),
            (
                "none",
                StrategyDescriptor(
                    name="none",
                    title="No derived name",
                    summary="Rows without a name column are rejected.",
                ),
            ),
        )
    )


def validate_strategy_keys(options: ImporterOptions) -> None:
    """
    Raise ``ValueError`` when the options reference unregistered strategies.
    """

    problems: list[str] = []
    factories = get_document_factory_registry()
    if options.document_factory not in factories:
        problems.append(
            f"Unknown document factory '{options.document_factory}' (expected one of: {', '.join(factories)})."
        )
    naming = get_naming_strategy_registry()
    if options.naming_strategy not in naming:
        problems.append(
            f"Unknown naming strategy '{options.naming_strategy}' (expected one of: {', '.join(naming)})."
        )
    if problems:
        raise ValueError(" ".join(problems))
