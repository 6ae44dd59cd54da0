"""Tagged XML encoding for build filter and build selector trees.

Each filter or selector is written as an element named after its class.
Every configuration field (dataclass field, or constructor parameter for
plain classes) becomes a child element named after the field:

- a nested filter or selector: `<build_filter class="SavedBuildFilter"/>`
- a list: `<filters><SavedBuildFilter/>...</filters>`
- a string, bool or enum: `<upstream_project_name>text</upstream_project_name>`

Which classes may appear is decided by an explicit registry passed to the
codec, so decoding cannot instantiate arbitrary types.
"""

from __future__ import annotations

import collections.abc
import dataclasses
import inspect
import typing
import xml.etree.ElementTree as ET
from enum import Enum
from functools import lru_cache
from typing import Iterable

from buildcopy.core.filters import (
    AndBuildFilter,
    BuildFilter,
    DownstreamBuildFilter,
    NoBuildFilter,
    NotBuildFilter,
    OrBuildFilter,
    ParameterizedBuildFilter,
    ParametersBuildFilter,
    SavedBuildFilter,
)
from buildcopy.core.selectors import (
    BuildSelector,
    FallbackBuildSelector,
    FallbackEntry,
    LastBuildWithArtifactSelector,
    LastCompletedBuildSelector,
    ParameterizedBuildSelector,
    PermalinkBuildSelector,
    SavedBuildSelector,
    SpecificBuildSelector,
    StatusBuildSelector,
    TriggeringBuildSelector,
)

DEFAULT_FILTER_TYPES: tuple[type[BuildFilter], ...] = (
    AndBuildFilter,
    OrBuildFilter,
    NotBuildFilter,
    SavedBuildFilter,
    DownstreamBuildFilter,
    ParameterizedBuildFilter,
    ParametersBuildFilter,
    NoBuildFilter,
)

DEFAULT_SELECTOR_TYPES: tuple[type, ...] = (
    LastCompletedBuildSelector,
    StatusBuildSelector,
    SavedBuildSelector,
    LastBuildWithArtifactSelector,
    SpecificBuildSelector,
    PermalinkBuildSelector,
    TriggeringBuildSelector,
    FallbackBuildSelector,
    FallbackEntry,
    ParameterizedBuildSelector,
)

_NESTED = (BuildFilter, BuildSelector, FallbackEntry)
_SEQUENCES = (list, tuple, collections.abc.Sequence)


class FilterConfigError(ValueError):
    """Raised when a serialized filter or selector cannot be decoded or encoded."""


class FilterCodec:
    """
    Encoder/decoder for filter and selector trees.

    Args:
        filter_types: Classes allowed in documents. Each class is
                      registered under its class name.
    """

    def __init__(self, filter_types: Iterable[type]):
        self._types: dict[str, type] = {}
        for filter_type in filter_types:
            if not isinstance(filter_type, type):
                raise TypeError(f"{filter_type!r} must be a class to be serializable")
            self._types[filter_type.__name__] = filter_type

    @property
    def tags(self) -> list[str]:
        """Registered tag names."""
        return sorted(self._types)

    def encode(self, value: BuildFilter | BuildSelector | None) -> str | None:
        """Encode a filter or selector tree into a single-line XML document."""
        if value is None:
            return None
        return ET.tostring(self._to_element(value), encoding="unicode")

    def decode(self, text: str | None) -> BuildFilter | None:
        """
        Decode a filter document produced by `encode`.

        Returns None for blank input.

        Raises:
            FilterConfigError: If the text is not a valid filter document.
        """
        return self._decode(text, BuildFilter, "build filter")

    def decode_selector(self, text: str | None) -> BuildSelector | None:
        """
        Decode a selector document produced by `encode`.

        Returns None for blank input.

        Raises:
            FilterConfigError: If the text is not a valid selector document.
        """
        return self._decode(text, BuildSelector, "build selector")

    def _decode(self, text: str | None, expected: type, kind: str):
        if text is None or not text.strip():
            return None
        try:
            root = ET.fromstring(text.strip())
        except ET.ParseError as exc:
            raise FilterConfigError(f"Malformed {kind}: {exc}") from exc
        value = self._from_element(root, root.tag)
        if not isinstance(value, expected):
            raise FilterConfigError(f"'{root.tag}' is not a {kind}")
        return value

    def _type_for(self, tag: str) -> type:
        filter_type = self._types.get(tag)
        if filter_type is None:
            raise FilterConfigError(f"Unknown build filter type: '{tag}'")
        return filter_type

    @staticmethod
    def _parameters(filter_type: type) -> list[tuple[str, object]]:
        if dataclasses.is_dataclass(filter_type):
            hints = typing.get_type_hints(filter_type)
            return [(f.name, hints.get(f.name)) for f in dataclasses.fields(filter_type)]
        init = filter_type.__init__
        if init is object.__init__:
            return []
        hints = typing.get_type_hints(init)
        params = list(inspect.signature(init).parameters.values())[1:]
        return [
            (p.name, hints.get(p.name))
            for p in params
            if p.kind in (p.POSITIONAL_OR_KEYWORD, p.KEYWORD_ONLY)
        ]

    def _to_element(self, value: object, tag: str | None = None) -> ET.Element:
        name = type(value).__name__
        filter_type = self._type_for(name)
        if tag is None:
            element = ET.Element(name)
        else:
            element = ET.Element(tag, {"class": name})

        for field_name, _ in self._parameters(filter_type):
            field_value = getattr(value, field_name)
            if isinstance(field_value, _NESTED):
                element.append(self._to_element(field_value, tag=field_name))
            elif isinstance(field_value, (list, tuple)):
                child = ET.SubElement(element, field_name)
                for item in field_value:
                    child.append(self._to_element(item))
            elif isinstance(field_value, bool):
                ET.SubElement(element, field_name).text = "true" if field_value else "false"
            elif isinstance(field_value, Enum):
                ET.SubElement(element, field_name).text = str(field_value.value)
            else:
                ET.SubElement(element, field_name).text = "" if field_value is None else str(field_value)
        return element

    def _from_element(self, element: ET.Element, tag: str) -> object:
        filter_type = self._type_for(tag)
        hints = dict(self._parameters(filter_type))

        kwargs: dict[str, object] = {}
        for child in element:
            if child.tag not in hints:
                raise FilterConfigError(f"Unknown field '{child.tag}' for {tag}")
            hint = hints[child.tag]
            origin = typing.get_origin(hint)
            text = child.text or ""
            if origin in _SEQUENCES:
                kwargs[child.tag] = [self._from_element(item, item.tag) for item in child]
            elif "class" in child.attrib:
                kwargs[child.tag] = self._from_element(child, child.attrib["class"])
            elif isinstance(hint, type) and issubclass(hint, _NESTED):
                raise FilterConfigError(f"Missing class attribute on '{child.tag}' in {tag}")
            elif hint is bool:
                kwargs[child.tag] = text.strip().lower() == "true"
            elif isinstance(hint, type) and issubclass(hint, Enum):
                try:
                    kwargs[child.tag] = hint(text.strip())
                except ValueError as exc:
                    raise FilterConfigError(f"Invalid value for '{child.tag}' in {tag}: {text!r}") from exc
            else:
                kwargs[child.tag] = text

        try:
            return filter_type(**kwargs)
        except TypeError as exc:
            raise FilterConfigError(f"Invalid configuration for {tag}: {exc}") from exc


@lru_cache(maxsize=1)
def default_codec() -> FilterCodec:
    """Return the codec for the built-in filter and selector types."""
    return FilterCodec(DEFAULT_FILTER_TYPES + DEFAULT_SELECTOR_TYPES)
