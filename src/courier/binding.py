"""Binding of call arguments into a resolved RequestTemplate."""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping, Sequence
from typing import Any

from pydantic import BaseModel

from .codec import Encoder
from .errors import CourierError, EncodeError
from .metadata import MethodMetadata
from .request_template import RequestTemplate
from .template import encode, format_value, is_multi_valued


class RequestTemplateFactory:
    """Builds the resolved template for one call of one method.

    Values bound to the same placeholder by several parameters are collected
    in parameter order; a placeholder with no value falls back to its
    declared default and is otherwise bound to None, which drops it.
    """

    def __init__(self, metadata: MethodMetadata, encoder: Encoder):
        self.metadata = metadata
        self.encoder = encoder

    def create(self, argv: Sequence[Any]) -> RequestTemplate:
        metadata = self.metadata
        template = metadata.template.copy()
        template.config_key = metadata.config_key

        variables = self._variables(argv)
        encoded_names = {
            name
            for index in metadata.index_to_encoded
            for name in metadata.index_to_name.get(index, ())
        }
        resolved = template.resolve(variables, encoded_names, metadata.config_key)

        # a runtime URL is literal, its query string is never a template
        if metadata.url_index is not None:
            url = argv[metadata.url_index]
            if url is None:
                raise EncodeError(f"Url parameter of {metadata.config_key} was None")
            resolved.target(str(url))

        if metadata.query_map_index is not None:
            self._add_query_map(resolved, argv[metadata.query_map_index])
        if metadata.header_map_index is not None:
            self._add_header_map(resolved, argv[metadata.header_map_index])

        if metadata.body_index is not None:
            body = argv[metadata.body_index]
            if body is not None:
                self._encode(body, metadata.body_type, resolved)
        elif metadata.form_params:
            form = {
                name: variables[name]
                for name in metadata.form_params
                if variables.get(name) is not None
            }
            if form:
                self._encode(form, metadata.body_type, resolved)

        return resolved

    def _variables(self, argv: Sequence[Any]) -> dict[str, Any]:
        metadata = self.metadata
        collected: dict[str, list[Any]] = {}
        for index in sorted(metadata.index_to_name):
            names = metadata.index_to_name[index]
            value = argv[index]
            for name in names:
                collected.setdefault(name, [])
            if value is None:
                continue
            expander = metadata.index_to_expander.get(index)
            if is_multi_valued(value):
                items = [v for v in value if v is not None]
                if expander is not None:
                    items = [expander(v) for v in items]
            else:
                items = [expander(value) if expander is not None else value]
            for name in names:
                collected[name].extend(items)

        variables: dict[str, Any] = {}
        for name, values in collected.items():
            if not values:
                variables[name] = metadata.defaults.get(name)
            elif len(values) == 1:
                variables[name] = values[0]
            else:
                variables[name] = values
        for name in metadata.template.variables():
            variables.setdefault(name, metadata.defaults.get(name))
        return variables

    def _add_query_map(self, template: RequestTemplate, value: Any) -> None:
        if value is None:
            return
        encoded = self.metadata.query_map_encoded
        for name, item in _as_mapping(value, self.metadata.config_key).items():
            if item is None:
                continue
            values = item if is_multi_valued(item) else [item]
            rendered = [
                format_value(v) if encoded else encode(format_value(v))
                for v in values
                if v is not None
            ]
            if rendered:
                template.add_query(str(name) if encoded else encode(str(name)), *rendered)

    def _add_header_map(self, template: RequestTemplate, value: Any) -> None:
        if value is None:
            return
        for name, item in _as_mapping(value, self.metadata.config_key).items():
            if item is None:
                continue
            values = item if is_multi_valued(item) else [item]
            template.add_header(str(name), *(format_value(v) for v in values if v is not None))

    def _encode(self, value: Any, body_type: Any, template: RequestTemplate) -> None:
        try:
            self.encoder.encode(value, body_type, template)
        except CourierError:
            raise
        except Exception as e:
            raise EncodeError(f"{e} encoding body of {self.metadata.config_key}") from e


def _as_mapping(value: Any, config_key: str) -> Mapping[str, Any]:
    if isinstance(value, Mapping):
        return value
    if isinstance(value, BaseModel):
        return value.model_dump()
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: getattr(value, f.name) for f in dataclasses.fields(value)}
    raise EncodeError(
        f"{type(value).__name__} cannot be expanded into a map for {config_key}"
    )
