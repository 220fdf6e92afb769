"""Placeholder templates for paths, query strings, headers and bodies."""

from .expressions import Expression, Literal, Template, format_value, is_multi_valued
from .parts import BodyTemplate, CollectionFormat, HeaderTemplate, QueryTemplate, UriTemplate
from .uri import (
    PATH_RESERVED_CHARACTERS,
    QUERY_RESERVED_CHARACTERS,
    decode,
    encode,
    encode_reserved,
    is_absolute,
    is_encoded,
    path_encode,
    query_encode,
)

__all__ = [
    "BodyTemplate",
    "CollectionFormat",
    "Expression",
    "HeaderTemplate",
    "Literal",
    "PATH_RESERVED_CHARACTERS",
    "QUERY_RESERVED_CHARACTERS",
    "QueryTemplate",
    "Template",
    "UriTemplate",
    "decode",
    "encode",
    "encode_reserved",
    "format_value",
    "is_absolute",
    "is_encoded",
    "is_multi_valued",
    "path_encode",
    "query_encode",
]
