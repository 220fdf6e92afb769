"""Tests for interface parsing and validation."""

from concurrent.futures import Future
from typing import Annotated, Any, Generic, Optional, TypeVar

import pytest

from conftest import User, Users
from courier import (
    Body,
    CallStyle,
    ConfigurationError,
    Courier,
    DefaultContract,
    DelegatingContract,
    FutureReturnContract,
    HeaderMap,
    Options,
    Param,
    QueryMap,
    base_path,
    default_method,
    defaults,
    delete,
    get,
    headers,
    post,
    request_line,
)
from courier.testing import MockClient

T = TypeVar("T")


def parse(interface, contract=None):
    return {m.method_name: m for m in (contract or DefaultContract()).parse(interface)}


@headers("Accept: application/json", "X-Client: courier")
@defaults(page=1)
class Catalog:
    @headers("Accept: text/plain")
    @get("/items?page={page}&size={size}")
    def items(self, size: int) -> str:
        ...

    @defaults(page=2)
    @get("/items/{id}?page={page}")
    def item(self, id: str) -> str:
        ...


class TestParsing:
    """Successful parsing."""

    def test_parsing_is_idempotent(self):
        contract = DefaultContract()
        assert contract.parse(Users) == contract.parse(Users)
        assert DefaultContract().parse(Catalog) == DefaultContract().parse(Catalog)

    def test_config_key(self):
        metadata = parse(Users)
        assert metadata["get_name"].config_key == "Users#get_name(str)"
        assert metadata["create_user"].config_key == "Users#create_user(User)"
        assert metadata["list_users"].config_key == "Users#list_users()"

    def test_implicit_binding(self):
        metadata = parse(Users)

        get_user = metadata["get_user"]
        assert get_user.index_to_name == {0: ["id"], 1: ["active"]}
        assert get_user.body_index is None
        assert get_user.return_type is User

        create_user = metadata["create_user"]
        assert create_user.body_index == 0
        assert create_user.body_type is User

    def test_class_declarations_merge_into_methods(self):
        metadata = parse(Catalog)

        items = metadata["items"]
        assert items.template.headers["Accept"] == ("text/plain",)
        assert items.template.headers["X-Client"] == ("courier",)
        assert items.defaults == {"page": 1}

        assert metadata["item"].defaults == {"page": 2}

    def test_call_styles(self):
        class Styles:
            @get("/a")
            def blocking(self) -> str:
                ...

            @get("/b")
            async def awaited(self) -> str:
                ...

            @get("/c")
            def deferred(self) -> Future[str]:
                ...

        metadata = parse(Styles, FutureReturnContract(DefaultContract()))

        assert metadata["blocking"].call_style is CallStyle.SYNC
        assert metadata["awaited"].call_style is CallStyle.COROUTINE
        assert metadata["deferred"].call_style is CallStyle.FUTURE
        assert metadata["deferred"].return_type is str

    def test_markers(self):
        class Search:
            @post("/search/{kind}")
            def search(
                self,
                kind: Annotated[str, Param("kind", encoded=True)],
                filters: Annotated[dict[str, Any], QueryMap(encoded=True)],
                extra: Annotated[dict[str, str], HeaderMap()],
                payload: Annotated[bytes, Body()],
                options: Options,
            ) -> str:
                ...

        metadata = parse(Search)["search"]

        assert metadata.index_to_encoded == frozenset({0})
        assert metadata.query_map_index == 1
        assert metadata.query_map_encoded
        assert metadata.header_map_index == 2
        assert metadata.body_index == 3
        assert metadata.options_index == 4

    def test_form_parameters(self):
        class Login:
            @post("/login")
            def login(
                self,
                username: Annotated[str, Param("username")],
                password: Annotated[str, Param("password")],
            ) -> str:
                ...

        metadata = parse(Login)["login"]

        assert metadata.form_params == ("username", "password")
        assert metadata.body_index is None

    def test_none_return_is_void(self):
        class Deleter:
            @delete("/items/{id}")
            def remove(self, id: str) -> None:
                ...

        assert parse(Deleter)["remove"].return_type is None

    def test_base_path(self):
        @base_path("/api/v1")
        class Versioned:
            @get("/users")
            def users(self) -> str:
                ...

        assert parse(Versioned)["users"].template.path() == "/api/v1/users"

    def test_subclass_methods_replace_base_methods(self):
        class Base:
            @get("/old")
            def fetch(self) -> str:
                ...

            @get("/shared")
            def shared(self) -> str:
                ...

        class Child(Base):
            @get("/new")
            def fetch(self) -> str:
                ...

        metadata = parse(Child)

        assert set(metadata) == {"fetch", "shared"}
        assert metadata["fetch"].template.path() == "/new"

    def test_default_methods_are_not_dispatched(self):
        class WithHelper:
            @get("/users/{id}")
            def get_user(self, id: str) -> User:
                ...

            @default_method
            def display(self, id: str) -> str:
                return self.get_user(id).name

        assert parse(WithHelper)["display"].is_default_method

    def test_delegating_contract_post_processes(self):
        seen = []

        class Recording(DelegatingContract):
            def process(self, metadata):
                seen.append(metadata.config_key)
                return metadata

        Recording(DefaultContract()).parse(Users)

        assert "Users#get_name(str)" in seen


class TestConfigurationErrors:
    """Invalid interfaces fail when parsed."""

    def assert_invalid(self, interface, match, contract=None):
        with pytest.raises(ConfigurationError, match=match):
            (contract or DefaultContract()).parse(interface)

    def test_unbound_placeholder(self):
        class Broken:
            @get("/things/{z}")
            def things(self) -> str:
                ...

        self.assert_invalid(Broken, "Placeholder 'z' is not bound")

    def test_unbound_placeholder_fails_client_construction(self):
        class Broken:
            @get("/things/{z}")
            def things(self) -> str:
                ...

        client = MockClient()
        with pytest.raises(ConfigurationError):
            Courier.builder().client(client).target(Broken, "http://host")
        assert client.requests == []

    def test_missing_request_line(self):
        class Unannotated:
            def things(self) -> str:
                ...

        self.assert_invalid(Unannotated, "not annotated with an HTTP method")

    def test_too_many_bodies(self):
        class TwoBodies:
            @post("/things")
            def things(self, first: str, second: str) -> str:
                ...

        self.assert_invalid(TwoBodies, "too many Body parameters")

    def test_body_with_form_parameters(self):
        class Mixed:
            @post("/things")
            def things(self, name: Annotated[str, Param("name")], payload: dict) -> str:
                ...

        self.assert_invalid(Mixed, "form parameters")

    def test_variadic_parameters(self):
        class Variadic:
            @get("/things")
            def things(self, *ids: str) -> str:
                ...

        self.assert_invalid(Variadic, "Variadic parameter")

    def test_generic_interface(self):
        class Repository(Generic[T]):
            @get("/things")
            def things(self) -> str:
                ...

        self.assert_invalid(Repository, "Parameterized types unsupported")

    def test_base_path_with_absolute_url(self):
        @base_path("/api")
        class Conflicting:
            @get("http://elsewhere/things")
            def things(self) -> str:
                ...

        self.assert_invalid(Conflicting, "cannot be combined with absolute url")

    def test_request_line_on_class(self):
        @request_line("GET /things")
        class OnClass:
            @get("/things")
            def things(self) -> str:
                ...

        self.assert_invalid(OnClass, "not supported on a class")

    def test_multiple_query_maps(self):
        class TwoMaps:
            @get("/things")
            def things(
                self,
                first: Annotated[dict, QueryMap()],
                second: Annotated[dict, QueryMap()],
            ) -> str:
                ...

        self.assert_invalid(TwoMaps, "QueryMap annotation was present on multiple parameters")

    def test_header_map_must_be_a_mapping(self):
        class BadHeaders:
            @get("/things")
            def things(self, extra: Annotated[list, HeaderMap()]) -> str:
                ...

        self.assert_invalid(BadHeaders, "must be a Mapping")

    def test_incompatible_types_for_one_placeholder(self):
        class Incompatible:
            @get("/things?x={x}")
            def things(self, a: Annotated[int, Param("x")], b: Annotated[str, Param("x")]) -> str:
                ...

        self.assert_invalid(Incompatible, "incompatible types")

    def test_optional_types_are_compatible(self):
        class Compatible:
            @get("/things?x={x}")
            def things(self, a: Annotated[int, Param("x")], b: Annotated[Optional[int], Param("x")]) -> str:
                ...

        assert parse(Compatible)["things"].index_to_name == {0: ["x"], 1: ["x"]}

    def test_async_generators(self):
        class Streaming:
            @get("/things")
            async def things(self):
                yield "thing"

        self.assert_invalid(Streaming, "Async generator")

    def test_async_method_returning_future(self):
        class Confused:
            @get("/things")
            async def things(self) -> Future[str]:
                ...

        self.assert_invalid(Confused, "cannot return a Future", FutureReturnContract(DefaultContract()))

    def test_unresolvable_type_hint(self):
        class Unresolvable:
            @get("/things")
            def things(self) -> "Missing":  # noqa: F821
                ...

        self.assert_invalid(Unresolvable, "Cannot resolve type hints")

    def test_not_a_class(self):
        with pytest.raises(ConfigurationError, match="is not a class"):
            DefaultContract().parse(Users())
