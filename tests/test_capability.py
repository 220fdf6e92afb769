"""Tests for capability enrichment."""

import pytest

from conftest import Users
from courier import Capability, Courier, DelegatingContract, FunctionCapability
from courier.capability import enrich


class CountingClient:
    def __init__(self, delegate, name, trail):
        self.delegate = delegate
        self.name = name
        self.trail = trail

    def execute(self, request, options):
        self.trail.append(self.name)
        return self.delegate.execute(request, options)


class Counting(Capability):
    def __init__(self, name, trail):
        self.name = name
        self.trail = trail

    def enrich_client(self, client):
        return CountingClient(client, self.name, self.trail)


class TrailingClient:
    def __init__(self, delegate, trail):
        self.delegate = delegate
        self.trail = trail

    def execute(self, request, options):
        self.trail.append("client")
        return self.delegate.execute(request, options)


def test_first_registered_capability_is_outermost(mock_client):
    trail = []
    mock_client.ok("GET", "/users/1/name", "Ann")
    users = (
        Courier.builder()
        .client(TrailingClient(mock_client, trail))
        .add_capability(Counting("A", trail))
        .add_capability(Counting("B", trail))
        .target(Users, "http://host")
    )

    users.get_name("1")

    assert trail == ["A", "B", "client"]


def test_function_capability(mock_client):
    trail = []
    mock_client.ok("GET", "/users/1/name", "Ann")
    capability = FunctionCapability(client=lambda client: CountingClient(client, "fn", trail))

    users = Courier.builder().client(mock_client).add_capability(capability).target(Users, "http://host")

    assert users.get_name("1") == "Ann"
    assert trail == ["fn"]


def test_function_capability_rejects_unknown_kinds():
    with pytest.raises(TypeError, match="transport"):
        FunctionCapability(transport=lambda client: client)


def test_enrich_rejects_unknown_kinds():
    with pytest.raises(ValueError, match="Unknown component kind"):
        enrich(object(), "transport", [])


def test_unchanged_components_are_returned_as_is():
    component = object()
    assert enrich(component, "decoder", [Capability(), Capability()]) is component


def test_contract_enrichment_sees_every_method(mock_client):
    seen = []

    class Auditing(DelegatingContract):
        def process(self, metadata):
            seen.append(metadata.method_name)
            return metadata

    capability = FunctionCapability(contract=Auditing)

    Courier.builder().client(mock_client).add_capability(capability).target(Users, "http://host")

    assert sorted(seen) == ["create_user", "get_name", "get_user", "list_users"]


def test_options_enrichment(mock_client):
    captured = []

    class Recording:
        def execute(self, request, options):
            captured.append(options)
            return mock_client.execute(request, options)

    mock_client.ok("GET", "/users/1/name", "Ann")
    capability = FunctionCapability(options=lambda options: options.model_copy(update={"read_timeout": 5.0}))

    users = Courier.builder().client(Recording()).add_capability(capability).target(Users, "http://host")
    users.get_name("1")

    assert captured[0].read_timeout == 5.0
