# tests/test_x402_routes.py
"""
Unit tests for the paid route table.
"""
import pytest

from app.x402.routes import (
    DEFAULT_DESCRIPTION,
    RoutePolicy,
    RoutePolicyTable,
    parse_route,
    route_key,
)

ROUTES = {
    "GET /api/data": {"accepts": ["rootstock"], "description": "Protected data API"},
    "post /api/ai/infer": {"description": "AI inference service"},
}


class TestParseRoute:
    """Test route declaration parsing."""

    def test_parse(self):
        assert parse_route("GET /api/data") == ("GET", "/api/data")

    def test_method_uppercased(self):
        assert parse_route("post /api/ai/infer") == ("POST", "/api/ai/infer")

    def test_extra_whitespace(self):
        assert parse_route("  GET    /api/data ") == ("GET", "/api/data")

    @pytest.mark.parametrize("route", ["GET", "/api/data", "GET /a /b", ""])
    def test_invalid_declaration(self, route):
        with pytest.raises(ValueError):
            parse_route(route)

    def test_route_key_keeps_path_case(self):
        assert route_key("get", "/API/Data") == ("GET", "/API/Data")


class TestFromConfig:
    """Test building the table from declarations."""

    def test_policies(self):
        table = RoutePolicyTable.from_config(ROUTES)

        assert len(table) == 2
        assert table[("GET", "/api/data")] == RoutePolicy(
            method="GET",
            path="/api/data",
            accepted_networks=frozenset({"rootstock"}),
            description="Protected data API",
        )

    def test_defaults(self):
        table = RoutePolicyTable.from_config({"GET /x": {}})
        policy = table.lookup("GET", "/x")

        assert policy.accepted_networks == frozenset({"rootstock"})
        assert policy.description == DEFAULT_DESCRIPTION

    def test_none_options(self):
        table = RoutePolicyTable.from_config({"GET /x": None})
        assert table.lookup("GET", "/x").description == DEFAULT_DESCRIPTION

    def test_last_write_wins(self):
        """A later declaration of the same route replaces the earlier one."""
        table = RoutePolicyTable.from_config([
            ("GET /api/data", {"description": "first"}),
            ("get /api/data", {"description": "second"}),
        ])

        assert len(table) == 1
        assert table.lookup("GET", "/api/data").description == "second"

    def test_loading_twice_is_idempotent(self):
        first = RoutePolicyTable.from_config(ROUTES)
        second = RoutePolicyTable.from_config(ROUTES)

        assert first == second
        for method, path in [("GET", "/api/data"), ("POST", "/api/ai/infer"), ("GET", "/health")]:
            assert first.lookup(method, path) == second.lookup(method, path)

    def test_empty_config(self):
        table = RoutePolicyTable.from_config({})
        assert len(table) == 0
        assert table.lookup("GET", "/api/data") is None


class TestLookup:
    """Test exact-match lookups."""

    def setup_method(self):
        self.table = RoutePolicyTable.from_config(ROUTES)

    def test_exact_match(self):
        assert self.table.lookup("GET", "/api/data").description == "Protected data API"

    def test_method_case_insensitive(self):
        assert self.table.lookup("get", "/api/data") is not None

    def test_path_case_sensitive(self):
        assert self.table.lookup("GET", "/API/DATA") is None

    def test_no_prefix_match(self):
        assert self.table.lookup("GET", "/api/data/123") is None
        assert self.table.lookup("GET", "/api") is None

    def test_no_trailing_slash_match(self):
        assert self.table.lookup("GET", "/api/data/") is None

    def test_method_must_match(self):
        assert self.table.lookup("POST", "/api/data") is None


class TestImmutability:
    """The table has no mutation API."""

    def test_item_assignment_fails(self):
        table = RoutePolicyTable.from_config(ROUTES)
        with pytest.raises(TypeError):
            table[("GET", "/new")] = RoutePolicy(method="GET", path="/new")

    def test_policy_frozen(self):
        policy = RoutePolicyTable.from_config(ROUTES).lookup("GET", "/api/data")
        with pytest.raises(Exception):
            policy.description = "changed"
