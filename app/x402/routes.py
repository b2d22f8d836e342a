# app/x402/routes.py
"""
Declarative route configuration for the payment gate.

Paid routes are declared up front as a map of ``"METHOD /path"`` keys to
route options, following the x402 declarative pattern::

    RoutePolicyTable.from_config({
        "GET /api/weather": {
            "accepts": ["rootstock"],
            "description": "Weather data API",
        },
    })

Lookups are exact: the method is upper-cased, the path is matched as-is
(case-sensitive, no prefixes or patterns). When two entries normalize to the
same key, the later entry replaces the earlier one.
"""
import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, FrozenSet, Iterable, Iterator, Mapping, Optional, Tuple, Union

logger = logging.getLogger(__name__)

DEFAULT_ACCEPTS = ("rootstock",)
DEFAULT_DESCRIPTION = "Protected endpoint"

RouteKey = Tuple[str, str]
RouteConfig = Union[Mapping[str, Mapping[str, Any]], Iterable[Tuple[str, Mapping[str, Any]]]]


def route_key(method: str, path: str) -> RouteKey:
    """Normalize a (method, path) pair into a lookup key."""
    return (method.strip().upper(), path.strip())


def parse_route(route: str) -> RouteKey:
    """Split a ``"METHOD /path"`` declaration into a lookup key."""
    parts = route.split()
    if len(parts) != 2:
        raise ValueError(f"Invalid route declaration {route!r}, expected 'METHOD /path'")
    return route_key(parts[0], parts[1])


@dataclass(frozen=True)
class RoutePolicy:
    """Payment requirement for a single (method, path) route."""
    method: str
    path: str
    accepted_networks: FrozenSet[str] = field(default_factory=lambda: frozenset(DEFAULT_ACCEPTS))
    description: str = DEFAULT_DESCRIPTION

    @property
    def key(self) -> RouteKey:
        return (self.method, self.path)


class RoutePolicyTable(Mapping[RouteKey, RoutePolicy]):
    """Immutable, exact-match table of paid routes."""

    def __init__(self, policies: Iterable[RoutePolicy] = ()):
        table = {}
        for policy in policies:
            table[policy.key] = policy
        self._table = MappingProxyType(table)

    @classmethod
    def from_config(cls, config: RouteConfig) -> "RoutePolicyTable":
        """
        Build a table from ``"METHOD /path" -> options`` declarations.

        ``config`` may be a mapping or an iterable of ``(route, options)``
        pairs; the latter allows the same route to be declared twice, in
        which case the last declaration wins.

        Options:
            accepts: networks accepted for payment (default ["rootstock"])
            description: human-readable description (default "Protected endpoint")
        """
        items = config.items() if isinstance(config, Mapping) else config

        policies = []
        for route, options in items:
            method, path = parse_route(route)
            options = options or {}
            policy = RoutePolicy(
                method=method,
                path=path,
                accepted_networks=frozenset(options.get("accepts") or DEFAULT_ACCEPTS),
                description=options.get("description") or DEFAULT_DESCRIPTION,
            )
            policies.append(policy)
            logger.info(f"Configured x402 payment for {method} {path}: {policy.description}")

        return cls(policies)

    def lookup(self, method: str, path: str) -> Optional[RoutePolicy]:
        """Return the policy for an incoming request, or None if unrestricted."""
        return self._table.get((method.upper(), path))

    def __getitem__(self, key: RouteKey) -> RoutePolicy:
        return self._table[key]

    def __iter__(self) -> Iterator[RouteKey]:
        return iter(self._table)

    def __len__(self) -> int:
        return len(self._table)

    def __repr__(self) -> str:
        routes = ", ".join(f"{m} {p}" for m, p in self._table)
        return f"RoutePolicyTable({routes})"
