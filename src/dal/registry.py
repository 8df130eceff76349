"""Adapter registry with environment-driven provider selection.

The registry is an explicit value: build one at startup, register factories on
it, then hand it to whatever constructs adapters. Registration is expected to
finish before traffic starts and is not lock-guarded.

Environment Variables:
    DB_PROVIDER: Provider used by ``create_adapter_from_env`` (default: "postgresql")

Canonical Provider IDs:
    - "postgresql": PostgresAdapter (asyncpg)
    - "tsql": TsqlAdapter (pymssql through a SQLAlchemy pool)

Example:
    >>> registry = default_registry()
    >>> adapter = await registry.create("pg", ConnectionConfig(database="app"))
"""

import logging
from typing import Callable, Dict, List, Optional

from common.config.env import get_env_str
from common.errors import UnknownProviderError
from dal.adapter import DatabaseAdapter
from dal.util.env import normalize_provider
from schema.connection import ConnectionConfig

logger = logging.getLogger(__name__)

AdapterFactory = Callable[[], DatabaseAdapter]


class AdapterRegistry:
    """Maps provider names to adapter factories."""

    def __init__(self) -> None:
        """Initialize an empty registry."""
        self._factories: Dict[str, AdapterFactory] = {}

    def register(self, name: str, factory: AdapterFactory) -> None:
        """Register (or replace) the factory for a provider name."""
        provider = normalize_provider(name)
        if provider in self._factories:
            logger.warning(f"Replacing adapter factory for provider: {provider}")
        self._factories[provider] = factory

    def is_registered(self, name: str) -> bool:
        """Return True when a factory exists for the name or one of its aliases."""
        return normalize_provider(name) in self._factories

    def providers(self) -> List[str]:
        """Return registered provider names, sorted."""
        return sorted(self._factories)

    def build(self, name: str) -> DatabaseAdapter:
        """Instantiate an unconnected adapter.

        Raises:
            UnknownProviderError: If no factory is registered under the name.
        """
        provider = normalize_provider(name)
        factory = self._factories.get(provider)
        if factory is None:
            raise UnknownProviderError(name, self._factories)
        return factory()

    async def create(self, name: str, config: ConnectionConfig) -> DatabaseAdapter:
        """Instantiate and connect an adapter.

        Raises:
            UnknownProviderError: If no factory is registered under the name.
            BackendConnectionError: If the adapter cannot connect.
        """
        adapter = self.build(name)
        logger.info(f"Initializing database adapter with provider: {adapter.provider}")
        await adapter.connect(config)
        return adapter


def default_registry() -> AdapterRegistry:
    """Return a new registry with the built-in adapters registered."""
    # Imported lazily so the drivers load only when a registry is built.
    from dal.postgres import PostgresAdapter
    from dal.tsql import TsqlAdapter

    registry = AdapterRegistry()
    registry.register("postgresql", PostgresAdapter)
    registry.register("tsql", TsqlAdapter)
    return registry


def provider_from_env(default: str = "postgresql") -> str:
    """Return the canonical provider named by DB_PROVIDER."""
    return normalize_provider(get_env_str("DB_PROVIDER", default))


async def create_adapter_from_env(
    registry: Optional[AdapterRegistry] = None,
    config: Optional[ConnectionConfig] = None,
) -> DatabaseAdapter:
    """Create and connect the adapter selected by DB_PROVIDER.

    Connection parameters come from ``ConnectionConfig.from_env()`` unless given.

    Raises:
        UnknownProviderError: If DB_PROVIDER names an unregistered provider.
    """
    registry = registry or default_registry()
    return await registry.create(provider_from_env(), config or ConnectionConfig.from_env())
