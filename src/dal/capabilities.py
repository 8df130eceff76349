from dataclasses import dataclass, field
from typing import Literal, Tuple


@dataclass(frozen=True)
class DatabaseCapabilities:
    """Capability flags for a backend.

    Callers branch on these; the compiler never reads them, so a capability can
    not silently change generated SQL.
    """

    provider_name: str = "unspecified"
    execution_model: Literal["sync", "async"] = "async"
    has_native_rls: bool = False
    has_logical_replication: bool = False
    has_jsonb: bool = False
    has_pubsub: bool = False
    has_vector_search: bool = False
    supported_extensions: Tuple[str, ...] = field(default_factory=tuple)
    has_full_text_search: bool = False
    has_stored_procedures: bool = False
    supports_transactions: bool = True
    max_connections: int = 100

    @property
    def supports_extensions(self) -> bool:
        """True when the backend has an extension mechanism at all."""
        return bool(self.supported_extensions)


def capabilities_for_provider(provider: str) -> DatabaseCapabilities:
    """Return capability flags for a given provider."""
    from dal.util.env import normalize_provider

    normalized = normalize_provider(provider or "")
    if normalized == "postgresql":
        return DatabaseCapabilities(
            provider_name="postgresql",
            execution_model="async",
            has_native_rls=True,
            has_logical_replication=True,
            has_jsonb=True,
            has_pubsub=True,
            # pgvector is an optional extension.
            has_vector_search=False,
            supported_extensions=("postgis", "pg_stat_statements", "pgvector", "uuid-ossp"),
            has_full_text_search=True,
            has_stored_procedures=True,
            max_connections=100,
        )
    if normalized == "tsql":
        return DatabaseCapabilities(
            provider_name="tsql",
            execution_model="sync",
            has_native_rls=True,
            has_logical_replication=False,
            has_jsonb=False,
            has_pubsub=False,
            has_vector_search=False,
            has_full_text_search=True,
            has_stored_procedures=True,
            max_connections=100,
        )
    return DatabaseCapabilities(provider_name=normalized or "unspecified")
