"""Provider name normalization.

``DB_PROVIDER`` and registry lookups accept a handful of spellings per backend;
everything downstream sees only the canonical ids ``postgresql`` and ``tsql``.

    >>> normalize_provider(" PG ")
    'postgresql'
    >>> normalize_provider("SqlServer")
    'tsql'
"""

_CANONICAL_SPELLINGS: dict[str, tuple[str, ...]] = {
    "postgresql": ("postgres", "pg"),
    "tsql": ("t-sql", "mssql", "sqlserver", "azuresql", "azure-sql"),
}

PROVIDER_ALIASES: dict[str, str] = {
    alias: canonical
    for canonical, aliases in _CANONICAL_SPELLINGS.items()
    for alias in (canonical, *aliases)
}


def normalize_provider(value: str) -> str:
    """Return the canonical provider id for ``value``.

    Unknown names come back stripped and lowercased; rejecting them is the
    registry's job.
    """
    cleaned = value.strip().lower()
    return PROVIDER_ALIASES.get(cleaned, cleaned)
