from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from common.config.env import get_env_bool, get_env_int, get_env_str


class ConnectionConfig(BaseModel):
    """Connection parameters for one backend.

    ``options`` carries driver-specific settings verbatim; nothing outside the
    adapter interprets it.
    """

    host: str = "localhost"
    port: Optional[int] = None
    database: str
    user: Optional[str] = None
    password: Optional[str] = None
    ssl: bool = False
    max_connections: int = 20
    connect_timeout: float = 10.0
    options: Dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": False}

    @classmethod
    def from_env(cls, prefix: str = "DB") -> "ConnectionConfig":
        """Load a connection config from ``<PREFIX>_*`` environment variables."""
        return cls(
            host=get_env_str(f"{prefix}_HOST", "localhost"),
            port=get_env_int(f"{prefix}_PORT"),
            database=get_env_str(f"{prefix}_NAME", "postgres"),
            user=get_env_str(f"{prefix}_USER"),
            password=get_env_str(f"{prefix}_PASSWORD"),
            ssl=get_env_bool(f"{prefix}_SSL", False),
            max_connections=get_env_int(f"{prefix}_MAX_CONNECTIONS", 20),
            connect_timeout=get_env_int(f"{prefix}_CONNECT_TIMEOUT_SECS", 10),
        )
