"""SQL Server / Azure SQL adapter backed by pymssql."""

from .adapter import TsqlAdapter, TsqlTransaction
from .param_translation import translate_tsql_params

__all__ = ["TsqlAdapter", "TsqlTransaction", "translate_tsql_params"]
