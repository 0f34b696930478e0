"""SQL dialect plugin system for modelweave."""

# Import dialects to trigger registration
import modelweave.dialect.clickhouse as _clickhouse  # noqa: F401
import modelweave.dialect.mysql as _mysql  # noqa: F401
import modelweave.dialect.postgres as _postgres  # noqa: F401
import modelweave.dialect.snowflake as _snowflake  # noqa: F401
import modelweave.dialect.sqlite as _sqlite  # noqa: F401
from modelweave.dialect.base import Dialect, DialectCapabilities
from modelweave.dialect.registry import DialectRegistry, UnsupportedDialectError

__all__ = [
    "Dialect",
    "DialectCapabilities",
    "DialectRegistry",
    "UnsupportedDialectError",
]
