"""Dialect plugin registry: discover and register dialect implementations."""

from __future__ import annotations

from modelweave.dialect.base import Dialect
from modelweave.errors import EngineError


class UnsupportedDialectError(EngineError):
    """Raised when a requested dialect is not registered."""

    def __init__(self, name: str, available: list[str]) -> None:
        self.dialect_name = name
        self.available = available
        super().__init__(f"Unsupported dialect '{name}'. Available: {', '.join(available)}")


class DialectRegistry:
    """Registry for SQL dialect plugins."""

    _dialects: dict[str, type[Dialect]] = {}
    _aliases: dict[str, str] = {}

    @classmethod
    def register(cls, dialect_class: type[Dialect]) -> type[Dialect]:
        """Register a dialect class. Can be used as a decorator."""
        instance = dialect_class()
        cls._dialects[instance.name] = dialect_class
        return dialect_class

    @classmethod
    def alias(cls, name: str, target: str) -> None:
        """Register an alternative spelling, e.g. ``postgresql`` for ``postgres``."""
        cls._aliases[name] = target

    @classmethod
    def get(cls, name: str) -> Dialect:
        """Get an instance of the named dialect."""
        key = cls._aliases.get(name.lower(), name.lower())
        if key not in cls._dialects:
            raise UnsupportedDialectError(name, available=cls.available())
        return cls._dialects[key]()

    @classmethod
    def is_registered(cls, name: str) -> bool:
        return cls._aliases.get(name.lower(), name.lower()) in cls._dialects

    @classmethod
    def available(cls) -> list[str]:
        """List registered dialect names."""
        return sorted(cls._dialects.keys())
