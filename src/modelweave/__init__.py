"""modelweave: query compiler and federated execution engine for logical data models."""

__version__ = "0.1.0"
