"""Immutable SQL AST and fluent builder."""
