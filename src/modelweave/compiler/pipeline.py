"""Orchestrates single-source compilation: Validation -> target compiler -> CompiledQuery."""

from __future__ import annotations

import logging

from modelweave.compiler.document import DOCUMENT_DIALECT, DocumentPipelineCompiler
from modelweave.compiler.sql import SingleSourceCompiler
from modelweave.errors import CompileError, ValidationError
from modelweave.models.description import QueryDescription
from modelweave.models.errors import ValidationResult
from modelweave.models.result import FLAG_EXPRESSION_CLEANUP, CompiledQuery
from modelweave.validation.validator import CleanupMode, DescriptionValidator

logger = logging.getLogger("modelweave.compiler")


class CompilationPipeline:
    """Validates a description and renders it for one source's dialect."""

    def __init__(self, expression_cleanup: CleanupMode = "rewrite") -> None:
        self._validator = DescriptionValidator(expression_cleanup=expression_cleanup)
        self._sql = SingleSourceCompiler()
        self._document = DocumentPipelineCompiler()

    @property
    def validator(self) -> DescriptionValidator:
        return self._validator

    def validate(self, description: QueryDescription) -> ValidationResult:
        """Validate and raise :class:`ValidationError` when the description has errors."""
        result = self._validator.validate(description)
        if not result.valid:
            raise ValidationError(result)
        return result

    def compile(
        self,
        description: QueryDescription,
        dialect_name: str,
        validation: ValidationResult | None = None,
    ) -> CompiledQuery:
        """Compile for ``dialect_name``; ``validation`` skips re-validating a checked description."""
        if validation is None:
            validation = self.validate(description)
        try:
            if dialect_name == DOCUMENT_DIALECT:
                compiled = self._document.compile(description, validation.rewrites)
            else:
                compiled = self._sql.compile(description, dialect_name, validation.rewrites)
        except CompileError:
            logger.exception("Compilation failed for dialect '%s'", dialect_name)
            raise
        return annotate(compiled, validation)


def annotate(compiled: CompiledQuery, validation: ValidationResult) -> CompiledQuery:
    """Attach validation warnings and the cleanup flag to a compiled query."""
    flags = list(compiled.flags)
    if validation.rewrites and FLAG_EXPRESSION_CLEANUP not in flags:
        flags.append(FLAG_EXPRESSION_CLEANUP)
    warnings = [f"[{w.kind}] {w.message}" for w in validation.warnings] + list(compiled.warnings)
    return compiled.model_copy(update={"flags": flags, "warnings": warnings})
