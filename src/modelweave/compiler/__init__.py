"""Query compilation: expression analysis, join planning, SQL and pipeline rendering."""

from modelweave.compiler.document import DocumentPipelineCompiler
from modelweave.compiler.pipeline import CompilationPipeline
from modelweave.compiler.sql import SingleSourceCompiler

__all__ = ["CompilationPipeline", "DocumentPipelineCompiler", "SingleSourceCompiler"]
