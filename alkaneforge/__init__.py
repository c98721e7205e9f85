"""alkaneforge: content-addressed compilation service for Alkanes contracts.

Hashes submitted contract source, serves previously built WASM artifacts from
a durable cache, deduplicates concurrent builds of the same source, bounds
concurrent ``cargo`` invocations, and extracts a callable interface (ABI)
from the source annotations.
"""

__version__ = "0.1.0"
__description__ = "Content-addressed, deduplicating compilation service for Alkanes contracts"

from alkaneforge.core.errors import CompilationError
from alkaneforge.core.orchestrator import CompilationOrchestrator, compile_contract

__all__ = ["CompilationOrchestrator", "CompilationError", "compile_contract", "__version__"]
