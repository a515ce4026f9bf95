"""LLM post-processing of finished scout output."""

from scout_service.results.processor import ResultProcessor, build_result_processor
from scout_service.results.tools import ToolExecutor, ToolSpec, build_registry

__all__ = [
    "ResultProcessor",
    "ToolExecutor",
    "ToolSpec",
    "build_registry",
    "build_result_processor",
]
