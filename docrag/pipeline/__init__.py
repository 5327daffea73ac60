"""Ingestion orchestration and progress tracking."""

from docrag.pipeline.orchestrator import RAGOrchestrator
from docrag.pipeline.progress_tracker import ProgressTracker

__all__ = ["ProgressTracker", "RAGOrchestrator"]
