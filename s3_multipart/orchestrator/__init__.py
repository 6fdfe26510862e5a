"""Orchestrator package - coordinates the multipart upload workflow."""
from .core import UploadOrchestrator

__all__ = ["UploadOrchestrator"]
