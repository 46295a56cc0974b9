"""Runtime configuration."""

from enrichment_orchestrator.config.settings import ModelRate, Settings, get_settings

__all__ = ["ModelRate", "Settings", "get_settings"]
