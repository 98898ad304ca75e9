"""Static site deployment orchestrator."""

__version__ = "0.1.0"
