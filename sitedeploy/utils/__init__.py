"""Utility functions for sitedeploy."""

from sitedeploy.utils.hashing import content_md5, iter_artifact_files
from sitedeploy.utils.logging import configure_logging, get_logger

__all__ = [
    "configure_logging",
    "get_logger",
    "content_md5",
    "iter_artifact_files",
]
