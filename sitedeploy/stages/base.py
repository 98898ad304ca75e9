"""Base class for pipeline stages."""

from abc import ABC, abstractmethod

from sitedeploy.utils.logging import get_logger


class BaseStage(ABC):
    """Base class for the steps of a deployment pipeline.

    Stages should implement:
    - name: Stage identifier, also reported as the failing stage
    - description: What the stage does
    """

    def __init__(self):
        self.logger = get_logger(f"stage.{self.name}")

    @property
    @abstractmethod
    def name(self) -> str:
        """Stage name/identifier."""
        pass

    @property
    @abstractmethod
    def description(self) -> str:
        """Human-readable description of what this stage does."""
        pass
