"""Base reporter interface."""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from osscmd.models import ObjectEntry, TransferCounts


class Reporter(ABC):
    """Abstract base class for transfer and command reporters."""

    @abstractmethod
    def on_transfer_start(self, label: str, total: int) -> None:
        """Called when a worker pool starts."""
        pass

    @abstractmethod
    def on_progress(self, label: str, finished: int, total: int) -> None:
        """Called once per completed work item, in completion order."""
        pass

    @abstractmethod
    def on_transfer_complete(self, label: str, counts: "TransferCounts") -> None:
        """Called when a bulk operation has its final counts."""
        pass

    @abstractmethod
    def on_entry(self, entry: "ObjectEntry") -> None:
        """Called for each object of a listing."""
        pass

    @abstractmethod
    def on_command_complete(self, command: str, result: Any) -> None:
        """Called with the typed result of a finished command."""
        pass
