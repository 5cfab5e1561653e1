"""Abstract collaborator interfaces used by the bulk engine."""

from abc import ABC, abstractmethod
from typing import Callable, Optional

from .models import OperationResult, WorkItem

PerItemOperation = Callable[[WorkItem], OperationResult]
ProgressCallback = Callable[[int, int, float], None]


class DirectorySession(ABC):
    """A connection to the directory service owned by whoever opened it."""

    @property
    @abstractmethod
    def identity(self) -> Optional[str]:
        """Identity (tenant) the session is bound to, if connected."""
        pass

    @abstractmethod
    def is_connected(self) -> bool:
        """Return True if the session can serve requests right now."""
        pass

    @abstractmethod
    def connect(self) -> None:
        """Establish the session.

        Raises:
            Exception: Any error; the driver reports it as a connection failure
        """
        pass

    @abstractmethod
    def disconnect(self) -> None:
        """Tear down the session."""
        pass
