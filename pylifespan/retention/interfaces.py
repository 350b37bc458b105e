from abc import ABC, abstractmethod
from datetime import datetime
from typing import Sequence, TypeAlias

from pydantic import BaseModel, ConfigDict

from pylifespan.interfaces import Snapshot

Keep: TypeAlias = set[str]
Destroy: TypeAlias = set[str]


class RetentionPolicy(ABC, BaseModel):
    """
    Abstract base class for archive retention policies.
    """

    model_config = ConfigDict(frozen=True)

    @abstractmethod
    def split(self, snapshots: Sequence[Snapshot], now: datetime) -> tuple[Keep, Destroy]:
        """
        Partition the names of the given snapshots into names to keep and names to destroy.

        Args:
            snapshots (Sequence[Snapshot]): The archive catalog, in listing order.
            now (datetime): The moment the policy is evaluated at.

        Returns:
            tuple[set[str], set[str]]: Names to keep and names to destroy.
        """
        pass
