from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from pylifespan import logging
from pylifespan.otel import trace, with_tracer
from pylifespan.interfaces import ArchiveName, Datetime, Snapshot
from pylifespan.tarsnap import TarsnapArchiveManager
from pylifespan.retention.interfaces import RetentionPolicy

logger = logging.get_logger(__name__)
tracer = trace.get_tracer(__name__)


class ExpirePlan(BaseModel):
    """
    The keep/destroy partition of one archive listing.
    """

    model_config = ConfigDict(frozen=True)

    now: Datetime
    snapshots: list[Snapshot]
    keep: set[ArchiveName]
    destroy: list[ArchiveName]


class ExpireJob(BaseModel):
    """
    Expires the archives of one tarsnap account with a retention policy.
    """

    model_config = ConfigDict(frozen=True)

    retention_policy: RetentionPolicy
    archives: TarsnapArchiveManager = Field(default_factory=TarsnapArchiveManager)

    @with_tracer(tracer)
    def plan(self, now: Optional[datetime] = None) -> ExpirePlan:
        """
        List the archives and split them with the retention policy. Deletes nothing.

        Args:
            now (Optional[datetime], optional): Evaluation time. Defaults to the current UTC time.

        Returns:
            ExpirePlan: The snapshots, the names to keep and the sorted names to destroy.
        """
        now = Datetime(now) if now is not None else Datetime.now(timezone.utc)
        logger.debug(f"Current time is {now}")
        snapshots = self.archives.query()
        keep, destroy = self.retention_policy.split(snapshots, now)
        return ExpirePlan(now=now, snapshots=snapshots, keep=keep, destroy=sorted(destroy))

    @with_tracer(tracer)
    def expire(self, now: Optional[datetime] = None, dryrun: bool = False) -> ExpirePlan:
        """
        Delete every archive the retention policy does not keep.

        Args:
            now (Optional[datetime], optional): Evaluation time. Defaults to the current UTC time.
            dryrun (bool, optional): If True, compute and log but do not delete. Defaults to False.

        Returns:
            ExpirePlan: The computed partition.

        Raises:
            CollaboratorError: If listing or deleting archives fails.
            CatalogParseError: If the listing cannot be parsed, nothing is deleted.
        """
        logger.info(f"Expiring archives with generations {self.retention_policy}", dryrun=dryrun)
        plan = self.plan(now)
        self.archives.destroy(plan.destroy, dryrun=dryrun)
        return plan
