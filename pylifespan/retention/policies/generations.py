"""
Grandfather-father-son retention.

Each generation asks for count snapshots near the instants now - interval * i,
i = 1..count. The real snapshots closest to those instants are kept, the union
over all generations plus the newest snapshot is the keep set.
"""
from datetime import datetime
from operator import attrgetter
from typing import Callable, Iterable, Self, Sequence, TypeVar

from pylifespan import logging
from pylifespan.interfaces import Datetime, Generation, Snapshot, parse_generations
from pylifespan.retention.interfaces import RetentionPolicy, Keep, Destroy

logger = logging.get_logger(__name__)

T = TypeVar('T')


def filter_by_generation(items: Sequence[T],
                         generation: Generation,
                         now: datetime,
                         key: Callable[[T], datetime] = attrgetter('dt')) -> list[T]:
    """
    Select the items closest to each target instant of a generation.

    Ties on distance go to the item that comes first in iteration order, an
    item matched by several targets is selected once.

    Args:
        items (Sequence[T]): Anything with a timestamp, read through key.
        generation (Generation): The interval and number of targets.
        now (datetime): Targets are counted back from here, now itself is not a target.
        key (Callable[[T], datetime], optional): Timestamp accessor. Defaults to the dt attribute.

    Returns:
        list[T]: At most generation.count items, sorted ascending by timestamp.
    """
    items = list(items)
    if not items:
        return []

    oldest = min(key(item) for item in items)
    selected: list[T] = []
    for i in range(1, generation.count + 1):
        target = now - generation.interval * i
        closest = min(items, key=lambda item: abs(key(item) - target))
        if closest not in selected:
            selected.append(closest)
        # every older target resolves to the same oldest item
        if target <= oldest:
            break

    return sorted(selected, key=key)


class GenerationsPolicy(RetentionPolicy):
    """
    Retention policy that keeps snapshots spaced out over several generations,
    e.g. 6 daily, 4 monthly and 1 yearly.
    """

    generations: list[Generation]

    def __str__(self):
        return ', '.join(str(g) for g in self.generations)

    @classmethod
    def from_args(cls, tokens: Iterable[str]) -> Self:
        """
        Build the policy from command line arguments such as ["6D", "4M", "1Y"].

        Raises:
            PolicyParseError: If any argument does not match <number><H|D|W|M|Y>.
        """
        return cls(generations=parse_generations(tokens))

    def keep(self, snapshots: Sequence[Snapshot], now: datetime) -> Keep:
        """
        Compute the names of the snapshots to keep.

        The catalog is sorted by timestamp first, so a snapshot equally close to
        a target as another one loses to the older of the two. The newest
        snapshot is always kept, among several with the same newest timestamp
        the one listed last.

        Args:
            snapshots (Sequence[Snapshot]): The archive catalog, in listing order.
            now (datetime): The moment the policy is evaluated at, naive values are UTC.

        Returns:
            set[str]: Names of the snapshots to keep.
        """
        # listing timestamps have whole second resolution
        now = Datetime(now).replace(microsecond=0)
        snapshots = sorted(snapshots, key=lambda s: s.dt)

        keep: Keep = set()
        for generation in self.generations:
            selected = filter_by_generation(snapshots, generation, now)
            logger.debug("Generation selected snapshots",
                         generation=str(generation),
                         snapshots=[s.name for s in selected])
            keep.update(s.name for s in selected)

        latest = max(reversed(snapshots), key=lambda s: s.dt, default=None)
        if latest is not None:
            keep.add(latest.name)

        return keep

    def split(self, snapshots: Sequence[Snapshot], now: datetime) -> tuple[Keep, Destroy]:
        """
        Split the catalog into names to keep and names to destroy.

        Returns:
            tuple[set[str], set[str]]: Disjoint sets covering every name in the catalog.
        """
        keep = self.keep(snapshots, now)
        destroy = {s.name for s in snapshots} - keep
        return (keep, destroy)
