import humanize
from tabulate import tabulate

from pylifespan.expire import ExpirePlan

HEADERS = ['archive', 'timestamp', 'age', 'action']


def display_name(name: str) -> str:
    """
    Names with undecodable bytes carry surrogates, show those bytes as U+FFFD.
    """
    return name.encode('utf-8', 'surrogateescape').decode('utf-8', 'replace')


def render_plan(plan: ExpirePlan) -> str:
    """
    Render the plan as a table, oldest archive first.
    """
    rows = []
    for snapshot in sorted(plan.snapshots, key=lambda s: s.dt):
        rows.append([
            display_name(snapshot.name),
            str(snapshot.dt),
            humanize.naturaldelta(plan.now - snapshot.dt),
            'keep' if snapshot.name in plan.keep else 'delete',
        ])
    return tabulate(rows, headers=HEADERS, tablefmt="grid")
