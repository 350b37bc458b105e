import sys
import argparse
from typing import Optional, Sequence

import dotenv

# loads enviroment variables from a .env file in the working directory, before
# the logging and otel modules read their levels and exporters on import
dotenv.load_dotenv(dotenv.find_dotenv(usecwd=True))

from pylifespan import logging  # noqa: E402
from pylifespan.errors import LifespanError  # noqa: E402
from pylifespan.expire import ExpireJob  # noqa: E402
from pylifespan.report import render_plan  # noqa: E402
from pylifespan.tarsnap import TarsnapArchiveManager  # noqa: E402
from pylifespan.retention.policies.generations import GenerationsPolicy  # noqa: E402

logger = logging.get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='pylifespan',
        description='Expires old tarsnap archives, keeping a few generations of them.',
        epilog='Example: "pylifespan 6D 4M 1Y" keeps 6 daily, 4 monthly and 1 yearly archive.'
    )
    parser.add_argument(
        'generations',
        nargs='+',
        metavar='GENERATION',
        help='Generations to keep: <number><H|D|W|M|Y> <...>'
    )
    parser.add_argument(
        '-v', '--verbose',
        action='count',
        default=0,
        help='Show verbose output. Use -vv for even more verbose'
    )
    parser.add_argument(
        '-d', '--dry-run',
        action='store_true',
        help="Don't actually delete anything. Useful together with --verbose"
    )
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    if args.verbose:
        logging.set_verbosity(args.verbose)

    try:
        policy = GenerationsPolicy.from_args(args.generations)
        logger.debug(f"Parsed generations: {policy}")
        job = ExpireJob(retention_policy=policy, archives=TarsnapArchiveManager.from_env())
        plan = job.expire(dryrun=args.dry_run)
    except LifespanError as e:
        logger.error(str(e))
        return 1

    if args.dry_run:
        print(render_plan(plan))
    return 0


if __name__ == '__main__':
    sys.exit(main())
