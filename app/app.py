import argparse
import datetime as dt
import logging
import sys

from core import config
from core.exceptions import RollupError
from core.logs import setup_logging
from storage.pocketbase import PocketBaseClient
from controller.app_controller import AppController

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tracker", description="Project milestone roll-up")
    parser.add_argument("--url", default=config.BASE_URL)
    parser.add_argument("--log-level", default=config.LOG_LEVEL)
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("projects", help="list projects")

    ms = sub.add_parser("milestones", help="list a project's milestones with status")
    ms.add_argument("project_id")
    ms.add_argument("--today", type=dt.date.fromisoformat, default=None)

    rc = sub.add_parser("reconcile", help="re-derive stale milestone dates")
    rc.add_argument("project_id")
    return parser


def run(controller: AppController, args) -> int:
    if args.command == "projects":
        for p in controller.load_projects():
            print(f"{p.id}  {p.name}  {p.start_date or '-'} .. {p.end_date or '-'}")
    elif args.command == "milestones":
        for row in controller.milestone_rows(args.project_id, today=args.today):
            m = row["milestone"]
            print(f"{m.id}  {m.name}  [{row['status'].value}]  "
                  f"planned {m.planned_start_date or '-'} .. {m.planned_end_date or '-'}  "
                  f"actual {m.actual_start_date or '-'} .. {m.actual_end_date or '-'}  "
                  f"tasks={len(row['task_ids'])}")
    elif args.command == "reconcile":
        fixed = controller.reconcile(args.project_id)
        print(f"{len(fixed)} milestone(s) rewritten")
    return 0


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level, config.LOG_FILE)

    client = PocketBaseClient(args.url)
    try:
        client.login(config.IDENTITY, config.PASSWORD)
        return run(AppController(client), args)
    except RollupError as e:
        logger.error("%s failed: %s", args.command, e)
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
