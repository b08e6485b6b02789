"""Maintenance CLI for the analysis dedup engine.

Loads environment variables, opens the configured record store and runs one
operation against it: check a parameter set for duplicates, print a user's
stats or duplicate groups, or clean up old duplicate records.
"""
from dotenv import load_dotenv
import argparse
import asyncio
import json
import sys

# Load environment variables first, before any other imports
load_dotenv()

from analysis_dedup.config import get_config
from analysis_dedup.dedup import DedupService
from analysis_dedup.errors import DedupError
from analysis_dedup.models import AnalysisRequest
from analysis_dedup.store import create_record_store
from analysis_dedup.utils.logger import configure_logging, log_error, log_info


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Inspect and maintain the analysis dedup record store.")
    parser.add_argument('--backend', choices=['redis', 'file', 'memory'], help='Override the record store backend.')
    sub = parser.add_subparsers(dest='command', required=True)

    check = sub.add_parser('check', help='Check a parameter set for duplicates.')
    check.add_argument('--user', required=True, help='User id owning the request.')
    check.add_argument('--tool', required=True, help='Tool slug.')
    check.add_argument('--params', required=True, help='Parameters as a JSON object.')

    stats = sub.add_parser('stats', help='Print analysis stats for a user.')
    stats.add_argument('--user', required=True)

    groups = sub.add_parser('groups', help='Print duplicate groups for a user.')
    groups.add_argument('--user', required=True)

    cleanup = sub.add_parser('cleanup', help='Delete old duplicate records of a user.')
    cleanup.add_argument('--user', required=True)
    cleanup.add_argument('--days', type=int, help='Minimum age in days (default from config).')

    return parser


async def run(args: argparse.Namespace) -> dict:
    config = get_config()
    settings = config.store_settings()
    if args.backend:
        settings['backend'] = args.backend

    store = await create_record_store(settings)
    service = DedupService(store, config)
    try:
        if args.command == 'check':
            request = AnalysisRequest(
                user_id=args.user,
                tool_slug=args.tool,
                tool_name=args.tool,
                parameters=json.loads(args.params),
            )
            return (await service.check_for_duplicates(request)).to_dict()

        if args.command == 'stats':
            return await service.get_user_analysis_stats(args.user)

        if args.command == 'groups':
            groups = await service.get_duplicate_groups(args.user)
            return {
                "group_count": len(groups),
                "groups": [[record.to_dict() for record in group] for group in groups],
            }

        removed = await service.cleanup_duplicates(args.user, args.days)
        return {"removed": removed}
    finally:
        await store.close()


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    config = get_config()
    configure_logging(config.log_level, config.log_format)
    config.log_configuration()

    issues = config.validate_configuration()
    for issue in issues:
        log_info(f"Configuration note: {issue}")

    try:
        output = asyncio.run(run(args))
    except (DedupError, json.JSONDecodeError) as e:
        log_error("Command failed", command=args.command, error=str(e))
        print(f"❌ {e}", file=sys.stderr)
        return 1

    print(json.dumps(output, indent=2, ensure_ascii=False, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
