#!/usr/bin/env python3
"""
Job Board Command Line

Thin command-line view over MarketplaceClient for browsing and applying.

Usage:
    jobboard jobs                         # published jobs
    jobboard search "python"              # search published jobs
    jobboard job 7                        # one job
    jobboard members                      # total member count
    jobboard whoami                       # log in and show profile/role
    jobboard apply 7 "Interested" --portfolio https://example.com

Configuration comes from JOBBOARD_* environment variables or .env
(see jobboard.config.Settings).
"""

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from jobboard.client import MarketplaceClient
from jobboard.config import get_settings
from jobboard.errors import MarketplaceError
from jobboard.schemas import Job
from jobboard.services.authorization import NoProfile

logger = logging.getLogger(__name__)


def format_job(job: Job) -> str:
    skills = f" [{', '.join(job.skills)}]" if job.skills else ""
    status = "" if job.published else " (draft)"
    return f"#{job.id}  {job.title} - {job.location}, {job.employment_type}{skills}{status}"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="jobboard", description="Browse and apply to jobs")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("jobs", help="List published jobs")

    search = commands.add_parser("search", help="Search published jobs")
    search.add_argument("term")

    job = commands.add_parser("job", help="Show one job")
    job.add_argument("job_id", type=int)

    commands.add_parser("members", help="Total member count")
    commands.add_parser("whoami", help="Log in and show the current profile")

    apply = commands.add_parser("apply", help="Apply to a job")
    apply.add_argument("job_id", type=int)
    apply.add_argument("message")
    apply.add_argument("--portfolio", default=None, help="Portfolio or website URL")

    return parser


async def execute(client: MarketplaceClient, args: argparse.Namespace) -> int:
    if args.command == "jobs":
        jobs = await client.queries.published_jobs()
        for job in jobs:
            print(format_job(job))
        if not jobs:
            print("No published jobs")

    elif args.command == "search":
        jobs = await client.queries.search_jobs(args.term)
        for job in jobs:
            print(format_job(job))
        if not jobs:
            print(f"No jobs match {args.term!r}")

    elif args.command == "job":
        job = await client.queries.job(args.job_id)
        if job is None:
            print("The job you're looking for doesn't exist or has been removed.")
            return 1
        print(format_job(job))
        print()
        print(job.description)

    elif args.command == "members":
        count = await client.queries.member_count()
        print(count if count is not None else "unavailable")

    elif args.command == "whoami":
        await client.session.login()
        viewer = await client.gate.viewer()
        print(f"Principal: {client.session.principal}")
        print(f"Role: {viewer.role.value}")
        if isinstance(viewer, NoProfile):
            print("Please complete your profile setup first.")
        else:
            print(f"Name: {viewer.profile.name} ({viewer.profile.account_type.label})")

    elif args.command == "apply":
        await client.session.login()
        application_id = await client.mutations.apply_to_job(
            args.job_id, args.message, args.portfolio
        )
        print(f"Application submitted successfully! (#{application_id})")

    return 0


async def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    level = logging.DEBUG if args.verbose else getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(level=level, format='%(asctime)s - %(levelname)s - %(message)s')

    async with MarketplaceClient.from_settings(settings) as client:
        try:
            return await execute(client, args)
        except MarketplaceError as e:
            logger.debug("Command failed", exc_info=True)
            print(f"Error: {e}", file=sys.stderr)
            return 1


def run() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
