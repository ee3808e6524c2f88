#!/usr/bin/env python3
"""
JobRadius - job address geocoding and proximity search

Command-line entry point. Resolves job addresses, looks up stored
locations and runs nearby-job searches against the configured database,
printing JSON results.
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Optional

import yaml

from jobradius.config import load_config, generate_example_config
from jobradius.errors import (
    JobNotFoundError,
    JobRadiusError,
    NotResolvedError,
    StoreUnavailable,
    ValidationError,
)
from jobradius.service import AddressService

EXIT_CONFIG_ERROR = 1
EXIT_VALIDATION_ERROR = 2
EXIT_NOT_FOUND = 3
EXIT_STORE_UNAVAILABLE = 4


# Configure logging
def setup_logging(verbose: bool = False, log_file: Optional[str] = None):
    """Configure logging for the application."""
    level = logging.DEBUG if verbose else logging.INFO

    # Results go to stdout; keep logs on stderr so output stays parseable
    handlers = [logging.StreamHandler(sys.stderr)]

    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers
    )

    # Reduce noise from external libraries
    logging.getLogger('geopy').setLevel(logging.WARNING)
    logging.getLogger('urllib3').setLevel(logging.WARNING)


logger = logging.getLogger(__name__)


def exit_code_for(error: JobRadiusError) -> int:
    """Map an error to the process exit status."""
    if isinstance(error, ValidationError):
        return EXIT_VALIDATION_ERROR
    if isinstance(error, (NotResolvedError, JobNotFoundError)):
        return EXIT_NOT_FOUND
    if isinstance(error, StoreUnavailable):
        return EXIT_STORE_UNAVAILABLE
    return EXIT_CONFIG_ERROR


def import_jobs(service: AddressService, path: str) -> dict:
    """
    Load users, employers and jobs from a YAML file into the job tables.

    Expected layout::

        users:
          - {id: 5, email: "hr@acme.vn", username: "acme"}
        employers:
          - {id: 1, user_id: 5, company_name: "Acme", industry: "IT"}
        jobs:
          - {id: 10, employer_id: 1, title: "Backend Dev", location: "..."}

    Args:
        service: Service whose database receives the records.
        path: Path to the YAML file.

    Returns:
        Counts of imported users, employers and jobs.

    Raises:
        ValidationError: If the file cannot be read or a record is missing
            a required field. Nothing is written in that case.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ValidationError(f"Cannot read import file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ValidationError(f"Import file {path} must contain a mapping")

    users = data.get("users") or []
    employers = data.get("employers") or []
    jobs = data.get("jobs") or []

    required = [
        ("users", users, ("id",)),
        ("employers", employers, ("id", "company_name")),
        ("jobs", jobs, ("id", "title")),
    ]
    for section, records, fields in required:
        for index, record in enumerate(records):
            if not isinstance(record, dict):
                raise ValidationError(f"{section}[{index}] must be a mapping")
            missing = [name for name in fields if record.get(name) is None]
            if missing:
                raise ValidationError(f"{section}[{index}] is missing {', '.join(missing)}")

    for user in users:
        service.db.upsert_user(
            user_id=user["id"],
            email=user.get("email"),
            username=user.get("username"),
            avatar=user.get("avatar"),
        )

    for employer in employers:
        service.db.upsert_employer(
            employer_id=employer["id"],
            company_name=employer["company_name"],
            company_logo=employer.get("company_logo"),
            industry=employer.get("industry"),
            user_id=employer.get("user_id"),
        )

    for job in jobs:
        service.db.upsert_job(
            job_id=job["id"],
            title=job["title"],
            location=job.get("location"),
            employer_id=job.get("employer_id"),
            salary=job.get("salary"),
            job_type=job.get("job_type"),
            requirements=job.get("requirements"),
        )

    logger.info(
        f"Imported {len(users)} users, {len(employers)} employers and {len(jobs)} jobs from {path}"
    )
    return {"users": len(users), "employers": len(employers), "jobs": len(jobs)}


def print_json(payload) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2, default=str))


def print_stats(service: AddressService) -> None:
    """Print database statistics."""
    stats = service.db.get_stats()

    print("\n" + "=" * 40)
    print("JOBRADIUS LOCATION STATISTICS")
    print("=" * 40)
    print(f"Total jobs: {stats['total_jobs']}")
    print(f"Jobs with a location: {stats['resolved_jobs']}")
    print(f"  on default coordinates: {stats['default_locations']}")
    print(f"Jobs awaiting geocoding: {stats['unresolved_jobs']}")
    print("=" * 40 + "\n")


async def run(args: argparse.Namespace, service: AddressService) -> None:
    """Dispatch the selected command."""
    if args.import_jobs:
        print_json(import_jobs(service, args.import_jobs))
        return

    if args.stats:
        print_stats(service)
        return

    if args.resolve is not None:
        print_json(await service.geocode_address(args.resolve, force=args.force))
        return

    if args.address is not None:
        print_json(service.get_address(args.address))
        return

    if args.nearby:
        latitude, longitude = args.nearby
        print_json(service.find_jobs_nearby(latitude, longitude, args.radius))
        return

    if args.resolve_pending:
        print_json(await service.resolve_pending(include_defaults=args.retry_defaults))
        return


async def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="JobRadius - job address geocoding and proximity search",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s --resolve 42               Geocode the address of job 42
  %(prog)s --resolve 42 --force       Re-geocode even if already stored
  %(prog)s --address 42               Show the stored location of job 42
  %(prog)s --nearby 21.03 105.85      Jobs within 5 km of a point
  %(prog)s --nearby 21.03 105.85 --radius 10
  %(prog)s --resolve-pending          Geocode every job without a location
  %(prog)s --import-jobs jobs.yaml    Load employers and jobs from YAML
  %(prog)s --stats                    Show location statistics
  %(prog)s --init-config              Generate example config file
        """
    )

    parser.add_argument(
        '-c', '--config',
        default='config.yaml',
        help='Path to configuration file (default: config.yaml)'
    )

    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Enable verbose logging'
    )

    parser.add_argument(
        '--log-file',
        help='Write logs to file'
    )

    command = parser.add_mutually_exclusive_group()

    command.add_argument(
        '--resolve',
        metavar='JOB_ID',
        help='Geocode the address of a job and store it'
    )

    command.add_argument(
        '--address',
        metavar='JOB_ID',
        help='Show the stored location of a job'
    )

    command.add_argument(
        '--nearby',
        nargs=2,
        metavar=('LAT', 'LON'),
        help='List jobs near a coordinate'
    )

    command.add_argument(
        '--resolve-pending',
        action='store_true',
        help='Geocode every job that has no stored location'
    )

    command.add_argument(
        '--import-jobs',
        metavar='PATH',
        help='Import employers and jobs from a YAML file'
    )

    command.add_argument(
        '--stats',
        action='store_true',
        help='Show location statistics'
    )

    command.add_argument(
        '--init-config',
        action='store_true',
        help='Generate example configuration file'
    )

    parser.add_argument(
        '--radius',
        metavar='KM',
        help='Search radius in km for --nearby (default from config, 5 km)'
    )

    parser.add_argument(
        '--force',
        action='store_true',
        help='With --resolve: geocode again even if a location is stored'
    )

    parser.add_argument(
        '--retry-defaults',
        action='store_true',
        help='With --resolve-pending: also retry jobs on default coordinates'
    )

    args = parser.parse_args()

    # Set up logging
    setup_logging(verbose=args.verbose, log_file=args.log_file)

    # Handle init-config separately
    if args.init_config:
        generate_example_config()
        return

    if not any([
        args.resolve is not None, args.address is not None, args.nearby,
        args.resolve_pending, args.import_jobs, args.stats,
    ]):
        parser.print_help()
        return

    # Load configuration
    try:
        config = load_config(args.config)
        logger.info(f"Loaded configuration from: {args.config}")
    except FileNotFoundError as e:
        logger.error(str(e))
        logger.info("Run with --init-config to generate an example configuration file")
        sys.exit(EXIT_CONFIG_ERROR)
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(EXIT_CONFIG_ERROR)

    try:
        service = AddressService.from_config(config)
        await run(args, service)
    except JobRadiusError as e:
        logger.error(f"{type(e).__name__}: {e.message}")
        sys.exit(exit_code_for(e))


if __name__ == "__main__":
    asyncio.run(main())
