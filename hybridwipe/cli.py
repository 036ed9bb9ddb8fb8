"""hybridwipe CLI entry point."""
import argparse
import logging
import sys
import time

import yaml
from botocore.exceptions import BotoCoreError

from hybridwipe.cleaner import HybridResourceCleaner, RESOURCE_TYPES
from hybridwipe.core.config import ConfigError, load_config, parse_duration
from hybridwipe.core.errors import CleanupError
from hybridwipe.core.logging import get_run_id, set_run_context, setup_logging
from hybridwipe.sweeper import Sweeper


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description='hybridwipe - hybrid nodes e2e test resource cleanup')
    parser.add_argument('-f', '--filename', '--config', dest='config', help='Path to YAML resources file')
    parser.add_argument('--region', help='Region to clean (overrides clusterRegion)')
    scope = parser.add_mutually_exclusive_group()
    scope.add_argument('--cluster-name', help='Delete resources of exactly this test cluster, regardless of age')
    scope.add_argument('--cluster-name-prefix', help='Delete resources of test clusters with this prefix')
    scope.add_argument('--all-clusters', action='store_true', help='Delete resources of any test cluster')
    parser.add_argument('--instance-age-threshold', type=_duration,
                        help='Minimum age for prefix/all-clusters deletion, e.g. 24h (default 24h)')
    parser.add_argument('-v', '--verbose', action='count', default=0,
                        help='Verbosity: -v=INFO, -vv=DEBUG')
    parser.add_argument('--json-logs', action='store_true',
                        help='Output logs in JSON format')
    parser.add_argument('--live-run', action='store_true',
                        help='Actually delete resources (default: dry-run)')

    sub = parser.add_subparsers(dest='command', required=True)
    sub.add_parser('sweep', help='Deregister SSM managed instances and delete activations')
    purge = sub.add_parser('purge', help='Delete every tagged test resource type in dependency order')
    purge.add_argument('--resource-type', action='append', choices=RESOURCE_TYPES, dest='resource_types',
                       help='Restrict to a resource type (repeatable)')
    return parser.parse_args(argv)


def _duration(value):
    try:
        return parse_duration(value)
    except ConfigError as e:
        raise argparse.ArgumentTypeError(str(e))


def build_config(args):
    # Load config from file or defaults
    config = load_config(args.config)

    # CLI args override config
    if args.region:
        config.region = args.region
    if args.cluster_name:
        config.cluster_name, config.cluster_name_prefix, config.all_clusters = args.cluster_name, "", False
    if args.cluster_name_prefix:
        config.cluster_name, config.cluster_name_prefix, config.all_clusters = "", args.cluster_name_prefix, False
    if args.all_clusters:
        config.cluster_name, config.cluster_name_prefix, config.all_clusters = "", "", True
    if args.instance_age_threshold is not None:
        config.instance_age_threshold = args.instance_age_threshold
    if args.verbose:
        config.verbosity = args.verbose
    if args.json_logs:
        config.json_logs = True
    if args.live_run:
        config.dry_run = False
    if getattr(args, 'resource_types', None):
        config.resource_types = args.resource_types
    config.validate()
    return config


def _countdown():
    logging.warning("LIVE RUN MODE - Resources WILL be deleted")
    try:
        for i in range(5, 0, -1):
            print(f"Starting in {i}s... (Ctrl+C to cancel)", end='\r')
            time.sleep(1)
        print(" " * 40, end='\r')
    except KeyboardInterrupt:
        logging.info("Cancelled by user")
        return False
    return True


def run(config, command):
    errors = []
    if command == 'purge':
        cleaner = HybridResourceCleaner(config)
        try:
            cleaner.purge()
        except (CleanupError, BotoCoreError) as e:
            logging.error(f"Purge failed: {e}")
            errors.append(e)
        # The sweeper catches SSM objects registered after the purge listed them
        logging.info("Cleaning up SSM resources with the sweeper...")
        sweeper = Sweeper(cleaner.session, config.region, cleaner.report)
        try:
            sweeper.run(config.sweeper_input())
        except (CleanupError, BotoCoreError) as e:
            errors.append(e)
        cleaner.print_report()
    else:
        sweeper = Sweeper(region=config.region)
        try:
            sweeper.run(config.sweeper_input())
        except (CleanupError, BotoCoreError) as e:
            errors.append(e)

    for e in errors:
        logging.error(str(e))
    if not errors:
        logging.info("Cleanup completed successfully!")
    return not errors


def main(argv=None):
    args = parse_args(argv)
    try:
        config = build_config(args)
    except (ConfigError, FileNotFoundError, yaml.YAMLError) as e:
        print(f"hybridwipe: {e}", file=sys.stderr)
        return 1

    setup_logging(config.verbosity, config.json_logs)
    scope = config.cluster_name or (config.cluster_name_prefix and f"{config.cluster_name_prefix}*") or "all-clusters"
    set_run_context(cluster=scope, region=config.region)
    logging.info(f"hybridwipe run_id={get_run_id()} dry_run={config.dry_run}")

    if not config.dry_run and not _countdown():
        return 1

    return 0 if run(config, args.command) else 1


if __name__ == '__main__':
    sys.exit(main())
