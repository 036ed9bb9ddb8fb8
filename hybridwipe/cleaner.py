import logging
import boto3
from botocore.exceptions import BotoCoreError

from hybridwipe.core.config import Config
from hybridwipe.core.dependency_graph import DependencyGraph
from hybridwipe.core.errors import CleanupError, raise_for_errors
from hybridwipe.core.logging import timed
from hybridwipe.resources.cloudformation import ArchitectureStackCleaner, CredentialStackCleaner
from hybridwipe.resources.ec2 import EC2InstanceCleaner
from hybridwipe.resources.eks import EKSClusterCleaner
from hybridwipe.resources.iam import IAMRoleCleaner, InstanceProfileCleaner
from hybridwipe.resources.rolesanywhere import RolesAnywhereProfileCleaner, TrustAnchorCleaner
from hybridwipe.resources.ssm import SSMActivationCleaner, SSMManagedInstanceCleaner, SSMParameterCleaner
from hybridwipe.resources.vpc import VPCCleaner

CLEANER_CLASSES = (
    EC2InstanceCleaner,
    SSMManagedInstanceCleaner,
    SSMActivationCleaner,
    SSMParameterCleaner,
    EKSClusterCleaner,
    CredentialStackCleaner,
    ArchitectureStackCleaner,
    RolesAnywhereProfileCleaner,
    TrustAnchorCleaner,
    InstanceProfileCleaner,
    IAMRoleCleaner,
    VPCCleaner,
)

RESOURCE_TYPES = tuple(cls.name for cls in CLEANER_CLASSES)


class HybridResourceCleaner:
    """Runs every resource cleaner for a test cluster scope in dependency order."""

    def __init__(self, config: Config, session=None):
        self.config = config
        self.session = session or boto3.session.Session(region_name=config.region)
        self.report = {}
        self.cleaners = {
            cls.name: cls(self.session, config.region, self.report) for cls in CLEANER_CLASSES
        }

    def execution_order(self):
        graph = DependencyGraph()
        for name, cleaner in self.cleaners.items():
            graph.add_node(name, cleaner.prerequisites)
        return [name for name in graph.get_execution_order()
                if name in self.cleaners and self.config.should_include_resource(name)]

    @timed
    def purge(self):
        """Clean every selected resource type, continuing past failures.

        Raises:
            AggregateCleanupError: one entry per failed cleaner
        """
        filter_input = self.config.filter_input()
        if filter_input.dry_run:
            logging.info("Running in dry-run mode - no resources will be deleted")

        order = self.execution_order()
        logging.info(f"Cleanup execution order: {order}")

        errors = []
        for name in order:
            logging.info(f"Cleaning {name}")
            try:
                self.cleaners[name].cleanup(filter_input)
            except (CleanupError, BotoCoreError) as e:
                logging.error(f"Cleaning {name} failed: {e}")
                errors.append(e)
        raise_for_errors(errors, "purging test resources")

    def print_report(self):
        print('\n=== Hybrid Nodes E2E Cleanup Report ===')
        for resource_type, results in self.report.items():
            print(f"\nResource: {resource_type}")
            for label, key in (('Deleted', 'deleted'), ('Failed', 'failed'), ('Would delete', 'dry_run')):
                items = results.get(key, [])
                if key == 'dry_run' and not items:
                    continue
                print(f'  {label}:')
                if items:
                    for item in items:
                        print(f"    - {item}")
                else:
                    print('    None')
