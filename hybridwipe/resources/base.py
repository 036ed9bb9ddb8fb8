from abc import ABC, abstractmethod
import logging
import boto3
from typing import Dict, List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from hybridwipe.core.errors import AggregateCleanupError, CleanupError
from hybridwipe.core.filters import FilterInput
from hybridwipe.core.tagging import ResourceTagger


class ResourceCleaner(ABC):
    """Lists tagged resources of one type and deletes the ones the filter allows.

    Subclasses implement list_resources and an idempotent delete_resource;
    cleanup() drives both and records outcomes in the shared report.
    """
    name = ''
    prerequisites: List[str] = []

    def __init__(self, session: boto3.Session, region: Optional[str] = None,
                 report: Optional[Dict[str, Dict[str, List[str]]]] = None):
        self.session = session
        self.region = region
        self.report = report if report is not None else {}
        self._clients = {}

    def client(self, service: str):
        if service not in self._clients:
            if self.region:
                self._clients[service] = self.session.client(service, region_name=self.region)
            else:
                self._clients[service] = self.session.client(service)
        return self._clients[service]

    def tagger(self, filter_input: FilterInput) -> ResourceTagger:
        return ResourceTagger(self.client('resourcegroupstaggingapi'), filter_input.cluster_name)

    def _record_result(self, resource_id, outcome, message=''):
        entry = self.report.setdefault(self.name, {'deleted': [], 'failed': [], 'dry_run': []})
        entry[outcome].append(f"{resource_id} ({message})" if message else resource_id)

    @abstractmethod
    def list_resources(self, filter_input: FilterInput) -> List[str]:
        pass

    @abstractmethod
    def delete_resource(self, resource_id: str) -> None:
        pass

    def delete_resources(self, resource_ids: List[str]) -> None:
        """Delete every id, then raise all failures together."""
        errors = []
        for resource_id in resource_ids:
            try:
                self.delete_resource(resource_id)
            except (CleanupError, ClientError, BotoCoreError) as e:
                logging.error(f"[{self.name}] Failed to delete {resource_id}: {e}",
                              extra={'resource_type': self.name, 'resource_id': resource_id, 'action': 'delete'})
                self._record_result(resource_id, 'failed', str(e))
                errors.append(e)
            else:
                self._record_result(resource_id, 'deleted')
        if errors:
            raise AggregateCleanupError(errors, f"deleting {self.name}")

    def cleanup(self, filter_input: FilterInput) -> List[str]:
        resource_ids = self.list_resources(filter_input)
        logging.info(f"[{self.name}] Candidates for deletion: {resource_ids}")
        if not resource_ids:
            return []
        if filter_input.dry_run:
            for resource_id in resource_ids:
                logging.info(f"[Dry-Run] Would delete {self.name} {resource_id}",
                             extra={'resource_type': self.name, 'resource_id': resource_id, 'action': 'dry-run'})
                self._record_result(resource_id, 'dry_run')
            return resource_ids
        self.delete_resources(resource_ids)
        return resource_ids
