"""Best-effort fallback pass for SSM objects missed by per-test teardown."""
import logging
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError

from hybridwipe.core.config import SweeperInput
from hybridwipe.core.errors import CleanupError, raise_for_errors
from hybridwipe.resources.ssm import SSMActivationCleaner, SSMManagedInstanceCleaner


class Sweeper:
    def __init__(self, session: Optional[boto3.Session] = None, region: Optional[str] = None, report=None):
        self.session = session or boto3.session.Session()
        self.region = region
        self.report = report if report is not None else {}

    def run(self, sweeper_input: SweeperInput) -> None:
        """Deregister managed instances, then delete activations.

        Both phases always run; their failures are raised together.
        """
        filter_input = sweeper_input.filter_input()
        phases = (
            ("SSM managed instances", SSMManagedInstanceCleaner(self.session, self.region, self.report)),
            ("SSM hybrid activations", SSMActivationCleaner(self.session, self.region, self.report)),
        )
        errors = []
        for description, cleaner in phases:
            try:
                self._sweep(description, cleaner, filter_input)
            except (CleanupError, BotoCoreError) as e:
                logging.error(f"Cleaning up {description} failed: {e}")
                wrapped = CleanupError(f"cleaning up {description}: {e}", operation=cleaner.name)
                wrapped.__cause__ = e
                errors.append(wrapped)
        raise_for_errors(errors, "running sweeper")

    def _sweep(self, description, cleaner, filter_input):
        resource_ids = cleaner.list_resources(filter_input)
        logging.info(f"Deleting {description}: {resource_ids}")
        if filter_input.dry_run:
            logging.info(f"Dry run, skipping deletion of {description}")
            return
        cleaner.delete_resources(resource_ids)
