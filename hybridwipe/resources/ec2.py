import logging
from botocore.exceptions import BotoCoreError, ClientError, WaiterError
from hybridwipe.constants import INSTANCE_TERMINATE_TIMEOUT
from hybridwipe.core.arn import InvalidARNError, resource_id_from_arn
from hybridwipe.core.errors import CleanupError, EC2_INSTANCE_NOT_FOUND, is_aws_error
from hybridwipe.core.filters import ResourceWithTags, convert_tags, should_delete_resource
from hybridwipe.core.retry import retry_delete
from hybridwipe.resources.base import ResourceCleaner

WAITER_DELAY = 15


def should_terminate_instance(instance, filter_input):
    if instance.get('State', {}).get('Name') == 'terminated':
        return False
    resource = ResourceWithTags(
        id=instance['InstanceId'],
        creation_time=instance.get('LaunchTime'),
        tags=convert_tags(instance.get('Tags')),
    )
    return should_delete_resource(resource, filter_input)


class EC2InstanceCleaner(ResourceCleaner):
    name = 'ec2_instances'
    prerequisites = []

    def list_resources(self, filter_input):
        tagged = self.tagger(filter_input).get_tagged_resources('ec2:instance')
        instance_ids = []
        for resource in tagged:
            try:
                instance_ids.append(resource_id_from_arn(resource.arn))
            except InvalidARNError as e:
                logging.warning(f"Skipping tagged instance with unparsable ARN: {e}")
        if not instance_ids:
            return []

        ec2 = self.client('ec2')
        to_terminate = []
        try:
            # An instance-id filter, unlike InstanceIds, does not fail on ids that no longer exist
            paginator = ec2.get_paginator('describe_instances')
            for page in paginator.paginate(Filters=[{'Name': 'instance-id', 'Values': instance_ids}]):
                for reservation in page.get('Reservations', []):
                    for instance in reservation.get('Instances', []):
                        if should_terminate_instance(instance, filter_input):
                            to_terminate.append(instance['InstanceId'])
        except ClientError as e:
            raise CleanupError(f"describing instances: {e}", operation='describe_instances') from e
        return to_terminate

    def delete_resource(self, resource_id):
        self.delete_instances([resource_id])

    def delete_resources(self, resource_ids):
        # Terminate as one batch so the waiter covers them together
        try:
            self.delete_instances(resource_ids)
        except (CleanupError, BotoCoreError) as e:
            for i_id in resource_ids:
                self._record_result(i_id, 'failed', str(e))
            raise
        for i_id in resource_ids:
            self._record_result(i_id, 'deleted')

    def delete_instances(self, instance_ids):
        if not instance_ids:
            return
        ec2 = self.client('ec2')
        logging.info(f"Terminating EC2 instances: {instance_ids}")
        try:
            retry_delete(lambda: ec2.terminate_instances(InstanceIds=instance_ids),
                         f"Terminate instances {instance_ids}")
        except ClientError as e:
            if not is_aws_error(e, *EC2_INSTANCE_NOT_FOUND):
                raise CleanupError(f"terminating instances {instance_ids}: {e}",
                                   resource_id=','.join(instance_ids), operation='terminate_instances') from e
            # Some of the batch is already gone; terminate the rest one by one
            logging.info(f"Some EC2 instances already deleted, retrying individually: {instance_ids}")
            if len(instance_ids) > 1:
                for i_id in instance_ids:
                    self.delete_instances([i_id])
            return

        waiter = ec2.get_waiter('instance_terminated')
        try:
            waiter.wait(
                InstanceIds=instance_ids,
                WaiterConfig={'Delay': WAITER_DELAY, 'MaxAttempts': INSTANCE_TERMINATE_TIMEOUT // WAITER_DELAY},
            )
        except WaiterError as e:
            raise CleanupError(f"waiting for instances {instance_ids} to terminate: {e}",
                               resource_id=','.join(instance_ids), operation='instance_terminated') from e
        logging.info(f"Terminated EC2 instances: {instance_ids}")
