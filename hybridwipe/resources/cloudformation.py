import logging
from abc import abstractmethod
from typing import NamedTuple

from botocore.exceptions import ClientError, WaiterError
from hybridwipe.constants import (
    STACK_DELETE_TIMEOUT,
    TEST_ARCHITECTURE_STACK_NAME_PREFIX,
    TEST_CREDENTIALS_STACK_NAME_PREFIX,
)
from hybridwipe.core.errors import CleanupError, is_stack_not_found
from hybridwipe.core.filters import ResourceWithTags, convert_tags, get_cluster_tag_value, should_delete_resource
from hybridwipe.core.retry import retry_delete
from hybridwipe.resources.base import ResourceCleaner

WAITER_DELAY = 30


class CFNStack(NamedTuple):
    stack_name: str
    cluster_name: str


def is_credential_stack(stack_name):
    # EKSHybridCI-Arch also starts with EKSHybridCI
    return (stack_name.startswith(TEST_CREDENTIALS_STACK_NAME_PREFIX)
            and not stack_name.startswith(TEST_ARCHITECTURE_STACK_NAME_PREFIX))


def is_architecture_stack(stack_name):
    return stack_name.startswith(TEST_ARCHITECTURE_STACK_NAME_PREFIX)


class StackCleaner(ResourceCleaner):
    """Base for the two families of test stacks, told apart by name prefix."""

    @staticmethod
    @abstractmethod
    def include_stack(stack_name):
        pass

    def list_stacks(self, filter_input):
        tagged = self.tagger(filter_input).get_tagged_resources('cloudformation:stack')
        cfn = self.client('cloudformation')
        stacks = []
        for resource in tagged:
            try:
                output = cfn.describe_stacks(StackName=resource.arn)
            except ClientError as e:
                if is_stack_not_found(e):
                    logging.info(f"Stack {resource.arn} already deleted")
                    continue
                raise CleanupError(f"describing stack {resource.arn}: {e}",
                                   resource_id=resource.arn, operation='describe_stacks') from e
            if not output.get('Stacks'):
                continue
            stack = output['Stacks'][0]
            # Describing by ARN still returns stacks that finished deleting
            if stack.get('StackStatus') == 'DELETE_COMPLETE':
                continue
            stack_name = stack['StackName']
            if not self.include_stack(stack_name):
                continue
            tags = convert_tags(stack.get('Tags'))
            candidate = ResourceWithTags(stack['StackId'], stack.get('CreationTime'), tags)
            if should_delete_resource(candidate, filter_input):
                stacks.append(CFNStack(stack_name, get_cluster_tag_value(tags)))
        return stacks

    def list_resources(self, filter_input):
        return [stack.stack_name for stack in self.list_stacks(filter_input)]

    def delete_resource(self, resource_id):
        self.delete_stack(resource_id)

    def delete_stack(self, stack_name):
        cfn = self.client('cloudformation')
        logging.info(f"Deleting CloudFormation stack {stack_name}")
        try:
            retry_delete(lambda: cfn.delete_stack(StackName=stack_name), f"Delete stack {stack_name}")
            cfn.get_waiter('stack_delete_complete').wait(
                StackName=stack_name,
                WaiterConfig={'Delay': WAITER_DELAY, 'MaxAttempts': STACK_DELETE_TIMEOUT // WAITER_DELAY},
            )
        except ClientError as e:
            if is_stack_not_found(e):
                logging.info(f"Stack {stack_name} already deleted")
                return
            raise CleanupError(f"deleting stack {stack_name}: {e}",
                               resource_id=stack_name, operation='delete_stack') from e
        except WaiterError as e:
            raise CleanupError(f"waiting for stack {stack_name} deletion: {e}",
                               resource_id=stack_name, operation='stack_delete_complete') from e
        logging.info(f"Deleted CloudFormation stack {stack_name}")


class CredentialStackCleaner(StackCleaner):
    name = 'cfn_credential_stacks'
    prerequisites = ['ec2_instances', 'ssm_managed_instances', 'eks_clusters']
    include_stack = staticmethod(is_credential_stack)


class ArchitectureStackCleaner(StackCleaner):
    name = 'cfn_architecture_stacks'
    prerequisites = ['ec2_instances', 'eks_clusters', 'cfn_credential_stacks']
    include_stack = staticmethod(is_architecture_stack)
