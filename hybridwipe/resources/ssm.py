import logging
from botocore.exceptions import ClientError
from hybridwipe.constants import MANAGED_INSTANCE_DEREGISTER_TIMEOUT
from hybridwipe.core.arn import InvalidARNError, resource_id_from_arn, ssm_parameter_name_from_arn
from hybridwipe.core.errors import (
    CleanupError,
    SSM_ACTIVATION_NOT_FOUND,
    SSM_INSTANCE_NOT_FOUND,
    SSM_PARAMETER_NOT_FOUND,
    is_aws_error,
)
from hybridwipe.core.filters import ResourceWithTags, convert_tags, should_delete_resource
from hybridwipe.core.retry import poll_until, retry_delete
from hybridwipe.resources.base import ResourceCleaner

MANAGED_INSTANCE_RESOURCE_TYPE = 'ManagedInstance'


def should_delete_activation(activation, filter_input):
    resource = ResourceWithTags(
        id=activation['ActivationId'],
        creation_time=activation.get('CreatedDate'),
        tags=convert_tags(activation.get('Tags')),
    )
    return should_delete_resource(resource, filter_input)


class SSMActivationCleaner(ResourceCleaner):
    """Hybrid activations. describe_activations has no tag filter, so every page is read."""
    name = 'ssm_activations'
    prerequisites = ['ssm_managed_instances']

    def list_resources(self, filter_input):
        return self._list_activations(lambda activation: should_delete_activation(activation, filter_input))

    def list_activations_for_node(self, node_name):
        return self._list_activations(lambda activation: activation.get('DefaultInstanceName') == node_name)

    def _list_activations(self, should_delete):
        ssm = self.client('ssm')
        activation_ids = []
        try:
            for page in ssm.get_paginator('describe_activations').paginate():
                for activation in page.get('ActivationList', []):
                    if should_delete(activation):
                        activation_ids.append(activation['ActivationId'])
        except ClientError as e:
            raise CleanupError(f"listing SSM activations: {e}", operation='describe_activations') from e
        return activation_ids

    def delete_resource(self, resource_id):
        self.delete_activation(resource_id)

    def delete_activation(self, activation_id):
        ssm = self.client('ssm')
        logging.info(f"Deleting activation {activation_id}")
        try:
            retry_delete(lambda: ssm.delete_activation(ActivationId=activation_id),
                         f"Delete activation {activation_id}")
        except ClientError as e:
            if is_aws_error(e, *SSM_ACTIVATION_NOT_FOUND):
                logging.info(f"SSM activation {activation_id} already deleted")
                return
            raise CleanupError(f"deleting SSM activation {activation_id}: {e}",
                               resource_id=activation_id, operation='delete_activation') from e


class SSMManagedInstanceCleaner(ResourceCleaner):
    """Hybrid nodes registered with SSM.

    The last ping time stands in for the creation time, so instances that
    stopped reporting age out.
    """
    name = 'ssm_managed_instances'
    prerequisites = ['ec2_instances']

    def list_resources(self, filter_input):
        tagged = self.tagger(filter_input).get_tagged_resources('ssm:managed-instance')
        instance_ids = []
        for resource in tagged:
            try:
                instance_id = resource_id_from_arn(resource.arn)
            except InvalidARNError as e:
                logging.warning(f"Skipping tagged managed instance with unparsable ARN: {e}")
                continue
            instance = self._describe_instance(instance_id)
            if instance is None:
                logging.info(f"Managed instance {instance_id} already deregistered")
                continue
            if instance.get('ResourceType') != MANAGED_INSTANCE_RESOURCE_TYPE:
                continue
            candidate = ResourceWithTags(instance_id, instance.get('LastPingDateTime'), resource.tags)
            if should_delete_resource(candidate, filter_input):
                instance_ids.append(instance_id)
        return instance_ids

    def list_managed_instances_by_activation_ids(self, *activation_ids):
        if not activation_ids:
            return []
        ssm = self.client('ssm')
        instance_ids = []
        try:
            paginator = ssm.get_paginator('describe_instance_information')
            pages = paginator.paginate(Filters=[{'Key': 'ActivationIds', 'Values': list(activation_ids)}])
            for page in pages:
                for instance in page.get('InstanceInformationList', []):
                    if instance.get('ResourceType') != MANAGED_INSTANCE_RESOURCE_TYPE:
                        continue
                    if instance.get('ActivationId') in activation_ids:
                        instance_ids.append(instance['InstanceId'])
        except ClientError as e:
            raise CleanupError(f"listing SSM managed instances: {e}", operation='describe_instance_information') from e
        return instance_ids

    def _describe_instance(self, instance_id):
        ssm = self.client('ssm')
        try:
            resp = ssm.describe_instance_information(Filters=[{'Key': 'InstanceIds', 'Values': [instance_id]}])
        except ClientError as e:
            if is_aws_error(e, *SSM_INSTANCE_NOT_FOUND):
                return None
            raise CleanupError(f"describing managed instance {instance_id}: {e}",
                               resource_id=instance_id, operation='describe_instance_information') from e
        instances = resp.get('InstanceInformationList', [])
        return instances[0] if instances else None

    def delete_resource(self, resource_id):
        self.deregister_instance(resource_id)

    def deregister_instance(self, instance_id):
        ssm = self.client('ssm')
        logging.info(f"Deregistering managed instance {instance_id}")
        try:
            retry_delete(lambda: ssm.deregister_managed_instance(InstanceId=instance_id),
                         f"Deregister managed instance {instance_id}")
        except ClientError as e:
            if is_aws_error(e, *SSM_INSTANCE_NOT_FOUND):
                logging.info(f"Managed instance {instance_id} already deregistered")
                return
            raise CleanupError(f"deregistering managed instance {instance_id}: {e}",
                               resource_id=instance_id, operation='deregister_managed_instance') from e

    def wait_for_deregistration(self, instance_id, timeout=MANAGED_INSTANCE_DEREGISTER_TIMEOUT):
        ssm = self.client('ssm')

        def gone():
            resp = ssm.describe_instance_information(Filters=[{'Key': 'InstanceIds', 'Values': [instance_id]}])
            return not resp.get('InstanceInformationList')

        poll_until(gone, f"managed instance {instance_id} to deregister", timeout)


class SSMParameterCleaner(ResourceCleaner):
    name = 'ssm_parameters'
    prerequisites = []

    def list_resources(self, filter_input):
        tagged = self.tagger(filter_input).get_tagged_resources('ssm:parameter')
        names = []
        for resource in tagged:
            try:
                name = ssm_parameter_name_from_arn(resource.arn)
            except InvalidARNError as e:
                logging.warning(f"Skipping tagged parameter with unparsable ARN: {e}")
                continue
            parameter = self._describe_parameter(name)
            if parameter is None:
                logging.info(f"SSM parameter {name} already deleted")
                continue
            candidate = ResourceWithTags(name, parameter.get('LastModifiedDate'), resource.tags)
            if should_delete_resource(candidate, filter_input):
                names.append(name)
        return names

    def _describe_parameter(self, name):
        ssm = self.client('ssm')
        try:
            resp = ssm.describe_parameters(ParameterFilters=[{'Key': 'Name', 'Option': 'Equals', 'Values': [name]}])
        except ClientError as e:
            raise CleanupError(f"describing SSM parameter {name}: {e}",
                               resource_id=name, operation='describe_parameters') from e
        parameters = resp.get('Parameters', [])
        return parameters[0] if parameters else None

    def delete_resource(self, resource_id):
        self.delete_parameter(resource_id)

    def delete_parameter(self, name):
        ssm = self.client('ssm')
        logging.info(f"Deleting SSM parameter {name}")
        try:
            retry_delete(lambda: ssm.delete_parameter(Name=name), f"Delete SSM parameter {name}")
        except ClientError as e:
            if is_aws_error(e, *SSM_PARAMETER_NOT_FOUND):
                logging.info(f"SSM parameter {name} already deleted")
                return
            raise CleanupError(f"deleting SSM parameter {name}: {e}",
                               resource_id=name, operation='delete_parameter') from e
