import logging
from botocore.exceptions import ClientError, WaiterError
from hybridwipe.constants import EKS_CLUSTER_DELETE_TIMEOUT
from hybridwipe.core.arn import InvalidARNError, eks_cluster_name_from_arn
from hybridwipe.core.errors import CleanupError, RESOURCE_NOT_FOUND, is_aws_error
from hybridwipe.core.filters import ResourceWithTags, convert_tags, should_delete_resource
from hybridwipe.core.retry import retry_delete
from hybridwipe.resources.base import ResourceCleaner

WAITER_DELAY = 30


def should_delete_cluster(cluster, filter_input):
    resource = ResourceWithTags(
        id=cluster['name'],
        creation_time=cluster.get('createdAt'),
        tags=convert_tags(cluster.get('tags')),
    )
    return should_delete_resource(resource, filter_input)


class EKSClusterCleaner(ResourceCleaner):
    name = 'eks_clusters'
    prerequisites = ['ec2_instances', 'ssm_managed_instances']

    def list_resources(self, filter_input):
        tagged = self.tagger(filter_input).get_tagged_resources('eks:cluster')
        eks = self.client('eks')
        cluster_names = []
        for resource in tagged:
            try:
                cluster_name = eks_cluster_name_from_arn(resource.arn)
            except InvalidARNError as e:
                logging.warning(f"Skipping tagged cluster with unparsable ARN: {e}")
                continue
            try:
                cluster = eks.describe_cluster(name=cluster_name)['cluster']
            except ClientError as e:
                if is_aws_error(e, *RESOURCE_NOT_FOUND):
                    logging.info(f"Cluster {cluster_name} already deleted")
                    continue
                raise CleanupError(f"describing cluster {cluster_name}: {e}",
                                   resource_id=cluster_name, operation='describe_cluster') from e
            if should_delete_cluster(cluster, filter_input):
                cluster_names.append(cluster_name)
        return cluster_names

    def delete_resource(self, resource_id):
        self.delete_cluster(resource_id)

    def delete_cluster(self, cluster_name):
        eks = self.client('eks')
        logging.info(f"Deleting EKS cluster {cluster_name}")
        try:
            self.delete_nodegroups(cluster_name)
            retry_delete(lambda: eks.delete_cluster(name=cluster_name), f"Delete EKS cluster {cluster_name}")
            eks.get_waiter('cluster_deleted').wait(
                name=cluster_name,
                WaiterConfig={'Delay': WAITER_DELAY, 'MaxAttempts': EKS_CLUSTER_DELETE_TIMEOUT // WAITER_DELAY},
            )
        except ClientError as e:
            if is_aws_error(e, *RESOURCE_NOT_FOUND):
                logging.info(f"Cluster {cluster_name} already deleted")
                return
            raise CleanupError(f"deleting cluster {cluster_name}: {e}",
                               resource_id=cluster_name, operation='delete_cluster') from e
        except WaiterError as e:
            raise CleanupError(f"waiting for cluster {cluster_name} deletion: {e}",
                               resource_id=cluster_name, operation='cluster_deleted') from e
        logging.info(f"Deleted EKS cluster {cluster_name}")

    def delete_nodegroups(self, cluster_name):
        """Managed node groups block cluster deletion; hybrid-only clusters usually have none."""
        eks = self.client('eks')
        nodegroups = []
        for page in eks.get_paginator('list_nodegroups').paginate(clusterName=cluster_name):
            nodegroups.extend(page.get('nodegroups', []))
        for ng in nodegroups:
            logging.info(f"Deleting nodegroup {ng} in cluster {cluster_name}")
            try:
                retry_delete(lambda: eks.delete_nodegroup(clusterName=cluster_name, nodegroupName=ng),
                             f"Delete nodegroup {ng}")
            except ClientError as e:
                if not is_aws_error(e, *RESOURCE_NOT_FOUND):
                    raise
        for ng in nodegroups:
            eks.get_waiter('nodegroup_deleted').wait(
                clusterName=cluster_name,
                nodegroupName=ng,
                WaiterConfig={'Delay': WAITER_DELAY, 'MaxAttempts': EKS_CLUSTER_DELETE_TIMEOUT // WAITER_DELAY},
            )
