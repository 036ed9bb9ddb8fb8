"""Tag search through the Resource Groups Tagging API."""
import logging
from typing import List, NamedTuple

from botocore.exceptions import ClientError

from hybridwipe.constants import TEST_CLUSTER_TAG_KEY
from hybridwipe.core.errors import CleanupError
from hybridwipe.core.filters import Tag, convert_tags


class TaggedResource(NamedTuple):
    arn: str
    tags: List[Tag]


class ResourceTagger:
    """Finds resources carrying the cluster tag, optionally for one cluster.

    The tag filter only narrows the search; callers still run
    should_delete_resource on what comes back.
    """

    def __init__(self, client, cluster_name: str = ""):
        self.client = client
        self.cluster_name = cluster_name

    def get_tagged_resources(self, resource_type: str) -> List[TaggedResource]:
        tag_filter = {'Key': TEST_CLUSTER_TAG_KEY}
        if self.cluster_name:
            tag_filter['Values'] = [self.cluster_name]

        resources = []
        paginator = self.client.get_paginator('get_resources')
        try:
            for page in paginator.paginate(TagFilters=[tag_filter], ResourceTypeFilters=[resource_type]):
                for mapping in page.get('ResourceTagMappingList', []):
                    resources.append(TaggedResource(mapping['ResourceARN'], convert_tags(mapping.get('Tags'))))
        except ClientError as e:
            raise CleanupError(f"getting tagged {resource_type} resources: {e}", operation='get_resources') from e

        logging.debug(f"Found {len(resources)} tagged {resource_type} resources")
        return resources
