import logging
from botocore.exceptions import ClientError
from hybridwipe.core.arn import InvalidARNError, resource_id_from_arn
from hybridwipe.core.errors import CleanupError, RESOURCE_NOT_FOUND, is_aws_error
from hybridwipe.core.filters import ResourceWithTags, convert_tags, resource_old_enough, should_delete_resource
from hybridwipe.core.retry import retry_delete
from hybridwipe.resources.base import ResourceCleaner


class RolesAnywhereCleaner(ResourceCleaner):
    """Shared listing and deletion for Roles Anywhere profiles and trust anchors.

    Many tagged candidates are expected to have vanished already, so
    not-found during lookup is skipped without logging.
    """
    resource_type = ''
    get_operation = ''
    delete_operation = ''
    detail_key = ''
    id_param = ''

    def list_resources(self, filter_input):
        tagged = self.tagger(filter_input).get_tagged_resources(self.resource_type)
        client = self.client('rolesanywhere')
        resource_ids = []
        for resource in tagged:
            try:
                resource_id = resource_id_from_arn(resource.arn)
            except InvalidARNError as e:
                logging.warning(f"Skipping tagged {self.resource_type} with unparsable ARN: {e}")
                continue
            try:
                detail = getattr(client, self.get_operation)(**{self.id_param: resource_id})[self.detail_key]
                if not resource_old_enough(detail.get('createdAt'), filter_input):
                    continue
                tags = client.list_tags_for_resource(resourceArn=resource.arn).get('tags', [])
            except ClientError as e:
                if is_aws_error(e, *RESOURCE_NOT_FOUND):
                    continue
                raise CleanupError(f"getting {self.resource_type} {resource_id}: {e}",
                                   resource_id=resource_id, operation=self.get_operation) from e
            candidate = ResourceWithTags(resource_id, detail.get('createdAt'), convert_tags(tags))
            if should_delete_resource(candidate, filter_input):
                resource_ids.append(resource_id)
        return resource_ids

    def delete_resource(self, resource_id):
        client = self.client('rolesanywhere')
        delete = getattr(client, self.delete_operation)
        try:
            retry_delete(lambda: delete(**{self.id_param: resource_id}),
                         f"Delete {self.resource_type} {resource_id}")
        except ClientError as e:
            if is_aws_error(e, *RESOURCE_NOT_FOUND):
                logging.info(f"{self.resource_type} {resource_id} already deleted")
                return
            raise CleanupError(f"deleting {self.resource_type} {resource_id}: {e}",
                               resource_id=resource_id, operation=self.delete_operation) from e
        logging.info(f"Deleted {self.resource_type} {resource_id}")


class RolesAnywhereProfileCleaner(RolesAnywhereCleaner):
    name = 'rolesanywhere_profiles'
    prerequisites = ['ec2_instances']
    resource_type = 'rolesanywhere:profile'
    get_operation = 'get_profile'
    delete_operation = 'delete_profile'
    detail_key = 'profile'
    id_param = 'profileId'

    def delete_profile(self, profile_id):
        self.delete_resource(profile_id)


class TrustAnchorCleaner(RolesAnywhereCleaner):
    name = 'rolesanywhere_trust_anchors'
    prerequisites = ['rolesanywhere_profiles']
    resource_type = 'rolesanywhere:trust-anchor'
    get_operation = 'get_trust_anchor'
    delete_operation = 'delete_trust_anchor'
    detail_key = 'trustAnchor'
    id_param = 'trustAnchorId'

    def delete_trust_anchor(self, anchor_id):
        self.delete_resource(anchor_id)
