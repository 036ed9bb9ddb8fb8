import logging
from botocore.exceptions import ClientError
from hybridwipe.constants import TEST_CREDENTIALS_STACK_NAME_PREFIX
from hybridwipe.core.errors import CleanupError, IAM_NOT_FOUND, is_aws_error
from hybridwipe.core.filters import ResourceWithTags, convert_tags, resource_old_enough, should_delete_resource
from hybridwipe.core.retry import retry_delete
from hybridwipe.resources.base import ResourceCleaner


def _list_tags(iam, operation, **kwargs):
    tags = []
    for page in iam.get_paginator(operation).paginate(**kwargs):
        tags.extend(page.get('Tags', []))
    return tags


class IAMRoleCleaner(ResourceCleaner):
    name = 'iam_roles'
    prerequisites = ['ec2_instances', 'iam_instance_profiles', 'rolesanywhere_profiles', 'cfn_credential_stacks']

    def list_resources(self, filter_input):
        # list_roles cannot filter by tag, so page everything and only fetch
        # tags for roles that look like ours and are old enough
        iam = self.client('iam')
        roles = []
        try:
            for page in iam.get_paginator('list_roles').paginate():
                for role in page.get('Roles', []):
                    role_name = role['RoleName']
                    if not role_name.startswith(TEST_CREDENTIALS_STACK_NAME_PREFIX):
                        continue
                    if not resource_old_enough(role.get('CreateDate'), filter_input):
                        continue
                    tags = _list_tags(iam, 'list_role_tags', RoleName=role_name)
                    resource = ResourceWithTags(role_name, role.get('CreateDate'), convert_tags(tags))
                    if should_delete_resource(resource, filter_input):
                        roles.append(role_name)
        except ClientError as e:
            raise CleanupError(f"listing IAM roles: {e}", operation='list_roles') from e
        return roles

    def delete_resource(self, resource_id):
        self.delete_role(resource_id)

    def delete_role(self, role_name):
        iam = self.client('iam')
        try:
            self._remove_role_from_instance_profiles(iam, role_name)
            self._remove_policies_from_role(iam, role_name)
            retry_delete(lambda: iam.delete_role(RoleName=role_name), f"Delete IAM role {role_name}")
        except ClientError as e:
            if is_aws_error(e, *IAM_NOT_FOUND):
                logging.info(f"IAM role {role_name} already deleted")
                return
            raise CleanupError(f"deleting IAM role {role_name}: {e}",
                               resource_id=role_name, operation='delete_role') from e
        logging.info(f"Deleted IAM role {role_name}")

    def _remove_role_from_instance_profiles(self, iam, role_name):
        paginator = iam.get_paginator('list_instance_profiles_for_role')
        for page in paginator.paginate(RoleName=role_name):
            for profile in page.get('InstanceProfiles', []):
                p_name = profile['InstanceProfileName']
                logging.info(f"Removing role {role_name} from instance profile {p_name}")
                try:
                    retry_delete(
                        lambda: iam.remove_role_from_instance_profile(InstanceProfileName=p_name, RoleName=role_name),
                        f"Remove {role_name} from {p_name}")
                except ClientError as e:
                    if not is_aws_error(e, *IAM_NOT_FOUND):
                        raise
                    logging.info(f"Instance profile {p_name} already detached from {role_name}")

    def _remove_policies_from_role(self, iam, role_name):
        for page in iam.get_paginator('list_attached_role_policies').paginate(RoleName=role_name):
            for policy in page.get('AttachedPolicies', []):
                p_arn = policy['PolicyArn']
                logging.info(f"Detaching policy {p_arn} from {role_name}")
                retry_delete(lambda: iam.detach_role_policy(RoleName=role_name, PolicyArn=p_arn),
                             f"Detach policy {p_arn} from {role_name}")
        for page in iam.get_paginator('list_role_policies').paginate(RoleName=role_name):
            for pol in page.get('PolicyNames', []):
                logging.info(f"Deleting inline policy {pol} from {role_name}")
                retry_delete(lambda: iam.delete_role_policy(RoleName=role_name, PolicyName=pol),
                             f"Delete inline policy {pol} from {role_name}")


class InstanceProfileCleaner(ResourceCleaner):
    name = 'iam_instance_profiles'
    prerequisites = ['ec2_instances']

    def list_resources(self, filter_input):
        iam = self.client('iam')
        profiles = []
        try:
            for page in iam.get_paginator('list_instance_profiles').paginate():
                for profile in page.get('InstanceProfiles', []):
                    p_name = profile['InstanceProfileName']
                    if not p_name.startswith(TEST_CREDENTIALS_STACK_NAME_PREFIX):
                        continue
                    if not resource_old_enough(profile.get('CreateDate'), filter_input):
                        continue
                    tags = _list_tags(iam, 'list_instance_profile_tags', InstanceProfileName=p_name)
                    resource = ResourceWithTags(p_name, profile.get('CreateDate'), convert_tags(tags))
                    if should_delete_resource(resource, filter_input):
                        profiles.append(p_name)
        except ClientError as e:
            raise CleanupError(f"listing IAM instance profiles: {e}", operation='list_instance_profiles') from e
        return profiles

    def delete_resource(self, resource_id):
        self.delete_instance_profile(resource_id)

    def delete_instance_profile(self, profile_name):
        iam = self.client('iam')
        try:
            # A profile still holding a role cannot be deleted
            profile = iam.get_instance_profile(InstanceProfileName=profile_name)['InstanceProfile']
            for role in profile.get('Roles', []):
                role_name = role['RoleName']
                logging.info(f"Removing role {role_name} from instance profile {profile_name}")
                retry_delete(
                    lambda: iam.remove_role_from_instance_profile(InstanceProfileName=profile_name,
                                                                  RoleName=role_name),
                    f"Remove {role_name} from {profile_name}")
            retry_delete(lambda: iam.delete_instance_profile(InstanceProfileName=profile_name),
                         f"Delete instance profile {profile_name}")
        except ClientError as e:
            if is_aws_error(e, *IAM_NOT_FOUND):
                logging.info(f"IAM instance profile {profile_name} already deleted")
                return
            raise CleanupError(f"deleting IAM instance profile {profile_name}: {e}",
                               resource_id=profile_name, operation='delete_instance_profile') from e
        logging.info(f"Deleted IAM instance profile {profile_name}")
