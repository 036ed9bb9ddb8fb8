import logging
from botocore.exceptions import ClientError
from hybridwipe.constants import TEST_CLUSTER_TAG_KEY
from hybridwipe.core.errors import CleanupError, EC2_VPC_NOT_FOUND, VPCTeardownError, is_aws_error
from hybridwipe.core.filters import ResourceWithTags, convert_tags, should_delete_resource
from hybridwipe.core.retry import retry_delete
from hybridwipe.resources.base import ResourceCleaner

VPC_TEARDOWN_STEPS = ('internet-gateways', 'subnets', 'route-tables', 'security-groups', 'vpc')


class VPCCleaner(ResourceCleaner):
    """Deletes tagged VPCs together with the networking objects inside them.

    Teardown order is fixed: internet gateways, subnets, non-main route tables,
    non-default security groups, then the VPC. Each step describes what is left
    and treats not-found as done, so a half torn down VPC can be retried.
    """
    name = 'vpcs'
    prerequisites = ['ec2_instances', 'eks_clusters', 'cfn_architecture_stacks']

    def list_resources(self, filter_input):
        logging.info("Listing tagged VPCs")
        ec2 = self.client('ec2')
        vpc_ids = []
        try:
            paginator = ec2.get_paginator('describe_vpcs')
            for page in paginator.paginate(Filters=[{'Name': 'tag-key', 'Values': [TEST_CLUSTER_TAG_KEY]}]):
                for vpc in page.get('Vpcs', []):
                    # VPCs expose no creation time, so only the tag decides
                    resource = ResourceWithTags(id=vpc['VpcId'], tags=convert_tags(vpc.get('Tags')))
                    if should_delete_resource(resource, filter_input):
                        vpc_ids.append(vpc['VpcId'])
        except ClientError as e:
            raise CleanupError(f"describing VPCs: {e}", operation='describe_vpcs') from e
        return vpc_ids

    def delete_resource(self, resource_id):
        self.delete_vpc(resource_id)

    def delete_vpc(self, vpc_id):
        logging.info(f"Tearing down VPC {vpc_id}")
        steps = zip(VPC_TEARDOWN_STEPS, (
            self.delete_internet_gateways,
            self.delete_subnets,
            self.delete_route_tables,
            self.delete_security_groups,
            self.delete_vpc_only,
        ))
        for step, func in steps:
            try:
                func(vpc_id)
            except (ClientError, CleanupError) as e:
                raise VPCTeardownError(vpc_id, step, e) from e
        logging.info(f"Deleted VPC {vpc_id}")

    def _call(self, operation, description):
        try:
            retry_delete(operation, description)
        except ClientError as e:
            if not is_aws_error(e, *EC2_VPC_NOT_FOUND):
                raise
            logging.info(f"{description}: already deleted")

    def delete_internet_gateways(self, vpc_id):
        ec2 = self.client('ec2')
        igws = ec2.describe_internet_gateways(
            Filters=[{'Name': 'attachment.vpc-id', 'Values': [vpc_id]}]
        ).get('InternetGateways', [])
        for igw in igws:
            igw_id = igw['InternetGatewayId']
            logging.info(f"Detaching IGW {igw_id} from {vpc_id}")
            self._call(lambda: ec2.detach_internet_gateway(InternetGatewayId=igw_id, VpcId=vpc_id),
                       f"Detach IGW {igw_id}")
            logging.info(f"Deleting IGW {igw_id}")
            self._call(lambda: ec2.delete_internet_gateway(InternetGatewayId=igw_id), f"Delete IGW {igw_id}")

    def delete_subnets(self, vpc_id):
        ec2 = self.client('ec2')
        subnets = ec2.describe_subnets(Filters=[{'Name': 'vpc-id', 'Values': [vpc_id]}]).get('Subnets', [])
        for subnet in subnets:
            sn_id = subnet['SubnetId']
            logging.info(f"Deleting Subnet {sn_id}")
            self._call(lambda: ec2.delete_subnet(SubnetId=sn_id), f"Delete Subnet {sn_id}")

    def delete_route_tables(self, vpc_id):
        ec2 = self.client('ec2')
        main = ec2.describe_route_tables(Filters=[
            {'Name': 'vpc-id', 'Values': [vpc_id]},
            {'Name': 'association.main', 'Values': ['true']},
        ]).get('RouteTables', [])
        main_ids = {rt['RouteTableId'] for rt in main}

        rts = ec2.describe_route_tables(Filters=[{'Name': 'vpc-id', 'Values': [vpc_id]}]).get('RouteTables', [])
        for rt in rts:
            rt_id = rt['RouteTableId']
            if rt_id in main_ids:
                continue
            for assoc in rt.get('Associations', []):
                assoc_id = assoc.get('RouteTableAssociationId')
                if not assoc_id or assoc.get('Main', False):
                    continue
                logging.info(f"Disassociating RT {rt_id} ({assoc_id})")
                self._call(lambda: ec2.disassociate_route_table(AssociationId=assoc_id),
                           f"Disassociate RT {rt_id}")
            logging.info(f"Deleting Route Table {rt_id}")
            self._call(lambda: ec2.delete_route_table(RouteTableId=rt_id), f"Delete RT {rt_id}")

    def delete_security_groups(self, vpc_id):
        ec2 = self.client('ec2')
        sgs = ec2.describe_security_groups(
            Filters=[{'Name': 'vpc-id', 'Values': [vpc_id]}]
        ).get('SecurityGroups', [])
        sgs = [sg for sg in sgs if sg.get('GroupName') != 'default']

        # Rules can reference other groups, so revoke everything before deleting any group
        for sg in sgs:
            sg_id = sg['GroupId']
            if sg.get('IpPermissions'):
                try:
                    ec2.revoke_security_group_ingress(GroupId=sg_id, IpPermissions=sg['IpPermissions'])
                except ClientError as e:
                    logging.info(f"Error revoking ingress rules for SG {sg_id}: {e}")
            if sg.get('IpPermissionsEgress'):
                try:
                    ec2.revoke_security_group_egress(GroupId=sg_id, IpPermissions=sg['IpPermissionsEgress'])
                except ClientError as e:
                    logging.info(f"Error revoking egress rules for SG {sg_id}: {e}")

        for sg in sgs:
            sg_id = sg['GroupId']
            logging.info(f"Deleting Security Group {sg_id} ({sg.get('GroupName')})")
            self._call(lambda: ec2.delete_security_group(GroupId=sg_id), f"Delete SG {sg_id}")

    def delete_vpc_only(self, vpc_id):
        ec2 = self.client('ec2')
        logging.info(f"Deleting VPC {vpc_id}")
        self._call(lambda: ec2.delete_vpc(VpcId=vpc_id), f"Delete VPC {vpc_id}")
