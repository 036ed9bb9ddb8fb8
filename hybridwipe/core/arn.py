"""Parsers for the ARN shapes the cleaners pull ids out of."""
from typing import NamedTuple


class InvalidARNError(ValueError):
    pass


class ARN(NamedTuple):
    partition: str
    service: str
    region: str
    account: str
    resource: str


def parse_arn(arn: str) -> ARN:
    """Split arn:partition:service:region:account:resource.

    The resource part keeps any further ':' characters.
    """
    if not arn:
        raise InvalidARNError("empty ARN")
    parts = arn.split(":", 5)
    if len(parts) < 6 or parts[0] != "arn":
        raise InvalidARNError(f"malformed ARN: {arn}")
    if not parts[5]:
        raise InvalidARNError(f"ARN has no resource: {arn}")
    return ARN(*parts[1:])


def resource_id_from_arn(arn: str) -> str:
    """Id after the last '/', e.g. i-0abc from ...:instance/i-0abc."""
    resource = parse_arn(arn).resource
    if "/" not in resource:
        raise InvalidARNError(f"ARN resource has no id segment: {arn}")
    resource_id = resource.rsplit("/", 1)[1]
    if not resource_id:
        raise InvalidARNError(f"ARN resource has an empty id: {arn}")
    return resource_id


def eks_cluster_name_from_arn(arn: str) -> str:
    # arn:aws:eks:us-west-2:<account-id>:cluster/nodeadm-e2e-tests-1-31
    resource = parse_arn(arn).resource
    kind, sep, name = resource.partition("/")
    if kind != "cluster" or not sep or not name:
        raise InvalidARNError(f"not an EKS cluster ARN: {arn}")
    return name


def ssm_parameter_name_from_arn(arn: str) -> str:
    # arn:aws:ssm:us-west-2:<account-id>:parameter/eks-hybrid/ci/key
    resource = parse_arn(arn).resource
    if not resource.startswith("parameter/") or resource == "parameter/":
        raise InvalidARNError(f"not an SSM parameter ARN: {arn}")
    return resource[len("parameter"):]
