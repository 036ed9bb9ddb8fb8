"""Cleanup error types and AWS error-code matching."""
from typing import Iterable, List, Optional

from botocore.exceptions import ClientError

# Codes AWS returns when the target of a call is already gone.
IAM_NOT_FOUND = ("NoSuchEntity",)
SSM_ACTIVATION_NOT_FOUND = ("InvalidActivation", "InvalidActivationId")
SSM_INSTANCE_NOT_FOUND = ("InvalidInstanceId",)
SSM_PARAMETER_NOT_FOUND = ("ParameterNotFound",)
RESOURCE_NOT_FOUND = ("ResourceNotFoundException",)
EC2_INSTANCE_NOT_FOUND = ("InvalidInstanceID.NotFound",)
EC2_VPC_NOT_FOUND = (
    "InvalidVpcID.NotFound",
    "InvalidSubnetID.NotFound",
    "InvalidInternetGatewayID.NotFound",
    "InvalidRouteTableID.NotFound",
    "InvalidAssociationID.NotFound",
    "InvalidGroup.NotFound",
    "Gateway.NotAttached",
)


class CleanupError(Exception):
    def __init__(self, message: str, resource_id: Optional[str] = None, operation: Optional[str] = None):
        super().__init__(message)
        self.resource_id = resource_id
        self.operation = operation


class VPCTeardownError(CleanupError):
    def __init__(self, vpc_id: str, step: str, cause: Exception):
        super().__init__(f"tearing down VPC {vpc_id} at step {step}: {cause}",
                         resource_id=vpc_id, operation=step)
        self.vpc_id = vpc_id
        self.step = step


class AggregateCleanupError(CleanupError):
    """Several independent failures reported together."""

    def __init__(self, errors: Iterable[Exception], context: str = ""):
        self.errors: List[Exception] = list(errors)
        lines = [str(e) for e in self.errors]
        prefix = f"{context}: " if context else ""
        super().__init__(prefix + "; ".join(lines))


def error_code(exc: BaseException) -> str:
    if isinstance(exc, ClientError):
        return exc.response.get("Error", {}).get("Code", "")
    return ""


def error_message(exc: BaseException) -> str:
    if isinstance(exc, ClientError):
        return exc.response.get("Error", {}).get("Message", "")
    return ""


def is_aws_error(exc: BaseException, *codes: str) -> bool:
    return bool(codes) and error_code(exc) in codes


def is_stack_not_found(exc: BaseException) -> bool:
    # describe_stacks reports missing stacks as ValidationError
    if is_aws_error(exc, "StackNotFoundException"):
        return True
    return is_aws_error(exc, "ValidationError") and "does not exist" in error_message(exc)


def raise_for_errors(errors: List[Exception], context: str = "") -> None:
    if errors:
        raise AggregateCleanupError(errors, context)
