"""Names and budgets shared by the hybrid node e2e cleanup."""
from datetime import timedelta

# Tag applied to every resource a test run creates; the only deletion signal.
TEST_CLUSTER_TAG_KEY = "Nodeadm-E2E-Tests-Cluster"

TEST_CREDENTIALS_STACK_NAME_PREFIX = "EKSHybridCI"
TEST_ARCHITECTURE_STACK_NAME_PREFIX = "EKSHybridCI-Arch"

DEFAULT_INSTANCE_AGE_THRESHOLD = timedelta(hours=24)

INSTANCE_TERMINATE_TIMEOUT = 300
EKS_CLUSTER_DELETE_TIMEOUT = 300
STACK_DELETE_TIMEOUT = 600
MANAGED_INSTANCE_DEREGISTER_TIMEOUT = 180
