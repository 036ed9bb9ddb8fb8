import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

from hybridwipe.constants import TEST_CLUSTER_TAG_KEY
from hybridwipe.core.errors import CleanupError
from hybridwipe.core.filters import FilterInput
from hybridwipe.resources.ssm import SSMActivationCleaner, SSMManagedInstanceCleaner, SSMParameterCleaner

OLD = datetime.now(timezone.utc) - timedelta(days=3)
NEW = datetime.now(timezone.utc)


def activation(activation_id, cluster, created, node=''):
    return {'ActivationId': activation_id, 'CreatedDate': created, 'DefaultInstanceName': node,
            'Tags': [{'Key': TEST_CLUSTER_TAG_KEY, 'Value': cluster}] if cluster else []}


@pytest.fixture
def activations_client(make_client):
    return make_client({'describe_activations': [
        {'ActivationList': [activation('act-1', 'ci-1', OLD, 'node-a'), activation('act-2', 'ci-2', NEW)]},
        {'ActivationList': [activation('act-3', '', OLD), activation('act-4', 'my-cluster', NEW, 'node-b')]},
    ]})


def test_list_activations_pages_everything(make_session, activations_client):
    cleaner = SSMActivationCleaner(make_session(ssm=activations_client))

    assert cleaner.list_resources(FilterInput(all_clusters=True, instance_age_threshold=timedelta(hours=1))) == ['act-1']
    assert cleaner.list_resources(FilterInput(cluster_name='my-cluster')) == ['act-4']


def test_list_activations_for_node(make_session, activations_client):
    cleaner = SSMActivationCleaner(make_session(ssm=activations_client))
    assert cleaner.list_activations_for_node('node-b') == ['act-4']


def test_list_activations_error(make_session, make_client, client_error):
    def fail():
        raise client_error('InternalServerError', 'DescribeActivations')
    ssm = make_client({'describe_activations': fail})

    with pytest.raises(CleanupError, match='listing SSM activations'):
        SSMActivationCleaner(make_session(ssm=ssm)).list_resources(FilterInput(all_clusters=True))


def test_delete_activation_twice_is_idempotent(make_session, client_error):
    ssm = MagicMock()
    ssm.delete_activation.side_effect = [None, client_error('InvalidActivation', 'DeleteActivation')]
    cleaner = SSMActivationCleaner(make_session(ssm=ssm))

    cleaner.delete_activation('act-1')
    cleaner.delete_activation('act-1')

    assert ssm.delete_activation.call_count == 2


def test_delete_activation_other_error(make_session, client_error):
    ssm = MagicMock()
    ssm.delete_activation.side_effect = client_error('AccessDeniedException', 'DeleteActivation')

    with pytest.raises(CleanupError):
        SSMActivationCleaner(make_session(ssm=ssm)).delete_activation('act-1')


def instance_info(instance_id, last_ping, resource_type='ManagedInstance'):
    return {'InstanceInformationList': [
        {'InstanceId': instance_id, 'ResourceType': resource_type, 'LastPingDateTime': last_ping}]}


def test_list_managed_instances(make_session, tagging_client, cluster_tag):
    tagging = tagging_client(['arn:aws:ssm:us-west-2:1:managed-instance/mi-1',
                              'arn:aws:ssm:us-west-2:1:managed-instance/mi-2',
                              'arn:aws:ssm:us-west-2:1:managed-instance/mi-3',
                              'arn:aws:ssm:bad'], tags=cluster_tag('ci-1'))
    ssm = MagicMock()
    ssm.describe_instance_information.side_effect = [
        instance_info('mi-1', OLD),
        instance_info('mi-2', NEW),
        {'InstanceInformationList': []},
    ]

    ids = SSMManagedInstanceCleaner(make_session(resourcegroupstaggingapi=tagging, ssm=ssm)).list_resources(
        FilterInput(cluster_name_prefix='ci-', instance_age_threshold=timedelta(hours=24)))

    assert ids == ['mi-1']
    ssm.describe_instance_information.assert_any_call(Filters=[{'Key': 'InstanceIds', 'Values': ['mi-1']}])
    tagging.paginators['get_resources'].paginate.assert_called_once_with(
        TagFilters=[{'Key': TEST_CLUSTER_TAG_KEY}], ResourceTypeFilters=['ssm:managed-instance'])


def test_list_managed_instances_skips_ec2_instances(make_session, tagging_client):
    tagging = tagging_client(['arn:aws:ssm:us-west-2:1:managed-instance/mi-1'])
    ssm = MagicMock()
    ssm.describe_instance_information.return_value = instance_info('mi-1', OLD, resource_type='EC2Instance')

    cleaner = SSMManagedInstanceCleaner(make_session(resourcegroupstaggingapi=tagging, ssm=ssm))
    assert cleaner.list_resources(FilterInput(cluster_name='my-cluster')) == []


def test_list_managed_instances_by_activation_ids(make_session, make_client):
    ssm = make_client({'describe_instance_information': [{'InstanceInformationList': [
        {'InstanceId': 'mi-1', 'ResourceType': 'ManagedInstance', 'ActivationId': 'act-1'},
        {'InstanceId': 'mi-2', 'ResourceType': 'ManagedInstance', 'ActivationId': 'act-9'},
    ]}]})

    cleaner = SSMManagedInstanceCleaner(make_session(ssm=ssm))
    assert cleaner.list_managed_instances_by_activation_ids('act-1') == ['mi-1']
    ssm.paginators['describe_instance_information'].paginate.assert_called_once_with(
        Filters=[{'Key': 'ActivationIds', 'Values': ['act-1']}])


def test_deregister_twice_is_idempotent(make_session, client_error):
    ssm = MagicMock()
    ssm.deregister_managed_instance.side_effect = [None, client_error('InvalidInstanceId', 'DeregisterManagedInstance')]
    cleaner = SSMManagedInstanceCleaner(make_session(ssm=ssm))

    cleaner.deregister_instance('mi-1')
    cleaner.deregister_instance('mi-1')

    assert ssm.deregister_managed_instance.call_count == 2


def test_wait_for_deregistration(make_session, no_sleep):
    ssm = MagicMock()
    ssm.describe_instance_information.side_effect = [instance_info('mi-1', OLD), {'InstanceInformationList': []}]

    SSMManagedInstanceCleaner(make_session(ssm=ssm)).wait_for_deregistration('mi-1')

    assert ssm.describe_instance_information.call_count == 2


def test_wait_for_deregistration_gives_up_on_errors(make_session, client_error, no_sleep):
    ssm = MagicMock()
    ssm.describe_instance_information.side_effect = client_error('InternalServerError')

    with pytest.raises(CleanupError):
        SSMManagedInstanceCleaner(make_session(ssm=ssm)).wait_for_deregistration('mi-1')


def test_list_parameters(make_session, tagging_client):
    tagging = tagging_client(['arn:aws:ssm:us-west-2:1:parameter/eks-hybrid/my-cluster/token',
                              'arn:aws:ssm:us-west-2:1:parameter/eks-hybrid/my-cluster/gone'])
    ssm = MagicMock()
    ssm.describe_parameters.side_effect = [
        {'Parameters': [{'Name': '/eks-hybrid/my-cluster/token', 'LastModifiedDate': NEW}]},
        {'Parameters': []},
    ]

    names = SSMParameterCleaner(make_session(resourcegroupstaggingapi=tagging, ssm=ssm)).list_resources(
        FilterInput(cluster_name='my-cluster'))

    assert names == ['/eks-hybrid/my-cluster/token']
    ssm.describe_parameters.assert_any_call(
        ParameterFilters=[{'Key': 'Name', 'Option': 'Equals', 'Values': ['/eks-hybrid/my-cluster/token']}])


def test_delete_parameter_twice_is_idempotent(make_session, client_error):
    ssm = MagicMock()
    ssm.delete_parameter.side_effect = [None, client_error('ParameterNotFound', 'DeleteParameter')]
    cleaner = SSMParameterCleaner(make_session(ssm=ssm))

    cleaner.delete_parameter('/eks-hybrid/c/token')
    cleaner.delete_parameter('/eks-hybrid/c/token')

    ssm.delete_parameter.assert_called_with(Name='/eks-hybrid/c/token')
