import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock
from botocore.exceptions import WaiterError

from hybridwipe.core.errors import AggregateCleanupError, CleanupError
from hybridwipe.core.filters import FilterInput
from hybridwipe.resources.ec2 import EC2InstanceCleaner

ARNS = ['arn:aws:ec2:us-west-2:1:instance/i-1', 'arn:aws:ec2:us-west-2:1:instance/i-2',
        'arn:aws:ec2:us-west-2:1:instance/i-3']


@pytest.fixture
def ec2_client(make_client, cluster_tag):
    now = datetime.now(timezone.utc)
    return make_client({'describe_instances': [{'Reservations': [{'Instances': [
        {'InstanceId': 'i-1', 'State': {'Name': 'running'}, 'LaunchTime': now,
         'Tags': cluster_tag('my-cluster')},
        {'InstanceId': 'i-2', 'State': {'Name': 'terminated'}, 'LaunchTime': now,
         'Tags': cluster_tag('my-cluster')},
        {'InstanceId': 'i-3', 'State': {'Name': 'stopped'}, 'LaunchTime': now - timedelta(days=2),
         'Tags': cluster_tag('ci-7')},
    ]}]}]})


def test_list_instances_for_cluster(make_session, tagging_client, ec2_client):
    session = make_session(resourcegroupstaggingapi=tagging_client(ARNS), ec2=ec2_client)

    ids = EC2InstanceCleaner(session).list_resources(FilterInput(cluster_name='my-cluster'))

    assert ids == ['i-1']
    ec2_client.paginators['describe_instances'].paginate.assert_called_once_with(
        Filters=[{'Name': 'instance-id', 'Values': ['i-1', 'i-2', 'i-3']}])


def test_list_instances_by_prefix_and_age(make_session, tagging_client, ec2_client):
    session = make_session(resourcegroupstaggingapi=tagging_client(ARNS), ec2=ec2_client)

    ids = EC2InstanceCleaner(session).list_resources(
        FilterInput(cluster_name_prefix='ci-', instance_age_threshold=timedelta(hours=24)))

    assert ids == ['i-3']


def test_list_instances_nothing_tagged(make_session, tagging_client):
    ec2 = MagicMock()
    session = make_session(resourcegroupstaggingapi=tagging_client([]), ec2=ec2)

    assert EC2InstanceCleaner(session).list_resources(FilterInput(all_clusters=True)) == []
    ec2.get_paginator.assert_not_called()


def test_list_instances_skips_bad_arn(make_session, tagging_client, ec2_client):
    session = make_session(resourcegroupstaggingapi=tagging_client(['arn:aws:ec2:bad']), ec2=ec2_client)
    assert EC2InstanceCleaner(session).list_resources(FilterInput(cluster_name='my-cluster')) == []


def test_delete_instances_terminates_and_waits(make_session):
    ec2 = MagicMock()
    cleaner = EC2InstanceCleaner(make_session(ec2=ec2))

    cleaner.delete_instances(['i-1', 'i-3'])

    ec2.terminate_instances.assert_called_once_with(InstanceIds=['i-1', 'i-3'])
    ec2.get_waiter.assert_called_once_with('instance_terminated')
    ec2.get_waiter.return_value.wait.assert_called_once_with(
        InstanceIds=['i-1', 'i-3'], WaiterConfig={'Delay': 15, 'MaxAttempts': 20})


def test_delete_instances_already_gone(make_session, client_error):
    ec2 = MagicMock()
    ec2.terminate_instances.side_effect = client_error('InvalidInstanceID.NotFound', 'TerminateInstances')
    cleaner = EC2InstanceCleaner(make_session(ec2=ec2))

    cleaner.delete_instances(['i-1'])

    ec2.get_waiter.assert_not_called()


def test_delete_instances_waiter_timeout(make_session):
    ec2 = MagicMock()
    ec2.get_waiter.return_value.wait.side_effect = WaiterError('InstanceTerminated', 'Max attempts exceeded', {})
    cleaner = EC2InstanceCleaner(make_session(ec2=ec2))

    with pytest.raises(CleanupError, match='waiting for instances'):
        cleaner.delete_instances(['i-1'])


def test_cleanup_dry_run(make_session, tagging_client, ec2_client):
    session = make_session(resourcegroupstaggingapi=tagging_client(ARNS), ec2=ec2_client)
    report = {}
    cleaner = EC2InstanceCleaner(session, report=report)

    assert cleaner.cleanup(FilterInput(cluster_name='my-cluster', dry_run=True)) == ['i-1']

    ec2_client.terminate_instances.assert_not_called()
    assert report['ec2_instances']['dry_run'] == ['i-1']


def test_cleanup_records_failure(make_session, tagging_client, ec2_client, client_error):
    ec2_client.terminate_instances.side_effect = client_error('UnauthorizedOperation', 'TerminateInstances')
    session = make_session(resourcegroupstaggingapi=tagging_client(ARNS), ec2=ec2_client)
    report = {}

    with pytest.raises(CleanupError):
        EC2InstanceCleaner(session, report=report).cleanup(FilterInput(cluster_name='my-cluster'))

    assert report['ec2_instances']['failed'][0].startswith('i-1')
