import pytest
from unittest.mock import MagicMock, patch
from botocore.exceptions import EndpointConnectionError

from hybridwipe.core.config import SweeperInput
from hybridwipe.core.errors import AggregateCleanupError, CleanupError
from hybridwipe.sweeper import Sweeper


@pytest.fixture
def cleaners():
    with patch('hybridwipe.sweeper.SSMManagedInstanceCleaner') as instances, \
            patch('hybridwipe.sweeper.SSMActivationCleaner') as activations:
        instances.return_value.name = 'ssm_managed_instances'
        activations.return_value.name = 'ssm_activations'
        instances.return_value.list_resources.return_value = ['mi-1', 'mi-2']
        activations.return_value.list_resources.return_value = ['act-1']
        yield instances.return_value, activations.return_value


def test_sweeper_deletes_instances_then_activations(cleaners):
    instances, activations = cleaners
    order = []
    instances.delete_resources.side_effect = lambda ids: order.append(('instances', ids))
    activations.delete_resources.side_effect = lambda ids: order.append(('activations', ids))

    Sweeper(MagicMock()).run(SweeperInput(cluster_name='my-cluster'))

    assert order == [('instances', ['mi-1', 'mi-2']), ('activations', ['act-1'])]
    filter_input = instances.list_resources.call_args[0][0]
    assert filter_input.cluster_name == 'my-cluster'


def test_sweeper_dry_run_skips_deletes(cleaners):
    instances, activations = cleaners

    Sweeper(MagicMock()).run(SweeperInput(all_clusters=True, dry_run=True))

    instances.list_resources.assert_called_once()
    activations.list_resources.assert_called_once()
    instances.delete_resources.assert_not_called()
    activations.delete_resources.assert_not_called()


def test_sweeper_runs_activation_phase_after_instance_failure(cleaners):
    instances, activations = cleaners
    instances.list_resources.side_effect = CleanupError("listing exploded")

    with pytest.raises(AggregateCleanupError) as exc_info:
        Sweeper(MagicMock()).run(SweeperInput(all_clusters=True))

    activations.delete_resources.assert_called_once_with(['act-1'])
    assert len(exc_info.value.errors) == 1
    assert 'cleaning up SSM managed instances' in str(exc_info.value)
    assert isinstance(exc_info.value.errors[0].__cause__, CleanupError)


def test_sweeper_joins_errors_from_both_phases(cleaners):
    instances, activations = cleaners
    instances.delete_resources.side_effect = CleanupError("deregister failed")
    activations.delete_resources.side_effect = CleanupError("delete failed")

    with pytest.raises(AggregateCleanupError) as exc_info:
        Sweeper(MagicMock()).run(SweeperInput(all_clusters=True))

    message = str(exc_info.value)
    assert message.startswith('running sweeper: ')
    assert 'deregister failed' in message and 'delete failed' in message
    assert len(exc_info.value.errors) == 2


def test_sweeper_shares_session_and_report(cleaners):
    session, report = MagicMock(), {}
    with patch('hybridwipe.sweeper.SSMManagedInstanceCleaner') as instances:
        instances.return_value.list_resources.return_value = []
        Sweeper(session, 'us-west-2', report).run(SweeperInput(all_clusters=True))
    instances.assert_called_once_with(session, 'us-west-2', report)


def test_sweeper_runs_activation_phase_after_connection_error(cleaners):
    instances, activations = cleaners
    instances.list_resources.side_effect = EndpointConnectionError(endpoint_url='https://ssm.us-west-2.amazonaws.com')

    with pytest.raises(AggregateCleanupError) as exc_info:
        Sweeper(MagicMock()).run(SweeperInput(all_clusters=True))

    activations.delete_resources.assert_called_once_with(['act-1'])
    assert isinstance(exc_info.value.errors[0].__cause__, EndpointConnectionError)
