from reahl.tofu import Fixture
from reahl.tofu import expected
from reahl.tofu import with_fixtures

from reahl.nowbridge.platform import DomainException
from reahl.nowbridge.platform import ExecutionResult
from reahl.nowbridge.platform import FailureClass
from reahl.nowbridge.platform import OperationKind
from reahl.nowbridge.platform import OperationRequest
from reahl.nowbridge.platform import StrategyOutcome
from reahl.nowbridge.platform.strategies import ScheduledTriggerStrategy

from fake_platform import development_binding


class OperationFixture(Fixture):
    def new_binding(self):
        return development_binding()


@with_fixtures(OperationFixture)
def test_context_requests_need_a_sys_id(fixture):
    request = OperationRequest(
        OperationKind.set_workspace_context,
        {'sys_id': '  app-1 '},
        fixture.binding,
    )

    assert request.sys_id == 'app-1'
    assert request.is_context_change
    assert repr(request) == '<OperationRequest set_workspace_context on dev>'
    with expected(DomainException, test='sys_id cannot be blank.'):
        OperationRequest(
            OperationKind.set_change_tracking_context,
            {'sys_id': ' '},
            fixture.binding,
        )
    with expected(DomainException, test='sys_id must be a string.'):
        OperationRequest(OperationKind.set_change_tracking_context, {}, fixture.binding)


@with_fixtures(OperationFixture)
def test_script_requests_need_a_script(fixture):
    request = OperationRequest(
        OperationKind.run_remote_script,
        {'script': "gs.info('x');", 'description': None},
        fixture.binding,
    )

    assert request.script == "gs.info('x');"
    assert request.description == ''
    assert not request.is_context_change
    with expected(DomainException, test='script cannot be blank.'):
        OperationRequest(OperationKind.run_remote_script, {'script': ''}, fixture.binding)


@with_fixtures(OperationFixture)
def test_unknown_kinds_are_rejected(fixture):
    with expected(DomainException, test='Unknown operation kind: delete_everything.'):
        OperationRequest('delete_everything', {}, fixture.binding)


@with_fixtures(OperationFixture)
def test_execution_result_reports_attempts_and_timings(fixture):
    request = OperationRequest(
        OperationKind.set_workspace_context,
        {'sys_id': 'app-1'},
        fixture.binding,
    )
    result = ExecutionResult(request)

    result.record_attempt(
        ScheduledTriggerStrategy(),
        StrategyOutcome.failure(FailureClass.permission, 'ACL refused'),
        12.5,
    )
    result.record_attempt(ScheduledTriggerStrategy(), StrategyOutcome.success(), 7.5)
    result_payload = result.as_dict()

    assert result_payload['kind'] == OperationKind.set_workspace_context
    assert result_payload['instance'] == 'dev'
    assert result_payload['timings'] == {
        'attempt_ms': 20.0,
        'settle_ms': 0.0,
        'verify_ms': 0.0,
    }
    assert result_payload['attempts'][0] == {
        'strategy': 'scheduled_trigger',
        'method': 'eventual',
        'succeeded': False,
        'failure_class': FailureClass.permission,
        'detail': 'ACL refused',
    }
    assert result_payload['manual_artifact'] is None
    assert result_payload['trigger'] is None
    assert not result_payload['success']
