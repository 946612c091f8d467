from reahl.nowbridge.platform.session import DomainException


class OperationKind:
    set_workspace_context = 'set_workspace_context'
    set_change_tracking_context = 'set_change_tracking_context'
    run_remote_script = 'run_remote_script'

    all_kinds = (
        set_workspace_context,
        set_change_tracking_context,
        run_remote_script,
    )
    context_kinds = (
        set_workspace_context,
        set_change_tracking_context,
    )


context_tables_by_kind = {
    OperationKind.set_workspace_context: 'sys_scope',
    OperationKind.set_change_tracking_context: 'sys_update_set',
}

context_preferences_by_kind = {
    OperationKind.set_workspace_context: 'apps.current_app',
    OperationKind.set_change_tracking_context: 'sys_update_set',
}


class FailureClass:
    retryable = 'retryable'
    permission = 'permission'
    not_found = 'not_found'
    malformed = 'malformed'
    fatal = 'fatal'


class Synchronicity:
    immediate = 'immediate'
    eventual = 'eventual'


class OperationRequest:
    def __init__(self, kind, parameters, binding):
        if kind not in OperationKind.all_kinds:
            raise DomainException('Unknown operation kind: %s.' % kind)
        self.kind = kind
        self.parameters = validated_parameters(kind, dict(parameters or {}))
        self.binding = binding

    @property
    def is_context_change(self):
        return self.kind in OperationKind.context_kinds

    @property
    def sys_id(self):
        return self.parameters.get('sys_id')

    @property
    def script(self):
        return self.parameters.get('script')

    @property
    def description(self):
        return self.parameters.get('description', '')

    def __repr__(self):
        return '<OperationRequest %s on %s>' % (
            self.kind,
            self.binding.name,
        )


def validated_parameters(kind, parameters):
    if kind in OperationKind.context_kinds:
        parameters['sys_id'] = validated_non_empty_string(
            parameters.get('sys_id'),
            'sys_id',
        )
    else:
        parameters['script'] = validated_non_empty_string(
            parameters.get('script'),
            'script',
        )
        description = parameters.get('description') or ''
        if not isinstance(description, str):
            raise DomainException('description must be a string.')
        parameters['description'] = description
    return parameters


def validated_non_empty_string(input_value, argument_name):
    if not isinstance(input_value, str):
        raise DomainException('%s must be a string.' % argument_name)
    normalized_input_value = input_value.strip()
    if not normalized_input_value:
        raise DomainException('%s cannot be blank.' % argument_name)
    return normalized_input_value


class StrategyOutcome:
    def __init__(
        self,
        succeeded,
        failure_class=None,
        raw_response=None,
        requires_settle_wait=False,
        detail='',
        trigger=None,
        artifact=None,
    ):
        self.succeeded = succeeded
        self.failure_class = failure_class
        self.raw_response = raw_response
        self.requires_settle_wait = requires_settle_wait
        self.detail = detail
        self.trigger = trigger
        self.artifact = artifact

    @classmethod
    def success(
        cls,
        raw_response=None,
        requires_settle_wait=False,
        trigger=None,
        artifact=None,
    ):
        return cls(
            True,
            raw_response=raw_response,
            requires_settle_wait=requires_settle_wait,
            trigger=trigger,
            artifact=artifact,
        )

    @classmethod
    def failure(cls, failure_class, detail, raw_response=None):
        return cls(
            False,
            failure_class=failure_class,
            raw_response=raw_response,
            detail=detail,
        )

    def __repr__(self):
        if self.succeeded:
            return '<StrategyOutcome succeeded>'
        return '<StrategyOutcome %s: %s>' % (self.failure_class, self.detail)


class EphemeralTrigger:
    def __init__(self, remote_id, name, scheduled_at, self_deletes=True):
        self.remote_id = remote_id
        self.name = name
        self.scheduled_at = scheduled_at
        self.self_deletes = self_deletes

    def as_dict(self):
        return {
            'trigger_sys_id': self.remote_id,
            'trigger_name': self.name,
            'next_action': self.scheduled_at,
            'auto_delete': self.self_deletes,
        }


class ManualArtifact:
    def __init__(
        self,
        title,
        script,
        suggested_location,
        suggested_file_name,
        procedure,
        description='',
    ):
        self.title = title
        self.script = script
        self.suggested_location = suggested_location
        self.suggested_file_name = suggested_file_name
        self.procedure = list(procedure)
        self.description = description

    def as_dict(self):
        return {
            'title': self.title,
            'script': self.script,
            'suggested_location': self.suggested_location,
            'suggested_file_name': self.suggested_file_name,
            'procedure': list(self.procedure),
            'description': self.description,
        }


class ExecutionResult:
    def __init__(self, request):
        self.request = request
        self.success = False
        self.method_used = ''
        self.previous_state = None
        self.verified = None
        self.warnings = []
        self.timings = {
            'attempt_ms': 0.0,
            'settle_ms': 0.0,
            'verify_ms': 0.0,
        }
        self.manual_artifact = None
        self.failure_class = None
        self.error = ''
        self.attempts = []
        self.response = None
        self.trigger = None

    def record_attempt(self, strategy, outcome, elapsed_ms):
        self.timings['attempt_ms'] = self.timings['attempt_ms'] + elapsed_ms
        self.attempts.append(
            {
                'strategy': strategy.name,
                'method': strategy.method_name,
                'succeeded': outcome.succeeded,
                'failure_class': outcome.failure_class,
                'detail': outcome.detail,
            }
        )

    def add_warning(self, warning):
        self.warnings.append(warning)

    def as_dict(self):
        return {
            'success': self.success,
            'kind': self.request.kind,
            'instance': self.request.binding.name,
            'method_used': self.method_used,
            'previous_state': self.previous_state,
            'verified': self.verified,
            'warnings': list(self.warnings),
            'timings': dict(self.timings),
            'manual_artifact': (
                self.manual_artifact.as_dict()
                if self.manual_artifact is not None
                else None
            ),
            'failure_class': self.failure_class,
            'error': self.error,
            'attempts': [dict(attempt) for attempt in self.attempts],
            'response': self.response,
            'trigger': (
                self.trigger.as_dict() if self.trigger is not None else None
            ),
        }
