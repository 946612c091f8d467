import datetime
import json
import logging
import re

import httpx

from reahl.nowbridge.platform.operations import EphemeralTrigger
from reahl.nowbridge.platform.operations import FailureClass
from reahl.nowbridge.platform.operations import ManualArtifact
from reahl.nowbridge.platform.operations import OperationKind
from reahl.nowbridge.platform.operations import StrategyOutcome
from reahl.nowbridge.platform.operations import Synchronicity
from reahl.nowbridge.platform.operations import context_preferences_by_kind
from reahl.nowbridge.platform.operations import context_tables_by_kind
from reahl.nowbridge.platform.operations import validated_non_empty_string


BACKGROUND_SCRIPTS_LOCATION = 'System Definition > Scripts - Background'
TRIGGER_TABLE_PATH = '/api/now/table/sys_trigger'
TRIGGER_NAME_PREFIX = 'NowBridge_'
RESPONSE_PREVIEW_LENGTH = 2000
login_page_markers = ('name="user_password"', 'login.do', 'id="loginPage"')
unsafe_file_name_characters = re.compile(r'[^A-Za-z0-9]')


def utc_now():
    return datetime.datetime.now(datetime.timezone.utc)


def failure_class_for_status(status_code):
    if status_code in (401, 403):
        return FailureClass.permission
    if status_code == 404:
        return FailureClass.not_found
    if status_code in (408, 429) or status_code >= 500:
        return FailureClass.retryable
    return FailureClass.malformed


def response_preview(response):
    return response.text[:RESPONSE_PREVIEW_LENGTH]


def json_body(response):
    try:
        return response.json()
    except ValueError:
        return None


def json_result(response):
    body = json_body(response)
    if not isinstance(body, dict):
        return None
    return body.get('result')


def javascript_literal(value):
    return json.dumps(value)


def file_name_part(value):
    return unsafe_file_name_characters.sub('_', value)


def file_name_timestamp(moment):
    return moment.strftime('%Y-%m-%dT%H-%M-%S')


class Strategy:
    name = None
    method_name = None
    applies_to = frozenset()
    synchronicity = Synchronicity.immediate
    requires_session = False
    timeout_seconds = 10.0
    produces_artifact = False

    def applies_to_kind(self, kind):
        return kind in self.applies_to

    async def attempt(self, request, session):
        try:
            async with session.client(self.timeout_seconds) as client:
                return await self.attempt_with_client(request, session, client)
        except httpx.HTTPError as error:
            return StrategyOutcome.failure(
                FailureClass.retryable,
                '%s could not reach %s: %s'
                % (self.name, request.binding.name, error),
            )

    async def attempt_with_client(self, request, session, client):
        raise NotImplementedError()

    async def looked_up_target(self, request, client):
        table_name = context_tables_by_kind[request.kind]
        response = await client.get(
            '/api/now/table/%s/%s' % (table_name, request.sys_id),
            params={'sysparm_fields': 'sys_id,name'},
        )
        if response.status_code == 404:
            return None, StrategyOutcome.failure(
                FailureClass.not_found,
                'No %s record with sys_id %s exists.' % (table_name, request.sys_id),
                raw_response=response_preview(response),
            )
        if not response.is_success:
            return None, StrategyOutcome.failure(
                failure_class_for_status(response.status_code),
                'Looking up %s %s returned HTTP %s.'
                % (table_name, request.sys_id, response.status_code),
                raw_response=response_preview(response),
            )
        target = json_result(response)
        if not isinstance(target, dict):
            return None, StrategyOutcome.failure(
                FailureClass.malformed,
                'Looking up %s %s did not return a record.'
                % (table_name, request.sys_id),
                raw_response=response_preview(response),
            )
        return target, None

    def __repr__(self):
        return '<%s %s>' % (self.__class__.__name__, self.name)


class UiEndpointStrategy(Strategy):
    method_name = 'immediate'
    synchronicity = Synchronicity.immediate
    requires_session = True
    timeout_seconds = 10.0
    endpoint_path = None

    def unavailable_endpoint_outcome(self, response):
        return StrategyOutcome.failure(
            FailureClass.fatal,
            '%s is not available on this instance.' % self.endpoint_path,
            raw_response=response_preview(response),
        )

    def rejected_outcome(self, response):
        return StrategyOutcome.failure(
            failure_class_for_status(response.status_code),
            '%s returned HTTP %s: %s'
            % (self.endpoint_path, response.status_code, response_preview(response)),
            raw_response=response_preview(response),
        )


class ContextPickerStrategy(UiEndpointStrategy):
    def request_body(self, request, target):
        raise NotImplementedError()

    async def attempt_with_client(self, request, session, client):
        target, failed_outcome = await self.looked_up_target(request, client)
        if failed_outcome:
            return failed_outcome
        response = await client.put(
            self.endpoint_path,
            json=self.request_body(request, target),
        )
        if response.status_code == 404:
            return self.unavailable_endpoint_outcome(response)
        if not response.is_success:
            return self.rejected_outcome(response)
        body = json_body(response)
        if body is None:
            return StrategyOutcome.failure(
                FailureClass.permission,
                '%s did not answer with JSON; the UI session was not accepted.'
                % self.endpoint_path,
                raw_response=response_preview(response),
            )
        if isinstance(body, dict) and body.get('error'):
            return StrategyOutcome.failure(
                FailureClass.malformed,
                '%s rejected the request: %s'
                % (self.endpoint_path, json.dumps(body['error'])),
                raw_response=body,
            )
        return StrategyOutcome.success(raw_response=body)


class ApplicationPickerStrategy(ContextPickerStrategy):
    name = 'ui_application_picker'
    applies_to = frozenset([OperationKind.set_workspace_context])
    endpoint_path = '/api/now/ui/concoursepicker/application'

    def request_body(self, request, target):
        return {'app_id': request.sys_id}


class UpdateSetPickerStrategy(ContextPickerStrategy):
    name = 'ui_update_set_picker'
    applies_to = frozenset([OperationKind.set_change_tracking_context])
    endpoint_path = '/api/now/ui/concoursepicker/updateset'

    def request_body(self, request, target):
        return {
            'name': target.get('name', ''),
            'sysId': request.sys_id,
        }


class BackgroundScriptPageStrategy(UiEndpointStrategy):
    name = 'ui_background_script'
    applies_to = frozenset([OperationKind.run_remote_script])
    endpoint_path = '/sys.scripts.do'

    async def attempt_with_client(self, request, session, client):
        if not session.user_token:
            return StrategyOutcome.failure(
                FailureClass.permission,
                'The UI session carries no user token; %s cannot be used.'
                % self.endpoint_path,
            )
        response = await client.post(
            self.endpoint_path,
            data={
                'script': request.script,
                'runscript': 'Run script',
                'sysparm_ck': session.user_token,
                'record_for_rollback': 'on',
                'quota_managed_transaction': 'on',
            },
            headers={'Accept': 'text/html'},
        )
        if response.status_code == 404:
            return self.unavailable_endpoint_outcome(response)
        if not response.is_success:
            return self.rejected_outcome(response)
        if any(marker in response.text for marker in login_page_markers):
            return StrategyOutcome.failure(
                FailureClass.permission,
                '%s answered with a login page.' % self.endpoint_path,
                raw_response=response_preview(response),
            )
        return StrategyOutcome.success(raw_response=response_preview(response))


class ScheduledTriggerStrategy(Strategy):
    name = 'scheduled_trigger'
    method_name = 'eventual'
    applies_to = frozenset(OperationKind.all_kinds)
    synchronicity = Synchronicity.eventual
    requires_session = False
    timeout_seconds = 30.0
    trigger_delay_seconds = 1

    def __init__(self, clock=utc_now):
        self.clock = clock

    async def attempt_with_client(self, request, session, client):
        if request.is_context_change:
            target, failed_outcome = await self.looked_up_target(request, client)
            if failed_outcome:
                return failed_outcome
        now = self.clock()
        trigger_name = '%s%s' % (TRIGGER_NAME_PREFIX, int(now.timestamp() * 1000))
        scheduled_at = (
            now + datetime.timedelta(seconds=self.trigger_delay_seconds)
        ).strftime('%Y-%m-%d %H:%M:%S')
        response = await client.post(
            TRIGGER_TABLE_PATH,
            json=self.trigger_record(request, trigger_name, scheduled_at),
        )
        if response.status_code == 404:
            return StrategyOutcome.failure(
                FailureClass.fatal,
                'Scheduled jobs cannot be created through %s.' % TRIGGER_TABLE_PATH,
                raw_response=response_preview(response),
            )
        if not response.is_success:
            return StrategyOutcome.failure(
                failure_class_for_status(response.status_code),
                'Creating the scheduled job returned HTTP %s: %s'
                % (response.status_code, response_preview(response)),
                raw_response=response_preview(response),
            )
        trigger_record = json_result(response)
        if not isinstance(trigger_record, dict):
            logging.getLogger(__name__).warning(
                'Scheduled job %s was created but its record could not be read: %s',
                trigger_name,
                response_preview(response),
            )
            trigger_record = {}
        trigger = EphemeralTrigger(
            trigger_record.get('sys_id', ''),
            trigger_name,
            scheduled_at,
        )
        logging.getLogger(__name__).debug(
            'Scheduled %s as %s for %s',
            request,
            trigger.name,
            trigger.scheduled_at,
        )
        return StrategyOutcome.success(
            raw_response=trigger_record,
            requires_settle_wait=True,
            trigger=trigger,
        )

    def trigger_record(self, request, trigger_name, scheduled_at):
        return {
            'name': trigger_name,
            'script': self_deleting_script(payload_script_for(request), trigger_name),
            'next_action': scheduled_at,
            'trigger_type': '0',
            'state': '0',
            'description': request.description or 'Scheduled by NowBridge: %s' % request.kind,
        }


class ManualScriptStrategy(Strategy):
    name = 'manual_script'
    method_name = 'manual'
    applies_to = frozenset(OperationKind.all_kinds)
    produces_artifact = True

    def __init__(self, clock=utc_now):
        self.clock = clock

    async def attempt(self, request, session):
        artifact = self.manual_artifact_for(request)
        return StrategyOutcome.success(
            raw_response=artifact.as_dict(),
            artifact=artifact,
        )

    def manual_artifact_for(self, request):
        timestamp = file_name_timestamp(self.clock())
        if request.kind == OperationKind.set_change_tracking_context:
            return ManualArtifact(
                'Set current update set',
                'var gus = new GlideUpdateSet();\n'
                'gus.set(%s);\n'
                'gs.info("Update set changed to: " + %s);\n'
                % (javascript_literal(request.sys_id), javascript_literal(request.sys_id)),
                BACKGROUND_SCRIPTS_LOCATION,
                'set_update_set_%s_%s.js' % (file_name_part(request.sys_id), timestamp),
                manual_procedure(
                    'Refresh the browser to see the update set in the top bar.',
                    'Alternatively open System Update Sets > Local Update Sets, '
                    'find the update set and click "Make this my current set".',
                ),
                description='Automated update set change was not possible.',
            )
        if request.kind == OperationKind.set_workspace_context:
            return ManualArtifact(
                'Set current application',
                'gs.setCurrentApplicationId(%s);\n'
                'gs.info("Application changed to: " + %s);\n'
                % (javascript_literal(request.sys_id), javascript_literal(request.sys_id)),
                BACKGROUND_SCRIPTS_LOCATION,
                'set_application_%s_%s.js' % (file_name_part(request.sys_id), timestamp),
                manual_procedure(
                    'Refresh the browser to see the application in the top bar.',
                    'Alternatively pick the application in the application '
                    'picker of the top bar.',
                ),
                description='Automated application change was not possible.',
            )
        return ManualArtifact(
            'Background script',
            request.script,
            BACKGROUND_SCRIPTS_LOCATION,
            'background_script_%s.js' % timestamp,
            manual_procedure('Verify the output in the output panel.'),
            description=request.description,
        )


def fix_script_artifact(
    script_name,
    script,
    description='',
    auto_delete=False,
    clock=utc_now,
):
    script_name = validated_non_empty_string(script_name, 'script_name')
    script = validated_non_empty_string(script, 'script_content')
    closing_steps = ['Verify the output in the output panel.']
    if auto_delete:
        closing_steps.append('Delete this file after successful execution.')
    return ManualArtifact(
        'Fix Script: %s' % script_name,
        script,
        BACKGROUND_SCRIPTS_LOCATION,
        '%s_%s.js' % (file_name_part(script_name), file_name_timestamp(clock())),
        manual_procedure(*closing_steps),
        description=description,
    )


def manual_procedure(*closing_steps):
    return [
        'Copy the script.',
        'Navigate to %s.' % BACKGROUND_SCRIPTS_LOCATION,
        'Paste the script.',
        'Click "Run script".',
    ] + list(closing_steps)


def payload_script_for(request):
    if not request.is_context_change:
        return request.script
    user_name = javascript_literal(request.binding.user_name)
    preference_name = javascript_literal(context_preferences_by_kind[request.kind])
    return '\n'.join(
        [
            "var nowbridgePreference = new GlideRecord('sys_user_preference');",
            "nowbridgePreference.addQuery('user.user_name', %s);" % user_name,
            "nowbridgePreference.addQuery('name', %s);" % preference_name,
            'nowbridgePreference.query();',
            'if (!nowbridgePreference.next()) {',
            "    var nowbridgeUser = new GlideRecord('sys_user');",
            "    nowbridgeUser.get('user_name', %s);" % user_name,
            '    nowbridgePreference.initialize();',
            "    nowbridgePreference.setValue('user', nowbridgeUser.getUniqueValue());",
            "    nowbridgePreference.setValue('name', %s);" % preference_name,
            '}',
            "nowbridgePreference.setValue('value', %s);"
            % javascript_literal(request.sys_id),
            'if (nowbridgePreference.isNewRecord()) {',
            '    nowbridgePreference.insert();',
            '} else {',
            '    nowbridgePreference.update();',
            '}',
        ]
    )


def self_deleting_script(payload_script, trigger_name):
    return '\n'.join(
        [
            'try {',
            payload_script,
            '} finally {',
            "    var nowbridgeTrigger = new GlideRecord('sys_trigger');",
            "    if (nowbridgeTrigger.get('name', %s)) {" % javascript_literal(trigger_name),
            '        nowbridgeTrigger.deleteRecord();',
            '    }',
            '}',
        ]
    )


def default_strategies():
    return [
        ApplicationPickerStrategy(),
        UpdateSetPickerStrategy(),
        BackgroundScriptPageStrategy(),
        ScheduledTriggerStrategy(),
        ManualScriptStrategy(),
    ]
