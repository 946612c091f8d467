import logging

import httpx

from reahl.nowbridge.platform.operations import context_preferences_by_kind
from reahl.nowbridge.platform.session import DomainException


PREFERENCE_TABLE_PATH = '/api/now/table/sys_user_preference'


class StateReadFailed(DomainException):
    pass


class VerificationOutcome:
    def __init__(self, verified, current_state=None, detail=''):
        self.verified = verified
        self.current_state = current_state
        self.detail = detail


class Verifier:
    def __init__(self, session_manager, timeout_seconds=10.0):
        self.session_manager = session_manager
        self.timeout_seconds = timeout_seconds

    def expected_state_for(self, request):
        if not request.is_context_change:
            return None
        return {'value': request.sys_id}

    async def current_state(self, kind, binding):
        if kind not in context_preferences_by_kind:
            raise DomainException('%s has no observable remote state.' % kind)
        preference_name = context_preferences_by_kind[kind]
        session = self.session_manager.bare(binding)
        try:
            async with session.client(self.timeout_seconds) as client:
                response = await client.get(
                    PREFERENCE_TABLE_PATH,
                    params={
                        'sysparm_query': 'user.user_name=%s^name=%s'
                        % (binding.user_name, preference_name),
                        'sysparm_fields': 'name,value',
                        'sysparm_limit': '1',
                    },
                )
        except httpx.HTTPError as error:
            raise StateReadFailed(
                'Could not read %s on %s: %s' % (preference_name, binding.name, error)
            ) from error
        if not response.is_success:
            raise StateReadFailed(
                'Reading %s on %s returned HTTP %s.'
                % (preference_name, binding.name, response.status_code)
            )
        try:
            body = response.json()
        except ValueError as error:
            raise StateReadFailed(
                'Reading %s on %s did not return JSON records.'
                % (preference_name, binding.name)
            ) from error
        records = (body.get('result') or []) if isinstance(body, dict) else None
        if not isinstance(records, list) or not all(
            isinstance(record, dict) for record in records
        ):
            raise StateReadFailed(
                'Reading %s on %s did not return JSON records.'
                % (preference_name, binding.name)
            )
        value = records[0].get('value') if records else None
        return {
            'preference': preference_name,
            'value': value or None,
        }

    async def verify(self, request, expected_state):
        try:
            current_state = await self.current_state(
                request.kind,
                request.binding,
            )
        except StateReadFailed as error:
            logging.getLogger(__name__).warning('Verification read failed: %s', error)
            return VerificationOutcome(False, detail=str(error))
        if current_state['value'] == expected_state['value']:
            return VerificationOutcome(True, current_state=current_state)
        return VerificationOutcome(
            False,
            current_state=current_state,
            detail='%s is %s but %s was requested.'
            % (
                current_state['preference'],
                current_state['value'],
                expected_state['value'],
            ),
        )
