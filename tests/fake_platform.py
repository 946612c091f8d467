import base64
import json
import re
from urllib.parse import parse_qs

import httpx

from reahl.nowbridge.platform import ClientBinding
from reahl.nowbridge.platform import Instance
from reahl.nowbridge.platform import InstanceCatalog


preference_name_pattern = re.compile(r"""addQuery\('name', "([^"]+)"\)""")
preference_value_pattern = re.compile(r"""setValue\('value', "([^"]+)"\)""")


def development_instance():
    return Instance(
        'dev',
        'https://dev.example.service-now.com/',
        'admin',
        'secret',
        is_default=True,
        description='Development',
    )


def production_instance():
    return Instance(
        'prod',
        'https://prod.example.service-now.com',
        'integration',
        'other-secret',
        description='Production',
    )


def development_binding():
    return ClientBinding(development_instance())


def basic_authorization(user_name, password):
    credentials = ('%s:%s' % (user_name, password)).encode('utf-8')
    return 'Basic %s' % base64.b64encode(credentials).decode('ascii')


def two_instance_catalog():
    return InstanceCatalog([development_instance(), production_instance()])


class FakeServiceNow:
    """An in-memory instance answering the REST and UI endpoints the bridge uses."""

    def __init__(self, user_token='token-123', runs_triggers=True):
        self.user_token = user_token
        self.runs_triggers = runs_triggers
        self.received_requests = []
        self.canned_responses = {}
        self.preferences = {}
        self.records = {
            'sys_scope': {'app-1': 'Fleet Manager'},
            'sys_update_set': {'set-1': 'Sprint 42'},
        }
        self.created_triggers = []
        self.executed_scripts = []

    def transport(self):
        return httpx.MockTransport(self.handle)

    def respond_to(self, path, status_code, text='refused'):
        self.canned_responses[path] = (status_code, text)

    def requests_to(self, path):
        return [
            request for request in self.received_requests
            if request.url.path == path
        ]

    def handle(self, request):
        self.received_requests.append(request)
        path = request.url.path
        if path in self.canned_responses:
            status_code, text = self.canned_responses[path]
            return httpx.Response(status_code, text=text)
        if path == '/navpage.do':
            return httpx.Response(
                200,
                headers={'Set-Cookie': 'JSESSIONID=session-1; Path=/'},
                text="<script>var g_ck = '%s';</script>" % self.user_token,
            )
        if path == '/api/now/ui/concoursepicker/application':
            body = json.loads(request.content)
            self.preferences['apps.current_app'] = body['app_id']
            return httpx.Response(200, json={'result': {'app_id': body['app_id']}})
        if path == '/api/now/ui/concoursepicker/updateset':
            body = json.loads(request.content)
            self.preferences['sys_update_set'] = body['sysId']
            return httpx.Response(200, json={'result': {'name': body['name']}})
        if path == '/sys.scripts.do':
            form = parse_qs(request.content.decode('utf-8'))
            self.executed_scripts.append(form['script'][0])
            return httpx.Response(200, text='<pre>*** Script: done</pre>')
        if path == '/api/now/table/sys_trigger':
            return self.create_trigger(json.loads(request.content))
        if path == '/api/now/table/sys_user_preference':
            return self.preference_records(request)
        if path.startswith('/api/now/table/'):
            return self.table_record(path)
        return httpx.Response(404, json={'error': {'message': 'No such path'}})

    def create_trigger(self, trigger_record):
        self.created_triggers.append(trigger_record)
        if self.runs_triggers:
            name_match = preference_name_pattern.search(trigger_record['script'])
            value_match = preference_value_pattern.search(trigger_record['script'])
            if name_match and value_match:
                self.preferences[name_match.group(1)] = value_match.group(1)
        return httpx.Response(
            201,
            json={
                'result': {
                    'sys_id': 'trigger-%s' % len(self.created_triggers),
                    'name': trigger_record['name'],
                }
            },
        )

    def preference_records(self, request):
        query = request.url.params['sysparm_query']
        preference_name = query.split('^name=')[-1]
        if preference_name not in self.preferences:
            return httpx.Response(200, json={'result': []})
        return httpx.Response(
            200,
            json={
                'result': [
                    {
                        'name': preference_name,
                        'value': self.preferences[preference_name],
                    }
                ]
            },
        )

    def table_record(self, path):
        table_name, sys_id = path[len('/api/now/table/'):].split('/', 1)
        records = self.records.get(table_name, {})
        if sys_id not in records:
            return httpx.Response(
                404,
                json={'error': {'message': 'No Record found'}},
            )
        return httpx.Response(
            200,
            json={'result': {'sys_id': sys_id, 'name': records[sys_id]}},
        )
