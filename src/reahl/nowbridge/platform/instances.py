import json
import logging
import os

from reahl.nowbridge.platform.session import DomainException


DEFAULT_CONFIG_PATH = os.path.join('config', 'servicenow-instances.json')
REQUIRED_FIELDS = ('name', 'url', 'username', 'password')


class InstanceNotFound(DomainException):
    pass


class Instance:
    def __init__(
        self,
        name,
        base_url,
        user_name,
        password,
        is_default=False,
        description='',
    ):
        self.name = name
        self.base_url = base_url.rstrip('/')
        self.user_name = user_name
        self.password = password
        self.is_default = is_default
        self.description = description

    def summary(self):
        return {
            'name': self.name,
            'url': self.base_url,
            'default': self.is_default,
            'description': self.description,
        }

    def __repr__(self):
        return '<Instance %s %s>' % (self.name, self.base_url)


class InstanceCatalog:
    def __init__(self, instances):
        self.instances = list(instances)
        if not self.instances:
            raise DomainException('No ServiceNow instances are configured.')
        names = [instance.name for instance in self.instances]
        if len(set(names)) != len(names):
            raise DomainException('Instance names must be unique.')
        default_instances = [
            instance for instance in self.instances if instance.is_default
        ]
        if len(default_instances) != 1:
            raise DomainException('Exactly one instance must be marked default.')

    def list_instances(self):
        return list(self.instances)

    def instance_names(self):
        return [instance.name for instance in self.instances]

    def get_instance(self, name):
        for instance in self.instances:
            if instance.name == name:
                return instance
        raise InstanceNotFound(
            "Instance '%s' not found. Available instances: %s"
            % (name, ', '.join(self.instance_names()))
        )

    def get_default(self):
        for instance in self.instances:
            if instance.is_default:
                return instance


def load_instance_catalog(config_path=None, environ=None):
    if environ is None:
        environ = os.environ
    if config_path is None:
        config_path = environ.get('SERVICENOW_INSTANCES_CONFIG', DEFAULT_CONFIG_PATH)
    if os.path.exists(config_path):
        instance_entries = instance_entries_from_file(config_path)
    else:
        logging.getLogger(__name__).warning(
            '%s not found, falling back to environment variables',
            config_path,
        )
        instance_entries = instance_entries_from_environment(environ)
    return InstanceCatalog(
        instances_from_entries(
            instance_entries,
            environ.get('SERVICENOW_INSTANCE', ''),
        )
    )


def instance_entries_from_file(config_path):
    try:
        with open(config_path, encoding='utf-8') as config_file:
            config = json.load(config_file)
    except (OSError, ValueError) as error:
        raise DomainException(
            'Failed to load ServiceNow instances config: %s' % error
        ) from error
    if not isinstance(config, dict) or not isinstance(config.get('instances'), list):
        raise DomainException(
            'Instances config must contain an "instances" list.'
        )
    return config['instances']


def instance_entries_from_environment(environ):
    missing_variables = [
        variable_name
        for variable_name in (
            'SERVICENOW_INSTANCE_URL',
            'SERVICENOW_USERNAME',
            'SERVICENOW_PASSWORD',
        )
        if not environ.get(variable_name)
    ]
    if missing_variables:
        raise DomainException(
            'Missing ServiceNow credentials. Create %s or set %s.'
            % (DEFAULT_CONFIG_PATH, ', '.join(missing_variables))
        )
    return [
        {
            'name': 'default',
            'url': environ['SERVICENOW_INSTANCE_URL'],
            'username': environ['SERVICENOW_USERNAME'],
            'password': environ['SERVICENOW_PASSWORD'],
            'default': True,
            'description': 'Loaded from environment',
        }
    ]


def instances_from_entries(instance_entries, default_instance_name=''):
    for instance_entry in instance_entries:
        validate_instance_entry(instance_entry)
    if default_instance_name:
        if default_instance_name not in [
            instance_entry['name'] for instance_entry in instance_entries
        ]:
            raise InstanceNotFound(
                "Instance '%s' named by SERVICENOW_INSTANCE is not configured."
                % default_instance_name
            )
        default_flags = [
            instance_entry['name'] == default_instance_name
            for instance_entry in instance_entries
        ]
    else:
        default_flags = [
            bool(instance_entry.get('default', False))
            for instance_entry in instance_entries
        ]
        if instance_entries and not any(default_flags):
            default_flags[0] = True
    return [
        Instance(
            instance_entry['name'],
            instance_entry['url'],
            instance_entry['username'],
            instance_entry['password'],
            is_default=is_default,
            description=instance_entry.get('description', ''),
        )
        for instance_entry, is_default in zip(instance_entries, default_flags)
    ]


def validate_instance_entry(instance_entry):
    if not isinstance(instance_entry, dict):
        raise DomainException('Each instance configuration must be an object.')
    for field_name in REQUIRED_FIELDS:
        if not instance_entry.get(field_name):
            raise DomainException(
                'Instance configuration missing required field: %s' % field_name
            )
