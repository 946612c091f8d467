import contextvars
import logging


class NestedInstanceBinding(Exception):
    pass


class ClientBinding:
    def __init__(self, instance):
        self.instance = instance
        self.name = instance.name
        self.base_url = instance.base_url
        self.user_name = instance.user_name
        self.password = instance.password

    def __repr__(self):
        return '<ClientBinding %s %s>' % (self.name, self.base_url)


class InstanceRouter:
    def __init__(self, instance_catalog):
        self.instance_catalog = instance_catalog
        self.active_instance_name = None
        self.scoped_binding = contextvars.ContextVar(
            'nowbridge_scoped_binding_%s' % id(self),
            default=None,
        )

    def resolve(self, instance_name=None):
        if instance_name:
            return self.instance_catalog.get_instance(instance_name)
        if self.active_instance_name:
            return self.instance_catalog.get_instance(self.active_instance_name)
        return self.instance_catalog.get_default()

    def activate(self, instance_name):
        instance = self.instance_catalog.get_instance(instance_name)
        self.active_instance_name = instance.name
        logging.getLogger(__name__).info(
            'Switched to instance %s (%s)', instance.name, instance.base_url
        )
        return instance

    def current_binding(self):
        binding = self.scoped_binding.get()
        if binding is not None:
            return binding
        return ClientBinding(self.resolve())

    def is_bound(self):
        return self.scoped_binding.get() is not None

    async def with_instance(self, instance_name, function):
        instance = self.resolve(instance_name)
        if self.is_bound():
            raise NestedInstanceBinding(
                'with_instance(%r) called while %r is bound.'
                % (instance.name, self.scoped_binding.get())
            )
        token = self.scoped_binding.set(ClientBinding(instance))
        try:
            return await function(self.scoped_binding.get())
        finally:
            self.scoped_binding.reset(token)
