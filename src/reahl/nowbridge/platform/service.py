from reahl.nowbridge.platform.executor import TieredExecutor
from reahl.nowbridge.platform.operations import OperationRequest
from reahl.nowbridge.platform.routing import InstanceRouter
from reahl.nowbridge.platform.session import SessionManager
from reahl.nowbridge.platform.strategies import default_strategies
from reahl.nowbridge.platform.verification import Verifier


class OperationService:
    def __init__(self, instance_router, executor):
        self.instance_router = instance_router
        self.executor = executor

    async def perform_operation(self, kind, parameters, instance_name=None):
        async def execute_on_binding(binding):
            request = OperationRequest(kind, parameters, binding)
            return await self.executor.execute(request)

        return await self.instance_router.with_instance(
            instance_name,
            execute_on_binding,
        )

    async def current_state(self, kind, instance_name=None):
        async def read_on_binding(binding):
            return await self.executor.verifier.current_state(kind, binding)

        return await self.instance_router.with_instance(
            instance_name,
            read_on_binding,
        )


def create_operation_service(
    instance_catalog,
    settle_seconds=2.0,
    retry_backoff_seconds=0.5,
    transport=None,
):
    session_manager = SessionManager(transport=transport)
    executor = TieredExecutor(
        default_strategies(),
        session_manager,
        Verifier(session_manager),
        settle_seconds=settle_seconds,
        retry_backoff_seconds=retry_backoff_seconds,
    )
    return OperationService(InstanceRouter(instance_catalog), executor)
