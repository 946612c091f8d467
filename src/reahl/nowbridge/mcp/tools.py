import logging

from reahl.nowbridge.mcp.artifacts import write_manual_artifact
from reahl.nowbridge.platform import DomainException
from reahl.nowbridge.platform import OperationKind
from reahl.nowbridge.platform import fix_script_artifact


def register_tools(
    mcp_server,
    operation_service,
    scripts_directory='scripts',
):
    instance_router = operation_service.instance_router

    def error_response(message, **details):
        response = {
            'ok': False,
            'error': {'message': message},
        }
        response.update(details)
        return response

    def optional_instance_name(instance_name):
        if instance_name is None:
            return None
        if not isinstance(instance_name, str):
            raise DomainException('instance_name must be a string.')
        return instance_name.strip() or None

    def operation_response(execution_result):
        result_payload = execution_result.as_dict()
        response = {
            'ok': execution_result.success,
            'instance': result_payload['instance'],
            'result': result_payload,
        }
        if execution_result.manual_artifact is not None:
            try:
                response['manual_script_path'] = write_manual_artifact(
                    execution_result.manual_artifact,
                    scripts_directory,
                )
            except OSError as error:
                logging.getLogger(__name__).error(
                    'Could not write %s: %s',
                    execution_result.manual_artifact.suggested_file_name,
                    error,
                )
                return error_response(
                    'Could not write the manual script: %s' % error,
                    instance=result_payload['instance'],
                    result=result_payload,
                )
        if not execution_result.success:
            response['error'] = {'message': execution_result.error}
        return response

    async def perform(kind, parameters, instance_name):
        try:
            execution_result = await operation_service.perform_operation(
                kind,
                parameters,
                optional_instance_name(instance_name),
            )
        except DomainException as error:
            return error_response(str(error))
        logging.getLogger(__name__).debug(
            '%s finished via %s success=%s verified=%s',
            kind,
            execution_result.method_used,
            execution_result.success,
            execution_result.verified,
        )
        return operation_response(execution_result)

    async def read_current_state(kind, instance_name):
        try:
            instance_name = optional_instance_name(instance_name)
            current_state = await operation_service.current_state(
                kind,
                instance_name,
            )
        except DomainException as error:
            return error_response(str(error))
        return {
            'ok': True,
            'instance': instance_router.resolve(instance_name).name,
            'current': current_state,
        }

    @mcp_server.tool()
    def sn_list_instances():
        return {
            'ok': True,
            'current_instance': instance_router.resolve().name,
            'instances': [
                instance.summary()
                for instance in instance_router.instance_catalog.list_instances()
            ],
        }

    @mcp_server.tool()
    def sn_set_instance(instance_name=''):
        if not instance_name:
            return sn_list_instances()
        try:
            instance = instance_router.activate(instance_name)
        except DomainException as error:
            return error_response(str(error))
        return {
            'ok': True,
            'instance': instance.summary(),
        }

    @mcp_server.tool()
    def sn_get_current_instance():
        return {
            'ok': True,
            'instance': instance_router.resolve().summary(),
        }

    @mcp_server.tool()
    async def sn_set_current_application(app_sys_id, instance_name=''):
        return await perform(
            OperationKind.set_workspace_context,
            {'sys_id': app_sys_id},
            instance_name,
        )

    @mcp_server.tool()
    async def sn_set_update_set(update_set_sys_id, instance_name=''):
        return await perform(
            OperationKind.set_change_tracking_context,
            {'sys_id': update_set_sys_id},
            instance_name,
        )

    @mcp_server.tool()
    async def sn_execute_background_script(script, description='', instance_name=''):
        return await perform(
            OperationKind.run_remote_script,
            {'script': script, 'description': description},
            instance_name,
        )

    @mcp_server.tool()
    async def sn_get_current_update_set(instance_name=''):
        return await read_current_state(
            OperationKind.set_change_tracking_context,
            instance_name,
        )

    @mcp_server.tool()
    async def sn_get_current_application(instance_name=''):
        return await read_current_state(
            OperationKind.set_workspace_context,
            instance_name,
        )

    @mcp_server.tool()
    def sn_create_fix_script(
        script_name,
        script_content,
        description='',
        auto_delete=False,
    ):
        try:
            artifact = fix_script_artifact(
                script_name,
                script_content,
                description=description or '',
                auto_delete=bool(auto_delete),
            )
        except DomainException as error:
            return error_response(str(error))
        try:
            manual_script_path = write_manual_artifact(artifact, scripts_directory)
        except OSError as error:
            return error_response(
                'Could not write the fix script: %s' % error,
                artifact=artifact.as_dict(),
            )
        logging.getLogger(__name__).info('Created fix script %s', manual_script_path)
        return {
            'ok': True,
            'manual_script_path': manual_script_path,
            'artifact': artifact.as_dict(),
        }
