import inspect

from reahl.nowbridge import __version__
from reahl.nowbridge.mcp.tools import register_tools
from reahl.nowbridge.platform import create_operation_service


class McpDependencyNotInstalled(Exception):
    pass


def import_fast_mcp():
    try:
        from mcp.server.fastmcp import FastMCP
    except ModuleNotFoundError as module_not_found_error:
        raise McpDependencyNotInstalled(
            'NowBridgeMCP requires the mcp package. '
            'Install with: pip install reahl-nowbridge'
        ) from module_not_found_error
    return FastMCP


def create_server(
    instance_catalog,
    scripts_directory='scripts',
    settle_seconds=2.0,
):
    if settle_seconds < 0:
        raise ValueError('settle_seconds cannot be negative.')
    fast_mcp = import_fast_mcp()
    try:
        constructor_signature = inspect.signature(fast_mcp)
    except (TypeError, ValueError):
        constructor_signature = None
    supports_keyword_arguments = any(
        parameter.kind == inspect.Parameter.VAR_KEYWORD
        for parameter in (
            constructor_signature.parameters.values()
            if constructor_signature
            else []
        )
    )
    server_arguments = {'name': 'NowBridgeMCP'}
    if (
        supports_keyword_arguments
        or (
            constructor_signature
            and 'version' in constructor_signature.parameters
        )
    ):
        server_arguments['version'] = __version__
    mcp_server = fast_mcp(**server_arguments)
    register_tools(
        mcp_server,
        create_operation_service(
            instance_catalog,
            settle_seconds=settle_seconds,
        ),
        scripts_directory=scripts_directory,
    )
    return mcp_server
