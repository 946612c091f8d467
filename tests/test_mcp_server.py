from importlib.util import find_spec
from unittest.mock import patch

from reahl.tofu import NoException
from reahl.tofu import expected

from reahl.nowbridge.mcp.server import McpDependencyNotInstalled
from reahl.nowbridge.mcp.server import create_server
from reahl.nowbridge.mcp.server import import_fast_mcp
from reahl.nowbridge.platform import OperationService

from fake_platform import two_instance_catalog


def test_import_fast_mcp_matches_environment_dependency_state():
    expected_exception = (
        McpDependencyNotInstalled
        if find_spec('mcp.server.fastmcp') is None
        else NoException
    )
    with expected(expected_exception):
        import_fast_mcp()


def test_create_server_registers_tools_with_an_operation_service():
    class FakeServer:
        def __init__(self):
            self.name = None
            self.version = None

    def fake_fast_mcp(name, version):
        fake_server = FakeServer()
        fake_server.name = name
        fake_server.version = version
        return fake_server

    captured = {}

    def fake_register_tools(
        mcp_server,
        operation_service,
        scripts_directory='scripts',
    ):
        captured['mcp_server'] = mcp_server
        captured['operation_service'] = operation_service
        captured['scripts_directory'] = scripts_directory

    with patch(
        'reahl.nowbridge.mcp.server.import_fast_mcp',
        return_value=fake_fast_mcp,
    ):
        with patch(
            'reahl.nowbridge.mcp.server.register_tools',
            fake_register_tools,
        ):
            mcp_server = create_server(
                two_instance_catalog(),
                scripts_directory='generated',
                settle_seconds=3.5,
            )

    assert mcp_server is captured['mcp_server']
    assert mcp_server.name == 'NowBridgeMCP'
    assert mcp_server.version == '0.1.0'
    assert isinstance(captured['operation_service'], OperationService)
    assert captured['operation_service'].executor.settle_seconds == 3.5
    assert captured['scripts_directory'] == 'generated'


def test_create_server_supports_fast_mcp_without_version_argument():
    class FakeServer:
        def __init__(self):
            self.name = None

    def fake_fast_mcp(name):
        fake_server = FakeServer()
        fake_server.name = name
        return fake_server

    captured = {}

    def fake_register_tools(
        mcp_server,
        operation_service,
        scripts_directory='scripts',
    ):
        captured['mcp_server'] = mcp_server

    with patch(
        'reahl.nowbridge.mcp.server.import_fast_mcp',
        return_value=fake_fast_mcp,
    ):
        with patch(
            'reahl.nowbridge.mcp.server.register_tools',
            fake_register_tools,
        ):
            mcp_server = create_server(two_instance_catalog())

    assert mcp_server is captured['mcp_server']
    assert mcp_server.name == 'NowBridgeMCP'


def test_create_server_refuses_a_negative_settle_wait():
    with expected(ValueError):
        create_server(two_instance_catalog(), settle_seconds=-1)
