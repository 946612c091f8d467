import argparse
import logging
import sys

from reahl.nowbridge.mcp.server import create_server
from reahl.nowbridge.platform import DomainException
from reahl.nowbridge.platform import load_instance_catalog


def argument_parser():
    parser = argparse.ArgumentParser(
        description='Run NowBridgeMCP server.'
    )
    parser.add_argument(
        '--transport',
        default='stdio',
        choices=['stdio'],
        help='MCP transport type.',
    )
    parser.add_argument(
        '--config',
        default=None,
        help=(
            'Path to servicenow-instances.json. Defaults to '
            '$SERVICENOW_INSTANCES_CONFIG or config/servicenow-instances.json; '
            'falls back to SERVICENOW_INSTANCE_URL, SERVICENOW_USERNAME and '
            'SERVICENOW_PASSWORD when the file does not exist.'
        ),
    )
    parser.add_argument(
        '--scripts-directory',
        default='scripts',
        help='Directory where manual scripts are written.',
    )
    parser.add_argument(
        '--settle-seconds',
        type=float,
        default=2.0,
        help='Wait after a scheduled job is created, before verifying it.',
    )
    parser.add_argument(
        '--log-level',
        default='WARNING',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        help='Logging level (logs go to stderr).',
    )
    return parser


def run_application(arguments=None):
    parser = argument_parser()
    arguments = parser.parse_args(arguments)
    if arguments.settle_seconds < 0:
        parser.error('--settle-seconds cannot be negative.')
    logging.basicConfig(
        level=getattr(logging, arguments.log_level),
        stream=sys.stderr,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )
    try:
        instance_catalog = load_instance_catalog(arguments.config)
    except DomainException as error:
        parser.error(str(error))
    mcp_server = create_server(
        instance_catalog,
        scripts_directory=arguments.scripts_directory,
        settle_seconds=arguments.settle_seconds,
    )
    mcp_server.run(transport=arguments.transport)


if __name__ == '__main__':
    run_application()
