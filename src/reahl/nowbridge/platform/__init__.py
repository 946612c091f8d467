from reahl.nowbridge.platform.executor import NoApplicableStrategy
from reahl.nowbridge.platform.executor import TieredExecutor
from reahl.nowbridge.platform.instances import Instance
from reahl.nowbridge.platform.instances import InstanceCatalog
from reahl.nowbridge.platform.instances import InstanceNotFound
from reahl.nowbridge.platform.instances import load_instance_catalog
from reahl.nowbridge.platform.operations import ExecutionResult
from reahl.nowbridge.platform.operations import FailureClass
from reahl.nowbridge.platform.operations import ManualArtifact
from reahl.nowbridge.platform.operations import OperationKind
from reahl.nowbridge.platform.operations import OperationRequest
from reahl.nowbridge.platform.operations import StrategyOutcome
from reahl.nowbridge.platform.operations import Synchronicity
from reahl.nowbridge.platform.routing import ClientBinding
from reahl.nowbridge.platform.routing import InstanceRouter
from reahl.nowbridge.platform.routing import NestedInstanceBinding
from reahl.nowbridge.platform.service import OperationService
from reahl.nowbridge.platform.service import create_operation_service
from reahl.nowbridge.platform.session import DomainException
from reahl.nowbridge.platform.session import PlatformSession
from reahl.nowbridge.platform.session import SessionManager
from reahl.nowbridge.platform.strategies import default_strategies
from reahl.nowbridge.platform.strategies import fix_script_artifact
from reahl.nowbridge.platform.verification import Verifier

__all__ = [
    'ClientBinding',
    'DomainException',
    'ExecutionResult',
    'FailureClass',
    'Instance',
    'InstanceCatalog',
    'InstanceNotFound',
    'InstanceRouter',
    'ManualArtifact',
    'NestedInstanceBinding',
    'NoApplicableStrategy',
    'OperationKind',
    'OperationRequest',
    'OperationService',
    'PlatformSession',
    'SessionManager',
    'StrategyOutcome',
    'Synchronicity',
    'TieredExecutor',
    'Verifier',
    'create_operation_service',
    'default_strategies',
    'fix_script_artifact',
    'load_instance_catalog',
]
