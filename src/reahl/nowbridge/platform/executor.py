import asyncio
import logging
import time

from reahl.nowbridge.platform.operations import ExecutionResult
from reahl.nowbridge.platform.operations import FailureClass
from reahl.nowbridge.platform.operations import OperationKind
from reahl.nowbridge.platform.operations import StrategyOutcome
from reahl.nowbridge.platform.operations import Synchronicity
from reahl.nowbridge.platform.session import DomainException
from reahl.nowbridge.platform.session import SessionEstablishmentFailed
from reahl.nowbridge.platform.verification import StateReadFailed


class NoApplicableStrategy(DomainException):
    failure_class = FailureClass.fatal


def elapsed_ms_since(started_at):
    return round((time.monotonic() - started_at) * 1000, 3)


class TieredExecutor:
    def __init__(
        self,
        strategies,
        session_manager,
        verifier,
        settle_seconds=2.0,
        retry_backoff_seconds=0.5,
        sleep=asyncio.sleep,
    ):
        self.strategies = list(strategies)
        self.session_manager = session_manager
        self.verifier = verifier
        self.settle_seconds = settle_seconds
        self.retry_backoff_seconds = retry_backoff_seconds
        self.sleep = sleep
        for kind in OperationKind.all_kinds:
            applicable_strategies = self.strategies_for(kind)
            if applicable_strategies and not applicable_strategies[-1].produces_artifact:
                raise ValueError(
                    'The last strategy for %s must produce a manual artifact.' % kind
                )

    def strategies_for(self, kind):
        return [
            strategy for strategy in self.strategies if strategy.applies_to_kind(kind)
        ]

    async def execute(self, request):
        strategies = self.strategies_for(request.kind)
        if not strategies:
            raise NoApplicableStrategy(
                'No strategy can perform %s.' % request.kind
            )
        automated_strategies = [
            strategy for strategy in strategies if not strategy.produces_artifact
        ]
        manual_strategy = strategies[-1]
        result = ExecutionResult(request)
        result.previous_state = await self.previous_state_for(request)

        for strategy in automated_strategies:
            outcome = await self.attempt_with_retry(strategy, request, result)
            if outcome.succeeded:
                await self.complete(strategy, outcome, request, result)
                return result
            if outcome.failure_class == FailureClass.not_found:
                logging.getLogger(__name__).warning(
                    '%s aborted by %s: %s', request, strategy.name, outcome.detail
                )
                result.method_used = strategy.method_name
                result.failure_class = FailureClass.not_found
                result.error = outcome.detail
                return result
            if outcome.failure_class == FailureClass.malformed:
                result.add_warning(outcome.detail)
            logging.getLogger(__name__).warning(
                '%s escalating past %s after %s failure: %s',
                request,
                strategy.name,
                outcome.failure_class,
                outcome.detail,
            )

        return await self.fall_back_to_manual(manual_strategy, request, result)

    async def previous_state_for(self, request):
        if not request.is_context_change:
            return None
        try:
            return await self.verifier.current_state(
                request.kind,
                request.binding,
            )
        except StateReadFailed as error:
            logging.getLogger(__name__).warning(
                'Could not snapshot state before %s: %s', request, error
            )
            return None

    async def attempt_with_retry(self, strategy, request, result):
        outcome = await self.timed_attempt(strategy, request, result)
        if outcome.failure_class == FailureClass.retryable:
            logging.getLogger(__name__).debug(
                'Retrying %s once after %s', strategy.name, outcome.detail
            )
            await self.sleep(self.retry_backoff_seconds)
            outcome = await self.timed_attempt(strategy, request, result)
        return outcome

    async def timed_attempt(self, strategy, request, result):
        started_at = time.monotonic()
        logging.getLogger(__name__).debug('Attempting %s with %s', request, strategy.name)
        try:
            session = await self.session_for(strategy, request)
        except SessionEstablishmentFailed as error:
            outcome = StrategyOutcome.failure(FailureClass.retryable, str(error))
        else:
            outcome = await strategy.attempt(request, session)
        result.record_attempt(strategy, outcome, elapsed_ms_since(started_at))
        return outcome

    async def session_for(self, strategy, request):
        if strategy.requires_session:
            return await self.session_manager.establish(request.binding)
        return self.session_manager.bare(request.binding)

    async def complete(self, strategy, outcome, request, result):
        result.success = True
        result.method_used = strategy.method_name
        result.response = outcome.raw_response
        result.trigger = outcome.trigger
        if strategy.synchronicity == Synchronicity.eventual or outcome.requires_settle_wait:
            started_at = time.monotonic()
            await self.sleep(self.settle_seconds)
            result.timings['settle_ms'] = elapsed_ms_since(started_at)
        expected_state = self.verifier.expected_state_for(request)
        if expected_state is None:
            return
        started_at = time.monotonic()
        verification = await self.verifier.verify(request, expected_state)
        result.timings['verify_ms'] = elapsed_ms_since(started_at)
        result.verified = verification.verified
        if not verification.verified:
            result.add_warning(
                'Could not confirm the change made by %s: %s '
                'The change may still take effect.'
                % (strategy.name, verification.detail)
            )

    async def fall_back_to_manual(self, manual_strategy, request, result):
        logging.getLogger(__name__).warning(
            'All automated strategies failed for %s; producing a manual script',
            request,
        )
        outcome = await self.timed_attempt(manual_strategy, request, result)
        result.method_used = manual_strategy.method_name
        result.manual_artifact = outcome.artifact
        result.error = (
            'Automated execution was not possible. '
            'Run the manual script to complete the operation.'
        )
        return result
