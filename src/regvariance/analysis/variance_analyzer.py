"""
Variance analysis across many returns against a rate-limited reporting API.

Each requested form goes through the same pipeline: list its instances, pick
the base and comparison instances, fetch the cell variances between them and
collect the failed validation rules of the base instance. Forms run
concurrently behind a fixed-size semaphore. A form that fails at any step is
logged and left out of the results; it never stops the other forms.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Iterable, List, Optional, TypeVar

from regvariance.analysis.instance_selector import (
    InstanceSelectionError,
    find_before_date,
    find_by_date,
)
from regvariance.analysis.progress import ProgressEmitter
from regvariance.data.models import AnalysisResult, InstanceSearchResult, ReturnConfig
from regvariance.gateway.base import ReportingGateway
from regvariance.gateway.errors import GatewayError
from regvariance.utils.calculations import calculate_variance_statistics

T = TypeVar('T')

DEFAULT_CONCURRENCY = 3

STEP_FETCH = 'fetching versions'
STEP_ANALYZE = 'analyzing variances'
STEP_VALIDATE = 'validating'
STEP_COMPLETE = 'complete'
STEPS_PER_FORM = 3


class AnalysisCancelled(Exception):
    """Raised inside a form pipeline once cancellation has been requested."""


class _RunCounter:
    """Global current/total counter for one run."""

    def __init__(self, emitter: ProgressEmitter, total: int):
        self.emitter = emitter
        self.total = total
        self.current = 0

    def advance(self, step: str, message: str, steps: int = 1) -> None:
        self.current = min(self.current + steps, self.total)
        self.emitter.emit(step, self.current, self.total, f"{message} ({self.current}/{self.total})")


class _FormProgress:
    """Tracks how many of a form's sub-steps have been reported."""

    def __init__(self, counter: _RunCounter, return_config: ReturnConfig):
        self.counter = counter
        self.return_config = return_config
        self.steps_done = 0

    def step(self, step: str, message: str) -> None:
        self.steps_done += 1
        self.counter.advance(step, message)

    def finish_abandoned(self) -> None:
        remaining = STEPS_PER_FORM - self.steps_done
        if remaining > 0:
            self.steps_done = STEPS_PER_FORM
            self.counter.advance(STEP_COMPLETE, f"Failed {self.return_config.name}", steps=remaining)


class VarianceAnalyzer:
    """Runs the per-form comparison pipeline for a batch of returns."""

    def __init__(self, gateway: ReportingGateway, concurrency: int = DEFAULT_CONCURRENCY,
                 progress: Optional[ProgressEmitter] = None,
                 call_timeout: Optional[float] = None):
        if concurrency < 1:
            raise ValueError(f"Concurrency must be at least 1, got {concurrency}")
        self.gateway = gateway
        self.concurrency = concurrency
        self.progress = progress or ProgressEmitter()
        self.call_timeout = call_timeout
        self.logger = logging.getLogger(__name__)
        self._cancel_requested = False

    def cancel(self) -> None:
        """Ask the forms of the current run to stop at their next gateway call."""
        self.logger.warning("Cancellation requested, remaining forms will be abandoned")
        self._cancel_requested = True

    @property
    def cancelled(self) -> bool:
        return self._cancel_requested

    def _run_emitter(self) -> ProgressEmitter:
        # Each run closes its stream; later runs get a fresh one with the same observers
        if self.progress.closed:
            self.progress = self.progress.renew()
        return self.progress

    async def analyze(self, returns: Iterable[ReturnConfig], base_date: str,
                      progress: Optional[ProgressEmitter] = None) -> List[AnalysisResult]:
        """
        Analyze multiple returns against a base date.

        Args:
            returns: Forms to compare
            base_date: Reference period, YYYY-MM-DD
            progress: Emitter for this run, defaults to the analyzer's own

        Returns:
            One result per successfully analysed form, in completion order
        """
        returns = list(returns)
        emitter = progress or self._run_emitter()
        counter = _RunCounter(emitter, len(returns) * STEPS_PER_FORM)
        semaphore = asyncio.Semaphore(self.concurrency)
        results: List[AnalysisResult] = []

        self.logger.info(f"Analyzing {len(returns)} returns against {base_date} "
                         f"(concurrency {self.concurrency})")
        emitter.emit('analyzing', 0, counter.total, 'Starting return analysis...')

        async def run_form(return_config: ReturnConfig) -> None:
            async with semaphore:
                tracker = _FormProgress(counter, return_config)
                try:
                    result = await self.analyze_one(return_config, base_date, tracker)
                except Exception as e:
                    self.logger.error(f"Error: {return_config.name} ({return_config.code}): {e}")
                    result = None
                if result is None:
                    tracker.finish_abandoned()
                else:
                    results.append(result)

        try:
            await asyncio.gather(*(run_form(rc) for rc in returns))
        finally:
            emitter.emit(STEP_COMPLETE, counter.current, counter.total,
                         f"Analysed {len(results)} of {len(returns)} returns")
            emitter.close()
            self._cancel_requested = False

        skipped = len(returns) - len(results)
        self.logger.info(f"Analysis finished: {len(results)} returns analysed, {skipped} skipped")
        return results

    async def analyze_one(self, return_config: ReturnConfig, base_date: str,
                          tracker: Optional[_FormProgress] = None) -> Optional[AnalysisResult]:
        """
        Analyze a single return against the base date.

        Args:
            return_config: Form to compare
            base_date: Reference period, YYYY-MM-DD
            tracker: Progress tracker supplied by analyze()

        Returns:
            The analysis result, or None when the form had to be abandoned
        """
        if tracker is None:
            tracker = _FormProgress(_RunCounter(self._run_emitter(), STEPS_PER_FORM), return_config)
        code, name = return_config.code, return_config.name

        tracker.step(STEP_FETCH, f"Fetching {name} versions")
        try:
            instances = await self._call(lambda: self.gateway.list_instances(code))
        except (GatewayError, asyncio.TimeoutError, AnalysisCancelled) as e:
            return self._abandon(return_config, f"no instances found: {self._describe(e)}")
        self.logger.info(f"{code}: found {len(instances)} instances")

        try:
            base = find_by_date(instances, base_date)
        except InstanceSelectionError as e:
            return self._abandon(return_config, f"no instance found for base date {base_date}: {e}")
        self.logger.info(f"{code}: base instance {base.instance.reference_date} (ID: {base.instance.id})")

        comparison = self._select_comparison(return_config, instances, base_date)
        if comparison is None:
            return self._abandon(return_config, f"no comparison instance found before {base_date}")
        self.logger.info(f"{code}: comparison instance {comparison.instance.reference_date} "
                         f"(ID: {comparison.instance.id}, {comparison.match_type}, "
                         f"{comparison.days_difference} days before {comparison.search_date})")

        tracker.step(STEP_ANALYZE, f"Analyzing {name}")
        try:
            variances = await self._call(lambda: self.gateway.compare_instances(
                code, comparison.instance, base.instance))
        except (GatewayError, asyncio.TimeoutError, AnalysisCancelled) as e:
            return self._abandon(return_config, f"failed to fetch variance data: {self._describe(e)}")

        tracker.step(STEP_VALIDATE, f"Validating {name}")
        try:
            validations = await self._call(lambda: self.gateway.validate(base.instance))
        except (GatewayError, asyncio.TimeoutError, AnalysisCancelled) as e:
            return self._abandon(return_config, f"failed to fetch validation results: {self._describe(e)}")

        validation_errors = [v for v in validations if v.failed]
        stats = calculate_variance_statistics(variances)
        self.logger.info(f"✓ Completed {code}: {len(variances)} variance records, "
                         f"{stats.meaningful_count} meaningful differences "
                         f"(max {stats.max_abs_value:,.2f}), "
                         f"{len(validation_errors)} validation errors")

        return AnalysisResult(
            form_name=name,
            form_code=code,
            confirmed=return_config.confirmed,
            base_instance=base.instance,
            comparison_instance=comparison.instance,
            variances=list(variances),
            validation_errors=validation_errors,
        )

    def _select_comparison(self, return_config: ReturnConfig, instances,
                           base_date: str) -> Optional[InstanceSearchResult]:
        """Comparison instance: the expected date if configured, else the latest before the base date."""
        expected = return_config.expected_date
        if not expected:
            try:
                return find_before_date(instances, base_date)
            except InstanceSelectionError:
                return None

        try:
            return find_by_date(instances, expected)
        except InstanceSelectionError:
            self.logger.warning(f"{return_config.code}: no comparison instance found for expected date "
                                f"{expected}, picking next closest instance before {expected}")
        try:
            return find_before_date(instances, expected)
        except InstanceSelectionError:
            return None

    async def _call(self, make_call: Callable[[], Awaitable[T]]) -> T:
        if self._cancel_requested:
            raise AnalysisCancelled("analysis cancelled")
        if self.call_timeout is None:
            return await make_call()
        return await asyncio.wait_for(make_call(), timeout=self.call_timeout)

    @staticmethod
    def _describe(error: Exception) -> str:
        if isinstance(error, asyncio.TimeoutError):
            return 'gateway call timed out'
        return str(error) or error.__class__.__name__

    def _abandon(self, return_config: ReturnConfig, reason: str) -> None:
        self.logger.warning(f"Skipping {return_config.name} ({return_config.code}): {reason}")
        return None
