# engine.simulator.py

import logging
import math
import multiprocessing as mp
import time
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from models import EnsembleResult, RiskMetrics, ScenarioOutcome, ScenarioParams, SimulationConfig
from engine.exceptions import WorkerFailureError
from engine.market_generator import stratified_shocks
from engine.risk_metrics import cash_flow_bands, compute_risk_metrics, median_outcome, percentile_table
from engine.scenario_runner import ScenarioRunner

logger = logging.getLogger(__name__)

# Extra entropy word so the stratification design never collides with a scenario stream
STRATA_SEED_KEY = 0x5EED

CHUNKS_PER_WORKER = 4


def _run_chunk(params: ScenarioParams, config: SimulationConfig, tasks: Sequence[Dict[str, Any]]) -> List[ScenarioOutcome]:
    """Worker entry point: runs a contiguous block of scenarios."""
    runner = ScenarioRunner(params, config)
    return [runner.run(**task) for task in tasks]


class RetirementSimulator:
    """
    Runs the Monte Carlo ensemble for one household and aggregates the outcomes
    into an EnsembleResult.
    """
    def __init__(self, params: ScenarioParams, config: Optional[SimulationConfig] = None):
        self.params = params
        self.config = config or SimulationConfig()
        self.outcomes: List[ScenarioOutcome] = []

    # =========================================================================
    # 1. CORE SIMULATION RUNNER
    # =========================================================================
    def run_simulation(self, cancel_event=None) -> EnsembleResult:
        """
        Runs all scenarios, sequentially or on a process pool.

        ``cancel_event`` is anything with ``is_set()``; once set (or once the
        configured ``time_limit`` passes) no new scenarios start and the
        statistics cover the completed ones only.
        """
        cfg = self.config
        tasks = self._scenario_tasks()
        logger.info(f"Starting {len(tasks)} scenarios on {cfg.worker_count} worker(s), seed {cfg.seed}")
        started = time.monotonic()

        if cfg.worker_count > 1 and len(tasks) > 1:
            outcomes, stop_reason = self._run_parallel(tasks, started, cancel_event)
        else:
            outcomes, stop_reason = self._run_sequential(tasks, started, cancel_event)

        self.outcomes = outcomes
        result = self._summarize_results(outcomes, stop_reason)
        logger.info(f"Finished {result.completed_scenarios}/{result.requested_scenarios} scenarios in "
                    f"{time.monotonic() - started:.1f}s, success {result.success_probability:.1f}%")
        return result

    def _scenario_tasks(self) -> List[Dict[str, Any]]:
        """Per-scenario arguments; antithetic mates share a path and its stratum."""
        cfg = self.config
        n = cfg.iterations
        antithetic = cfg.use_antithetic_variates
        n_paths = math.ceil(n / 2) if antithetic else n

        strata = None
        if cfg.use_stratified_sampling:
            n_years = min(cfg.stratified_years, self.params.horizon_years)
            strata = stratified_shocks(n_paths, n_years, np.random.SeedSequence([cfg.seed, STRATA_SEED_KEY]))

        tasks = []
        for i in range(n):
            path = i // 2 if antithetic else i
            tasks.append({
                "scenario_index": i,
                "path_index": path,
                "antithetic": antithetic and i % 2 == 1,
                "stratified_row": None if strata is None else strata[path],
            })
        return tasks

    def _should_stop(self, started: float, cancel_event) -> Optional[str]:
        if cancel_event is not None and cancel_event.is_set():
            return "cancelled"
        limit = self.config.time_limit
        if limit is not None and time.monotonic() - started >= limit:
            return "time_limit"
        return None

    def _run_sequential(self, tasks, started, cancel_event) -> Tuple[List[ScenarioOutcome], Optional[str]]:
        runner = ScenarioRunner(self.params, self.config)
        outcomes = []
        for task in tasks:
            stop_reason = self._should_stop(started, cancel_event)
            if stop_reason:
                logger.warning(f"Stopping early ({stop_reason}) after {len(outcomes)} scenarios")
                return outcomes, stop_reason
            outcomes.append(runner.run(**task))
        return outcomes, None

    # =========================================================================
    # 2. PARALLEL EXECUTION
    # =========================================================================
    def _chunk_bounds(self, n: int) -> List[Tuple[int, int]]:
        n_chunks = min(n, self.config.worker_count * CHUNKS_PER_WORKER)
        edges = np.linspace(0, n, n_chunks + 1).astype(int)
        return [(int(a), int(b)) for a, b in zip(edges[:-1], edges[1:]) if b > a]

    def _run_parallel(self, tasks, started, cancel_event) -> Tuple[List[ScenarioOutcome], Optional[str]]:
        cfg = self.config
        outcomes: List[ScenarioOutcome] = []

        with mp.Pool(cfg.worker_count) as pool:
            pending = [
                (start, stop, pool.apply_async(_run_chunk, (self.params, cfg, tasks[start:stop])))
                for start, stop in self._chunk_bounds(len(tasks))
            ]
            # Chunks are collected in order so the completed set is always a prefix
            for start, stop, async_result in pending:
                stop_reason = self._wait_for(async_result, started, cancel_event)
                if stop_reason:
                    logger.warning(f"Stopping early ({stop_reason}) after {len(outcomes)} scenarios")
                    return outcomes, stop_reason
                try:
                    outcomes.extend(async_result.get(timeout=0))
                    logger.debug(f"Chunk [{start}, {stop}) done, {len(outcomes)}/{len(tasks)} scenarios")
                except Exception as exc:
                    logger.warning(f"Chunk [{start}, {stop}) failed ({exc!r}); retrying on a fresh worker")
                    try:
                        outcomes.extend(self._retry_chunk(tasks, start, stop))
                    except WorkerFailureError as failure:
                        logger.warning(f"Aborting ensemble: {failure}")
                        return outcomes, "worker_failure"
        return outcomes, None

    def _wait_for(self, async_result, started, cancel_event) -> Optional[str]:
        """
        Blocks until the chunk is ready or its worker_timeout passes, polling
        for cancellation and the time limit.
        """
        timeout = self.config.worker_timeout
        waiting_since = time.monotonic()
        while not async_result.ready():
            if timeout is not None and time.monotonic() - waiting_since >= timeout:
                return None
            stop_reason = self._should_stop(started, cancel_event)
            if stop_reason:
                return stop_reason
            async_result.wait(0.05)
        return None

    def _retry_chunk(self, tasks, start: int, stop: int) -> List[ScenarioOutcome]:
        try:
            with mp.Pool(1) as pool:
                return pool.apply_async(_run_chunk, (self.params, self.config, tasks[start:stop])).get(
                    timeout=self.config.worker_timeout)
        except Exception as exc:
            raise WorkerFailureError(start, stop, exc) from exc

    # =========================================================================
    # 3. SUMMARIZE
    # =========================================================================
    def _summarize_results(self, outcomes: List[ScenarioOutcome], stop_reason: Optional[str] = None) -> EnsembleResult:
        cfg = self.config
        requested = cfg.iterations
        completed = len(outcomes)
        partial = stop_reason is not None or completed < requested

        if completed == 0:
            return EnsembleResult(
                success_probability=0.0,
                raw_success_probability=0.0,
                legacy_success_probability=0.0,
                ending_balance_percentiles={p: 0.0 for p in cfg.percentiles},
                mean_ending_balance=0.0,
                risk_metrics=RiskMetrics(),
                median_trajectory=(),
                cash_flow_bands=None,
                ltc_impact={},
                guardrail_stats={},
                requested_scenarios=requested,
                completed_scenarios=0,
                partial=True,
                stop_reason=stop_reason or "no_scenarios_completed",
            )

        outcomes = sorted(outcomes, key=lambda o: o.scenario_index)
        success = np.array([o.success for o in outcomes], dtype=float)
        endings = np.array([o.ending_balance for o in outcomes])
        raw_probability = float(success.mean())

        probability, beta = raw_probability, None
        if cfg.use_control_variates:
            probability, beta = self._control_variate_estimate(success, np.array([o.control_statistic for o in outcomes]))

        median = median_outcome(outcomes)
        bands = cash_flow_bands(outcomes, cfg.percentiles) if cfg.include_cash_flow_bands else None

        return EnsembleResult(
            success_probability=100.0 * probability,
            raw_success_probability=100.0 * raw_probability,
            legacy_success_probability=100.0 * float(np.mean([o.legacy_goal_met for o in outcomes])),
            ending_balance_percentiles=percentile_table(endings, cfg.percentiles),
            mean_ending_balance=float(endings.mean()),
            risk_metrics=compute_risk_metrics(outcomes),
            median_trajectory=median.year_states if median is not None else (),
            cash_flow_bands=bands,
            ltc_impact=self._ltc_stats(outcomes),
            guardrail_stats=self._guardrail_stats(outcomes),
            requested_scenarios=requested,
            completed_scenarios=completed,
            partial=partial,
            stop_reason=stop_reason,
            control_variate_beta=beta,
            outcomes=tuple(outcomes),
        )

    @staticmethod
    def _control_variate_estimate(y: np.ndarray, x: np.ndarray) -> Tuple[float, Optional[float]]:
        """
        Success rate adjusted by the mean primary shock, whose true mean is 0.
        Falls back to the raw mean when the control has no variance.
        """
        if y.size < 2:
            return float(y.mean()), None
        var_x = float(np.var(x, ddof=1))
        if var_x <= 0:
            return float(y.mean()), None
        beta = float(np.cov(y, x, ddof=1)[0, 1] / var_x)
        adjusted = float(y.mean() - beta * x.mean())
        return min(max(adjusted, 0.0), 1.0), beta

    @staticmethod
    def _ltc_stats(outcomes: Sequence[ScenarioOutcome]) -> Dict[str, float]:
        with_event = [o for o in outcomes if o.ltc_event_occurred]
        without = [o for o in outcomes if not o.ltc_event_occurred]

        def rate(group):
            return 100.0 * float(np.mean([o.success for o in group])) if group else 0.0

        return {
            "event_probability": 100.0 * len(with_event) / len(outcomes),
            "average_cost_when_occurred": float(np.mean([o.ltc_total_cost for o in with_event])) if with_event else 0.0,
            "success_with_event": rate(with_event),
            "success_without_event": rate(without),
        }

    @staticmethod
    def _guardrail_stats(outcomes: Sequence[ScenarioOutcome]) -> Dict[str, float]:
        cuts = np.array([o.guardrail_cuts for o in outcomes], dtype=float)
        raises = np.array([o.guardrail_raises for o in outcomes], dtype=float)
        return {
            "scenarios_with_cuts": 100.0 * float(np.mean(cuts > 0)),
            "scenarios_with_raises": 100.0 * float(np.mean(raises > 0)),
            "average_cuts": float(cuts.mean()),
            "average_raises": float(raises.mean()),
        }


__all__ = ["RetirementSimulator"]
