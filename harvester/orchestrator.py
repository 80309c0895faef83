"""Coordinator resolving configured targets into pipeline runs."""

from __future__ import annotations

from concurrent.futures import Future
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping

from .config import ConfigRepository, GlobalConfig, TargetConfig
from .engine import ThreadPoolManager
from .logging_conf import configure_logging, run_context, target_logger
from .pipeline import HarvestPipeline, RunStatus, RunSummary
from .sources import PlaywrightSource, SourceCapability

CapabilityFactory = Callable[[TargetConfig], SourceCapability]


class Orchestrator:
    """Central coordinator managing the lifecycle of target runs.

    Every run gets its own capability instance, pipeline, buffer and
    deduplication index; concurrent runs share nothing mutable.
    """

    def __init__(
        self,
        config_repository: ConfigRepository,
        thread_pool: ThreadPoolManager | None = None,
        capability_factory: CapabilityFactory | None = None,
    ) -> None:
        self.config_repository = config_repository
        self.global_config: GlobalConfig = config_repository.load_global_config()
        self.thread_pool = thread_pool or ThreadPoolManager(self.global_config.thread_pool_workers)
        self.capability_factory = capability_factory or self._default_capability
        self.logger = configure_logging().bind(component="orchestrator")

    # ------------------------------------------------------------------
    def target_names(self) -> list[str]:
        return [target.name for target in self.config_repository.list_targets()]

    def resolve_output_path(self, target: TargetConfig, output_path: Path | None = None) -> Path:
        if output_path is not None:
            return Path(output_path).expanduser().resolve()
        return target.resolved_output_path(self.config_repository.outputs_dir())

    def run_target(
        self,
        name: str,
        overrides: Mapping[str, Any] | None = None,
        output_path: Path | None = None,
        *,
        raise_errors: bool = True,
    ) -> RunSummary:
        target = apply_overrides(self.config_repository.load_target(name), overrides)
        destination = self.resolve_output_path(target, output_path)
        log = target_logger(target.name)
        pipeline = HarvestPipeline(target, self.capability_factory(target), destination, logger=log)
        with run_context(target.name, destination):
            try:
                return pipeline.run()
            except Exception as exc:  # noqa: BLE001
                if raise_errors:
                    raise
                log.error("run_aborted", error=str(exc), error_type=type(exc).__name__)
                return RunSummary(
                    target=target.name,
                    status=RunStatus.FAILED,
                    admitted=pipeline.admitted,
                    output_path=destination,
                    attempts=pipeline.loop.retry.attempts,
                    rounds=pipeline.loop.rounds,
                    error=str(exc),
                )

    def run_many(self, names: Iterable[str]) -> list[RunSummary]:
        """Run targets concurrently; results keep the order of ``names``."""

        executor = self.thread_pool.get()
        submitted: list[tuple[str, Future[RunSummary]]] = [
            (name, executor.submit(self.run_target, name, raise_errors=False)) for name in names
        ]
        summaries: list[RunSummary] = []
        for name, future in submitted:
            try:
                summaries.append(future.result())
            except Exception as exc:  # noqa: BLE001
                self.logger.error("target_aborted", target=name, error=str(exc))
                summaries.append(
                    RunSummary(
                        target=name,
                        status=RunStatus.FAILED,
                        admitted=0,
                        output_path=self.config_repository.outputs_dir(),
                        error=str(exc),
                    )
                )
        return summaries

    def run_all(self) -> list[RunSummary]:
        return self.run_many(self.target_names())

    def shutdown(self) -> None:
        self.thread_pool.shutdown()

    def _default_capability(self, target: TargetConfig) -> SourceCapability:
        return PlaywrightSource(self.global_config.browser)


def apply_overrides(target: TargetConfig, overrides: Mapping[str, Any] | None) -> TargetConfig:
    """Return a re-validated copy of ``target`` with non-None overrides applied."""

    updates = {key: value for key, value in (overrides or {}).items() if value is not None}
    if not updates:
        return target
    payload = target.model_dump()
    payload.update(updates)
    return TargetConfig.model_validate(payload)


__all__ = ["CapabilityFactory", "Orchestrator", "apply_overrides"]
