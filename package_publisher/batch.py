"""Publishing to several registries in one invocation.

Each registry gets its own PublishWorkflow and its own state file, and runs
non-interactively. Sequential mode keeps the given order; parallel mode
runs a bounded pool of workers over a shared queue.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from package_publisher.config.models import PublishConfig
from package_publisher.plugins.base import PluginRegistry, PublishOptions
from package_publisher.plugins.loader import load_plugins
from package_publisher.state import PublishState, WorkflowState, state_file_for
from package_publisher.workflow import PublishReport, PublishWorkflow

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENCY = 3

WorkflowFactory = Callable[[str], PublishWorkflow]


@dataclass
class BatchOptions:
    """How a batch is scheduled."""

    sequential: bool = False
    continue_on_error: bool = False
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY
    publish: PublishOptions = field(default_factory=PublishOptions)

    def __post_init__(self) -> None:
        if self.max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")


@dataclass
class BatchResult:
    """Outcome of publishing to several registries."""

    succeeded: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    skipped: list[str] = field(default_factory=list)
    results: dict[str, PublishReport] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        """True only if every requested registry was published."""
        return not self.failed and not self.skipped


def default_workflow_factory(project_root: Path, config: PublishConfig) -> WorkflowFactory:
    """Build independent workflows with per-registry state files."""

    def factory(registry: str) -> PublishWorkflow:
        plugins = PluginRegistry.create_all(project_root, config=config)
        plugins.extend(load_plugins(config.plugins, project_root, config=config))
        return PublishWorkflow(
            project_root,
            plugins,
            config,
            state=WorkflowState(project_root, state_file_for(project_root, registry)),
        )

    return factory


class BatchPublisher:
    """Publishes one project to several registries.

    Args:
        project_root: Project directory
        config: Resolved configuration
        workflow_factory: Builds a fresh PublishWorkflow for a registry name
    """

    def __init__(
        self,
        project_root: Path,
        config: PublishConfig | None = None,
        workflow_factory: WorkflowFactory | None = None,
    ) -> None:
        self.project_root = Path(project_root)
        self.config = config or PublishConfig()
        self._factory = workflow_factory or default_workflow_factory(self.project_root, self.config)

    async def publish_to_multiple(
        self,
        registries: list[str],
        options: BatchOptions | None = None,
    ) -> BatchResult:
        """Publish to every registry in ``registries``.

        Raises:
            ValueError: If no registries are given
        """
        if not registries:
            raise ValueError("At least one registry must be specified")

        opts = options or BatchOptions()
        result = BatchResult()

        if opts.sequential:
            await self._run_sequential(registries, opts, result)
        else:
            await self._run_parallel(registries, opts, result)

        logger.info(
            "Batch finished: %d succeeded, %d failed, %d skipped",
            len(result.succeeded),
            len(result.failed),
            len(result.skipped),
        )
        return result

    async def _run_sequential(self, registries: list[str], opts: BatchOptions, result: BatchResult) -> None:
        for index, registry in enumerate(registries):
            if result.failed and not opts.continue_on_error:
                result.skipped.extend(registries[index:])
                return
            await self._publish_one(registry, opts, result)

    async def _run_parallel(self, registries: list[str], opts: BatchOptions, result: BatchResult) -> None:
        queue = deque(registries)

        async def worker() -> None:
            while queue:
                if result.failed and not opts.continue_on_error:
                    result.skipped.extend(queue)
                    queue.clear()
                    return
                registry = queue.popleft()
                await self._publish_one(registry, opts, result)

        workers = min(opts.max_concurrency, len(registries))
        await asyncio.gather(*(worker() for _ in range(workers)))

    async def _publish_one(self, registry: str, opts: BatchOptions, result: BatchResult) -> None:
        logger.info("Publishing to %s", registry)
        options = dataclasses.replace(opts.publish, registry=registry, non_interactive=True)
        try:
            report = await self._factory(registry).publish(options)
        except Exception as e:
            logger.error("Publishing to %s failed: %s", registry, e)
            report = PublishReport(
                success=False,
                registry=registry,
                state=PublishState.FAILED,
                errors=[str(e) or type(e).__name__],
            )

        result.results[registry] = report
        if report.success:
            result.succeeded.append(registry)
        else:
            result.failed[registry] = report.errors[0] if report.errors else "Unknown error"
