"""Named sequences of idempotent write steps.

The grant store has no cross-document transactions. A mutation that
touches several documents is expressed as a saga: an ordered list of
steps, each safe to repeat. Completed steps are remembered on the saga
object, so a failed run can be resumed without replaying them, and a
fresh run of the same saga converges on the same final state.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from careshare.logging_config import get_logger

logger = get_logger(__name__)

StepFn = Callable[[], Awaitable[None]]


@dataclass
class SagaStep:
    name: str
    run: StepFn
    required: bool = True


@dataclass
class Saga:
    """An ordered, resumable sequence of steps.

    Steps marked ``required=False`` are side effects whose failure is
    logged and does not stop the saga (e.g. granting a role).
    """

    name: str
    steps: list[SagaStep] = field(default_factory=list)
    completed: list[str] = field(default_factory=list)
    failed_step: str | None = None

    def step(self, name: str, run: StepFn, required: bool = True) -> "Saga":
        self.steps.append(SagaStep(name=name, run=run, required=required))
        return self

    @property
    def done(self) -> bool:
        return len(self.completed) == len(self.steps)

    async def execute(self) -> None:
        """Run every step not yet completed, in order.

        Raises:
            Exception: whatever a required step raised; the saga keeps its
                progress so ``execute`` can be called again.
        """
        for saga_step in self.steps:
            if saga_step.name in self.completed:
                continue
            try:
                await saga_step.run()
            except Exception as exc:
                if saga_step.required:
                    self.failed_step = saga_step.name
                    logger.error(
                        "Saga step failed",
                        saga=self.name,
                        step=saga_step.name,
                        completed=list(self.completed),
                        error=str(exc),
                    )
                    raise
                logger.warning(
                    "Optional saga step failed",
                    saga=self.name,
                    step=saga_step.name,
                    error=str(exc),
                )
            self.completed.append(saga_step.name)
            self.failed_step = None
