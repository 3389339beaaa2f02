"""SubmissionOrchestrator - prepares and hands off one remote job.

Steps, each aborting the rest on failure:
1. Resolve launch options into a LaunchConfiguration
2. Enable the profile capture hook if --cpu-profiling was given
3. Fold enabled hooks into the exported pipeline options
4. Compile the pipeline into a portable model
5. Allocate staging object names
6. Dry-run: translate and print the job, return Previewed
7. Otherwise: submit through the executor, return Submitted

Usage:
    orchestrator = SubmissionOrchestrator(
        inputs,
        compiler=compiler,
        translator=translator,
        executor=executor,
        hooks=new_default_registry(),
    )
    outcome = orchestrator.execute(RunContext(), pipeline)
    if isinstance(outcome, Submitted):
        print(outcome.job)
"""

import dataclasses
import logging
from dataclasses import dataclass
from typing import Any, Optional, Union

from dfsubmit.capture import PROFILE_WRITER, new_default_registry
from dfsubmit.collaborators import (
    EnvImageResolver,
    GraphCompiler,
    ImageResolver,
    JobExecutor,
    JobTranslator,
)
from dfsubmit.context import RunContext
from dfsubmit.errors import ModelCompilationError, PermanentError, TranslationError
from dfsubmit.hooks import HookRegistry
from dfsubmit.naming import ArtifactNamer, StagingPlan, default_namer
from dfsubmit.options import LaunchConfiguration, LaunchInputs, resolve
from dfsubmit.utils import console, print_job, render_model

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Previewed:
    """Dry-run result: nothing was sent to the job service."""

    model: Any
    job: Any
    config: LaunchConfiguration
    plan: StagingPlan


@dataclass(frozen=True)
class Submitted:
    """Live result: `job` is the executor's return value, unmodified."""

    job: Any
    config: LaunchConfiguration
    plan: StagingPlan


Outcome = Union[Previewed, Submitted]


class SubmissionOrchestrator:
    """
    Runs the submission workflow for one set of launch inputs.

    The orchestrator holds no per-run state and the namer is safe to share,
    so execute() may be called from several threads at once. Runs that
    share a hook registry also share its enabled destinations: give
    concurrent runs with different --cpu-profiling values their own
    registry.
    """

    def __init__(
        self,
        inputs: LaunchInputs,
        compiler: GraphCompiler,
        translator: Optional[JobTranslator] = None,
        executor: Optional[JobExecutor] = None,
        image_resolver: Optional[ImageResolver] = None,
        hooks: Optional[HookRegistry] = None,
        namer: Optional[ArtifactNamer] = None,
    ):
        self.inputs = inputs
        self.compiler = compiler
        self.translator = translator
        self.executor = executor
        self.image_resolver = image_resolver or EnvImageResolver()
        self.hooks = hooks if hooks is not None else new_default_registry()
        self.namer = namer or default_namer()

    def execute(self, ctx: RunContext, pipeline: Any) -> Outcome:
        """
        Prepare the job and either preview or submit it.

        Args:
            ctx: Cancellation/deadline context, forwarded to remote calls
            pipeline: Pipeline handle understood by the compiler

        Returns:
            Previewed in dry-run mode, Submitted otherwise

        Raises:
            MissingRequiredField, InvalidLabelFormat, InvalidLocation,
            InvalidOptionValue: Launch options are invalid
            HookConfigurationError: --cpu-profiling is not a gs:// URI
            ModelCompilationError: The compiler failed
            TranslationError: Dry-run translation failed
            RunCancelled: ctx was cancelled or expired between steps
            Exception: Anything the executor raises, unchanged
        """
        log_extra = {"run_id": ctx.run_id}

        config = resolve(self.inputs, self.image_resolver, ctx)
        logger.info("Resolved job %s in project %s", config.job_name, config.project, extra=log_extra)

        if config.cpu_profiling:
            self.hooks.enable(PROFILE_WRITER, config.cpu_profiling)
        if config.session_recording:
            # Object writes are whole-object; appended session logs are not captured
            logger.warning(
                "Session recording to %s is not supported; ignoring",
                config.session_recording,
                extra=log_extra,
            )

        config = dataclasses.replace(
            config, options=self.hooks.serialize_to_options(config.options)
        )

        ctx.check("model compilation")
        try:
            model = self.compiler.compile(pipeline, container_image=config.worker_image)
        except Exception as e:
            raise ModelCompilationError(f"failed to generate model pipeline: {e}") from e

        plan = self.namer.next_staging_plan(config.staging_location)
        logger.debug("Staging model at %s, worker at %s", plan.model_url, plan.worker_url, extra=log_extra)

        if config.dry_run:
            return self._preview(model, config, plan, log_extra)

        if self.executor is None:
            raise PermanentError("no job executor configured; set executor in config.yaml")
        ctx.check("job submission")
        job = self.executor.submit(
            ctx, model, config, plan, config.endpoint, config.async_submit
        )
        logger.info("Submitted job %s", config.job_name, extra=log_extra)
        return Submitted(job=job, config=config, plan=plan)

    def _preview(
        self,
        model: Any,
        config: LaunchConfiguration,
        plan: StagingPlan,
        log_extra: dict[str, Any],
    ) -> Previewed:
        logger.info("Dry-run: not submitting job!", extra=log_extra)
        if self.translator is None:
            raise TranslationError("no job translator configured; set translator in config.yaml")
        try:
            job = self.translator.translate(model, config, plan)
        except Exception as e:
            raise TranslationError(f"failed to translate job {config.job_name}: {e}") from e

        console.print(render_model(model), markup=False, highlight=False)
        print_job(job)
        return Previewed(model=model, job=job, config=config, plan=plan)
