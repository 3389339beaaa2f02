"""Tests for SubmissionOrchestrator.

Tests cover:
- Step ordering and abort-on-failure
- Dry-run never calls the executor
- Submit returns the executor's value unmodified
- Error wrapping per step (compilation, translation) and executor pass-through
- Profile hook enabling and hook serialization into options
- Cancellation between steps
"""

import json
from unittest.mock import MagicMock

import pytest

from dfsubmit.capture import PROFILE_WRITER, new_default_registry
from dfsubmit.context import RunContext
from dfsubmit.errors import (
    HookConfigurationError,
    InvalidLabelFormat,
    MissingRequiredField,
    ModelCompilationError,
    PermanentError,
    RunCancelled,
    TranslationError,
)
from dfsubmit.hooks import HOOKS_OPTION_KEY
from dfsubmit.naming import StagingPlan
from dfsubmit.options import LaunchConfiguration
from dfsubmit.orchestrator import Previewed, SubmissionOrchestrator, Submitted

from conftest import FakeImageResolver

MODEL = {"transforms": {"read": {"urn": "beam:transform:read:v1"}}}


@pytest.fixture
def compiler():
    mock = MagicMock()
    mock.compile.return_value = MODEL
    return mock


@pytest.fixture
def translator():
    mock = MagicMock()
    mock.translate.return_value = {"name": "test-job", "steps": []}
    return mock


@pytest.fixture
def executor():
    mock = MagicMock()
    mock.submit.return_value = object()
    return mock


@pytest.fixture
def make_orchestrator(compiler, translator, executor, namer):
    def make(inputs, **kwargs):
        kwargs.setdefault("image_resolver", FakeImageResolver())
        kwargs.setdefault("hooks", new_default_registry())
        return SubmissionOrchestrator(
            inputs,
            compiler=compiler,
            translator=translator,
            executor=executor,
            namer=namer,
            **kwargs,
        )
    return make


class TestSubmit:
    """Tests for live submission."""

    def test_returns_executor_value_unmodified(self, make_orchestrator, launch_inputs, executor, run_ctx):
        outcome = make_orchestrator(launch_inputs).execute(run_ctx, "pipeline")

        assert isinstance(outcome, Submitted)
        assert outcome.job is executor.submit.return_value

    def test_executor_arguments(self, make_orchestrator, launch_inputs, executor, run_ctx):
        launch_inputs.endpoint = "https://dataflow.example.com"
        launch_inputs.async_submit = True

        outcome = make_orchestrator(launch_inputs).execute(run_ctx, "pipeline")

        executor.submit.assert_called_once()
        ctx, model, config, plan, endpoint, async_submit = executor.submit.call_args.args
        assert ctx is run_ctx
        assert model == MODEL
        assert isinstance(config, LaunchConfiguration)
        assert config.project == "test-project"
        assert isinstance(plan, StagingPlan)
        assert plan == outcome.plan
        assert endpoint == "https://dataflow.example.com"
        assert async_submit is True

    def test_compiler_gets_resolved_image(self, make_orchestrator, launch_inputs, compiler, run_ctx):
        launch_inputs.worker_image = ""
        resolver = FakeImageResolver(image="gcr.io/resolved/worker:2")

        make_orchestrator(launch_inputs, image_resolver=resolver).execute(run_ctx, "pipeline")

        compiler.compile.assert_called_once_with("pipeline", container_image="gcr.io/resolved/worker:2")

    def test_translator_not_called(self, make_orchestrator, launch_inputs, translator, run_ctx):
        make_orchestrator(launch_inputs).execute(run_ctx, "pipeline")
        translator.translate.assert_not_called()

    def test_executor_error_passes_through(self, make_orchestrator, launch_inputs, executor, run_ctx):
        error = ConnectionError("service returned 503")
        executor.submit.side_effect = error

        with pytest.raises(ConnectionError) as exc_info:
            make_orchestrator(launch_inputs).execute(run_ctx, "pipeline")

        assert exc_info.value is error
        assert executor.submit.call_count == 1

    def test_missing_executor(self, compiler, launch_inputs, run_ctx):
        orchestrator = SubmissionOrchestrator(
            launch_inputs, compiler=compiler, image_resolver=FakeImageResolver()
        )
        with pytest.raises(PermanentError, match="no job executor"):
            orchestrator.execute(run_ctx, "pipeline")

    def test_staging_plan_under_staging_location(self, make_orchestrator, launch_inputs, run_ctx):
        outcome = make_orchestrator(launch_inputs).execute(run_ctx, "pipeline")
        assert outcome.plan.model_url.startswith("gs://test-bucket/staging/model-")
        assert outcome.plan.worker_url.startswith("gs://test-bucket/staging/worker-")


class TestDryRun:
    """Tests for dry-run mode."""

    def test_never_calls_executor(self, make_orchestrator, launch_inputs, executor, translator, run_ctx):
        launch_inputs.dry_run = True

        outcome = make_orchestrator(launch_inputs).execute(run_ctx, "pipeline")

        executor.submit.assert_not_called()
        assert isinstance(outcome, Previewed)
        assert outcome.job is translator.translate.return_value
        assert outcome.model == MODEL

    def test_translate_arguments(self, make_orchestrator, launch_inputs, translator, run_ctx):
        launch_inputs.dry_run = True

        outcome = make_orchestrator(launch_inputs).execute(run_ctx, "pipeline")

        model, config, plan = translator.translate.call_args.args
        assert model == MODEL
        assert config is outcome.config
        assert plan is outcome.plan

    def test_prints_model_and_job(self, make_orchestrator, launch_inputs, run_ctx, capsys):
        launch_inputs.dry_run = True

        make_orchestrator(launch_inputs).execute(run_ctx, "pipeline")

        out = capsys.readouterr().out
        assert "beam:transform:read:v1" in out
        assert '"name": "test-job"' in out

    def test_translation_error(self, make_orchestrator, launch_inputs, translator, executor, run_ctx, capsys):
        launch_inputs.dry_run = True
        cause = ValueError("unknown transform")
        translator.translate.side_effect = cause

        with pytest.raises(TranslationError, match="unknown transform") as exc_info:
            make_orchestrator(launch_inputs).execute(run_ctx, "pipeline")

        assert exc_info.value.__cause__ is cause
        executor.submit.assert_not_called()
        assert "beam:transform:read:v1" not in capsys.readouterr().out

    def test_missing_translator(self, compiler, executor, launch_inputs, run_ctx):
        launch_inputs.dry_run = True
        orchestrator = SubmissionOrchestrator(
            launch_inputs, compiler=compiler, executor=executor, image_resolver=FakeImageResolver()
        )
        with pytest.raises(TranslationError, match="no job translator"):
            orchestrator.execute(run_ctx, "pipeline")
        executor.submit.assert_not_called()


class TestAbortOnFailure:
    """Tests for step failures aborting the remaining steps."""

    def test_missing_project_makes_no_calls(self, make_orchestrator, launch_inputs, compiler, executor, run_ctx):
        launch_inputs.project = ""
        launch_inputs.worker_image = ""
        resolver = FakeImageResolver()

        with pytest.raises(MissingRequiredField):
            make_orchestrator(launch_inputs, image_resolver=resolver).execute(run_ctx, "pipeline")

        assert resolver.calls == 0
        compiler.compile.assert_not_called()
        executor.submit.assert_not_called()

    def test_bad_labels(self, make_orchestrator, launch_inputs, compiler, run_ctx):
        launch_inputs.labels = "{oops"
        with pytest.raises(InvalidLabelFormat):
            make_orchestrator(launch_inputs).execute(run_ctx, "pipeline")
        compiler.compile.assert_not_called()

    def test_compilation_error_wrapped(self, make_orchestrator, launch_inputs, compiler, executor, run_ctx):
        cause = RuntimeError("unbound side input")
        compiler.compile.side_effect = cause

        with pytest.raises(ModelCompilationError, match="failed to generate model pipeline") as exc_info:
            make_orchestrator(launch_inputs).execute(run_ctx, "pipeline")

        assert exc_info.value.__cause__ is cause
        executor.submit.assert_not_called()

    def test_cancelled_before_compilation(self, make_orchestrator, launch_inputs, compiler, run_ctx):
        run_ctx.cancel()
        with pytest.raises(RunCancelled, match="model compilation"):
            make_orchestrator(launch_inputs).execute(run_ctx, "pipeline")
        compiler.compile.assert_not_called()

    def test_cancelled_during_compilation(self, make_orchestrator, launch_inputs, compiler, executor, run_ctx):
        def compile_and_cancel(pipeline, container_image):
            run_ctx.cancel()
            return MODEL
        compiler.compile.side_effect = compile_and_cancel

        with pytest.raises(RunCancelled, match="job submission"):
            make_orchestrator(launch_inputs).execute(run_ctx, "pipeline")
        executor.submit.assert_not_called()


class TestHooks:
    """Tests for profile hook enabling and serialization."""

    def test_cpu_profiling_enables_hook(self, make_orchestrator, launch_inputs, executor, run_ctx):
        launch_inputs.cpu_profiling = "gs://bucket/profiles"
        hooks = new_default_registry()

        make_orchestrator(launch_inputs, hooks=hooks).execute(run_ctx, "pipeline")

        assert hooks.enabled() == {PROFILE_WRITER: ["gs://bucket/profiles"]}
        config = executor.submit.call_args.args[2]
        assert json.loads(config.options[HOOKS_OPTION_KEY]) == {PROFILE_WRITER: ["gs://bucket/profiles"]}

    def test_invalid_profiling_destination(self, make_orchestrator, launch_inputs, compiler, run_ctx):
        launch_inputs.cpu_profiling = "profiles-dir"
        with pytest.raises(HookConfigurationError):
            make_orchestrator(launch_inputs).execute(run_ctx, "pipeline")
        compiler.compile.assert_not_called()

    def test_no_hooks_options_untouched(self, make_orchestrator, launch_inputs, executor, run_ctx):
        launch_inputs.options = {"runner": "dataflow"}
        make_orchestrator(launch_inputs).execute(run_ctx, "pipeline")
        config = executor.submit.call_args.args[2]
        assert dict(config.options) == {"runner": "dataflow"}

    def test_session_recording_ignored(self, make_orchestrator, launch_inputs, run_ctx, caplog):
        launch_inputs.session_recording = "gs://bucket/sessions"
        with caplog.at_level("WARNING", logger="dfsubmit"):
            outcome = make_orchestrator(launch_inputs).execute(run_ctx, "pipeline")
        assert isinstance(outcome, Submitted)
        assert "not supported" in caplog.text
