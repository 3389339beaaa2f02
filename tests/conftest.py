import pytest

from dfsubmit.context import RunContext
from dfsubmit.naming import ArtifactNamer
from dfsubmit.options import LaunchInputs


class FakeImageResolver:
    def __init__(self, image="gcr.io/test/worker:1", error=None):
        self.image = image
        self.error = error
        self.calls = 0

    def resolve(self, ctx):
        self.calls += 1
        if self.error:
            raise self.error
        return self.image


@pytest.fixture
def image_resolver():
    return FakeImageResolver()


@pytest.fixture
def launch_inputs():
    return LaunchInputs(
        project="test-project",
        staging_location="gs://test-bucket/staging",
        worker_image="gcr.io/test/worker:1",
        job_name="test-job",
    )


@pytest.fixture
def run_ctx():
    return RunContext(run_id="test-run")


@pytest.fixture
def namer():
    return ArtifactNamer()


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    # Keep developer config and environment out of tests
    monkeypatch.setenv("DFSUBMIT_HOME", str(tmp_path / "dfsubmit_home"))
    for var in (
        "DFSUBMIT_PROJECT",
        "DFSUBMIT_STAGING_LOCATION",
        "DFSUBMIT_WORKER_IMAGE",
        "DFSUBMIT_REGION",
        "DFSUBMIT_ZONE",
        "DFSUBMIT_NETWORK",
        "DFSUBMIT_TEMP_LOCATION",
        "DFSUBMIT_ENDPOINT",
        "DFSUBMIT_CONTAINER_IMAGE",
        "GOOGLE_CLOUD_PROJECT",
    ):
        monkeypatch.delenv(var, raising=False)
