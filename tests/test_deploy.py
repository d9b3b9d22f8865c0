"""Tests for deploy module."""

import io
import tarfile
from unittest.mock import MagicMock, patch

import pytest

from cloudrun_mcp.deploy import (
    REPOSITORY_ID,
    DeployRequest,
    DeployResult,
    FileContent,
    build_source_archive,
    build_steps,
    deploy,
    format_deploy_result,
    has_dockerfile,
    image_uri,
)


def _members(archive: bytes) -> dict[str, bytes]:
    with tarfile.open(fileobj=io.BytesIO(archive), mode="r:gz") as tar:
        return {
            member.name: tar.extractfile(member).read()
            for member in tar.getmembers()
            if member.isfile()
        }


class TestBuildSourceArchive:
    """Tests for build_source_archive."""

    def test_file_contents(self):
        """Test that content files keep their relative names."""
        archive = build_source_archive([
            FileContent(filename="src/index.js", content="console.log(1)"),
            FileContent(filename="package.json", content="{}"),
        ])

        assert _members(archive) == {
            "src/index.js": b"console.log(1)",
            "package.json": b"{}",
        }

    def test_local_files_by_basename(self, tmp_path):
        """Test that local files land at the archive root."""
        nested = tmp_path / "deep" / "main.py"
        nested.parent.mkdir()
        nested.write_text("print('hi')")

        members = _members(build_source_archive([str(nested)]))

        assert members == {"main.py": b"print('hi')"}

    def test_folder_contents_at_root(self, tmp_path):
        """Test that a folder contributes its contents, not itself."""
        (tmp_path / "app.py").write_text("app")
        (tmp_path / "lib").mkdir()
        (tmp_path / "lib" / "util.py").write_text("util")
        (tmp_path / ".git").mkdir()
        (tmp_path / ".git" / "HEAD").write_text("ref")
        (tmp_path / "lib" / "__pycache__").mkdir()
        (tmp_path / "lib" / "__pycache__" / "util.pyc").write_text("bin")

        members = _members(build_source_archive([str(tmp_path)]))

        assert set(members) == {"app.py", "lib/util.py"}


class TestHasDockerfile:
    """Tests for has_dockerfile."""

    def test_content_dockerfile(self):
        """Test Dockerfile given by content."""
        assert has_dockerfile([FileContent(filename="Dockerfile", content="FROM scratch")])

    def test_nested_dockerfile_ignored(self):
        """Test that only the context root counts."""
        assert not has_dockerfile([FileContent(filename="docker/Dockerfile", content="FROM x")])

    def test_folder_with_dockerfile(self, tmp_path):
        """Test folder containing a Dockerfile."""
        (tmp_path / "Dockerfile").write_text("FROM python:3.12")
        assert has_dockerfile([str(tmp_path)])

    def test_local_file_dockerfile(self, tmp_path):
        """Test Dockerfile passed as a local file."""
        dockerfile = tmp_path / "Dockerfile"
        dockerfile.write_text("FROM x")
        assert has_dockerfile([str(dockerfile)])

    def test_no_dockerfile(self, tmp_path):
        """Test sources without Dockerfile."""
        (tmp_path / "main.py").write_text("")
        assert not has_dockerfile([str(tmp_path)])


class TestBuildSteps:
    """Tests for build steps and image naming."""

    def test_image_uri(self):
        """Test Artifact Registry image path."""
        assert image_uri("proj", "europe-west1", "api", "123") == (
            f"europe-west1-docker.pkg.dev/proj/{REPOSITORY_ID}/api:123"
        )

    def test_docker_build(self):
        """Test Dockerfile builds use the docker builder."""
        steps = build_steps("img", use_dockerfile=True)

        assert len(steps) == 1
        assert steps[0].name == "gcr.io/cloud-builders/docker"
        assert list(steps[0].args) == ["build", "-t", "img", "."]

    def test_buildpacks_build(self):
        """Test sources without Dockerfile use buildpacks."""
        steps = build_steps("img", use_dockerfile=False)

        assert steps[0].entrypoint == "pack"
        assert "img" in list(steps[0].args)


class TestDeploy:
    """Tests for the deploy pipeline."""

    @pytest.fixture
    def request_(self):
        return DeployRequest(
            project="proj",
            region="europe-west1",
            service="api",
            files=[FileContent(filename="main.py", content="x")],
        )

    @patch("cloudrun_mcp.deploy.deploy_service")
    @patch("cloudrun_mcp.deploy.build_image")
    @patch("cloudrun_mcp.deploy.ensure_repository")
    @patch("cloudrun_mcp.deploy.upload_source")
    def test_success(self, mock_upload, mock_repo, mock_build, mock_deploy_service, request_):
        """Test that a successful pipeline returns the service URL."""
        mock_upload.return_value = ("bucket", "object")
        mock_deploy_service.return_value = "https://api.run.app"

        result = deploy(request_)

        assert result.success
        assert result.uri == "https://api.run.app"
        mock_repo.assert_called_once_with("proj", "europe-west1")
        assert mock_build.call_args[0][:3] == ("proj", "bucket", "object")

    @patch("cloudrun_mcp.deploy.upload_source")
    def test_failure_captured(self, mock_upload, request_):
        """Test that pipeline errors become a failed result."""
        mock_upload.side_effect = RuntimeError("bucket quota")

        result = deploy(request_)

        assert not result.success
        assert result.error == "bucket quota"


class TestFormatDeployResult:
    """Tests for format_deploy_result."""

    def test_success(self):
        """Test success message with console and service URLs."""
        result = DeployResult(success=True, project="proj", region="europe-west1", service="api", uri="https://u")

        text = format_deploy_result(result)

        assert text.startswith("Cloud Run service api deployed in project proj")
        assert "https://console.cloud.google.com/run/detail/europe-west1/api?project=proj" in text
        assert text.endswith("Service URL: https://u")

    def test_success_from_folder(self):
        """Test that folder deploys name the folder."""
        result = DeployResult(success=True, project="proj", region="r", service="api", uri="u")

        assert "deployed from folder /src in project proj" in format_deploy_result(result, folder="/src")

    def test_failure(self):
        """Test failure message."""
        result = DeployResult(success=False, project="p", region="r", service="s", error="denied")

        assert format_deploy_result(result) == "Error deploying to Cloud Run: denied"
