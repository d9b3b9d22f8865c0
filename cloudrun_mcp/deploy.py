"""
Source deploys to Cloud Run.

Packages files into a tarball, uploads it to Cloud Storage, builds an image
with Cloud Build (Dockerfile if present, buildpacks otherwise) and creates or
updates the Cloud Run service.
"""

import io
import os
import tarfile
import time
from dataclasses import dataclass, field
from typing import Optional, Union

from google.api_core.exceptions import NotFound
from google.cloud import artifactregistry_v1, run_v2, storage
from google.cloud.devtools import cloudbuild_v1

from .logging_utils import get_safe_logger


logger = get_safe_logger(__name__)

REPOSITORY_ID = "mcp-cloud-run-deployments"
BUILDPACKS_BUILDER = "gcr.io/buildpacks/builder:latest"
BUILD_TIMEOUT = 1200  # seconds
SERVICE_TIMEOUT = 600  # seconds

# Never shipped to the build
EXCLUDED_NAMES = {".git", "node_modules", "__pycache__", ".venv", ".DS_Store"}


@dataclass
class FileContent:
    """A file given by content rather than by path."""
    filename: str
    content: str


DeployFile = Union[str, FileContent]


@dataclass
class DeployRequest:
    """What to deploy and where."""
    project: str
    region: str
    service: str
    files: list[DeployFile] = field(default_factory=list)
    skip_iam_check: bool = True


@dataclass
class DeployResult:
    """Result of a deploy."""
    success: bool
    project: str
    region: str
    service: str
    uri: str = ""
    error: str = ""

    @property
    def console_url(self) -> str:
        return (
            f"https://console.cloud.google.com/run/detail/"
            f"{self.region}/{self.service}?project={self.project}"
        )


def _exclude(info: tarfile.TarInfo) -> Optional[tarfile.TarInfo]:
    if os.path.basename(info.name) in EXCLUDED_NAMES:
        return None
    return info


def build_source_archive(files: list[DeployFile]) -> bytes:
    """
    Build a gzipped tarball of the deploy sources.

    Paths to files land at the archive root under their basename; folders
    contribute their contents; FileContent entries keep their relative name.
    """
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
        for item in files:
            if isinstance(item, FileContent):
                data = item.content.encode("utf-8")
                info = tarfile.TarInfo(name=item.filename)
                info.size = len(data)
                info.mode = 0o644
                info.mtime = int(time.time())
                tar.addfile(info, io.BytesIO(data))
            elif os.path.isdir(item):
                for name in sorted(os.listdir(item)):
                    if name in EXCLUDED_NAMES:
                        continue
                    tar.add(os.path.join(item, name), arcname=name, filter=_exclude)
            else:
                tar.add(item, arcname=os.path.basename(item))
    return buffer.getvalue()


def has_dockerfile(files: list[DeployFile]) -> bool:
    """Whether the build context root contains a Dockerfile."""
    for item in files:
        if isinstance(item, FileContent):
            if item.filename == "Dockerfile":
                return True
        elif os.path.isdir(item):
            if os.path.isfile(os.path.join(item, "Dockerfile")):
                return True
        elif os.path.basename(item) == "Dockerfile":
            return True
    return False


def image_uri(project: str, region: str, service: str, tag: str) -> str:
    return f"{region}-docker.pkg.dev/{project}/{REPOSITORY_ID}/{service}:{tag}"


def build_steps(image: str, use_dockerfile: bool) -> list[cloudbuild_v1.BuildStep]:
    """Cloud Build steps producing the service image."""
    if use_dockerfile:
        return [cloudbuild_v1.BuildStep(
            name="gcr.io/cloud-builders/docker",
            args=["build", "-t", image, "."],
        )]
    return [cloudbuild_v1.BuildStep(
        name="gcr.io/k8s-skaffold/pack",
        entrypoint="pack",
        args=["build", image, "--builder", BUILDPACKS_BUILDER, "--network", "cloudbuild", "--path", "."],
    )]


def upload_source(project: str, region: str, service: str, archive: bytes) -> tuple[str, str]:
    """Upload the archive; returns (bucket, object) names."""
    client = storage.Client(project=project)
    bucket_name = f"run-sources-{project}-{region}"[:63]

    bucket = client.lookup_bucket(bucket_name)
    if bucket is None:
        logger.info(f"Creating source bucket {bucket_name}")
        bucket = client.create_bucket(bucket_name, location=region)

    object_name = f"services/{service}/{int(time.time())}-source.tar.gz"
    bucket.blob(object_name).upload_from_string(archive, content_type="application/gzip")
    return bucket_name, object_name


def ensure_repository(project: str, region: str) -> None:
    """Create the Artifact Registry repository if it does not exist."""
    client = artifactregistry_v1.ArtifactRegistryClient()
    parent = f"projects/{project}/locations/{region}"
    try:
        client.get_repository(name=f"{parent}/repositories/{REPOSITORY_ID}")
        return
    except NotFound:
        pass

    logger.info(f"Creating Artifact Registry repository {REPOSITORY_ID} in {parent}")
    operation = client.create_repository(
        parent=parent,
        repository_id=REPOSITORY_ID,
        repository=artifactregistry_v1.Repository(
            format_=artifactregistry_v1.Repository.Format.DOCKER,
        ),
    )
    operation.result(timeout=SERVICE_TIMEOUT)


def build_image(project: str, bucket: str, object_name: str, image: str, use_dockerfile: bool) -> None:
    """Run Cloud Build on the uploaded source and wait for it."""
    client = cloudbuild_v1.CloudBuildClient()
    build = cloudbuild_v1.Build(
        source=cloudbuild_v1.Source(
            storage_source=cloudbuild_v1.StorageSource(bucket=bucket, object_=object_name),
        ),
        steps=build_steps(image, use_dockerfile),
        images=[image],
    )
    operation = client.create_build(project_id=project, build=build)
    result = operation.result(timeout=BUILD_TIMEOUT)
    if result.status != cloudbuild_v1.Build.Status.SUCCESS:
        raise RuntimeError(f"Build {result.id} finished with status {result.status.name}: {result.status_detail}")


def deploy_service(request: DeployRequest, image: str) -> str:
    """Create or update the Cloud Run service; returns its URL."""
    client = run_v2.ServicesClient()
    parent = f"projects/{request.project}/locations/{request.region}"
    name = f"{parent}/services/{request.service}"

    try:
        existing = client.get_service(name=name)
    except NotFound:
        existing = None

    if existing is None:
        logger.info(f"Creating Cloud Run service {name}")
        service = run_v2.Service(
            template=run_v2.RevisionTemplate(containers=[run_v2.Container(image=image)]),
            invoker_iam_disabled=request.skip_iam_check,
        )
        operation = client.create_service(parent=parent, service=service, service_id=request.service)
    else:
        logger.info(f"Updating Cloud Run service {name}")
        if existing.template.containers:
            existing.template.containers[0].image = image
        else:
            existing.template.containers.append(run_v2.Container(image=image))
        existing.invoker_iam_disabled = request.skip_iam_check
        operation = client.update_service(service=existing)

    return operation.result(timeout=SERVICE_TIMEOUT).uri


def deploy(request: DeployRequest) -> DeployResult:
    """Deploy sources to a Cloud Run service."""
    logger.info(
        f"Deploying {len(request.files)} item(s) to service {request.service} "
        f"in project {request.project} (region {request.region})"
    )
    result = DeployResult(
        success=False,
        project=request.project,
        region=request.region,
        service=request.service,
    )

    try:
        archive = build_source_archive(request.files)
        bucket, object_name = upload_source(request.project, request.region, request.service, archive)
        ensure_repository(request.project, request.region)
        image = image_uri(request.project, request.region, request.service, str(int(time.time())))
        build_image(request.project, bucket, object_name, image, has_dockerfile(request.files))
        result.uri = deploy_service(request, image)
    except Exception as e:
        logger.exception(
            f"Deploy failed for service {request.service} in project {request.project} "
            f"(region {request.region})"
        )
        result.error = str(e)
        return result

    result.success = True
    return result


def format_deploy_result(result: DeployResult, folder: Optional[str] = None) -> str:
    """Format deploy outcome message."""
    if not result.success:
        return f"Error deploying to Cloud Run: {result.error}"

    source = f" from folder {folder}" if folder else ""
    return (
        f"Cloud Run service {result.service} deployed{source} in project {result.project}\n"
        f"Cloud Console: {result.console_url}\n"
        f"Service URL: {result.uri}"
    )
