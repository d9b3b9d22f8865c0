"""
Input validation for tool arguments.

Every check returns an (ok, reason) tuple; handlers turn failures into
error text instead of raising.
"""

import os
import re
from typing import Any


_PROJECT_ID_PATTERN = re.compile(r'^[a-z][a-z0-9-]{4,28}[a-z0-9]$')
_REGION_PATTERN = re.compile(r'^[a-z]+-[a-z]+[0-9]+$')
_SERVICE_NAME_PATTERN = re.compile(r'^[a-z]([a-z0-9-]{0,47}[a-z0-9])?$')


def validate_project_id(project_id: Any) -> tuple[bool, str]:
    """Validate a project ID argument (existing project, any legacy format)."""
    if not isinstance(project_id, str) or not project_id.strip():
        return False, "Project ID must be provided and be a non-empty string."

    return True, "Valid project ID"


def validate_new_project_id(project_id: Any) -> tuple[bool, str]:
    """
    Validate the ID requested for a new project.

    Valid IDs: 6-30 chars, lowercase letters, digits, hyphens,
    starting with a letter and not ending with a hyphen.
    """
    valid, reason = validate_project_id(project_id)
    if not valid:
        return valid, reason

    if not _PROJECT_ID_PATTERN.match(project_id):
        return False, (
            f"Invalid project ID '{project_id}'. Must be 6-30 lowercase letters, digits or hyphens, "
            "start with a letter and not end with a hyphen"
        )

    return True, "Valid project ID"


def validate_region(region: Any) -> tuple[bool, str]:
    """Validate a region name such as europe-west1."""
    if not isinstance(region, str) or not region:
        return False, "Region must be provided."

    if not _REGION_PATTERN.match(region):
        return False, f"Invalid region '{region}'. Expected a region like 'europe-west1'"

    return True, "Valid region"


def validate_service_name(name: Any) -> tuple[bool, str]:
    """
    Validate a Cloud Run service name.

    Valid names: lowercase letters, digits, hyphens (1-49 chars),
    starting with a letter and not ending with a hyphen.
    """
    if not isinstance(name, str) or not name:
        return False, "Service name must be provided."

    if len(name) > 49:
        return False, "Service name too long (max 49 characters)"

    if not _SERVICE_NAME_PATTERN.match(name):
        return False, (
            "Invalid service name. Must start with a lowercase letter and contain only "
            "lowercase letters, digits and hyphens"
        )

    return True, "Valid service name"


def validate_local_paths(paths: Any) -> tuple[bool, str]:
    """Validate a list of absolute local file or folder paths."""
    if not isinstance(paths, list):
        return False, "Files must be specified"

    if not paths:
        return False, "No files specified for deployment"

    for path in paths:
        if not isinstance(path, str) or not path.strip():
            return False, "File paths must be non-empty strings"
        if not os.path.isabs(path):
            return False, f"Path must be absolute: {path}"
        if not os.path.exists(path):
            return False, f"Path does not exist: {path}"

    return True, "Valid paths"


def validate_file_contents(files: Any) -> tuple[bool, str]:
    """Validate a list of {filename, content} objects."""
    if not isinstance(files, list):
        return False, "Files must be specified"

    if not files:
        return False, "No files specified for deployment"

    for item in files:
        if not isinstance(item, dict) or not isinstance(item.get("filename"), str):
            return False, "Each file must be an object with a filename"

        filename = item["filename"]
        # SECURITY: archive members must stay inside the build context
        if not filename or os.path.isabs(filename) or ".." in filename.split("/"):
            return False, f"Invalid filename: {filename}"

        if not item.get("content"):
            return False, f"File {filename} must have content"

    return True, "Valid files"
