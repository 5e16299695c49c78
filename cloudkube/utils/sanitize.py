"""Whitelist validation for every value that ends up on a provider command line.

Nothing user-supplied is ever interpolated into a shell string: commands are
built as argv lists, and each interpolated value must first match the pattern
of its field class. A failing value aborts the operation before any process
is started.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Dict, Mapping, Optional

from cloudkube.errors import ValidationError


class Field(str, Enum):
    AWS_PROFILE = "AWS profile"
    AWS_REGION = "AWS region"
    CLUSTER_NAME = "cluster name"
    GCP_PROJECT = "GCP project"
    GCP_LOCATION = "GCP location"
    AZURE_SUBSCRIPTION = "Azure subscription"
    AZURE_RESOURCE_GROUP = "Azure resource group"
    AZURE_LOCATION = "Azure location"
    K8S_NAMESPACE = "namespace"
    K8S_RESOURCE_NAME = "resource name"
    CONTEXT_NAME = "context name"


PATTERNS: Dict[Field, "re.Pattern[str]"] = {
    Field.AWS_PROFILE: re.compile(r"[A-Za-z0-9_-]+"),
    Field.AWS_REGION: re.compile(r"[a-z0-9-]+"),
    Field.CLUSTER_NAME: re.compile(r"[A-Za-z0-9_.-]+"),
    Field.GCP_PROJECT: re.compile(r"[a-z0-9-]+"),
    Field.GCP_LOCATION: re.compile(r"[a-z0-9-]+"),
    Field.AZURE_SUBSCRIPTION: re.compile(r"[a-f0-9-]+"),
    Field.AZURE_RESOURCE_GROUP: re.compile(r"[A-Za-z0-9_().-]+"),
    Field.AZURE_LOCATION: re.compile(r"[a-z0-9]+"),
    Field.K8S_NAMESPACE: re.compile(r"[a-z0-9-]+"),
    Field.K8S_RESOURCE_NAME: re.compile(r"[a-z0-9.-]+"),
    Field.CONTEXT_NAME: re.compile(r"[A-Za-z0-9_().:/@-]+"),
}

# Values made only of these characters need no quoting in a POSIX shell.
_SHELL_SAFE = re.compile(r"[A-Za-z0-9_./-]+")

# Env vars that select credentials and therefore get the same treatment as argv.
_ENV_FIELDS: Dict[str, Field] = {
    "AWS_PROFILE": Field.AWS_PROFILE,
    "AWS_DEFAULT_REGION": Field.AWS_REGION,
    "AWS_REGION": Field.AWS_REGION,
    "CLOUDSDK_CORE_PROJECT": Field.GCP_PROJECT,
}


def validate(value: Optional[str], field: Field) -> str:
    """Return ``value`` unchanged if it matches the whitelist for ``field``."""

    if not isinstance(value, str) or not value:
        raise ValidationError(f"Invalid {field.value}: value is required", field=field.name)
    candidate = value.lower() if field is Field.AZURE_SUBSCRIPTION else value
    if not PATTERNS[field].fullmatch(candidate):
        raise ValidationError(f"Invalid {field.value}: contains unsafe characters", field=field.name)
    return candidate


def validate_optional(value: Optional[str], field: Field) -> Optional[str]:
    if value is None or value == "":
        return None
    return validate(value, field)


def validate_path(value: Optional[str], what: str = "path") -> str:
    """Paths legitimately contain spaces; only control characters are refused."""

    if not isinstance(value, str) or not value:
        raise ValidationError(f"Invalid {what}: value is required", field=what)
    if any(ch in value for ch in ("\x00", "\n", "\r")):
        raise ValidationError(f"Invalid {what}: contains control characters", field=what)
    return value


def validate_env(env: Mapping[str, str]) -> Dict[str, str]:
    """Validate an environment overlay before it is handed to a subprocess."""

    out: Dict[str, str] = {}
    for key, value in env.items():
        field = _ENV_FIELDS.get(key)
        if field is not None:
            out[key] = validate(value, field)
        elif key in {"KUBECONFIG", "GOOGLE_APPLICATION_CREDENTIALS"}:
            out[key] = validate_path(value, key)
        else:
            raise ValidationError(f"Environment variable {key} is not allowed for provider tools", field=key)
    return out


def quote_for_shell(value: str) -> str:
    """Quote ``value`` for a POSIX shell.

    Only used for display (copy-pasteable commands in error hints); execution
    always goes through argv lists.
    """

    if not value:
        return "''"
    if _SHELL_SAFE.fullmatch(value):
        return value
    return "'" + value.replace("'", "'\"'\"'") + "'"


def render_command(argv) -> str:
    return " ".join(quote_for_shell(str(a)) for a in argv)
