"""Generated identifiers for throwaway test resources."""

from __future__ import annotations

import re
import secrets
import string

_ALPHABET = string.ascii_lowercase + string.digits

_REGULAR_REMOTE = re.compile(r"^[a-z]+\.([a-z]+)$")
_SANDBOX_REMOTE = re.compile(r"^([a-z0-9]+)\.[a-z]+\.([a-z]+)$")


def _random_token(length: int) -> str:
    return "".join(secrets.choice(_ALPHABET) for _ in range(length))


def random_project_id(prefix: str = "qatc") -> str:
    """Random project id; the prefix lets sweeps find leftovers."""
    return f"{prefix}{_random_token(11)}"


def random_dxp_project_id() -> str:
    """Random id for provisioned (DXP) projects."""
    return random_project_id("dxpqa")


def random_environment_name() -> str:
    return _random_token(6)


def random_user_email(domain: str = "test.com") -> str:
    return f"{random_project_id()}@{domain}"


def first_and_last_name(email: str, last_name: str = "Tester") -> tuple[str, str]:
    """Derive a display name from the local part of an email."""
    local = email.split("@", 1)[0]
    return local[:1].upper() + local[1:], last_name


def map_remote_to_environment_name(remote: str) -> str:
    """Short environment name for a remote host.

    `acme.st` -> `st`, `sandbox1.acme.st` -> `sandbox1.sh`,
    `localhost` / `*.dev` local remotes -> `localdev`.
    """
    if remote == "localhost" or remote.endswith(".dev"):
        return "localdev"

    match = _REGULAR_REMOTE.match(remote)
    if match:
        return match.group(1)

    match = _SANDBOX_REMOTE.match(remote)
    if match:
        return f"{match.group(1)}.sh"

    raise ValueError(f"Unrecognized remote provided: {remote}")
