"""Typed views of control-plane resources.

The remote API speaks camelCase; every model accepts either the remote alias
or the Python field name and keeps unknown fields so tests can assert on
attributes the harness does not model.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any, NamedTuple

from pydantic import BaseModel, ConfigDict, Field


class ResourceKind(StrEnum):
    """Kinds of resources the harness creates and tears down."""

    project = "project"
    service = "service"
    user = "user"


class ServiceKey(NamedTuple):
    """Identity of a service: it only exists inside a project."""

    project_id: str
    service_id: str

    def __str__(self) -> str:
        return f"{self.project_id}/{self.service_id}"

    @classmethod
    def parse(cls, value: str) -> "ServiceKey":
        project_id, sep, service_id = value.partition("/")
        if not sep or not project_id or not service_id:
            raise ValueError(f"Expected PROJECT/SERVICE, got {value!r}")
        return cls(project_id, service_id)


class RemoteModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")


class AuthToken(RemoteModel):
    value: str = Field(alias="token")
    email: str


class Project(RemoteModel):
    project_id: str = Field(alias="projectId")
    id: str | None = None
    owner_id: str | None = Field(default=None, alias="ownerId")
    owner_email: str | None = Field(default=None, alias="ownerEmail")
    cluster: str | None = None
    environment: bool = False
    metadata: dict[str, Any] = Field(default_factory=dict)
    invitations: dict[str, str] = Field(default_factory=dict)


class ProjectSpec(BaseModel):
    """Request body for project creation.

    `cluster` defaults to the configured project region and `metadata` to
    `{"type": "production"}` when left unset.
    """

    project_id: str
    cluster: str | None = None
    environment: bool = False
    metadata: dict[str, Any] | None = None
    owner_email: str | None = None

    def payload(self, default_cluster: str) -> dict[str, Any]:
        return {
            "projectId": self.project_id,
            "cluster": self.cluster or default_cluster,
            "environment": self.environment,
            "metadata": self.metadata if self.metadata is not None else {"type": "production"},
        }


class ServiceInstance(RemoteModel):
    container_id: str = Field(alias="containerId")


class Service(RemoteModel):
    service_id: str = Field(alias="serviceId")
    project_id: str | None = Field(default=None, alias="projectId")
    id: str | None = None
    status: str | None = None
    ready: bool = False
    scale: int | None = None
    autoscale: dict[str, Any] | None = None
    env: dict[str, str] = Field(default_factory=dict)
    custom_domains: list[str] = Field(default_factory=list, alias="customDomains")


class DeploySpec(BaseModel):
    """Build/deploy request for a service.

    `repository` defaults to the hosting example repository; `service_specs`
    is sent as the `ui` service descriptor.
    """

    project_id: str
    service_id: str
    repository: str | None = None
    deploy: bool = True
    service_specs: dict[str, Any] | None = None

    @property
    def key(self) -> ServiceKey:
        return ServiceKey(self.project_id, self.service_id)


class User(RemoteModel):
    id: str
    email: str
    first_name: str | None = Field(default=None, alias="firstName")
    last_name: str | None = Field(default=None, alias="lastName")
    confirmed: bool | str | None = None
    plan_id: str | None = Field(default=None, alias="planId")
    supported_scopes: list[str] = Field(default_factory=list, alias="supportedScopes")


class UserSpec(BaseModel):
    """Request body for user creation; `password` defaults to the tester password."""

    email: str
    first_name: str
    last_name: str = "Tester"
    confirmed: bool = True
    password: str | None = None
    plan_id: str | None = None
