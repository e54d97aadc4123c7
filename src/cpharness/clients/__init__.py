from cpharness.clients.base import ControlPlaneTransport
from cpharness.clients.invitation import InvitationClient, invitation_key
from cpharness.clients.project import ProjectClient
from cpharness.clients.resource import ResourceClient
from cpharness.clients.service import ServiceClient
from cpharness.clients.user import UserClient

__all__ = [
    "ControlPlaneTransport",
    "InvitationClient",
    "ProjectClient",
    "ResourceClient",
    "ServiceClient",
    "UserClient",
    "invitation_key",
]
