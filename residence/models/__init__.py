"""ORM models package."""
from .audit_log import AuditLog
from .base import Base, TimestampMixin
from .property import Apartment, ApartmentOwner, ApartmentRenter, Building, BuildingManager
from .proposal import Proposal, ProposalStatus, VotingMethod
from .proposal_result import ProposalResult
from .user import Role, RoleName, User, user_roles
from .vote import Vote, VoteChoice

__all__ = [
    "Apartment",
    "ApartmentOwner",
    "ApartmentRenter",
    "AuditLog",
    "Base",
    "Building",
    "BuildingManager",
    "Proposal",
    "ProposalResult",
    "ProposalStatus",
    "Role",
    "RoleName",
    "TimestampMixin",
    "User",
    "Vote",
    "VoteChoice",
    "VotingMethod",
    "user_roles",
]
