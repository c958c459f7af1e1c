"""Voting eligibility rules."""
from __future__ import annotations

from residence.models import Proposal
from residence.services.identity import Principal, has_any_role
from residence.services.property_directory import BuildingScope, PropertyDirectory, in_building_scope


def is_eligible_with_scope(
    principal: Principal | None, proposal: Proposal, scope: BuildingScope | None
) -> bool:
    if principal is None or not proposal.eligible_roles:
        return False
    if proposal.building_id is not None:
        if scope is None or not in_building_scope(scope, proposal.building_id):
            return False
    return has_any_role(principal.roles, proposal.eligible_roles)


def is_eligible(
    principal: Principal | None, proposal: Proposal, directory: PropertyDirectory
) -> bool:
    """Return whether ``principal`` may vote on ``proposal``.

    Anonymous callers are never eligible. Building-scoped proposals require a
    membership, ownership or management link to the building; the role set
    must always intersect the proposal's eligible roles. Administrative rights
    do not imply a vote: an Admin votes only when "Admin" is listed.
    """

    if principal is None:
        return False
    scope = directory.user_building_ids(principal) if proposal.building_id is not None else None
    return is_eligible_with_scope(principal, proposal, scope)


__all__ = ["is_eligible", "is_eligible_with_scope"]
