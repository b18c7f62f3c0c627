"""
Network relationship resolver - Classifies referral-tree connections.

Two users may trade only when one referred the other or both were
referred by the same user. The referral graph is read-only here.
"""

from dataclasses import dataclass

from .models import Relationship, User
from .ports import UserDirectory


@dataclass(frozen=True)
class RelationshipCheck:
    """Outcome of classifying user_a -> user_b."""

    valid: bool
    kind: Relationship | None = None
    reason: str | None = None

    def inverse(self) -> "RelationshipCheck":
        if not self.valid or self.kind is None:
            return self
        return RelationshipCheck(valid=True, kind=self.kind.inverse())


def classify(user_a: User, user_b: User) -> RelationshipCheck:
    """
    Classify user_b relative to user_a from both records.

    REFERRER: user_b referred user_a
    REFEREE: user_a referred user_b
    SIBLING: both share the same non-empty referrer
    """
    if user_a.user_id == user_b.user_id:
        return RelationshipCheck(valid=False, reason="Users cannot trade with themselves")
    if user_a.referred_by == user_b.user_id:
        return RelationshipCheck(valid=True, kind=Relationship.REFERRER)
    if user_b.referred_by == user_a.user_id:
        return RelationshipCheck(valid=True, kind=Relationship.REFEREE)
    if user_a.referred_by and user_a.referred_by == user_b.referred_by:
        return RelationshipCheck(valid=True, kind=Relationship.SIBLING)
    return RelationshipCheck(
        valid=False,
        reason=f"User {user_b.user_id} is not in the trust network of user {user_a.user_id}",
    )


@dataclass
class NetworkResolver:
    """Resolves relationships and trust networks via the user directory."""

    users: UserDirectory

    def relationship(self, user_a: str, user_b: str) -> RelationshipCheck:
        """
        Classify the connection from user_a to user_b.

        Both records are read once; callers needing the reverse direction
        use RelationshipCheck.inverse() so the pair is always symmetric.
        """
        if user_a == user_b:
            return RelationshipCheck(valid=False, reason="Users cannot trade with themselves")
        record_a = self.users.get_user(user_a)
        if record_a is None:
            return RelationshipCheck(valid=False, reason=f"User {user_a} not found")
        record_b = self.users.get_user(user_b)
        if record_b is None:
            return RelationshipCheck(valid=False, reason=f"User {user_b} not found")
        return classify(record_a, record_b)

    def network_of(self, user: User) -> dict[str, Relationship]:
        """
        Members of the user's trust network keyed by user id.

        Network = referrer + direct referrals + siblings. The root's
        self-reference is never treated as a referrer.
        """
        members: dict[str, Relationship] = {}
        if not user.is_root and user.referred_by:
            members[user.referred_by] = Relationship.REFERRER
        for referral in self.users.list_referrals(user.user_id):
            members.setdefault(referral.user_id, Relationship.REFEREE)
        if not user.is_root and user.referred_by:
            for sibling in self.users.list_referrals(user.referred_by):
                if sibling.user_id != user.user_id:
                    members.setdefault(sibling.user_id, Relationship.SIBLING)
        members.pop(user.user_id, None)
        return members
