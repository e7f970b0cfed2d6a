"""
User Profile Domain Entity

The billing view of a user's profile: the plan shown to the user and the
generation balance. The profile row itself belongs to the identity layer;
billing only rewrites these two fields.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass
class UserProfile:
    """
    Attributes:
        id: User ID
        plan: Currently resolved plan name ('free', 'hobbyist', 'pro')
        generation_balance: Remaining generations. None means no balance is
            tracked (pro users have unlimited generations).
    """
    id: str
    plan: str = 'free'
    generation_balance: Optional[int] = None

    def is_unlimited(self) -> bool:
        return self.plan == 'pro'

    @classmethod
    def from_dict(cls, data: dict) -> 'UserProfile':
        balance = data.get('generation_balance')
        return cls(
            id=str(data['id']),
            plan=data.get('plan') or 'free',
            generation_balance=int(balance) if balance is not None else None,
        )

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'plan': self.plan,
            'generation_balance': self.generation_balance,
        }
