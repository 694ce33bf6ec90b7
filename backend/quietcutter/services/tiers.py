from abc import ABC, abstractmethod
from typing import Optional

from sqlalchemy.engine import Engine
from sqlmodel import Session

from quietcutter.models import User


class TierLookup(ABC):
    """answers whether a user is on the paid (Pro) tier"""

    @abstractmethod
    def is_paid_tier(self, user_id: Optional[str]) -> bool:
        ...


class DbTierLookup(TierLookup):
    """reads the is_pro flag the billing webhook keeps current on the users table"""

    def __init__(self, engine: Engine):
        self._engine = engine

    def is_paid_tier(self, user_id: Optional[str]) -> bool:
        if not user_id:
            return False
        with Session(self._engine) as session:
            user = session.get(User, user_id)
            return bool(user and user.is_pro)
