"""Credit ledger: the single write path for a user's credit balance."""

from sqlalchemy.orm import Session
from loguru import logger

from auth.repository import UserRepository
from core.database import transaction
from core.exceptions import InvalidValueError, NotFoundError
from core.models import User


def validate_credits(value) -> int:
    # bool is an int subclass but never a valid balance
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidValueError("Credits must be an integer")
    if value < 0:
        raise InvalidValueError("Credits must be a non-negative integer")
    return value


def set_credits(db: Session, user_id: int, value) -> User:
    """
    Replace a user's balance with ``value``.

    There is no increment primitive; concurrent calls are last-write-wins.
    """
    validate_credits(value)

    with transaction(db, "set_credits"):
        user = UserRepository.get_by_id(db, user_id, for_update=True)
        if user is None:
            raise NotFoundError("User not found")
        previous = user.credits
        user.credits = value

    logger.info(f"[CREDITS] User {user_id} credits: {previous} -> {value}")
    return user
