# api/auth/queries.py
"""
SQLAlchemy query builders for authentication.
"""
from sqlalchemy import select

from db_models.user import User


def select_user_by_email(email: str):
    """Emails are stored lower-cased."""
    return select(User).where(User.email == email.strip().lower())


def select_user_by_external_id(external_id: str):
    return select(User).where(User.external_id == external_id)
