"""
Base database model for SQLAlchemy.
"""

from sqlalchemy.orm import declarative_base

# Create SQLAlchemy base model
Base = declarative_base()
