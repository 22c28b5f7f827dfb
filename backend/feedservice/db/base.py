"""Declarative base shared by all cache tables."""
from sqlalchemy.orm import declarative_base

Base = declarative_base()
