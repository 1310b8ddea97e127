from .base import OpsRepository
from .sqlalchemy_repository import SqlAlchemyOpsRepository, get_repository

__all__ = ["OpsRepository", "SqlAlchemyOpsRepository", "get_repository"]
