from .base import BaseUnitOfWork, format_document_number
from .memory import MemoryStore
from .sqlalchemy_store import SqlAlchemyStore

__all__ = ['BaseUnitOfWork', 'format_document_number', 'MemoryStore', 'SqlAlchemyStore']
