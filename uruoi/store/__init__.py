# uruoi/store/__init__.py
from .dispatcher import StoreDispatcher
from .local_store import LocalStore

__all__ = ['LocalStore', 'StoreDispatcher']
