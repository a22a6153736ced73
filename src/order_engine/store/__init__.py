from .order_store import OrderStore, StoredOrder

__all__ = ['OrderStore', 'StoredOrder']
