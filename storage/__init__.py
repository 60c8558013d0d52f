from .price_history import PriceHistoryStore, PriceRecord, load_store, merge_record, persist_store

__all__ = [
    'PriceHistoryStore',
    'PriceRecord',
    'load_store',
    'merge_record',
    'persist_store',
]
