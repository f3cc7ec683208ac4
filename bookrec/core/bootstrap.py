"""
Startup mode selection: rebuild the index from disk (cold) or reuse the one
already in the store (warm).
"""

import threading
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Optional, Union

from .config import INDEX_NAME
from .index_builder import BuildReport, build_from_records
from .kv_store import IKVStore
from .loader import load
from ..util.logging import logger
from ..vector.embeddings import FeatureEncoder


class StartMode(Enum):
    COLD = "cold"
    WARM = "warm"

    @classmethod
    def from_flag(cls, load_data: bool) -> "StartMode":
        """Map the --load flag onto a mode."""
        return cls.COLD if load_data else cls.WARM


def _cold_start(store: IKVStore, encoder: FeatureEncoder, data_path: Union[str, Path],
                index_name: str, workers: int, cancel: Optional[threading.Event]) -> BuildReport:
    books = load(data_path)
    logger.info(f"Cold start: building {index_name} from {len(books)} records")
    return build_from_records(books, encoder, store, index_name=index_name,
                              workers=workers, cancel=cancel)


def _warm_start(store: IKVStore, encoder: FeatureEncoder, data_path: Union[str, Path],
                index_name: str, workers: int, cancel: Optional[threading.Event]) -> None:
    # Missing indexes surface as NotFoundError on the first query
    if not store.exists(index_name):
        logger.warning(f"Warm start: {index_name} is not in the store yet")
    else:
        logger.info(f"Warm start: reusing {index_name}")
    return None


_HANDLERS: Dict[StartMode, Callable[..., Optional[BuildReport]]] = {
    StartMode.COLD: _cold_start,
    StartMode.WARM: _warm_start,
}


def bootstrap(mode: StartMode, store: IKVStore, encoder: FeatureEncoder,
              data_path: Union[str, Path], index_name: str = INDEX_NAME, workers: int = 4,
              cancel: Optional[threading.Event] = None) -> Optional[BuildReport]:
    """Prepare the index for querying according to mode.

    Returns:
        The BuildReport for a cold start, None for a warm start

    Raises:
        OSError, FormatError: Cold start could not read the records
        StoreConnectionError: The store is unreachable
    """
    handler = _HANDLERS[mode]
    return handler(store, encoder, data_path, index_name, workers, cancel)
