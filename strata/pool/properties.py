"""Pool and dataset property reconciliation with a last-known-value cache."""
import threading
from typing import Dict

from strata.core import zcmd
from strata.core.logger import get_logger
from strata.pool.engine import PoolEngine

logger = get_logger(__name__)

# dataset -> property -> last value known to be applied
_property_cache: Dict[str, Dict[str, str]] = {}
_cache_lock = threading.Lock()


def clear_property_cache() -> None:
    with _cache_lock:
        _property_cache.clear()


def cached_properties(dataset: str) -> Dict[str, str]:
    with _cache_lock:
        return dict(_property_cache.get(dataset, {}))


def set_properties_if_not(engine: PoolEngine, dataset: str, properties: Dict[str, str]) -> Dict[str, str]:
    """Set only the properties whose live value differs.

    Properties whose cached value already matches are skipped without
    touching the node. The rest are read live; values that already match
    are cached, and the remainder are set with one command.

    Returns:
        The properties that were actually set
    """
    with _cache_lock:
        cache = _property_cache.setdefault(dataset, {})
        to_set: Dict[str, str] = {}

        for prop, value in properties.items():
            if cache.get(prop) == value:
                continue
            current = engine.run(zcmd.dataset_property_get(dataset, [prop])).strip()
            if current == value:
                cache[prop] = value
                continue
            to_set[prop] = value

        if not to_set:
            return {}

        engine.run(zcmd.dataset_property_set(dataset, to_set))
        cache.update(to_set)

    logger.info(f"Set {to_set} on {dataset}")
    return to_set


def set_pool_properties(engine: PoolEngine, compression: str) -> Dict[str, str]:
    """Properties every pool root dataset carries."""
    return set_properties_if_not(engine, engine.pool_name, {
        "canmount": "off",
        "compression": compression,
    })


def forget_dataset(dataset: str) -> None:
    """Drop cached values, e.g. after the pool was destroyed."""
    with _cache_lock:
        _property_cache.pop(dataset, None)
