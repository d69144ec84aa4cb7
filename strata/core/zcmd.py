"""Command line builders for zpool and zfs."""
from typing import Dict, Iterable, Optional

ZPOOL = "zpool"
ZFS = "zfs"


def _join(*parts) -> str:
    return " ".join(str(p) for p in parts if p not in (None, ""))


def pool_property_get(pool: str, properties: Iterable[str] = ("name",)) -> str:
    return _join(ZPOOL, "get", "-Hp", "-o", "value", ",".join(properties), pool)


def pool_import_scan(dev_dir: Optional[str] = None) -> str:
    """List importable pools, optionally only those found under dev_dir."""
    if dev_dir:
        return _join(ZPOOL, "import", "-d", dev_dir)
    return _join(ZPOOL, "import")


def pool_create(pool: str, vdev_type: str, devices: Iterable[str],
                cache_file: str, compression: str) -> str:
    return _join(
        ZPOOL, "create", "-f",
        "-o", f"cachefile={cache_file}",
        "-O", f"compression={compression}",
        "-O", "canmount=off",
        pool, vdev_type, *devices,
    )


def pool_add(pool: str, vdev_type: str, devices: Iterable[str], log: bool = False) -> str:
    return _join(ZPOOL, "add", "-f", pool, "log" if log else "", vdev_type, *devices)


def pool_import(pool: str, cache_file: str, existing_name: Optional[str] = None,
                dev_dir: Optional[str] = None, use_cache_file: bool = True) -> str:
    """Import pool, renaming it from existing_name when given."""
    source = _join("-c", cache_file) if use_cache_file else _join("-d", dev_dir)
    return _join(
        ZPOOL, "import", source,
        "-o", f"cachefile={cache_file}",
        existing_name or "", pool,
    )


def pool_replace(pool: str, old_path: str, new_path: str) -> str:
    return _join(ZPOOL, "replace", pool, old_path, new_path)


def pool_dump(pool: str) -> str:
    """Topology of the pool as JSON."""
    return _join(ZPOOL, "dump", pool)


def pool_destroy(pool: str) -> str:
    return _join(ZPOOL, "destroy", pool)


def label_clear(device: str) -> str:
    return _join(ZPOOL, "labelclear", "-f", device)


def dataset_property_get(dataset: str, properties: Iterable[str]) -> str:
    return _join(ZFS, "get", "-Hp", "-o", "value", ",".join(properties), dataset)


def dataset_property_set(dataset: str, properties: Dict[str, str]) -> str:
    assignments = [f"{key}={value}" for key, value in properties.items()]
    return _join(ZFS, "set", *assignments, dataset)
