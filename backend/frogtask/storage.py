"""JSON-file document store with conditional, operator-based updates.

Every public function takes the module lock for its whole duration, so a
filter evaluated by :func:`update_account` is checked against exactly the
document it then writes. That makes each call a single atomic
conditional write, which is what the economy relies on for race safety.
"""

import copy
import json
import logging
import os
import threading
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Mapping, Optional

from . import config
from .errors import StorageError

_lock = threading.RLock()
_logger = logging.getLogger(__name__)

_MISSING = object()


@dataclass(frozen=True)
class UpdateResult:
    found: bool
    modified: bool


def _default_for(key: str) -> Any:
    return []


def _ensure_files() -> None:
    for key, path in config.DB_FILES.items():
        if path.exists():
            continue
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(_default_for(key), indent=2))


def _load(key: str) -> List[Dict[str, Any]]:
    path = config.DB_FILES[key]
    try:
        with path.open("r", encoding="utf-8") as handle:
            return json.load(handle)
    except json.JSONDecodeError:
        _logger.warning("Collection %s is unreadable, starting from empty", key)
        return _default_for(key)
    except OSError as err:
        raise StorageError("Storage is unavailable") from err


def _save(key: str, documents: List[Dict[str, Any]]) -> None:
    """Write the collection to a sibling file, then swap it into place."""

    path = config.DB_FILES[key]
    staging = path.with_name(path.name + ".tmp")
    try:
        with staging.open("w", encoding="utf-8") as handle:
            json.dump(documents, handle, indent=2)
        os.replace(staging, path)
    except OSError as err:
        staging.unlink(missing_ok=True)
        raise StorageError("Storage is unavailable") from err


# ---------------------------------------------------------------------------
# Dotted-path helpers
# ---------------------------------------------------------------------------


def _get_path(document: Mapping[str, Any], path: str) -> Any:
    current: Any = document
    for part in path.split("."):
        if not isinstance(current, Mapping) or part not in current:
            return _MISSING
        current = current[part]
    return current


def _parent_for_write(document: Dict[str, Any], path: str) -> tuple[Dict[str, Any], str]:
    parts = path.split(".")
    current = document
    for part in parts[:-1]:
        child = current.get(part)
        if not isinstance(child, dict):
            child = {}
            current[part] = child
        current = child
    return current, parts[-1]


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------


def _equals(value: Any, operand: Any) -> bool:
    if value is _MISSING:
        return operand is None
    if isinstance(value, list) and not isinstance(operand, list):
        return operand in value
    return value == operand


def _compare(value: Any, operator: str, operand: Any) -> bool:
    if operator == "$eq":
        return _equals(value, operand)
    if operator == "$ne":
        return not _equals(value, operand)
    if operator == "$in":
        return any(_equals(value, candidate) for candidate in operand)
    if operator == "$nin":
        return not any(_equals(value, candidate) for candidate in operand)
    if operator == "$exists":
        return (value is not _MISSING) == bool(operand)
    if value is _MISSING or value is None:
        return False
    if operator == "$gt":
        return value > operand
    if operator == "$gte":
        return value >= operand
    if operator == "$lt":
        return value < operand
    if operator == "$lte":
        return value <= operand
    raise ValueError(f"Unsupported filter operator {operator}")


def matches(document: Mapping[str, Any], match: Optional[Mapping[str, Any]]) -> bool:
    """Evaluate a document-database style filter against ``document``."""

    for path, condition in (match or {}).items():
        value = _get_path(document, path)
        if isinstance(condition, Mapping) and condition and all(key.startswith("$") for key in condition):
            for operator, operand in condition.items():
                if not _compare(value, operator, operand):
                    return False
        elif not _equals(value, condition):
            return False
    return True


# ---------------------------------------------------------------------------
# Update operators
# ---------------------------------------------------------------------------


def _apply_update(document: Dict[str, Any], update: Mapping[str, Any]) -> None:
    for operator, fields in update.items():
        for path, operand in fields.items():
            parent, leaf = _parent_for_write(document, path)
            if operator == "$set":
                parent[leaf] = copy.deepcopy(operand)
            elif operator == "$unset":
                parent.pop(leaf, None)
            elif operator == "$inc":
                parent[leaf] = parent.get(leaf, 0) + operand
            elif operator == "$push":
                target = parent.setdefault(leaf, [])
                if isinstance(operand, Mapping) and "$each" in operand:
                    target.extend(copy.deepcopy(operand["$each"]))
                    limit = operand.get("$slice")
                    if limit is not None:
                        target[:] = target[limit:] if limit < 0 else target[:limit]
                else:
                    target.append(copy.deepcopy(operand))
            elif operator == "$addToSet":
                target = parent.setdefault(leaf, [])
                values = operand["$each"] if isinstance(operand, Mapping) and "$each" in operand else [operand]
                for value in values:
                    if value not in target:
                        target.append(value)
            elif operator == "$pull":
                target = parent.get(leaf)
                if not isinstance(target, list):
                    continue
                if isinstance(operand, Mapping) and "$in" in operand:
                    removed = operand["$in"]
                    target[:] = [value for value in target if value not in removed]
                else:
                    target[:] = [value for value in target if value != operand]
            else:
                raise ValueError(f"Unsupported update operator {operator}")


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------


def find_account(account_id: str) -> Optional[Dict[str, Any]]:
    with _lock:
        _ensure_files()
        for raw in _load("accounts"):
            if raw.get("id") == account_id:
                return raw
    return None


def insert_account(document: Dict[str, Any]) -> None:
    with _lock:
        _ensure_files()
        accounts = _load("accounts")
        payload = copy.deepcopy(document)
        payload.setdefault("revision", 0)
        accounts.append(payload)
        _save("accounts", accounts)


def iter_accounts(match: Optional[Mapping[str, Any]] = None) -> Iterator[Dict[str, Any]]:
    """Yield a snapshot of every account matching ``match``."""

    with _lock:
        _ensure_files()
        snapshot = [raw for raw in _load("accounts") if matches(raw, match)]
    yield from snapshot


def update_account(
    account_id: str,
    update: Mapping[str, Any],
    match: Optional[Mapping[str, Any]] = None,
) -> UpdateResult:
    """Apply ``update`` to the account only if it also satisfies ``match``.

    ``found`` distinguishes an unknown account from a failed
    precondition. ``revision`` is bumped on every successful write.
    """

    with _lock:
        _ensure_files()
        accounts = _load("accounts")
        for idx, raw in enumerate(accounts):
            if raw.get("id") != account_id:
                continue
            if not matches(raw, match):
                return UpdateResult(found=True, modified=False)
            updated = copy.deepcopy(raw)
            _apply_update(updated, update)
            updated["revision"] = int(raw.get("revision", 0)) + 1
            accounts[idx] = updated
            _save("accounts", accounts)
            return UpdateResult(found=True, modified=True)
    return UpdateResult(found=False, modified=False)


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


def list_tasks(match: Optional[Mapping[str, Any]] = None) -> List[Dict[str, Any]]:
    with _lock:
        _ensure_files()
        return [raw for raw in _load("tasks") if matches(raw, match)]


def insert_task(document: Dict[str, Any]) -> None:
    with _lock:
        _ensure_files()
        tasks = _load("tasks")
        tasks.append(copy.deepcopy(document))
        _save("tasks", tasks)
