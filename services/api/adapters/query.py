"""
Filter matching and update application shared by the storage backends.

Supported filter operators: plain equality, $eq, $ne, $in, $nin, $exists.
Equality against a stored list means "list contains value" (MongoDB rule).

Supported update operators: $set, $unset, $push, $addToSet, $pull.
"""
from __future__ import annotations

import copy
from typing import Any, Dict, Iterable, List

UPDATE_OPERATORS = ("$set", "$unset", "$push", "$addToSet", "$pull")


def _equals(stored: Any, expected: Any) -> bool:
    if isinstance(stored, list) and not isinstance(expected, list):
        return expected in stored
    return stored == expected


def _match_operator(doc: Dict[str, Any], field: str, op: str, arg: Any) -> bool:
    present = field in doc
    stored = doc.get(field)

    if op == "$eq":
        return _equals(stored, arg)
    if op == "$ne":
        return not _equals(stored, arg)
    if op == "$in":
        values = list(arg)
        if isinstance(stored, list):
            return any(v in stored for v in values)
        return stored in values
    if op == "$nin":
        values = list(arg)
        if isinstance(stored, list):
            return not any(v in stored for v in values)
        return stored not in values
    if op == "$exists":
        return present == bool(arg)
    raise ValueError(f"Unsupported filter operator: {op}")


def _is_operator_dict(value: Any) -> bool:
    return isinstance(value, dict) and bool(value) and all(k.startswith("$") for k in value)


def matches(doc: Dict[str, Any], filter: Dict[str, Any] | None) -> bool:
    """Return True if `doc` satisfies every clause of `filter`."""
    if not filter:
        return True

    for field, cond in filter.items():
        if _is_operator_dict(cond):
            for op, arg in cond.items():
                if not _match_operator(doc, field, op, arg):
                    return False
        elif not _equals(doc.get(field), cond):
            return False
    return True


def validate_update(update: Dict[str, Any]) -> None:
    if not update:
        raise ValueError("Update document must not be empty")
    for op in update:
        if op not in UPDATE_OPERATORS:
            raise ValueError(f"Unsupported update operator: {op}")


def apply_update(doc: Dict[str, Any], update: Dict[str, Any]) -> bool:
    """
    Apply `update` to `doc` in place.

    Returns:
        True if the document actually changed.
    """
    validate_update(update)
    before = copy.deepcopy(doc)

    for field, value in update.get("$set", {}).items():
        doc[field] = copy.deepcopy(value)

    for field in update.get("$unset", {}):
        doc.pop(field, None)

    for field, value in update.get("$push", {}).items():
        doc.setdefault(field, []).append(copy.deepcopy(value))

    for field, value in update.get("$addToSet", {}).items():
        current = doc.setdefault(field, [])
        if value not in current:
            current.append(copy.deepcopy(value))

    for field, value in update.get("$pull", {}).items():
        current = doc.get(field)
        if isinstance(current, list):
            if _is_operator_dict(value) and "$in" in value:
                removed = set(value["$in"])
                doc[field] = [v for v in current if v not in removed]
            else:
                doc[field] = [v for v in current if v != value]

    return doc != before


def select(docs: Iterable[Dict[str, Any]], filter: Dict[str, Any] | None) -> List[Dict[str, Any]]:
    return [copy.deepcopy(d) for d in docs if matches(d, filter)]
