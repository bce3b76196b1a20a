# services/api/core/delete_payload.py
"""
Pure builders for soft-delete and reference-pull write payloads.
No storage access happens here.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable

from core.validation import validate_identifier, validate_identifiers
from models.enums import EntityStatus


@dataclass(frozen=True)
class WritePayload:
    filter: Dict[str, Any]
    update: Dict[str, Any]


def build_delete_payload(*, ids: Iterable[Any], status_key: str, timestamp: str, actor_id: str) -> WritePayload:
    """
    Soft-delete every document whose id is in `ids`.

    Documents already DELETED are excluded by the filter, so applying the
    payload a second time changes nothing.

    Raises:
        InvalidIdentifier: if any id is malformed
    """
    id_list = validate_identifiers(ids)
    deleted = EntityStatus.DELETED.value
    return WritePayload(
        filter={"id": {"$in": id_list}, status_key: {"$ne": deleted}},
        update={
            "$set": {
                status_key: deleted,
                "updated_by": actor_id,
                "updated_at": timestamp,
                "deleted_by": actor_id,
                "deleted_at": timestamp,
            }
        },
    )


def build_pull_payload(*, parent_id: Any, field: str, child_ids: Iterable[Any]) -> WritePayload:
    """
    Remove `child_ids` from the parent's `field` reference list.

    Raises:
        InvalidIdentifier: if the parent id or any child id is malformed
    """
    pid = validate_identifier(parent_id)
    ids = validate_identifiers(child_ids)
    value: Any = ids[0] if len(ids) == 1 else {"$in": ids}
    return WritePayload(filter={"id": pid}, update={"$pull": {field: value}})
