from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

import structlog
from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from patchroute.core.logging.setup import bind_context, clear_context
from patchroute.core.store.registry import StoreHandle, StoreRegistry

log = structlog.get_logger()

router = APIRouter(tags=["stores"])

# Process-wide registry; stores are registered by the embedding application.
registry = StoreRegistry()


# =========================
# Schemas
# =========================

class Operation(BaseModel):
    op: Literal["add", "replace", "remove"]
    path: list[str | int] = Field(..., min_length=1, description="Path from a top-level field")
    value: Any = None


class UpdateRequest(BaseModel):
    operations: list[Operation] = Field(default_factory=list)


class PatchModel(BaseModel):
    op: str
    path: list[Any]
    value: Any = None
    old_value: Any = None
    id: str | int | None = None


class UpdateResponse(BaseModel):
    store: str
    patches: list[PatchModel]


class StoreSummary(BaseModel):
    name: str
    fields: list[str]
    ordered_fields: list[str]
    update_count: int
    created_at_utc: datetime
    updated_at_utc: datetime


class StoresListResponse(BaseModel):
    stores: list[StoreSummary]


class StateResponse(BaseModel):
    store: str
    state: dict[str, Any]


class FieldResponse(BaseModel):
    store: str
    field: str
    value: Any


# =========================
# Routes
# =========================

@router.get("/stores", response_model=StoresListResponse)
def list_stores() -> StoresListResponse:
    return StoresListResponse(stores=[_summary(h) for h in registry.list()])


@router.get("/stores/{name}/state", response_model=StateResponse)
def get_state(name: str) -> StateResponse:
    handle = _handle(name)
    return StateResponse(store=name, state=handle.get_state())


@router.get("/stores/{name}/fields/{field}", response_model=FieldResponse)
def get_field(name: str, field: str) -> FieldResponse:
    handle = _handle(name)
    try:
        value = handle.get(field)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"field not found: {field}")
    return FieldResponse(store=name, field=field, value=value)


@router.post("/stores/{name}/update", response_model=UpdateResponse)
def update_store(name: str, payload: UpdateRequest) -> UpdateResponse:
    handle = _handle(name)

    def mutate(draft: dict[str, Any]) -> None:
        for index, operation in enumerate(payload.operations):
            try:
                apply_operation(draft, operation)
            except (KeyError, IndexError, TypeError, ValueError) as e:
                raise InvalidOperation(index, e) from e

    # store/listener logs emitted during this update carry the store name
    bind_context(store=name)
    try:
        patches = handle.update(mutate)
    except InvalidOperation as e:
        # raised inside mutate, so the store is unchanged
        log.info("api.update_rejected", operation=e.index, error_type=type(e.cause).__name__, error=str(e.cause))
        raise HTTPException(status_code=422, detail=str(e))
    finally:
        clear_context()

    return UpdateResponse(store=name, patches=[PatchModel(**p.to_dict()) for p in patches])


# =========================
# Helpers
# =========================

class InvalidOperation(Exception):
    """
    An operation of an update request could not be applied to the draft.
    """

    def __init__(self, index: int, cause: Exception) -> None:
        super().__init__(f"invalid operation #{index}: {cause}")
        self.index = index
        self.cause = cause


def apply_operation(draft: dict[str, Any], operation: Operation) -> None:
    """
    Apply one add/replace/remove operation to a draft state in place.

    For lists, `add` inserts at the index (`-` or the length appends) and
    `remove` pops the index.
    """
    *parents, last = operation.path
    target: Any = draft
    for segment in parents:
        target = _child(target, segment)

    if isinstance(target, dict):
        if operation.op == "add":
            target[last] = operation.value
        elif operation.op == "replace":
            if last not in target:
                raise KeyError(f"cannot replace missing key {last!r}")
            target[last] = operation.value
        else:
            del target[last]
        return

    if isinstance(target, list):
        if operation.op == "add" and (last == "-" or last == len(target)):
            target.append(operation.value)
            return
        index = _index(target, last)
        if operation.op == "add":
            target.insert(index, operation.value)
        elif operation.op == "replace":
            target[index] = operation.value
        else:
            target.pop(index)
        return

    raise TypeError(f"cannot apply {operation.op} under a {type(target).__name__}")


def _child(target: Any, segment: str | int) -> Any:
    if isinstance(target, dict):
        return target[segment]
    if isinstance(target, list):
        return target[_index(target, segment)]
    raise TypeError(f"cannot descend into a {type(target).__name__}")


def _index(target: list, segment: str | int) -> int:
    if isinstance(segment, str):
        if not segment.isdigit():
            raise ValueError(f"list index expected, got {segment!r}")
        segment = int(segment)
    if not 0 <= segment < len(target):
        raise IndexError(f"list index out of range: {segment}")
    return segment


def _handle(name: str) -> StoreHandle:
    handle = registry.get(name)
    if handle is None:
        raise HTTPException(status_code=404, detail="store not found")
    return handle


def _summary(handle: StoreHandle) -> StoreSummary:
    store = handle.store
    fields = list(store.get_state().keys())
    return StoreSummary(
        name=handle.name,
        fields=fields,
        ordered_fields=[f for f in fields if store.is_ordered(f)],
        update_count=handle.update_count,
        created_at_utc=handle.created_at_utc,
        updated_at_utc=handle.updated_at_utc,
    )
