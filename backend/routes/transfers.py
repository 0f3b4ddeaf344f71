"""
Transfer routes — approval workflow and grade-preserving effectuation.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from evaluation.errors import TransferStateError, ValidationError
from evaluation.repository import InMemoryAssessmentRepository, InMemoryTransferStore
from evaluation.transfers import (
    Transfer,
    approve_transfer,
    cancel_transfer,
    effect_transfer,
    reject_transfer,
    request_transfer,
)
from routes.dependencies import get_repository, get_transfer_store

router = APIRouter()


def _get_or_404(store: InMemoryTransferStore, transfer_id: str) -> Transfer:
    transfer = store.get(transfer_id)
    if transfer is None:
        raise HTTPException(404, f"Transfer '{transfer_id}' not found.")
    return transfer


def _run(store: InMemoryTransferStore, action, *args, **kwargs) -> dict:
    try:
        transfer = action(*args, **kwargs)
    except TransferStateError as e:
        raise HTTPException(409, e.to_dict())
    except ValidationError as e:
        raise HTTPException(422, e.to_dict())
    store.save(transfer)
    return transfer.to_dict()


@router.post("")
async def create_transfer(payload: dict, store: InMemoryTransferStore = Depends(get_transfer_store)):
    """
    Request a transfer.
    Expects: { "student_id", "from_classroom_id", "to_school_id",
               "preserve_grades"?, "to_classroom_id"?, "reason"? }
    """
    return _run(
        store,
        request_transfer,
        student_id=payload.get("student_id"),
        from_classroom_id=payload.get("from_classroom_id"),
        to_school_id=payload.get("to_school_id"),
        preserve_grades=bool(payload.get("preserve_grades", False)),
        from_school_id=payload.get("from_school_id"),
        to_classroom_id=payload.get("to_classroom_id"),
        requested_by=payload.get("requested_by"),
        reason=payload.get("reason"),
    )


@router.get("/{transfer_id}")
async def get_transfer(transfer_id: str, store: InMemoryTransferStore = Depends(get_transfer_store)):
    return _get_or_404(store, transfer_id).to_dict()


@router.post("/{transfer_id}/approve")
async def approve(
    transfer_id: str,
    payload: Optional[dict] = None,
    store: InMemoryTransferStore = Depends(get_transfer_store),
):
    transfer = _get_or_404(store, transfer_id)
    return _run(store, approve_transfer, transfer, (payload or {}).get("approver_id"))


@router.post("/{transfer_id}/reject")
async def reject(
    transfer_id: str,
    payload: Optional[dict] = None,
    store: InMemoryTransferStore = Depends(get_transfer_store),
):
    payload = payload or {}
    transfer = _get_or_404(store, transfer_id)
    return _run(store, reject_transfer, transfer, payload.get("approver_id"), payload.get("reason", ""))


@router.post("/{transfer_id}/cancel")
async def cancel(transfer_id: str, store: InMemoryTransferStore = Depends(get_transfer_store)):
    transfer = _get_or_404(store, transfer_id)
    return _run(store, cancel_transfer, transfer)


@router.post("/{transfer_id}/effect")
async def effect(
    transfer_id: str,
    payload: Optional[dict] = None,
    store: InMemoryTransferStore = Depends(get_transfer_store),
    repository: InMemoryAssessmentRepository = Depends(get_repository),
):
    """Effect an approved transfer; copies grades when preserve_grades was chosen."""
    transfer = _get_or_404(store, transfer_id)
    return _run(store, effect_transfer, transfer, repository, (payload or {}).get("to_classroom_id"))
