"""
transfers.py — Student transfer workflow and grade-preserving copy.

    Pendente --approve--> Aprovada --effect--> Efetivada   (terminal)
    Pendente --reject---> Rejeitada                        (terminal)
    Pendente | Aprovada --cancel--> Cancelada              (terminal)

Transitions are pure: each returns a new ``Transfer`` and the caller persists
it. Effecting a transfer with ``preserve_grades`` copies the student's
assessments into the destination classroom first; if the copy fails the
transfer stays ``Aprovada``.
"""

import logging
from dataclasses import asdict, dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from evaluation.errors import TransferStateError, ValidationError
from evaluation.models import Assessment
from evaluation.repository import AssessmentRepository, new_id

logger = logging.getLogger(__name__)


class TransferStatus(str, Enum):
    PENDING = "Pendente"
    APPROVED = "Aprovada"
    EFFECTED = "Efetivada"
    REJECTED = "Rejeitada"
    CANCELLED = "Cancelada"


TRANSITIONS = {
    TransferStatus.PENDING: {TransferStatus.APPROVED, TransferStatus.REJECTED, TransferStatus.CANCELLED},
    TransferStatus.APPROVED: {TransferStatus.EFFECTED, TransferStatus.CANCELLED},
    TransferStatus.EFFECTED: set(),
    TransferStatus.REJECTED: set(),
    TransferStatus.CANCELLED: set(),
}


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class Transfer:
    id: str
    student_id: str
    from_classroom_id: str
    to_school_id: str
    preserve_grades: bool = False
    status: TransferStatus = TransferStatus.PENDING
    from_school_id: Optional[str] = None
    to_classroom_id: Optional[str] = None
    requested_by: Optional[str] = None
    reason: Optional[str] = None
    requested_at: str = ""
    approved_by: Optional[str] = None
    approved_at: Optional[str] = None
    effected_at: Optional[str] = None
    rejected_at: Optional[str] = None
    rejection_reason: Optional[str] = None
    cancelled_at: Optional[str] = None
    copied_assessments: int = 0

    @property
    def is_terminal(self) -> bool:
        return not TRANSITIONS[self.status]

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data


# ── State machine ───────────────────────────────────────────────────

def can_transition(current: TransferStatus, target: TransferStatus) -> bool:
    return target in TRANSITIONS.get(current, set())


def _ensure_transition(transfer: Transfer, target: TransferStatus) -> None:
    if not can_transition(transfer.status, target):
        raise TransferStateError(
            f"Cannot move transfer {transfer.id} from {transfer.status.value} to {target.value}.",
            transfer_id=transfer.id,
            current=transfer.status.value,
            target=target.value,
        )


def _transition(transfer: Transfer, target: TransferStatus, **changes: Any) -> Transfer:
    _ensure_transition(transfer, target)
    logger.info(
        " TRANSFER_TRANSITION id=%s student=%s from=%s to=%s",
        transfer.id, transfer.student_id, transfer.status.value, target.value,
    )
    return replace(transfer, status=target, **changes)


def request_transfer(
    student_id: str,
    from_classroom_id: str,
    to_school_id: str,
    preserve_grades: bool = False,
    from_school_id: Optional[str] = None,
    to_classroom_id: Optional[str] = None,
    requested_by: Optional[str] = None,
    reason: Optional[str] = None,
    now: Optional[str] = None,
    transfer_id: Optional[str] = None,
) -> Transfer:
    if not student_id or not from_classroom_id or not to_school_id:
        raise ValidationError(
            "student_id, from_classroom_id and to_school_id are required.", code="missing_field"
        )
    transfer = Transfer(
        id=transfer_id or new_id(),
        student_id=str(student_id),
        from_classroom_id=str(from_classroom_id),
        to_school_id=str(to_school_id),
        preserve_grades=bool(preserve_grades),
        from_school_id=None if from_school_id is None else str(from_school_id),
        to_classroom_id=None if to_classroom_id is None else str(to_classroom_id),
        requested_by=requested_by,
        reason=reason,
        requested_at=now or _now_iso(),
    )
    logger.info(" TRANSFER_REQUESTED id=%s student=%s", transfer.id, transfer.student_id)
    return transfer


def approve_transfer(transfer: Transfer, approver_id: Optional[str] = None, now: Optional[str] = None) -> Transfer:
    return _transition(
        transfer, TransferStatus.APPROVED, approved_by=approver_id, approved_at=now or _now_iso()
    )


def reject_transfer(
    transfer: Transfer,
    approver_id: Optional[str] = None,
    reason: str = "",
    now: Optional[str] = None,
) -> Transfer:
    if not reason or not str(reason).strip():
        raise ValidationError("A rejection reason is required.", code="rejection_reason_required")
    return _transition(
        transfer,
        TransferStatus.REJECTED,
        approved_by=approver_id,
        rejected_at=now or _now_iso(),
        rejection_reason=str(reason).strip(),
    )


def cancel_transfer(transfer: Transfer, now: Optional[str] = None) -> Transfer:
    return _transition(transfer, TransferStatus.CANCELLED, cancelled_at=now or _now_iso())


def effect_transfer(
    transfer: Transfer,
    repository: AssessmentRepository,
    to_classroom_id: Optional[str] = None,
    now: Optional[str] = None,
) -> Transfer:
    """Make an approved transfer effective, copying grades first when requested."""
    _ensure_transition(transfer, TransferStatus.EFFECTED)

    destination = to_classroom_id or transfer.to_classroom_id
    if not destination:
        raise ValidationError("A destination classroom is required.", code="destination_classroom_required")

    copied = copy_assessments(
        repository,
        transfer.student_id,
        transfer.from_classroom_id,
        str(destination),
        preserve_grades=transfer.preserve_grades,
        to_school_id=transfer.to_school_id,
    )
    return _transition(
        transfer,
        TransferStatus.EFFECTED,
        to_classroom_id=str(destination),
        effected_at=now or _now_iso(),
        copied_assessments=copied,
    )


# ── Grade copy ──────────────────────────────────────────────────────

def copy_assessments(
    repository: AssessmentRepository,
    student_id: str,
    from_classroom_id: str,
    to_classroom_id: str,
    preserve_grades: bool = False,
    to_school_id: Optional[str] = None,
    id_factory: Callable[[], str] = new_id,
) -> int:
    """
    Duplicate a student's assessments from one classroom into another.

    Regular assessments are copied first; each copied recovery is relinked to
    the copy of its regular assessment. Recoveries whose link does not resolve
    are left behind. Entries already present in the destination are updated
    in place, so repeating the copy does not duplicate anything. The batch is
    written all-or-nothing. Returns the number of assessments written.
    """
    if not preserve_grades:
        return 0
    if str(from_classroom_id) == str(to_classroom_id):
        raise ValidationError("Source and destination classrooms are the same.", code="same_classroom")

    source = [a for a in repository.for_student(student_id) if a.classroom_id == str(from_classroom_id)]
    regulars = sorted((a for a in source if a.is_regular), key=lambda a: (a.period_id, a.subject_id, a.assessment_type_id, a.id))
    recoveries = sorted((a for a in source if a.is_recovery), key=lambda a: (a.period_id, a.subject_id, a.assessment_type_id, a.id))

    def _relocate(a: Assessment, **changes: Any) -> Assessment:
        moved = replace(
            a,
            classroom_id=str(to_classroom_id),
            school_id=str(to_school_id) if to_school_id is not None else a.school_id,
            **changes,
        )
        existing = repository.find_by_key(moved.key)
        return replace(moved, id=existing.id if existing else id_factory())

    id_map: Dict[str, str] = {}
    planned: List[Assessment] = []
    for reg in regulars:
        copy = _relocate(reg)
        id_map[reg.id] = copy.id
        planned.append(copy)

    skipped = 0
    for rec in recoveries:
        target = id_map.get(rec.related_assessment_id or "")
        if target is None:
            skipped += 1
            logger.warning(
                " TRANSFER_COPY_ORPHAN student=%s recovery=%s related=%s",
                student_id, rec.id, rec.related_assessment_id,
            )
            continue
        planned.append(_relocate(rec, related_assessment_id=target))

    stored = repository.upsert_many(planned)
    logger.info(
        " TRANSFER_COPY student=%s from=%s to=%s copied=%s skipped=%s",
        student_id, from_classroom_id, to_classroom_id, len(stored), skipped,
    )
    return len(stored)
