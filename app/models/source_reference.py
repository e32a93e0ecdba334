"""
Typed source references for ledger entries.

A ledger entry points at the object that produced it. The reference is a
tagged union stored as (source_kind, source_id) columns.
"""

from dataclasses import dataclass
from typing import ClassVar

from app.models.enums import SourceKind


@dataclass(frozen=True)
class TaskAssignmentRef:
    """Approved task assignment."""

    id: int
    kind: ClassVar[SourceKind] = SourceKind.TASK_ASSIGNMENT


@dataclass(frozen=True)
class ReferralEdgeRef:
    """Referral edge a commission was paid on."""

    id: int
    kind: ClassVar[SourceKind] = SourceKind.REFERRAL_EDGE


@dataclass(frozen=True)
class AdminRef:
    """Administrator who granted a manual bonus."""

    id: int
    kind: ClassVar[SourceKind] = SourceKind.ADMIN


@dataclass(frozen=True)
class BudgetRunRef:
    """Budget allocation run."""

    id: int
    kind: ClassVar[SourceKind] = SourceKind.BUDGET_RUN


@dataclass(frozen=True)
class SaleRef:
    """External sale, identified by its transaction id."""

    transaction_id: str
    kind: ClassVar[SourceKind] = SourceKind.SALE


@dataclass(frozen=True)
class LedgerEntryRef:
    """Ledger entry corrected by a reversal."""

    id: int
    kind: ClassVar[SourceKind] = SourceKind.LEDGER_ENTRY


SourceReference = (
    TaskAssignmentRef
    | ReferralEdgeRef
    | AdminRef
    | BudgetRunRef
    | SaleRef
    | LedgerEntryRef
)

_INT_REFS: dict[SourceKind, type] = {
    SourceKind.TASK_ASSIGNMENT: TaskAssignmentRef,
    SourceKind.REFERRAL_EDGE: ReferralEdgeRef,
    SourceKind.ADMIN: AdminRef,
    SourceKind.BUDGET_RUN: BudgetRunRef,
    SourceKind.LEDGER_ENTRY: LedgerEntryRef,
}


def to_columns(ref: SourceReference) -> tuple[str, str]:
    """Split a reference into (source_kind, source_id) column values."""
    if isinstance(ref, SaleRef):
        return ref.kind.value, ref.transaction_id
    return ref.kind.value, str(ref.id)


def from_columns(source_kind: str, source_id: str) -> SourceReference:
    """
    Rebuild a reference from stored column values.

    Raises:
        ValueError: If source_kind is unknown
    """
    kind = SourceKind(source_kind)
    if kind is SourceKind.SALE:
        return SaleRef(transaction_id=source_id)
    return _INT_REFS[kind](id=int(source_id))
