from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum


class ExpenseStatus(StrEnum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Priority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RecurrenceFrequency(StrEnum):
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class UserRole(StrEnum):
    ADMIN = "admin"
    USER = "user"


@dataclass(frozen=True, slots=True)
class House:
    id: str
    name: str
    address: str
    currency: str
    image_url: str | None = None


@dataclass(frozen=True, slots=True)
class Currency:
    code: str
    name: str
    symbol: str
    rate_to_base: float


@dataclass(frozen=True, slots=True)
class Recurrence:
    frequency: RecurrenceFrequency
    end_date: datetime | None = None


@dataclass(frozen=True, slots=True)
class Expense:
    id: str
    house_id: str
    description: str
    amount: float
    currency: str
    category: str
    status: ExpenseStatus
    priority: Priority
    created_at: datetime
    due_date: datetime | None = None
    paid_date: datetime | None = None
    recurrence: Recurrence | None = None

    @property
    def is_recurring(self) -> bool:
        return self.recurrence is not None

    @property
    def relevant_date(self) -> datetime | None:
        """Paid date for completed expenses, due date for everything else."""
        if self.status == ExpenseStatus.COMPLETED:
            return self.paid_date
        return self.due_date


@dataclass(frozen=True, slots=True)
class ExpenseData:
    """Caller-supplied fields for a new expense; the repository fills in the rest."""

    description: str
    amount: float
    category: str
    status: ExpenseStatus = ExpenseStatus.PENDING
    priority: Priority = Priority.MEDIUM
    due_date: datetime | None = None
    paid_date: datetime | None = None
    recurrence: Recurrence | None = None


@dataclass(frozen=True, slots=True)
class Note:
    id: str
    house_id: str
    title: str
    content: str
    author: str
    created_at: datetime
    is_pinned: bool = False


@dataclass(frozen=True, slots=True)
class User:
    id: str
    username: str
    role: UserRole
    assigned_house_ids: tuple[str, ...] = ()
    password: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN
