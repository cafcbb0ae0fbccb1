from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field, ConfigDict
from pydantic.alias_generators import to_camel


class EntryDirection(str, Enum):
    CREDIT = "credit"
    DEBIT = "debit"


class TransactionStatus(str, Enum):
    COMPLETED = "Completed"
    PENDING = "Pending"
    FAILED = "Failed"


class PaymentMethod(str, Enum):
    CREDIT_CARD = "Credit Card"
    DEBIT_CARD = "Debit Card"
    PAYPAL = "PayPal"
    APPLE_PAY = "Apple Pay"
    GOOGLE_PAY = "Google Pay"


class DocumentModel(BaseModel):
    """Base for everything that is stored or sent as camelCase JSON."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
        use_enum_values=True,
    )

    @classmethod
    def from_document(cls, data: dict):
        return cls.model_validate(data)

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True)


class Customer(DocumentModel):
    customer_id: int
    name: str
    email: str
    phone: Optional[str] = None
    dob: Optional[str] = None
    image: Optional[str] = None
    balance: Decimal = Decimal("0.00")
    opening_balance: Decimal = Decimal("0.00")


class Teacher(DocumentModel):
    teacher_id: int
    name: str
    bio: Optional[str] = None
    image_url: Optional[str] = None


class Category(DocumentModel):
    category_id: int
    name: str


class Course(DocumentModel):
    course_id: int
    name: str
    price: Decimal = Field(..., ge=0)
    teacher_id: Optional[int] = None
    category_id: Optional[int] = None
    instructor: Optional[str] = None
    category: Optional[str] = None
    level: Optional[str] = None
    duration: Optional[str] = None
    description: Optional[str] = None
    room: Optional[str] = None
    image_url: Optional[str] = None


class CatalogEntry(Course):
    """A course as shown in the marketplace, flagged when the viewer owns it."""

    owned: bool = False


class Enrollment(DocumentModel):
    customer_id: int
    course_id: int

    @property
    def key(self) -> str:
        return enrollment_key(self.customer_id, self.course_id)


def enrollment_key(customer_id: int, course_id: int) -> str:
    return f"{customer_id}_{course_id}"


class Transaction(DocumentModel):
    transaction_id: int
    customer_id: int
    course_id: Optional[int] = None
    amount: Decimal
    direction: EntryDirection
    payment_method: PaymentMethod = PaymentMethod.CREDIT_CARD
    status: TransactionStatus = TransactionStatus.COMPLETED
    transaction_date: date

    @property
    def is_completed(self) -> bool:
        return self.status == TransactionStatus.COMPLETED


class RegisterCustomerRequest(DocumentModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)
    phone: Optional[str] = None
    dob: Optional[str] = None
    image: Optional[str] = None


class ProfileUpdateRequest(DocumentModel):
    """Profile edits. Wallet fields are not accepted here."""

    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1)
    email: Optional[str] = Field(default=None, min_length=3)
    phone: Optional[str] = None
    dob: Optional[str] = None
    image: Optional[str] = None


class CreateCourseRequest(DocumentModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1)
    price: Decimal = Field(..., ge=0)
    teacher_id: Optional[int] = None
    category_id: Optional[int] = None
    instructor: Optional[str] = None
    category: Optional[str] = None
    level: Optional[str] = None
    duration: Optional[str] = None
    description: Optional[str] = None
    room: Optional[str] = None
    image_url: Optional[str] = None


class TopUpRequest(DocumentModel):
    amount: Decimal
    payment_method: PaymentMethod = PaymentMethod.CREDIT_CARD
    idempotency_key: Optional[str] = Field(default=None, description="Replays with the same key are not re-applied")

    model_config = ConfigDict(json_schema_extra={
        "example": {"amount": "50.00", "paymentMethod": "Credit Card", "idempotencyKey": "topup-2024-001"}
    })


class PurchaseRequest(DocumentModel):
    course_id: int
    payment_method: PaymentMethod = PaymentMethod.CREDIT_CARD


class TopUpResponse(DocumentModel):
    balance: Decimal
    transaction: Transaction
    message: str


class PurchaseResponse(DocumentModel):
    balance: Decimal
    transaction: Transaction
    enrollment: Enrollment
    message: str


class BalanceResponse(DocumentModel):
    customer_id: int
    balance: Decimal


class LedgerSummary(DocumentModel):
    customer_id: int
    balance: Decimal
    transaction_count: int
    total_spent: Decimal
    total_topped_up: Decimal


class BalanceCheck(DocumentModel):
    customer_id: int
    recorded_balance: Decimal
    expected_balance: Decimal
    consistent: bool


class LedgerHistoryResponse(DocumentModel):
    customer_id: int
    transactions: list[Transaction]
    total_count: int
    current_balance: Decimal
