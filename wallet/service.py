import logging
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Callable, Iterator, Optional, Union

from .errors import (
    AlreadyOwned,
    ConcurrencyConflict,
    CourseNotFound,
    CustomerNotFound,
    DocumentExists,
    DocumentNotFound,
    InsufficientBalance,
    InvalidAmount,
    PreconditionFailed,
)
from .models import (
    BalanceCheck,
    Course,
    Customer,
    Enrollment,
    EntryDirection,
    LedgerHistoryResponse,
    LedgerSummary,
    PaymentMethod,
    PurchaseResponse,
    TopUpResponse,
    Transaction,
    TransactionStatus,
)
from .store import (
    COURSES,
    CUSTOMERS,
    ENROLLMENTS,
    TOPUP_REQUESTS,
    TRANSACTIONS,
    CommitResult,
    DocumentStore,
    InMemoryDocumentStore,
    Snapshot,
)

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")


def normalize_amount(amount: Union[Decimal, int, float, str]) -> Decimal:
    """Parse a positive money amount, rounded to cents."""
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError):
        raise InvalidAmount(f"Amount {amount!r} is not a number")
    if not value.is_finite():
        raise InvalidAmount(f"Amount {amount!r} is not a finite number")
    value = value.quantize(CENTS, rounding=ROUND_HALF_UP)
    if value <= 0:
        raise InvalidAmount(f"Amount must be greater than zero, got {amount}")
    return value


class TransactionHistory:
    """A customer's transactions, newest first.

    Nothing is read until iteration starts, and every iteration runs a fresh
    query, so the same object can be iterated again to see later writes.
    """

    def __init__(self, store: DocumentStore, customer_id: int):
        self._store = store
        self.customer_id = customer_id

    def __iter__(self) -> Iterator[Transaction]:
        snapshots = self._store.find(TRANSACTIONS, "customerId", self.customer_id)
        transactions = [Transaction.from_document(s.data) for s in snapshots]
        transactions.sort(key=lambda t: (t.transaction_date, t.transaction_id), reverse=True)
        yield from transactions


class LedgerService:
    """Owns every write to a customer's balance.

    A balance change, its transaction record and (for purchases) the
    enrollment are committed in one store batch, and the balance itself is
    moved with a store-side increment rather than a value computed here.
    """

    def __init__(
        self,
        store: Optional[DocumentStore] = None,
        today: Optional[Callable[[], date]] = None,
    ):
        self.store = store or InMemoryDocumentStore()
        self._today = today or (lambda: datetime.now(timezone.utc).date())

    def top_up(
        self,
        customer_id: int,
        amount: Union[Decimal, int, float, str],
        payment_method: PaymentMethod = PaymentMethod.CREDIT_CARD,
        idempotency_key: Optional[str] = None,
    ) -> TopUpResponse:
        value = normalize_amount(amount)
        customer = self._find_customer(customer_id)

        if idempotency_key:
            replayed = self._replay_top_up(customer_id, idempotency_key)
            if replayed:
                return replayed

        transaction = Transaction(
            transaction_id=self.store.next_sequence(TRANSACTIONS),
            customer_id=customer_id,
            course_id=None,
            amount=value,
            direction=EntryDirection.CREDIT,
            payment_method=payment_method,
            status=TransactionStatus.COMPLETED,
            transaction_date=self._today(),
        )

        batch = self.store.batch()
        if idempotency_key:
            batch.create(TOPUP_REQUESTS, _topup_key(customer_id, idempotency_key), {
                "customerId": customer_id,
                "transactionId": transaction.transaction_id,
            })
        batch.create(TRANSACTIONS, str(transaction.transaction_id), transaction.to_document())
        batch.increment(CUSTOMERS, customer.key, "balance", value)

        try:
            written = batch.commit()
        except DocumentExists as e:
            if e.collection == TOPUP_REQUESTS:
                return self._replay_top_up(customer_id, idempotency_key)
            raise ConcurrencyConflict(f"Transaction id {transaction.transaction_id} already used")
        except DocumentNotFound:
            raise ConcurrencyConflict(f"Customer {customer_id} was removed during top-up")

        balance = _balance_after(written, customer.key)
        logger.info(
            "Top-up of %s for customer %s committed as transaction %s",
            value, customer_id, transaction.transaction_id,
        )
        return TopUpResponse(balance=balance, transaction=transaction, message="Balance topped up successfully")

    def purchase_course(
        self,
        customer_id: int,
        course_id: int,
        payment_method: PaymentMethod = PaymentMethod.CREDIT_CARD,
    ) -> PurchaseResponse:
        course = Course.from_document(self._find_course(course_id).data)
        customer_snapshot = self._find_customer(customer_id)
        customer = Customer.from_document(customer_snapshot.data)
        enrollment = Enrollment(customer_id=customer_id, course_id=course_id)

        if self.store.get(ENROLLMENTS, enrollment.key) is not None:
            logger.warning("Customer %s already owns course %s", customer_id, course_id)
            raise AlreadyOwned(f"Customer {customer_id} already owns course {course_id}")
        if customer.balance < course.price:
            logger.warning(
                "Customer %s cannot afford course %s (balance %s, price %s)",
                customer_id, course_id, customer.balance, course.price,
            )
            raise InsufficientBalance(
                f"Balance {customer.balance} is less than course price {course.price}"
            )

        transaction = Transaction(
            transaction_id=self.store.next_sequence(TRANSACTIONS),
            customer_id=customer_id,
            course_id=course_id,
            amount=course.price,
            direction=EntryDirection.DEBIT,
            payment_method=payment_method,
            status=TransactionStatus.COMPLETED,
            transaction_date=self._today(),
        )

        batch = (
            self.store.batch()
            .create(ENROLLMENTS, enrollment.key, enrollment.to_document())
            .create(TRANSACTIONS, str(transaction.transaction_id), transaction.to_document())
            .increment(CUSTOMERS, customer_snapshot.key, "balance", -course.price, minimum=ZERO)
        )

        try:
            written = batch.commit()
        except DocumentExists as e:
            if e.collection == ENROLLMENTS:
                logger.warning("Concurrent purchase of course %s by customer %s rejected", course_id, customer_id)
                raise AlreadyOwned(f"Customer {customer_id} already owns course {course_id}")
            raise ConcurrencyConflict(f"Transaction id {transaction.transaction_id} already used")
        except PreconditionFailed:
            logger.warning("Balance of customer %s changed before purchase of course %s", customer_id, course_id)
            raise InsufficientBalance(f"Balance is less than course price {course.price}")
        except DocumentNotFound:
            raise ConcurrencyConflict(f"Customer {customer_id} was removed during purchase")

        balance = _balance_after(written, customer_snapshot.key)
        logger.info(
            "Customer %s purchased course %s for %s (transaction %s)",
            customer_id, course_id, course.price, transaction.transaction_id,
        )
        return PurchaseResponse(
            balance=balance,
            transaction=transaction,
            enrollment=enrollment,
            message="Course purchased successfully",
        )

    def list_transactions(self, customer_id: int) -> TransactionHistory:
        return TransactionHistory(self.store, customer_id)

    def compute_summary(self, customer_id: int) -> LedgerSummary:
        balance = self.get_balance(customer_id)
        transactions = list(self.list_transactions(customer_id))
        return LedgerSummary(
            customer_id=customer_id,
            balance=balance,
            transaction_count=len(transactions),
            total_spent=_total(transactions, EntryDirection.DEBIT),
            total_topped_up=_total(transactions, EntryDirection.CREDIT),
        )

    def get_balance(self, customer_id: int) -> Decimal:
        customer = Customer.from_document(self._find_customer(customer_id).data)
        return customer.balance

    def verify_balance(self, customer_id: int) -> BalanceCheck:
        """Recompute the balance from the transaction log and compare."""
        customer = Customer.from_document(self._find_customer(customer_id).data)
        transactions = list(self.list_transactions(customer_id))
        expected = (
            customer.opening_balance
            + _total(transactions, EntryDirection.CREDIT)
            - _total(transactions, EntryDirection.DEBIT)
        )
        if expected != customer.balance:
            logger.warning(
                "Balance of customer %s is %s but the log accounts for %s",
                customer_id, customer.balance, expected,
            )
        return BalanceCheck(
            customer_id=customer_id,
            recorded_balance=customer.balance,
            expected_balance=expected,
            consistent=expected == customer.balance,
        )

    def get_ledger_history(self, customer_id: int, limit: int = 50, offset: int = 0) -> LedgerHistoryResponse:
        if limit < 1:
            raise ValueError(f"limit must be at least 1, got {limit}")
        if offset < 0:
            raise ValueError(f"offset must not be negative, got {offset}")
        balance = self.get_balance(customer_id)
        transactions = list(self.list_transactions(customer_id))
        return LedgerHistoryResponse(
            customer_id=customer_id,
            transactions=transactions[offset:offset + limit],
            total_count=len(transactions),
            current_balance=balance,
        )

    def _find_customer(self, customer_id: int) -> Snapshot:
        snapshot = self.store.find_one(CUSTOMERS, "customerId", customer_id)
        if snapshot is None:
            raise CustomerNotFound(f"Customer {customer_id} not found")
        return snapshot

    def _find_course(self, course_id: int) -> Snapshot:
        snapshot = self.store.find_one(COURSES, "courseId", course_id)
        if snapshot is None:
            raise CourseNotFound(f"Course {course_id} not found")
        return snapshot

    def _replay_top_up(self, customer_id: int, idempotency_key: str) -> Optional[TopUpResponse]:
        request = self.store.get(TOPUP_REQUESTS, _topup_key(customer_id, idempotency_key))
        if request is None:
            return None
        recorded = self.store.get(TRANSACTIONS, str(request.data["transactionId"]))
        if recorded is None:
            raise ConcurrencyConflict(f"Top-up {idempotency_key!r} has no transaction record")
        return TopUpResponse(
            balance=self.get_balance(customer_id),
            transaction=Transaction.from_document(recorded.data),
            message="Top-up already applied (idempotent return)",
        )


def _topup_key(customer_id: int, idempotency_key: str) -> str:
    return f"{customer_id}:{idempotency_key}"


def _balance_after(written: CommitResult, customer_key: str) -> Decimal:
    return Customer.from_document(written.document(CUSTOMERS, customer_key)).balance


def _total(transactions: list[Transaction], direction: EntryDirection) -> Decimal:
    return sum(
        (t.amount for t in transactions if t.is_completed and t.direction == direction),
        ZERO,
    )
