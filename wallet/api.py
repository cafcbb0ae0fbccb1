from typing import Optional
from fastapi import FastAPI, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from .catalog import CatalogService
from .config import Settings, configure_logging, get_settings
from .errors import (
    AlreadyOwned,
    CategoryNotFound,
    ConcurrencyConflict,
    CourseNotFound,
    CustomerNotFound,
    EmailAlreadyRegistered,
    InsufficientBalance,
    InvalidAmount,
    StoreUnavailable,
    TeacherNotFound,
)
from .models import (
    BalanceCheck,
    BalanceResponse,
    CatalogEntry,
    Category,
    Course,
    CreateCourseRequest,
    Customer,
    LedgerHistoryResponse,
    LedgerSummary,
    ProfileUpdateRequest,
    PurchaseRequest,
    PurchaseResponse,
    RegisterCustomerRequest,
    Teacher,
    TopUpRequest,
    TopUpResponse,
)
from .service import LedgerService
from .store import DocumentStore, InMemoryDocumentStore


def create_app(settings: Optional[Settings] = None, store: Optional[DocumentStore] = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings)

    app = FastAPI(
        title="Yoga Studio Wallet API",
        description="Stored-value wallet, course purchases and transaction history for a yoga studio",
        version="1.0.0",
        root_path=settings.api_root_path,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    store = store or InMemoryDocumentStore()
    ledger_service = LedgerService(store)
    catalog_service = CatalogService(store)
    if settings.seed_demo_data:
        catalog_service.seed_demo_data()

    app.state.ledger_service = ledger_service
    app.state.catalog_service = catalog_service

    @app.exception_handler(StoreUnavailable)
    async def store_unavailable(request: Request, exc: StoreUnavailable) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": str(exc) or "Store unavailable"},
        )

    @app.get("/health", tags=["System"])
    def health_check():
        return {"status": "healthy", "service": settings.service_name}

    @app.post("/customers", response_model=Customer, status_code=status.HTTP_201_CREATED, tags=["Customers"])
    def register_customer(request: RegisterCustomerRequest) -> Customer:
        try:
            return catalog_service.register_customer(request)
        except (EmailAlreadyRegistered, ConcurrencyConflict) as e:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    @app.get("/customers/{customer_id}", response_model=Customer, tags=["Customers"])
    def get_customer(customer_id: int) -> Customer:
        try:
            return catalog_service.get_customer(customer_id)
        except CustomerNotFound as e:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    @app.patch("/customers/{customer_id}", response_model=Customer, tags=["Customers"])
    def update_profile(customer_id: int, request: ProfileUpdateRequest) -> Customer:
        try:
            return catalog_service.update_profile(customer_id, request)
        except CustomerNotFound as e:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
        except (EmailAlreadyRegistered, ConcurrencyConflict) as e:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    @app.get("/customers/{customer_id}/courses", response_model=list[Course], tags=["Customers"])
    def list_owned_courses(customer_id: int) -> list[Course]:
        try:
            return catalog_service.list_owned_courses(customer_id)
        except CustomerNotFound as e:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    @app.get("/customers/{customer_id}/balance", response_model=BalanceResponse, tags=["Wallet"])
    def get_balance(customer_id: int) -> BalanceResponse:
        try:
            return BalanceResponse(customer_id=customer_id, balance=ledger_service.get_balance(customer_id))
        except CustomerNotFound as e:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    @app.get("/customers/{customer_id}/balance-check", response_model=BalanceCheck, tags=["Wallet"])
    def verify_balance(customer_id: int) -> BalanceCheck:
        try:
            return ledger_service.verify_balance(customer_id)
        except CustomerNotFound as e:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    @app.post("/customers/{customer_id}/top-ups", response_model=TopUpResponse, tags=["Wallet"])
    def top_up(customer_id: int, request: TopUpRequest) -> TopUpResponse:
        try:
            return ledger_service.top_up(
                customer_id,
                request.amount,
                payment_method=request.payment_method,
                idempotency_key=request.idempotency_key,
            )
        except InvalidAmount as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
        except CustomerNotFound as e:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
        except ConcurrencyConflict as e:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    @app.post(
        "/customers/{customer_id}/purchases",
        response_model=PurchaseResponse,
        status_code=status.HTTP_201_CREATED,
        tags=["Wallet"],
    )
    def purchase_course(customer_id: int, request: PurchaseRequest) -> PurchaseResponse:
        try:
            return ledger_service.purchase_course(customer_id, request.course_id, request.payment_method)
        except (CustomerNotFound, CourseNotFound) as e:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
        except (AlreadyOwned, ConcurrencyConflict) as e:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
        except InsufficientBalance as e:
            raise HTTPException(status_code=status.HTTP_402_PAYMENT_REQUIRED, detail=str(e))

    @app.get("/customers/{customer_id}/transactions", response_model=LedgerHistoryResponse, tags=["Wallet"])
    def get_transactions(
        customer_id: int,
        limit: int = Query(50, ge=1, le=500),
        offset: int = Query(0, ge=0),
    ) -> LedgerHistoryResponse:
        try:
            return ledger_service.get_ledger_history(customer_id, limit, offset)
        except CustomerNotFound as e:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    @app.get("/customers/{customer_id}/summary", response_model=LedgerSummary, tags=["Wallet"])
    def get_summary(customer_id: int) -> LedgerSummary:
        try:
            return ledger_service.compute_summary(customer_id)
        except CustomerNotFound as e:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    @app.get("/courses", response_model=list[CatalogEntry], tags=["Courses"])
    def list_courses(
        category: Optional[str] = None,
        search: Optional[str] = None,
        customer_id: Optional[int] = Query(None, alias="customerId"),
    ) -> list[CatalogEntry]:
        try:
            return catalog_service.browse_courses(customer_id, category, search)
        except CustomerNotFound as e:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    @app.get("/courses/{course_id}", response_model=Course, tags=["Courses"])
    def get_course(course_id: int) -> Course:
        try:
            return catalog_service.get_course(course_id)
        except CourseNotFound as e:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    @app.post("/courses", response_model=Course, status_code=status.HTTP_201_CREATED, tags=["Courses"])
    def add_course(request: CreateCourseRequest) -> Course:
        try:
            return catalog_service.add_course(request)
        except (TeacherNotFound, CategoryNotFound) as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    @app.get("/teachers", response_model=list[Teacher], tags=["Courses"])
    def list_teachers(search: Optional[str] = None) -> list[Teacher]:
        return catalog_service.list_teachers(search)

    @app.get("/categories", response_model=list[Category], tags=["Courses"])
    def list_categories() -> list[Category]:
        return catalog_service.list_categories()

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
