import logging
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from advice import (
    AdviceClient,
    FinancialHealthIn,
    FinancialHealthOut,
    SpendingInsightIn,
    SpendingInsightOut,
    SpendingPreferences,
    build_financial_summary,
    build_spending_data,
)
from config import get_settings
from database import SessionLocal
from errors import (
    NotFoundError,
    PermissionDeniedError,
    StoreError,
    TransientError,
    ValidationError,
)
from identity import Identity, bearer_token, resolve_identity
from periods import Period, resolve_period
from schemas import (
    AccountIn,
    AccountOut,
    AccountUpdate,
    GoalIn,
    GoalOut,
    GoalUpdate,
    ProfileIn,
    ProfileOut,
    TransactionIn,
    TransactionOut,
    TransactionPage,
    TransactionUpdate,
)
from services import MetricsService, ProfileService
from store import RecordStore


logging.basicConfig(level=get_settings().log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Finance Dashboard")


def _load_app_version() -> str:
    try:
        import tomllib
    except ImportError:
        return "unknown"
    try:
        with open("pyproject.toml", "rb") as f:
            data = tomllib.load(f)
        return str(data.get("project", {}).get("version", "unknown"))
    except (OSError, tomllib.TOMLDecodeError):
        return "unknown"


APP_VERSION = _load_app_version()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


_store = RecordStore(SessionLocal)


def get_store() -> RecordStore:
    return _store


def get_advice_client() -> AdviceClient:
    return AdviceClient()


def current_identity(authorization: Optional[str] = Header(default=None)) -> Identity:
    return resolve_identity(bearer_token(authorization))


def current_owner(identity: Identity = Depends(current_identity)) -> str:
    if not identity.authenticated:
        raise HTTPException(
            status_code=401,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return identity.owner_id


def _http_error(exc: StoreError) -> HTTPException:
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, PermissionDeniedError):
        if not exc.authenticated:
            return HTTPException(status_code=401, detail=str(exc))
        return HTTPException(status_code=403, detail=str(exc))
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, TransientError):
        return HTTPException(status_code=503, detail=str(exc))
    return HTTPException(status_code=500, detail="Unexpected store error")


def period_from_request(request: Request) -> Period:
    params = request.query_params
    try:
        return resolve_period(params.get("period"), params.get("start"), params.get("end"))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception(f"Database error while handling {request.url.path}")
    return JSONResponse(status_code=503, content={"detail": "Database unavailable"})


@app.get("/healthz")
def healthz():
    return {"status": "ok", "version": APP_VERSION}


# Accounts


@app.get("/api/accounts", response_model=list[AccountOut])
def list_accounts(
    owner_id: str = Depends(current_owner), store: RecordStore = Depends(get_store)
):
    try:
        return store.list_accounts(owner_id)
    except StoreError as exc:
        raise _http_error(exc) from exc


@app.post("/api/accounts", response_model=AccountOut, status_code=201)
def create_account(
    data: AccountIn,
    owner_id: str = Depends(current_owner),
    store: RecordStore = Depends(get_store),
):
    try:
        account_id = store.create_account(owner_id, data)
        return store.get_account(account_id, owner_id)
    except StoreError as exc:
        raise _http_error(exc) from exc


@app.get("/api/accounts/{account_id}", response_model=AccountOut)
def get_account(
    account_id: int,
    owner_id: str = Depends(current_owner),
    store: RecordStore = Depends(get_store),
):
    try:
        return store.get_account(account_id, owner_id)
    except StoreError as exc:
        raise _http_error(exc) from exc


@app.patch("/api/accounts/{account_id}", response_model=AccountOut)
def update_account(
    account_id: int,
    patch: AccountUpdate,
    owner_id: str = Depends(current_owner),
    store: RecordStore = Depends(get_store),
):
    try:
        return store.update_account(account_id, owner_id, patch)
    except StoreError as exc:
        raise _http_error(exc) from exc


@app.delete("/api/accounts/{account_id}", status_code=204)
def delete_account(
    account_id: int,
    owner_id: str = Depends(current_owner),
    store: RecordStore = Depends(get_store),
):
    try:
        store.delete_account(account_id, owner_id)
    except StoreError as exc:
        raise _http_error(exc) from exc
    return Response(status_code=204)


@app.get("/api/accounts/{account_id}/transactions", response_model=TransactionPage)
def list_account_transactions(
    account_id: int,
    cursor: Optional[str] = None,
    limit: Optional[int] = None,
    owner_id: str = Depends(current_owner),
    store: RecordStore = Depends(get_store),
):
    try:
        return store.list_transactions_page(
            account_id, owner_id, cursor=cursor, page_size=limit
        )
    except StoreError as exc:
        raise _http_error(exc) from exc


# Transactions


@app.post("/api/transactions", response_model=TransactionOut, status_code=201)
def create_transaction(
    data: TransactionIn,
    owner_id: str = Depends(current_owner),
    store: RecordStore = Depends(get_store),
):
    try:
        transaction_id = store.create_transaction(owner_id, data)
        return store.get_transaction(transaction_id, owner_id)
    except StoreError as exc:
        raise _http_error(exc) from exc


@app.get("/api/transactions/{transaction_id}", response_model=TransactionOut)
def get_transaction(
    transaction_id: int,
    owner_id: str = Depends(current_owner),
    store: RecordStore = Depends(get_store),
):
    try:
        return store.get_transaction(transaction_id, owner_id)
    except StoreError as exc:
        raise _http_error(exc) from exc


@app.patch("/api/transactions/{transaction_id}", response_model=TransactionOut)
def update_transaction(
    transaction_id: int,
    patch: TransactionUpdate,
    owner_id: str = Depends(current_owner),
    store: RecordStore = Depends(get_store),
):
    try:
        return store.update_transaction(transaction_id, owner_id, patch)
    except StoreError as exc:
        raise _http_error(exc) from exc


@app.delete("/api/transactions/{transaction_id}", status_code=204)
def delete_transaction(
    transaction_id: int,
    owner_id: str = Depends(current_owner),
    store: RecordStore = Depends(get_store),
):
    try:
        store.delete_transaction(transaction_id, owner_id)
    except StoreError as exc:
        raise _http_error(exc) from exc
    return Response(status_code=204)


# Goals


@app.get("/api/goals", response_model=list[GoalOut])
def list_goals(
    owner_id: str = Depends(current_owner), store: RecordStore = Depends(get_store)
):
    try:
        return store.list_goals(owner_id)
    except StoreError as exc:
        raise _http_error(exc) from exc


@app.post("/api/goals", response_model=GoalOut, status_code=201)
def create_goal(
    data: GoalIn,
    owner_id: str = Depends(current_owner),
    store: RecordStore = Depends(get_store),
):
    try:
        goal_id = store.create_goal(owner_id, data)
        return store.get_goal(goal_id, owner_id)
    except StoreError as exc:
        raise _http_error(exc) from exc


@app.patch("/api/goals/{goal_id}", response_model=GoalOut)
def update_goal(
    goal_id: int,
    patch: GoalUpdate,
    owner_id: str = Depends(current_owner),
    store: RecordStore = Depends(get_store),
):
    try:
        return store.update_goal(goal_id, owner_id, patch)
    except StoreError as exc:
        raise _http_error(exc) from exc


@app.delete("/api/goals/{goal_id}", status_code=204)
def delete_goal(
    goal_id: int,
    owner_id: str = Depends(current_owner),
    store: RecordStore = Depends(get_store),
):
    try:
        store.delete_goal(goal_id, owner_id)
    except StoreError as exc:
        raise _http_error(exc) from exc
    return Response(status_code=204)


# Profile


@app.get("/api/profile", response_model=ProfileOut)
def get_profile(owner_id: str = Depends(current_owner), db: Session = Depends(get_db)):
    profile = ProfileService(db, owner_id).get()
    if profile is None:
        raise HTTPException(status_code=404, detail="Profile not found")
    return profile


@app.put("/api/profile", response_model=ProfileOut)
def put_profile(
    data: ProfileIn,
    owner_id: str = Depends(current_owner),
    db: Session = Depends(get_db),
):
    try:
        return ProfileService(db, owner_id).upsert(data)
    except StoreError as exc:
        raise _http_error(exc) from exc


# Reporting


@app.get("/api/summary")
def api_summary(
    request: Request,
    account_id: Optional[int] = None,
    owner_id: str = Depends(current_owner),
    db: Session = Depends(get_db),
):
    period = period_from_request(request)
    data = MetricsService(db, owner_id).summary(period, account_id=account_id)
    return {
        **data,
        "period": period.slug,
        "start": period.start.isoformat(),
        "end": period.end.isoformat(),
    }


@app.get("/api/category-breakdown")
def api_category_breakdown(
    request: Request,
    owner_id: str = Depends(current_owner),
    db: Session = Depends(get_db),
):
    period = period_from_request(request)
    return MetricsService(db, owner_id).category_breakdown(period)


def _advice_period(request: Request) -> Period:
    params = request.query_params
    try:
        return resolve_period(
            params.get("period", "year_to_date"), params.get("start"), params.get("end")
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.post("/api/advice/health", response_model=FinancialHealthOut)
def api_financial_health(
    request: Request,
    owner_id: str = Depends(current_owner),
    db: Session = Depends(get_db),
    client: AdviceClient = Depends(get_advice_client),
):
    period = _advice_period(request)
    summary = build_financial_summary(db, owner_id, period)
    logger.info(f"advice_requested: flow=financial-health owner={owner_id}")
    return client.financial_health_or_fallback(
        FinancialHealthIn(financial_summary=summary[:4000])
    )


@app.post("/api/advice/spending-insight", response_model=SpendingInsightOut)
def api_spending_insight(
    request: Request,
    prefs: Optional[SpendingPreferences] = None,
    owner_id: str = Depends(current_owner),
    db: Session = Depends(get_db),
    client: AdviceClient = Depends(get_advice_client),
):
    period = _advice_period(request)
    spending = build_spending_data(db, owner_id, period)
    logger.info(f"advice_requested: flow=spending-insight owner={owner_id}")
    return client.spending_insight_or_fallback(
        SpendingInsightIn(
            spending_data=spending[:4000],
            user_preferences=prefs.user_preferences if prefs else "",
        )
    )
