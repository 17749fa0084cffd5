import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.exceptions import HTTPException as StarletteHTTPException

from auth import read_access_token
from config import get_settings
from database import SessionLocal, engine
from schemas import (
    BudgetDetailsOut,
    BudgetIn,
    BudgetOut,
    BudgetUpdate,
    BudgetVsActualOut,
    BudgetWithSpendingOut,
    CategoryIn,
    CategoryOut,
    CategoryUpdate,
    LoginIn,
    MonthlySummaryOut,
    RegisterIn,
    TokenOut,
    TransactionIn,
    TransactionOut,
    TransactionUpdate,
)
from services import (
    AuthService,
    BudgetAnalyticsService,
    BudgetService,
    CategoryNotFound,
    CategoryService,
    DashboardService,
    EmailAlreadyExists,
    InvalidCredentials,
    InvalidInput,
    TransactionService,
)

settings = get_settings()
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Budget Ledger")
bearer_scheme = HTTPBearer(auto_error=False)

INVALID_MONTH_MESSAGE = "Invalid month. Month must be between 1 and 12."


async def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        await db.close()


@app.on_event("startup")
async def startup_event():
    logger.info(f"ledger_startup: database={engine.url.render_as_string(hide_password=True)}")


@app.on_event("shutdown")
async def shutdown_event():
    await engine.dispose()


def _error_body(request: Request, status_code: int, message: object) -> dict:
    return {
        "status_code": status_code,
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "path": request.url.path,
        "message": message,
    }


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(request, exc.status_code, exc.detail),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        messages.append(f"{location}: {error.get('msg')}" if location else error.get("msg"))
    return JSONResponse(
        status_code=400, content=_error_body(request, 400, messages)
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logging.exception(f"unhandled_error: path={request.url.path}")
    return JSONResponse(
        status_code=500, content=_error_body(request, 500, "Internal server error")
    )


async def current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> str:
    if credentials is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    user_id = read_access_token(credentials.credentials)
    if user_id is None or await AuthService(db).get_user(user_id) is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user_id


def month_from_query(month: int = Query(...)) -> int:
    if month < 1 or month > 12:
        raise HTTPException(status_code=400, detail=INVALID_MONTH_MESSAGE)
    return month


@app.get("/health")
async def health(db: AsyncSession = Depends(get_db)):
    await db.execute(text("SELECT 1"))
    return {"status": "ok"}


@app.post("/auths/register", response_model=TokenOut, status_code=201)
async def register(payload: RegisterIn, db: AsyncSession = Depends(get_db)):
    try:
        token = await AuthService(db).register(payload)
    except EmailAlreadyExists as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return TokenOut(access_token=token)


@app.post("/auths/login", response_model=TokenOut)
async def login(payload: LoginIn, db: AsyncSession = Depends(get_db)):
    try:
        token = await AuthService(db).login(payload)
    except InvalidCredentials as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc
    return TokenOut(access_token=token)


@app.get("/categories", response_model=list[CategoryOut])
async def list_categories(
    user_id: str = Depends(current_user_id), db: AsyncSession = Depends(get_db)
):
    return await CategoryService(db, user_id).list_all()


@app.post("/categories", response_model=CategoryOut, status_code=201)
async def create_category(
    payload: CategoryIn,
    user_id: str = Depends(current_user_id),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await CategoryService(db, user_id).create(payload)
    except InvalidInput as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.get("/categories/{category_id}", response_model=CategoryOut)
async def get_category(
    category_id: str,
    user_id: str = Depends(current_user_id),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await CategoryService(db, user_id).get(category_id)
    except CategoryNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.put("/categories/{category_id}", response_model=CategoryOut)
async def update_category(
    category_id: str,
    payload: CategoryUpdate,
    user_id: str = Depends(current_user_id),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await CategoryService(db, user_id).update(category_id, payload)
    except CategoryNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except InvalidInput as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.delete("/categories/{category_id}", response_model=CategoryOut)
async def delete_category(
    category_id: str,
    user_id: str = Depends(current_user_id),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await CategoryService(db, user_id).delete(category_id)
    except CategoryNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except InvalidInput as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.get("/transactions", response_model=list[TransactionOut])
async def list_transactions(
    user_id: str = Depends(current_user_id), db: AsyncSession = Depends(get_db)
):
    return await TransactionService(db, user_id).list_all()


@app.post("/transactions", response_model=TransactionOut, status_code=201)
async def create_transaction(
    payload: TransactionIn,
    user_id: str = Depends(current_user_id),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await TransactionService(db, user_id).create(payload)
    except InvalidInput as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.get("/transactions/{transaction_id}", response_model=TransactionOut)
async def get_transaction(
    transaction_id: str,
    user_id: str = Depends(current_user_id),
    db: AsyncSession = Depends(get_db),
):
    txn = await TransactionService(db, user_id).get(transaction_id)
    if not txn:
        raise HTTPException(status_code=404, detail="Transaction not found")
    return txn


@app.put("/transactions/{transaction_id}", response_model=TransactionOut)
async def update_transaction(
    transaction_id: str,
    payload: TransactionUpdate,
    user_id: str = Depends(current_user_id),
    db: AsyncSession = Depends(get_db),
):
    try:
        txn = await TransactionService(db, user_id).update(transaction_id, payload)
    except InvalidInput as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if not txn:
        raise HTTPException(status_code=404, detail="Transaction not found")
    return txn


@app.delete("/transactions/{transaction_id}", response_model=TransactionOut)
async def delete_transaction(
    transaction_id: str,
    user_id: str = Depends(current_user_id),
    db: AsyncSession = Depends(get_db),
):
    txn = await TransactionService(db, user_id).delete(transaction_id)
    if not txn:
        raise HTTPException(status_code=404, detail="Transaction not found")
    return txn


@app.get("/budgets", response_model=list[BudgetOut])
async def list_budgets(
    user_id: str = Depends(current_user_id), db: AsyncSession = Depends(get_db)
):
    return await BudgetService(db, user_id).list_all()


@app.post("/budgets", response_model=BudgetOut, status_code=201)
async def create_budget(
    payload: BudgetIn,
    user_id: str = Depends(current_user_id),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await BudgetService(db, user_id).create(payload)
    except InvalidInput as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.get("/budgets/category/{category_id}", response_model=list[BudgetWithSpendingOut])
async def budgets_for_category(
    category_id: str,
    user_id: str = Depends(current_user_id),
    db: AsyncSession = Depends(get_db),
):
    results = await BudgetAnalyticsService(db, user_id).by_category(category_id)
    return [BudgetWithSpendingOut.model_validate(item) for item in results]


@app.get("/budgets/{budget_id}", response_model=BudgetOut)
async def get_budget(
    budget_id: str,
    user_id: str = Depends(current_user_id),
    db: AsyncSession = Depends(get_db),
):
    budget = await BudgetService(db, user_id).get(budget_id)
    if not budget:
        raise HTTPException(status_code=404, detail="Budget not found")
    return budget


@app.put("/budgets/{budget_id}", response_model=BudgetOut)
async def update_budget(
    budget_id: str,
    payload: BudgetUpdate,
    user_id: str = Depends(current_user_id),
    db: AsyncSession = Depends(get_db),
):
    try:
        budget = await BudgetService(db, user_id).update(budget_id, payload)
    except InvalidInput as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if not budget:
        raise HTTPException(status_code=404, detail="Budget not found")
    return budget


@app.delete("/budgets/{budget_id}", response_model=BudgetOut)
async def delete_budget(
    budget_id: str,
    user_id: str = Depends(current_user_id),
    db: AsyncSession = Depends(get_db),
):
    budget = await BudgetService(db, user_id).delete(budget_id)
    if not budget:
        raise HTTPException(status_code=404, detail="Budget not found")
    return budget


@app.get("/budgets/{budget_id}/spending", response_model=BudgetWithSpendingOut)
async def budget_spending(
    budget_id: str,
    user_id: str = Depends(current_user_id),
    db: AsyncSession = Depends(get_db),
):
    result = await BudgetAnalyticsService(db, user_id).with_spending(budget_id)
    if not result:
        raise HTTPException(status_code=404, detail="Budget not found")
    return BudgetWithSpendingOut.model_validate(result)


@app.get("/budgets/{budget_id}/details", response_model=BudgetDetailsOut)
async def budget_details(
    budget_id: str,
    user_id: str = Depends(current_user_id),
    db: AsyncSession = Depends(get_db),
):
    result = await BudgetAnalyticsService(db, user_id).details(budget_id)
    if not result:
        raise HTTPException(status_code=404, detail="Budget not found")
    return BudgetDetailsOut.model_validate(result)


@app.get("/dashboard/monthly-summary", response_model=MonthlySummaryOut)
async def monthly_summary(
    month: int = Depends(month_from_query),
    year: int = Query(...),
    user_id: str = Depends(current_user_id),
    db: AsyncSession = Depends(get_db),
):
    summary = await DashboardService(db, user_id).monthly_summary(month, year)
    return MonthlySummaryOut.model_validate(summary)


@app.get("/dashboard/budget-vs-actual", response_model=list[BudgetVsActualOut])
async def budget_vs_actual(
    month: int = Depends(month_from_query),
    year: int = Query(...),
    user_id: str = Depends(current_user_id),
    db: AsyncSession = Depends(get_db),
):
    rows = await DashboardService(db, user_id).budget_vs_actual(month, year)
    return [BudgetVsActualOut.model_validate(row) for row in rows]


def main() -> None:
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000)


if __name__ == "__main__":
    main()
