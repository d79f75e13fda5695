import logging
from datetime import date
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query
from sqlalchemy.orm import Session

from budget_calculations import (
    build_hierarchical_comparisons,
    calculate_actual_totals,
    calculate_budget_totals,
    calculate_budget_vs_actual,
    create_actuals_map,
)
from config import get_settings
from database import SessionLocal
from months import validate_month
from schemas import (
    ActualsOverrideIn,
    BatchBudgetsIn,
    BudgetComparisonIn,
    BudgetIn,
    CategoryIn,
    CategoryUpdate,
    CopyBudgetsIn,
    RolloverIn,
    TotalsRequest,
    TransactionCategoryIn,
    TransactionHiddenIn,
    TransactionIn,
)
from services import (
    ActualsOverrideService,
    BudgetService,
    CategoryService,
    ReportService,
    TransactionService,
    budget_to_dict,
    category_to_dict,
    override_to_dict,
    transaction_to_dict,
)

settings = get_settings()
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="Budget Tracker")


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _http_error(exc: ValueError) -> HTTPException:
    message = str(exc)
    status = 404 if message.lower().endswith("not found") else 400
    return HTTPException(status_code=status, detail=message)


@app.on_event("startup")
def startup_event():
    logging.info(
        f"app_startup: database={settings.database_url} "
        f"default_user={settings.default_user_id}"
    )


# Categories


@app.get("/api/categories")
def list_categories(db: Session = Depends(get_db)):
    return [category_to_dict(c) for c in CategoryService(db).list_all()]


@app.get("/api/categories/tree")
def category_tree(db: Session = Depends(get_db)):
    return CategoryService(db).tree()


@app.get("/api/categories/parents")
def parent_categories(db: Session = Depends(get_db)):
    return [category_to_dict(c) for c in CategoryService(db).parents()]


@app.get("/api/categories/hidden")
def hidden_categories(db: Session = Depends(get_db)):
    return [category_to_dict(c) for c in CategoryService(db).hidden()]


@app.get("/api/categories/rollover")
def rollover_categories(db: Session = Depends(get_db)):
    return [category_to_dict(c) for c in CategoryService(db).rollover_categories()]


@app.post("/api/categories/initialize")
def initialize_categories(db: Session = Depends(get_db)):
    created = CategoryService(db).initialize_defaults()
    return {"created": created}


@app.get("/api/categories/{category_id}")
def get_category(category_id: str, db: Session = Depends(get_db)):
    try:
        return category_to_dict(CategoryService(db).get(category_id))
    except ValueError as exc:
        raise _http_error(exc) from exc


@app.get("/api/categories/{category_id}/subcategories")
def get_subcategories(category_id: str, db: Session = Depends(get_db)):
    service = CategoryService(db)
    try:
        service.get(category_id)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return [category_to_dict(c) for c in service.subcategories(category_id)]


@app.post("/api/categories", status_code=201)
def create_category(data: CategoryIn, db: Session = Depends(get_db)):
    try:
        return category_to_dict(CategoryService(db).create(data))
    except ValueError as exc:
        raise _http_error(exc) from exc


@app.put("/api/categories/{category_id}")
def update_category(
    category_id: str, data: CategoryUpdate, db: Session = Depends(get_db)
):
    try:
        return category_to_dict(CategoryService(db).update(category_id, data))
    except ValueError as exc:
        raise _http_error(exc) from exc


@app.delete("/api/categories/{category_id}", status_code=204)
def delete_category(category_id: str, db: Session = Depends(get_db)):
    try:
        CategoryService(db).delete(category_id)
    except ValueError as exc:
        raise _http_error(exc) from exc


# Transactions


@app.get("/api/transactions")
def list_transactions(
    month: str = Query(..., description="YYYY-MM"), db: Session = Depends(get_db)
):
    try:
        items = TransactionService(db).list_for_month(month)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return [transaction_to_dict(t) for t in items]


@app.post("/api/transactions", status_code=201)
def create_transaction(data: TransactionIn, db: Session = Depends(get_db)):
    try:
        return transaction_to_dict(TransactionService(db).create(data))
    except ValueError as exc:
        raise _http_error(exc) from exc


@app.put("/api/transactions/{transaction_id}/category")
def update_transaction_category(
    transaction_id: str, data: TransactionCategoryIn, db: Session = Depends(get_db)
):
    try:
        txn = TransactionService(db).update_category(transaction_id, data.category_id)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return transaction_to_dict(txn)


@app.put("/api/transactions/{transaction_id}/hidden")
def update_transaction_hidden(
    transaction_id: str, data: TransactionHiddenIn, db: Session = Depends(get_db)
):
    try:
        txn = TransactionService(db).set_hidden(transaction_id, data.is_hidden)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return transaction_to_dict(txn)


@app.delete("/api/transactions/{transaction_id}", status_code=204)
def delete_transaction(transaction_id: str, db: Session = Depends(get_db)):
    try:
        TransactionService(db).delete(transaction_id)
    except ValueError as exc:
        raise _http_error(exc) from exc


# Budgets


@app.get("/api/budgets")
def list_budgets(db: Session = Depends(get_db)):
    return [budget_to_dict(b) for b in BudgetService(db).list_all()]


@app.get("/api/budgets/available-months")
def available_months(db: Session = Depends(get_db)):
    return BudgetService(db).available_months()


@app.get("/api/budgets/month/{month}")
def monthly_budgets(month: str, db: Session = Depends(get_db)):
    service = BudgetService(db)
    try:
        budgets = service.monthly_budgets(month)
        totals = service.monthly_totals(month)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return {
        "month": month,
        "budgets": [budget_to_dict(b) for b in budgets],
        "totals": totals.to_dict(),
    }


@app.get("/api/budgets/category/{category_id}")
def category_budgets(category_id: str, db: Session = Depends(get_db)):
    return [budget_to_dict(b) for b in BudgetService(db).budgets_for_category(category_id)]


@app.get("/api/budgets/category/{category_id}/month/{month}")
def category_month_budget(category_id: str, month: str, db: Session = Depends(get_db)):
    service = BudgetService(db)
    try:
        budget = service.get(category_id, validate_month(month))
    except ValueError as exc:
        raise _http_error(exc) from exc
    if not budget:
        raise HTTPException(status_code=404, detail="Budget not found")
    return budget_to_dict(budget)


@app.post("/api/budgets", status_code=201)
def create_or_update_budget(data: BudgetIn, db: Session = Depends(get_db)):
    try:
        return budget_to_dict(BudgetService(db).create_or_update(data))
    except ValueError as exc:
        raise _http_error(exc) from exc


@app.post("/api/budgets/batch")
def batch_update_budgets(data: BatchBudgetsIn, db: Session = Depends(get_db)):
    try:
        budgets = BudgetService(db).batch_update(data.updates)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return [budget_to_dict(b) for b in budgets]


@app.post("/api/budgets/copy")
def copy_budgets(data: CopyBudgetsIn, db: Session = Depends(get_db)):
    try:
        copied = BudgetService(db).copy_budgets(data.from_month, data.to_month)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return {"copied": len(copied), "budgets": [budget_to_dict(b) for b in copied]}


@app.post("/api/budgets/comparison/{month}")
def budget_comparison(
    month: str,
    data: Optional[BudgetComparisonIn] = None,
    db: Session = Depends(get_db),
):
    service = BudgetService(db)
    try:
        actuals = data.actuals if data and data.actuals is not None else None
        if actuals is None:
            actuals = service.actuals_for_month(month)
        comparisons = service.monthly_comparison(month, actuals)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return [c.to_dict() for c in comparisons]


@app.get("/api/budgets/summary/{month}")
def budget_summary(month: str, db: Session = Depends(get_db)):
    try:
        return BudgetService(db).summary_for_month(month).to_dict()
    except ValueError as exc:
        raise _http_error(exc) from exc


@app.get("/api/budgets/history/{category_id}")
def budget_history(
    category_id: str,
    start_month: str = Query(..., alias="startMonth"),
    end_month: str = Query(..., alias="endMonth"),
    db: Session = Depends(get_db),
):
    service = BudgetService(db)
    try:
        history = service.history(category_id, start_month, end_month)
        average = service.average_budget(category_id, start_month, end_month)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return {"history": [budget_to_dict(b) for b in history], "average": average}


@app.post("/api/budgets/rollover")
def budget_rollover(data: RolloverIn, db: Session = Depends(get_db)):
    try:
        result = BudgetService(db).rollover(
            data.category_id, data.from_month, data.to_month, data.actual_spent
        )
    except ValueError as exc:
        raise _http_error(exc) from exc
    return {
        "categoryId": result.category_id,
        "fromMonth": result.from_month,
        "toMonth": result.to_month,
        "amount": result.amount,
        "budget": budget_to_dict(result.budget) if result.budget else None,
    }


@app.get("/api/budgets/year/{year}")
def yearly_budgets(year: int, db: Session = Depends(get_db)):
    try:
        budgets = BudgetService(db).yearly_budgets(year)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return [budget_to_dict(b) for b in budgets]


@app.delete("/api/budgets/category/{category_id}")
def delete_category_budgets(category_id: str, db: Session = Depends(get_db)):
    deleted = BudgetService(db).delete_for_category(category_id)
    return {"deleted": deleted}


@app.delete("/api/budgets/{budget_id}", status_code=204)
def delete_budget(budget_id: str, db: Session = Depends(get_db)):
    try:
        BudgetService(db).delete(budget_id)
    except ValueError as exc:
        raise _http_error(exc) from exc


# Actuals overrides


@app.get("/api/actuals-overrides")
def list_overrides(db: Session = Depends(get_db)):
    return [override_to_dict(o) for o in ActualsOverrideService(db).list_all()]


@app.get("/api/actuals-overrides/range/{start_month}/{end_month}")
def overrides_for_range(start_month: str, end_month: str, db: Session = Depends(get_db)):
    try:
        overrides = ActualsOverrideService(db).for_range(start_month, end_month)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return [override_to_dict(o) for o in overrides]


@app.get("/api/actuals-overrides/{month}")
def get_override(month: str, db: Session = Depends(get_db)):
    try:
        return override_to_dict(ActualsOverrideService(db).get(month))
    except ValueError as exc:
        raise _http_error(exc) from exc


@app.post("/api/actuals-overrides", status_code=201)
def save_override(data: ActualsOverrideIn, db: Session = Depends(get_db)):
    try:
        return override_to_dict(ActualsOverrideService(db).create_or_update(data))
    except ValueError as exc:
        raise _http_error(exc) from exc


@app.delete("/api/actuals-overrides/{override_id}", status_code=204)
def delete_override(override_id: str, db: Session = Depends(get_db)):
    try:
        ActualsOverrideService(db).delete(override_id)
    except ValueError as exc:
        raise _http_error(exc) from exc


# Reports


@app.get("/api/reports/spending-trends")
def spending_trends(
    start_month: str = Query(..., alias="startMonth"),
    end_month: str = Query(..., alias="endMonth"),
    category_ids: Optional[list[str]] = Query(None, alias="categoryIds"),
    db: Session = Depends(get_db),
):
    try:
        trends = ReportService(db).spending_trends(start_month, end_month, category_ids)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return [t.to_dict() for t in trends]


@app.get("/api/reports/category-breakdown")
def category_breakdown(
    start_date: date = Query(..., alias="startDate"),
    end_date: date = Query(..., alias="endDate"),
    include_subcategories: bool = Query(True, alias="includeSubcategories"),
    db: Session = Depends(get_db),
):
    report = ReportService(db).category_breakdown(
        start_date, end_date, include_subcategories
    )
    return report.to_dict()


@app.get("/api/reports/income-breakdown")
def income_breakdown(
    start_date: date = Query(..., alias="startDate"),
    end_date: date = Query(..., alias="endDate"),
    include_subcategories: bool = Query(True, alias="includeSubcategories"),
    db: Session = Depends(get_db),
):
    report = ReportService(db).income_category_breakdown(
        start_date, end_date, include_subcategories
    )
    return report.to_dict()


@app.get("/api/reports/cash-flow")
def cash_flow(
    start_month: str = Query(..., alias="startMonth"),
    end_month: str = Query(..., alias="endMonth"),
    db: Session = Depends(get_db),
):
    try:
        flows = ReportService(db).cash_flow(start_month, end_month)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return [m.to_dict() for m in flows]


@app.get("/api/reports/projections")
def cash_flow_projections(
    months_to_project: int = Query(6, alias="monthsToProject"),
    db: Session = Depends(get_db),
):
    try:
        projections = ReportService(db).projections(months_to_project)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return [p.to_dict() for p in projections]


@app.get("/api/reports/year-to-date")
def year_to_date(db: Session = Depends(get_db)):
    return ReportService(db).year_to_date().to_dict()


# Calculations


@app.post("/api/calculations/totals")
def calculate_totals(data: TotalsRequest):
    options = data.options.model_dump(exclude_none=True)
    try:
        budget_totals = calculate_budget_totals(data.budgets, data.categories, options)
        actual_totals = calculate_actual_totals(
            data.transactions, data.categories, options
        )
        actuals = create_actuals_map(data.transactions, data.categories, options)
        categories = build_hierarchical_comparisons(
            data.budgets, actuals, data.categories, options
        )
    except Exception as exc:
        logging.exception("Error calculating totals")
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return {
        "budgetTotals": budget_totals.to_dict(),
        "actualTotals": actual_totals.to_dict(),
        "comparison": calculate_budget_vs_actual(budget_totals, actual_totals).to_dict(),
        "actuals": actuals,
        "categories": [c.to_dict() for c in categories.values()],
    }


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
