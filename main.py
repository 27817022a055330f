from datetime import timezone

from fastapi import Depends, FastAPI, HTTPException
from sqlalchemy.orm import Session

from database import SessionLocal
from scheduler import SchedulerManager
from schemas import (
    IdsIn,
    SubscriptionIn,
    SubscriptionOut,
    SubscriptionUpdate,
    TriggerChecksIn,
)
from services import (
    BreakdownService,
    QuotaExceeded,
    SubscriptionNotFound,
    SubscriptionService,
    TransactionNotFound,
    get_current_user_id,
)

app = FastAPI(title="Subscription Tracker")


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


scheduler_manager = SchedulerManager()


@app.on_event("startup")
def startup_event():
    scheduler_manager.start()


@app.on_event("shutdown")
def shutdown_event():
    scheduler_manager.stop()


def raise_http(exc: ValueError) -> None:
    if isinstance(exc, (SubscriptionNotFound, TransactionNotFound)):
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    if isinstance(exc, QuotaExceeded):
        raise HTTPException(status_code=403, detail=str(exc)) from exc
    raise HTTPException(status_code=400, detail=str(exc)) from exc


def subscription_service(db: Session = Depends(get_db)) -> SubscriptionService:
    return SubscriptionService(db, get_current_user_id())


@app.post("/subscriptions", response_model=SubscriptionOut, status_code=201)
def create_subscription(
    payload: SubscriptionIn,
    service: SubscriptionService = Depends(subscription_service),
):
    try:
        return service.create(payload)
    except ValueError as exc:
        raise_http(exc)


@app.get("/subscriptions")
def list_subscriptions(service: SubscriptionService = Depends(subscription_service)):
    return service.list_active()


@app.get("/subscriptions/breakdown")
def subscription_breakdown(db: Session = Depends(get_db)):
    return BreakdownService(db, get_current_user_id()).breakdown()


@app.get("/subscriptions/{subscription_id}", response_model=SubscriptionOut)
def get_subscription(
    subscription_id: int,
    service: SubscriptionService = Depends(subscription_service),
):
    try:
        return service.get(subscription_id)
    except ValueError as exc:
        raise_http(exc)


@app.patch("/subscriptions/{subscription_id}", response_model=SubscriptionOut)
def update_subscription(
    subscription_id: int,
    payload: SubscriptionUpdate,
    service: SubscriptionService = Depends(subscription_service),
):
    try:
        return service.update(subscription_id, payload)
    except ValueError as exc:
        raise_http(exc)


@app.delete("/subscriptions/{subscription_id}")
def remove_subscription(
    subscription_id: int,
    service: SubscriptionService = Depends(subscription_service),
):
    try:
        return service.remove(subscription_id)
    except ValueError as exc:
        raise_http(exc)


@app.post("/subscriptions/cancel")
def cancel_subscriptions(
    payload: IdsIn,
    service: SubscriptionService = Depends(subscription_service),
):
    try:
        return service.cancel(payload)
    except ValueError as exc:
        raise_http(exc)


@app.post("/subscriptions/transactions/confirm")
def confirm_transactions(
    payload: IdsIn,
    service: SubscriptionService = Depends(subscription_service),
):
    try:
        return service.confirm(payload)
    except ValueError as exc:
        raise_http(exc)


@app.post("/subscriptions/transactions/details")
def transaction_details(
    payload: IdsIn,
    service: SubscriptionService = Depends(subscription_service),
):
    try:
        return service.transaction_details(payload)
    except ValueError as exc:
        raise_http(exc)


@app.post("/subscriptions/test/trigger-checks")
def trigger_checks(payload: TriggerChecksIn, db: Session = Depends(get_db)):
    now = payload.custom_date
    if now is not None and now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    report = scheduler_manager.run_sweep(
        "manual",
        now=now,
        target_hour=payload.target_hour,
        target_minute=payload.target_minute,
        session=db,
    )
    if report is None:
        raise HTTPException(status_code=409, detail="A renewal sweep is already running")
    return {
        "message": "Checks triggered",
        "details": {
            "target_hour": payload.target_hour,
            "target_minute": payload.target_minute,
            "simulated_date": now.isoformat() if now else "Real Time",
            "today": report.today.isoformat(),
            "projections_created": report.projections_created,
            "upcoming_sent": report.upcoming_sent,
            "confirm_sent": report.confirm_sent,
            "skipped_users": report.skipped_users,
        },
    }


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
