from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
import uvicorn
import logging
import os

from car_rental import cars, payments, rentals
from car_rental.checkout import checkout_client
from car_rental.database import engine, Base, SessionLocal
from car_rental.errors import AppError, ValidationError
from car_rental.reconciler import PaymentReconciler

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

RECONCILE_INTERVAL = float(os.getenv("RECONCILE_INTERVAL", "300"))
PORT = int(os.getenv("PORT", "8000"))

app = FastAPI(title="Car Rental Service")

# callback routes first: /payments/cancel must not be taken for a payment id
app.include_router(payments.callback_router)
app.include_router(cars.router)
app.include_router(rentals.router)
app.include_router(payments.router)

reconciler = PaymentReconciler(SessionLocal, checkout_client, interval=RECONCILE_INTERVAL)


@app.on_event("startup")
async def startup_event():
    Base.metadata.create_all(bind=engine)
    if RECONCILE_INTERVAL > 0:
        await reconciler.start()


@app.on_event("shutdown")
async def shutdown_event():
    await reconciler.stop()
    logger.info("Payment reconciler stopped")


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    content = {"message": exc.message}
    if isinstance(exc, ValidationError):
        content["errors"] = exc.errors
    elif exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = {}
    for error in exc.errors():
        loc = [str(part) for part in error["loc"] if part not in ("body", "query", "path", "header")]
        field = ".".join(loc) or "body"
        errors.setdefault(field, []).append(error["msg"])
    return JSONResponse(
        status_code=422,
        content={"message": ValidationError.message, "errors": errors}
    )


@app.get("/manage/health")
def health_check():
    return {"status": "ok", "checkout": checkout_client.breaker.get_state()}


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=PORT)
