from fastapi import APIRouter, Depends, Query
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from typing import List, Optional, Tuple
import logging

from car_rental import checkout
from car_rental.auth import get_current_user
from car_rental.checkout import (
    CheckoutClient, CheckoutSession, get_checkout_client, to_minor_units
)
from car_rental.database import get_db
from car_rental.errors import (
    ConflictError, ForbiddenOrNotFoundError, NotFoundError, PaymentIncompleteError
)
from car_rental.models import Car, Payment, Rental
from car_rental.reconciler import settle
from car_rental.schemas import (
    PaymentCreate, PaymentUpdate, PaymentResponse, PaymentDeleteResponse,
    CheckoutRequest, CheckoutResponse, MessageResponse
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])

# Targets of the checkout provider's browser redirects; they carry no identity header.
callback_router = APIRouter(tags=["checkout"])


def _get_owned_rental(db: Session, user_id: int, rental_id: int) -> Rental:
    rental = db.query(Rental).filter(
        Rental.id == rental_id,
        Rental.user_id == user_id
    ).first()
    if not rental:
        raise ForbiddenOrNotFoundError("Rental not found")
    return rental


def _get_owned_payment(db: Session, user_id: int, payment_id: int) -> Payment:
    payment = db.query(Payment).filter(
        Payment.id == payment_id,
        Payment.user_id == user_id
    ).first()
    if not payment:
        raise ForbiddenOrNotFoundError("Payment not found")
    return payment


def _ensure_unpaid(db: Session, rental_id: int):
    if db.query(Payment).filter(Payment.rental_id == rental_id).first():
        raise ConflictError("This rental already has a payment.")


def _save_payment(db: Session, payment: Payment) -> Payment:
    db.add(payment)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("This rental already has a payment.")
    db.refresh(payment)
    return payment


def _describe(db: Session, rental: Rental, request: CheckoutRequest) -> str:
    company, model = request.company_name, request.model_name
    if not (company and model):
        car = db.query(Car).filter(Car.id == rental.car_id).first()
        if car:
            company = company or car.company
            model = model or car.model
    if company and model:
        return f"{company} {model} rental"
    return f"Car rental #{rental.id}"


def _prepare_checkout(db: Session, user_id: int, request: CheckoutRequest) -> Tuple[int, str]:
    rental = _get_owned_rental(db, user_id, request.rental_id)
    _ensure_unpaid(db, rental.id)
    rental_id, description = rental.id, _describe(db, rental, request)
    # no transaction may stay open across the provider call
    db.rollback()
    return rental_id, description


def _has_checkout_payment(db: Session, session_id: str) -> bool:
    found = db.query(Payment.id).filter(Payment.checkout_session_id == session_id).first() is not None
    db.rollback()
    return found


def _apply_session(db: Session, session: CheckoutSession) -> PaymentResponse:
    payment = db.query(Payment).filter(Payment.checkout_session_id == session.session_id).first()
    if not payment:
        raise NotFoundError("Payment not found")
    if settle(payment, session):
        db.commit()
        db.refresh(payment)
        logger.info(f"Payment {payment.id} marked {payment.status} from checkout {session.session_id}")
    return PaymentResponse.model_validate(payment)


@router.get("", response_model=List[PaymentResponse])
def get_payments(user_id: int = Depends(get_current_user), db: Session = Depends(get_db)):
    return db.query(Payment).filter(Payment.user_id == user_id).order_by(Payment.id).all()


@router.post("", response_model=PaymentResponse, status_code=201)
def create_payment(
    payment: PaymentCreate,
    user_id: int = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    rental = _get_owned_rental(db, user_id, payment.rental_id)
    _ensure_unpaid(db, rental.id)

    db_payment = _save_payment(db, Payment(user_id=user_id, **payment.model_dump()))

    logger.info(f"Payment {db_payment.id} for rental {rental.id} created")
    return db_payment


@router.post("/checkout", response_model=CheckoutResponse, status_code=201)
async def create_checkout(
    request: CheckoutRequest,
    user_id: int = Depends(get_current_user),
    db: Session = Depends(get_db),
    checkout_client: CheckoutClient = Depends(get_checkout_client)
):
    rental_id, description = await run_in_threadpool(_prepare_checkout, db, user_id, request)

    # The payment row is only written once the provider has accepted the session,
    # so a failed or timed out call leaves nothing behind locally.
    session = await checkout_client.open_session(
        amount_minor_units=to_minor_units(request.amount),
        currency=checkout.CHECKOUT_CURRENCY,
        description=description,
        success_url=checkout.CHECKOUT_SUCCESS_URL,
        cancel_url=checkout.CHECKOUT_CANCEL_URL,
        metadata={"rental_id": rental_id, "user_id": user_id}
    )

    db_payment = await run_in_threadpool(_save_payment, db, Payment(
        rental_id=rental_id,
        user_id=user_id,
        amount=request.amount,
        method=request.method,
        status="pending",
        checkout_session_id=session.session_id
    ))

    logger.info(f"Payment {db_payment.id} awaiting checkout session {session.session_id}")
    return CheckoutResponse(
        url=session.redirect_url,
        session_id=session.session_id,
        payment=PaymentResponse.model_validate(db_payment)
    )


@router.get("/rental/{rental_id}", response_model=PaymentResponse)
def get_payment_by_rental(
    rental_id: int,
    user_id: int = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    rental = _get_owned_rental(db, user_id, rental_id)
    payment = db.query(Payment).filter(Payment.rental_id == rental.id).first()
    if not payment:
        raise NotFoundError("Payment not found")
    return payment


@router.get("/user/{owner_id}", response_model=List[PaymentResponse])
def get_payments_for_user(
    owner_id: int,
    user_id: int = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    if owner_id != user_id:
        raise ForbiddenOrNotFoundError("User not found")
    return db.query(Payment).filter(Payment.user_id == owner_id).order_by(Payment.id).all()


@router.get("/{payment_id}", response_model=PaymentResponse)
def get_payment(
    payment_id: int,
    user_id: int = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return _get_owned_payment(db, user_id, payment_id)


@router.put("/{payment_id}", response_model=PaymentResponse)
def update_payment(
    payment_id: int,
    payment: PaymentUpdate,
    user_id: int = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    db_payment = _get_owned_payment(db, user_id, payment_id)

    for name, value in payment.model_dump(exclude_unset=True).items():
        setattr(db_payment, name, value)
    db.commit()
    db.refresh(db_payment)
    return db_payment


@router.delete("/{payment_id}", response_model=PaymentDeleteResponse)
def delete_payment(
    payment_id: int,
    user_id: int = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    db_payment = _get_owned_payment(db, user_id, payment_id)
    deleted = PaymentResponse.model_validate(db_payment)

    db.delete(db_payment)
    db.commit()

    logger.info(f"Payment {payment_id} deleted by user {user_id}")
    return PaymentDeleteResponse(message="Payment deleted successfully", payment=deleted)


@callback_router.get("/payment/success", response_model=PaymentResponse)
async def checkout_success(
    session_id: str = Query(...),
    db: Session = Depends(get_db),
    checkout_client: CheckoutClient = Depends(get_checkout_client)
):
    if not await run_in_threadpool(_has_checkout_payment, db, session_id):
        raise NotFoundError("Payment not found")

    session = await checkout_client.get_session(session_id)
    if not session.is_paid:
        raise PaymentIncompleteError("Payment not completed")

    return await run_in_threadpool(_apply_session, db, session)


@callback_router.get("/payments/cancel", response_model=MessageResponse)
async def checkout_cancel(
    session_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    checkout_client: CheckoutClient = Depends(get_checkout_client)
):
    # An open session can still be paid after the buyer backs out, so the
    # payment stays pending until the provider reports it paid or expired.
    if session_id and await run_in_threadpool(_has_checkout_payment, db, session_id):
        session = await checkout_client.get_session(session_id)
        await run_in_threadpool(_apply_session, db, session)
    return MessageResponse(message="Payment cancelled")
