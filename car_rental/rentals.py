from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List
import logging
import os

from car_rental.auth import get_current_user
from car_rental.database import get_db
from car_rental.errors import NotFoundError, ValidationError
from car_rental.models import Car, Rental
from car_rental.schemas import (
    RentalCreate, RentalUpdate, RentalResponse, RentalDeleteResponse
)

logger = logging.getLogger(__name__)

STRICT_RENTAL_STATUS = os.getenv("STRICT_RENTAL_STATUS", "false").lower() in ("1", "true", "yes")

# Only consulted when STRICT_RENTAL_STATUS is on; completed and cancelled are terminal.
RENTAL_TRANSITIONS = {
    "pending": {"pending", "completed", "cancelled"},
    "completed": {"completed"},
    "cancelled": {"cancelled"},
}

router = APIRouter(prefix="/rentals", tags=["rentals"])


def get_rental_for_user(db: Session, user_id: int, rental_id: int) -> Rental:
    """Another user's rental is reported exactly like a missing one."""
    rental = db.query(Rental).filter(
        Rental.id == rental_id,
        Rental.user_id == user_id
    ).first()

    if not rental:
        raise NotFoundError("Rental not found")
    return rental


def _validate_rental(db: Session, car_id: int, start_date, end_date):
    errors = {}
    if not db.query(Car).filter(Car.id == car_id).first():
        errors["car_id"] = ["The selected car does not exist."]
    if end_date < start_date:
        errors["end_date"] = ["The end date must be a date after or equal to start date."]
    if errors:
        raise ValidationError(errors)


def _check_transition(current: str, new: str):
    if not STRICT_RENTAL_STATUS:
        return
    if new not in RENTAL_TRANSITIONS[current]:
        raise ValidationError.for_field(
            "status", f"Cannot change status from {current} to {new}."
        )


@router.post("", response_model=RentalResponse, status_code=201)
def create_rental(
    rental: RentalCreate,
    user_id: int = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    _validate_rental(db, rental.car_id, rental.start_date, rental.end_date)

    db_rental = Rental(user_id=user_id, **rental.model_dump())
    db.add(db_rental)
    db.commit()
    db.refresh(db_rental)

    logger.info(f"Rental {db_rental.id} of car {db_rental.car_id} created for user {user_id}")
    return db_rental


@router.get("", response_model=List[RentalResponse])
def get_rentals(user_id: int = Depends(get_current_user), db: Session = Depends(get_db)):
    return db.query(Rental).filter(Rental.user_id == user_id).order_by(Rental.id).all()


@router.get("/{rental_id}", response_model=RentalResponse)
def get_rental(
    rental_id: int,
    user_id: int = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return get_rental_for_user(db, user_id, rental_id)


@router.put("/{rental_id}", response_model=RentalResponse)
def update_rental(
    rental_id: int,
    rental: RentalUpdate,
    user_id: int = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    db_rental = get_rental_for_user(db, user_id, rental_id)
    fields = rental.model_dump(exclude_unset=True)

    if {"car_id", "start_date", "end_date"} & fields.keys():
        _validate_rental(
            db,
            fields.get("car_id", db_rental.car_id),
            fields.get("start_date", db_rental.start_date),
            fields.get("end_date", db_rental.end_date)
        )
    if "status" in fields:
        _check_transition(db_rental.status, fields["status"])

    for name, value in fields.items():
        setattr(db_rental, name, value)
    db.commit()
    db.refresh(db_rental)
    return db_rental


@router.delete("/{rental_id}", response_model=RentalDeleteResponse)
def delete_rental(
    rental_id: int,
    user_id: int = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    db_rental = get_rental_for_user(db, user_id, rental_id)
    deleted = RentalResponse.model_validate(db_rental)

    # payments are left in place; see Payment.rental_id
    db.delete(db_rental)
    db.commit()

    logger.info(f"Rental {rental_id} deleted by user {user_id}")
    return RentalDeleteResponse(message="Rental deleted successfully", rental=deleted)
