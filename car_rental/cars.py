from fastapi import APIRouter, Depends, Query
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from typing import Optional
import logging

from car_rental.auth import get_current_user
from car_rental.database import get_db
from car_rental.errors import ConflictError, NotFoundError
from car_rental.models import Car
from car_rental.schemas import (
    CarCreate, CarUpdate, CarResponse, CarDeleteResponse, PaginationResponse
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cars", tags=["cars"], dependencies=[Depends(get_current_user)])


def get_car_or_404(db: Session, car_id: int) -> Car:
    car = db.query(Car).filter(Car.id == car_id).first()
    if not car:
        raise NotFoundError("Car not found")
    return car


def filter_cars(
    db: Session,
    mark: Optional[str] = None,
    model: Optional[str] = None,
    year: Optional[int] = None,
    color: Optional[str] = None,
    max_price: Optional[float] = None
):
    """Every supplied criterion must hold; price is an upper bound, the rest are exact."""
    query = db.query(Car)
    if mark is not None:
        query = query.filter(Car.company == mark)
    if model is not None:
        query = query.filter(Car.model == model)
    if year is not None:
        query = query.filter(Car.year == year)
    if color is not None:
        query = query.filter(Car.color == color)
    if max_price is not None:
        query = query.filter(Car.price_per_day <= max_price)
    return query.order_by(Car.id)


def _ensure_plate_free(db: Session, license_plate: str, car_id: Optional[int] = None):
    query = db.query(Car).filter(Car.license_plate == license_plate)
    if car_id is not None:
        query = query.filter(Car.id != car_id)
    if query.first():
        raise ConflictError("The license plate has already been taken.")


def _commit_car(db: Session, car: Car):
    try:
        db.commit()
    except IntegrityError:
        # lost a race against another insert of the same plate
        db.rollback()
        raise ConflictError("The license plate has already been taken.")
    db.refresh(car)


@router.get("", response_model=PaginationResponse)
def get_cars(
    page: int = Query(1, ge=1),
    size: int = Query(10, ge=1, le=100),
    mark: Optional[str] = Query(None),
    model: Optional[str] = Query(None),
    year: Optional[int] = Query(None),
    color: Optional[str] = Query(None),
    price: Optional[float] = Query(None, ge=0),
    db: Session = Depends(get_db)
):
    query = filter_cars(db, mark=mark, model=model, year=year, color=color, max_price=price)

    total_elements = query.count()

    offset = (page - 1) * size
    cars = query.offset(offset).limit(size).all()

    return PaginationResponse(
        page=page,
        page_size=len(cars),
        total_elements=total_elements,
        items=[CarResponse.model_validate(car) for car in cars]
    )


@router.get("/{car_id}", response_model=CarResponse)
def get_car(car_id: int, db: Session = Depends(get_db)):
    return get_car_or_404(db, car_id)


@router.post("", response_model=CarResponse, status_code=201)
def create_car(car: CarCreate, db: Session = Depends(get_db)):
    _ensure_plate_free(db, car.license_plate)

    db_car = Car(**car.model_dump())
    db.add(db_car)
    _commit_car(db, db_car)

    logger.info(f"Car {db_car.id} ({db_car.license_plate}) created")
    return db_car


@router.put("/{car_id}", response_model=CarResponse)
def update_car(car_id: int, car: CarUpdate, db: Session = Depends(get_db)):
    db_car = get_car_or_404(db, car_id)

    fields = car.model_dump(exclude_unset=True)
    if "license_plate" in fields:
        _ensure_plate_free(db, fields["license_plate"], car_id=car_id)

    for name, value in fields.items():
        setattr(db_car, name, value)
    _commit_car(db, db_car)
    return db_car


@router.delete("/{car_id}", response_model=CarDeleteResponse)
def delete_car(car_id: int, db: Session = Depends(get_db)):
    db_car = get_car_or_404(db, car_id)
    deleted = CarResponse.model_validate(db_car)

    db.delete(db_car)
    db.commit()

    logger.info(f"Car {car_id} deleted")
    return CarDeleteResponse(message="Car deleted successfully", car=deleted)
