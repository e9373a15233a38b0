from sqlalchemy import Column, Integer, String, Date, Numeric, CheckConstraint

from car_rental.database import Base

RENTAL_STATUSES = ("pending", "completed", "cancelled")
PAYMENT_STATUSES = ("pending", "completed", "failed")
PAYMENT_METHODS = ("credit_card", "paypal", "cash")


class Car(Base):
    __tablename__ = "cars"

    id = Column(Integer, primary_key=True, index=True)
    company = Column(String(80), nullable=False)
    model = Column(String(80), nullable=False)
    license_plate = Column(String(20), unique=True, nullable=False)
    price_per_day = Column(Numeric(10, 2, asdecimal=False), nullable=False)
    year = Column(Integer)
    color = Column(String(40))

    __table_args__ = (
        CheckConstraint("price_per_day >= 0", name="car_price_check"),
        {"sqlite_autoincrement": True},
    )


class Rental(Base):
    __tablename__ = "rentals"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=False, index=True)
    car_id = Column(Integer, nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    total_amount = Column(Numeric(10, 2, asdecimal=False), nullable=False)
    status = Column(String(20), nullable=False, default="pending")

    __table_args__ = (
        CheckConstraint("end_date >= start_date", name="rental_dates_check"),
        CheckConstraint(
            "status IN ('pending', 'completed', 'cancelled')",
            name="rental_status_check"
        ),
        {"sqlite_autoincrement": True},
    )


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    # one settled payment per rental; no FK so a deleted rental leaves the payment behind
    rental_id = Column(Integer, unique=True, nullable=False)
    user_id = Column(Integer, nullable=False, index=True)
    amount = Column(Numeric(10, 2, asdecimal=False), nullable=False)
    method = Column(String(20), nullable=False)
    status = Column(String(20), nullable=False, default="pending")
    checkout_session_id = Column(String(255), unique=True)

    __table_args__ = (
        CheckConstraint("amount > 0", name="payment_amount_check"),
        CheckConstraint(
            "method IN ('credit_card', 'paypal', 'cash')",
            name="payment_method_check"
        ),
        CheckConstraint(
            "status IN ('pending', 'completed', 'failed')",
            name="payment_status_check"
        ),
        {"sqlite_autoincrement": True},
    )
