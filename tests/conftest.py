import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from car_rental.checkout import CheckoutSession, get_checkout_client
from car_rental.database import Base, get_db
from car_rental.errors import CheckoutError
from car_rental.main import app


class FakeCheckoutClient:
    """Stands in for the hosted checkout provider."""

    def __init__(self):
        self.opened = []
        self.sessions = {}
        self.fail = False
        self.db_sessions = []
        self.in_transaction_on_open = []

    async def open_session(self, amount_minor_units, currency, description,
                           success_url, cancel_url, metadata):
        self.in_transaction_on_open.extend(db.in_transaction() for db in self.db_sessions)
        if self.fail:
            raise CheckoutError()
        session_id = f"cs_test_{len(self.opened) + 1}"
        self.opened.append({
            "amount_minor_units": amount_minor_units,
            "currency": currency,
            "description": description,
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": metadata,
        })
        session = CheckoutSession(
            session_id=session_id,
            redirect_url=f"https://checkout.test/pay/{session_id}",
            payment_status="unpaid",
            status="open",
            metadata=metadata
        )
        self.sessions[session_id] = session
        return session

    async def get_session(self, session_id):
        if self.fail:
            raise CheckoutError()
        return self.sessions[session_id]

    def pay(self, session_id):
        self.sessions[session_id].payment_status = "paid"
        self.sessions[session_id].status = "complete"

    def expire(self, session_id):
        self.sessions[session_id].status = "expired"


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def checkout_client():
    return FakeCheckoutClient()


@pytest.fixture
def client(session_factory, checkout_client):
    def override_get_db():
        db = session_factory()
        checkout_client.db_sessions.append(db)
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_checkout_client] = lambda: checkout_client
    yield TestClient(app)
    app.dependency_overrides.clear()


def auth(user_id):
    return {"X-User-Id": str(user_id)}


@pytest.fixture
def car(client):
    response = client.post("/cars", headers=auth(1), json={
        "company": "Toyota",
        "model": "Corolla",
        "license_plate": "AB-123-CD",
        "price_per_day": 45.5,
        "year": 2021,
        "color": "red"
    })
    assert response.status_code == 201
    return response.json()


@pytest.fixture
def rental(client, car):
    response = client.post("/rentals", headers=auth(1), json={
        "car_id": car["id"],
        "start_date": "2025-03-15",
        "end_date": "2025-03-20",
        "total_amount": 250.75,
        "status": "pending"
    })
    assert response.status_code == 201
    return response.json()
