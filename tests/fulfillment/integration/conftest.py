import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from fulfillment.api import agent_router, delivery_router, order_router, register_error_handlers


@pytest.fixture()
def client():
    app = FastAPI()
    app.include_router(order_router)
    app.include_router(delivery_router)
    app.include_router(agent_router)
    register_error_handlers(app)
    return TestClient(app)
