import pytest
from fastapi import FastAPI, status
from fastapi.exceptions import RequestValidationError
from fastapi.testclient import TestClient
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from peak1031 import main
from peak1031.errors import ConflictError, StageTransitionError


def make_app() -> TestClient:
    app = FastAPI()

    @app.get("/conflict")
    async def conflict():
        raise ConflictError("Exchange number already exists", details={"exchange_number": "EX-1"})

    @app.get("/stage")
    async def stage():
        raise StageTransitionError("blocked", details={"missing_requirements": ["sale_completed"]})

    @app.get("/integrity")
    async def integrity():
        raise IntegrityError("INSERT", {}, Exception("duplicate key"))

    @app.get("/boom")
    async def boom():
        raise RuntimeError("secret internals")

    @app.get("/items/{item_id}")
    async def item(item_id: int):
        return {"id": item_id}

    app.add_exception_handler(main.AppError, main.handle_app_error)
    app.add_exception_handler(StarletteHTTPException, main.handle_starlette_http_exception)
    app.add_exception_handler(RequestValidationError, main.handle_request_validation_error)
    app.add_exception_handler(IntegrityError, main.handle_integrity_error)
    app.add_exception_handler(Exception, main.handle_unhandled_exception)
    return TestClient(app, raise_server_exceptions=False)


def test_app_error_envelope() -> None:
    response = make_app().get("/conflict")

    assert response.status_code == status.HTTP_409_CONFLICT
    assert response.json() == {
        "error": {
            "code": "CONFLICT_ERROR",
            "message": "Exchange number already exists",
            "details": {"exchange_number": "EX-1"},
        }
    }


def test_stage_transition_error_keeps_details() -> None:
    response = make_app().get("/stage")

    assert response.status_code == status.HTTP_409_CONFLICT
    error = response.json()["error"]
    assert error["code"] == "STAGE_TRANSITION_ERROR"
    assert error["details"]["missing_requirements"] == ["sale_completed"]


def test_integrity_error_maps_to_conflict() -> None:
    response = make_app().get("/integrity")

    assert response.status_code == status.HTTP_409_CONFLICT
    assert response.json()["error"]["code"] == "CONFLICT_ERROR"


def test_unhandled_error_hides_internals() -> None:
    response = make_app().get("/boom")

    assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
    body = response.json()
    assert body["error"]["code"] == "INTERNAL_ERROR"
    assert "secret" not in response.text


def test_request_validation_error() -> None:
    response = make_app().get("/items/not-a-number")

    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
    error = response.json()["error"]
    assert error["code"] == "VALIDATION_ERROR"
    assert error["details"][0]["loc"] == ["path", "item_id"]


def test_unknown_route_uses_envelope() -> None:
    response = make_app().get("/missing")

    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json()["error"]["code"] == "NOT_FOUND"


class _FailingEngine:
    def connect(self):
        raise SQLAlchemyError("connection refused")


class _Connection:
    async def __aenter__(self):
        return self

    async def __aexit__(self, *_args) -> None:
        return None

    async def execute(self, _statement) -> None:
        return None


class _HealthyEngine:
    def connect(self):
        return _Connection()


@pytest.mark.parametrize(
    ("engine", "expected_status", "expected_body"),
    [
        (_HealthyEngine(), status.HTTP_200_OK, {"status": "ok"}),
        (_FailingEngine(), status.HTTP_503_SERVICE_UNAVAILABLE, {"status": "error"}),
    ],
)
def test_healthcheck(monkeypatch: pytest.MonkeyPatch, engine, expected_status, expected_body) -> None:
    monkeypatch.setattr(main, "engine", engine)
    app = FastAPI()
    app.add_api_route("/health", main.healthcheck)

    response = TestClient(app).get("/health")

    assert response.status_code == expected_status
    assert response.json() == expected_body
