"""Inventory service API built with FastAPI.

Endpoints to reserve and release stock for order lines, read and set the
level of a SKU, and probe health. Bodies are validated with pydantic;
persistence goes through ``repo.InventoryRepo``. Every request is logged as
one JSON line carrying the ``X-Request-ID`` sent by the web tier.
"""

import logging
import time
import uuid
from typing import List

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, constr
from pythonjsonlogger import jsonlogger
from sqlalchemy.exc import OperationalError

from repo import InventoryRepo, engine, init_db, ping

app = FastAPI(title="Inventory Service")

Sku = constr(pattern=r"^[A-Z0-9_-]{3,32}$")

logger = logging.getLogger("inventory")
if not logger.handlers:
    h = logging.StreamHandler()
    h.setFormatter(jsonlogger.JsonFormatter("%(asctime)s %(levelname)s %(name)s %(message)s %(request_id)s"))
    logger.addHandler(h)
    logger.setLevel(logging.INFO)

DB_WAIT_SECS = 30


@app.on_event("startup")
def _startup_db():
    # wait for the database container to accept connections
    deadline = time.time() + DB_WAIT_SECS
    while True:
        try:
            ping(engine)
            break
        except OperationalError:
            if time.time() > deadline:
                raise
            time.sleep(1)
    init_db(engine)


def get_repo() -> InventoryRepo:
    return InventoryRepo(engine)


class Item(BaseModel):
    """One order line.

    Attributes:
        sku: Product SKU matching the allowed pattern.
        quantity: Positive number of units.
    """

    sku: Sku
    quantity: int = Field(gt=0)


class ItemsRequest(BaseModel):
    items: List[Item] = Field(min_length=1)

    def pairs(self) -> list[tuple[str, int]]:
        return [(it.sku, it.quantity) for it in self.items]


class ReserveResponse(BaseModel):
    reserved: bool
    detail: str | None = None


class StockLevel(BaseModel):
    sku: str
    quantity: int


class StockUpdate(BaseModel):
    quantity: int = Field(ge=0)


@app.get("/health")
def health(repo: InventoryRepo = Depends(get_repo)):
    """Liveness probe; 503 when the database does not answer."""
    try:
        ping(repo.bind)
    except OperationalError:
        logger.warning("database unreachable", extra={"request_id": "-"})
        return JSONResponse(status_code=503, content={"ok": False, "database": "unreachable"})
    return {"ok": True, "database": "ok"}


@app.post("/reserve", response_model=ReserveResponse)
def reserve(req: ItemsRequest, repo: InventoryRepo = Depends(get_repo)):
    """Reserve stock for every line, or for none.

    Returns:
        ReserveResponse: ``reserved=True``; 422 with ``reserved=False`` and
        ``INSUFFICIENT_STOCK`` when any SKU is short or unknown.
    """
    if not repo.reserve(req.pairs()):
        return JSONResponse(status_code=422, content={"reserved": False, "detail": "INSUFFICIENT_STOCK"})
    return ReserveResponse(reserved=True)


@app.post("/release")
def release(req: ItemsRequest, repo: InventoryRepo = Depends(get_repo)):
    repo.release(req.pairs())
    return {"released": True}


@app.get("/stock", response_model=List[StockLevel])
def list_stock(repo: InventoryRepo = Depends(get_repo)):
    return [StockLevel(sku=sku, quantity=qty) for sku, qty in repo.all().items()]


@app.get("/stock/{sku}", response_model=StockLevel)
def get_stock(sku: str, repo: InventoryRepo = Depends(get_repo)):
    quantity = repo.get(sku.upper())
    if quantity is None:
        raise HTTPException(status_code=404, detail="NOT_FOUND")
    return StockLevel(sku=sku.upper(), quantity=quantity)


@app.put("/stock/{sku}", response_model=StockLevel)
def set_stock(sku: Sku, body: StockUpdate, repo: InventoryRepo = Depends(get_repo)):
    repo.upsert(sku, body.quantity)
    return StockLevel(sku=sku, quantity=body.quantity)


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = rid
    started = time.perf_counter()
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
    finally:
        logger.info(
            "request handled",
            extra={
                "request_id": rid,
                "path": request.url.path,
                "method": request.method,
                "status": status_code,
                "duration_ms": int((time.perf_counter() - started) * 1000),
                "retry_count": request.headers.get("X-Retry-Count", "0"),
            },
        )
    response.headers["X-Request-ID"] = rid
    return response
