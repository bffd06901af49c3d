import logging

from fastapi import FastAPI

from deliveryaddr.core.config import settings
from deliveryaddr.api.endpoints import address
from deliveryaddr.db.session import engine, init_db

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Create Tables (테이블 생성 - for local dev)
init_db(engine)

app = FastAPI(title=settings.PROJECT_NAME)

if not settings.JUSO_API_KEY:
    logger.warning("[Startup] JUSO_API_KEY is not set; every resolution will return E_API_KEY_MISSING")

app.include_router(address.router, prefix=f"{settings.API_V1_STR}/address", tags=["Address"])


@app.get("/")
def read_root():
    return {
        "message": "DeliveryAddressPro API is running.",
        "docs": "Go to /docs for Swagger UI"
    }
