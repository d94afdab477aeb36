# FastAPI Server for the CollabPay completion / dispute / payout pipeline

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging
import os
import sys
from dotenv import load_dotenv

from config.app_config import LOG_LEVEL
from database.config import init_db

# Import pipeline routers (v2 API)
from routers.campaigns import router as campaigns_router
from routers.admin_campaigns import router as admin_campaigns_router
from routers.payouts import router as payouts_router
from routers.proposals import router as proposals_router
from routers.payments import router as payments_router
from routers.disputes import router as disputes_router

load_dotenv()

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler(sys.stdout)]
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="CollabPay API",
    description="Campaign completion, dispute and payout pipeline",
    version="1.0.0"
)


@app.on_event("startup")
def startup_event():
    # Alembic owns the schema in deployed environments
    if os.getenv("AUTO_CREATE_TABLES", "false").lower() in ("1", "true", "yes"):
        init_db()
    logger.info("CollabPay API started")


# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "*").split(","),
    allow_credentials=False,  # Required when using "*"
    allow_methods=["*"],
    allow_headers=["*"],
)

# Pipeline routers
app.include_router(campaigns_router, prefix="/api/v2")
app.include_router(admin_campaigns_router, prefix="/api/v2")
app.include_router(payouts_router, prefix="/api/v2")
app.include_router(proposals_router, prefix="/api/v2")
app.include_router(payments_router, prefix="/api/v2")
app.include_router(disputes_router, prefix="/api/v2")


@app.get("/health")
def health_check():
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", 8000)))
