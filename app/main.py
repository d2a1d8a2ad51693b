import logging
from fastapi import FastAPI

from app.core import config
from app.core.logging_config import setup_logging
from app.api.routes import billing_webhook
from app.api.routes import health

setup_logging(config.LOG_LEVEL, config.LOG_DIR)
logger = logging.getLogger(__name__)

if config.RUN_MIGRATIONS:
    from app.db.migrate import run_migrations
    run_migrations()


# ============================================
# ✅ FASTAPI APP INIT
# ============================================

app = FastAPI(title="Billing Webhooks")


# ============================================
# ✅ REGISTER ALL ROUTERS
# ============================================

app.include_router(billing_webhook.router)
app.include_router(health.router)


# ============================================
# ✅ HEALTH CHECK ROOT ENDPOINT
# ============================================

@app.get("/")
def root():
    return {"status": "Billing webhook service running"}
