import os

# ✅ Database
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./billing.db")
DB_STATEMENT_TIMEOUT_MS = int(os.getenv("DB_STATEMENT_TIMEOUT_MS", "5000"))
DB_POOL_TIMEOUT_SECONDS = int(os.getenv("DB_POOL_TIMEOUT_SECONDS", "10"))
RUN_MIGRATIONS = os.getenv("RUN_MIGRATIONS", "0") == "1"

# ✅ Stripe
STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")
STRIPE_WEBHOOK_TOLERANCE_SECONDS = int(os.getenv("STRIPE_WEBHOOK_TOLERANCE_SECONDS", "300"))

# ✅ Stripe price IDs (one per paid plan)
STRIPE_PRICE_BASIC = os.getenv("STRIPE_PRICE_BASIC")
STRIPE_PRICE_PREMIUM = os.getenv("STRIPE_PRICE_PREMIUM")
STRIPE_PRICE_ELITE = os.getenv("STRIPE_PRICE_ELITE")

# ✅ Webhook processing
# When true, persistence failures are acknowledged with 200 and the event is dropped.
WEBHOOK_ACK_ON_PERSISTENCE_FAILURE = os.getenv("WEBHOOK_ACK_ON_PERSISTENCE_FAILURE", "false").lower() in ("1", "true", "yes")
UPSERT_MAX_ATTEMPTS = int(os.getenv("UPSERT_MAX_ATTEMPTS", "3"))

# ✅ Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_DIR = os.getenv("LOG_DIR", "logs")
