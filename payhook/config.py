import os


def _env_flag(name, default=""):
    return os.environ.get(name, default).lower() in ("1", "true", "yes")


DEFAULT_MESSAGE_TEMPLATE = (
    "🆕 NEW PAYMENT at {service_name}\n\n"
    "💫 Current Transaction:\n"
    "━━━━━━━━━━━━━━━━━━━━\n"
    "💰 Amount: {amount} {currency}\n"
    "🆔 Payment ID: {payment_id}\n"
    "📅 Time: {create_time}\n"
    "✅ Status: {status}\n\n"
    "📊 Statistics:\n"
    "━━━━━━━━━━━━━━━━━━━━\n"
    "📈 Last 24 Hours:\n"
    "   • Transactions: {payments24h}\n"
    "   • Total Amount: {sumamounts24h} {currency}\n\n"
    "📈 Last 7 Days:\n"
    "   • Transactions: {payments7d}\n"
    "   • Total Amount: {sumamounts7d} {currency}\n\n"
    "📈 Last 28 Days:\n"
    "   • Transactions: {payments28d}\n"
    "   • Total Amount: {sumamounts28d} {currency}"
)


class Config:
    """Base configuration. Shared across all environments."""

    # --- Database ---
    # Handle DATABASE_URL: some PaaS providers use "postgres://" which
    # SQLAlchemy 1.4+ doesn't accept. Relative sqlite paths land in instance/.
    _db_url = os.environ.get("DATABASE_URL", "")
    if _db_url.startswith("postgres://"):
        _db_url = _db_url.replace("postgres://", "postgresql://", 1)
    SQLALCHEMY_DATABASE_URI = _db_url or "sqlite:///payhook.db"

    DB_POOL_SIZE = int(os.environ.get("DB_POOL_SIZE", 5))
    DB_POOL_TIMEOUT = float(os.environ.get("DB_POOL_TIMEOUT", 10))
    CLEANUP_DAYS = int(os.environ.get("CLEANUP_DAYS", 60))  # retention horizon

    # --- SQLAlchemy ---
    # max_overflow=0 keeps the pool strictly bounded; acquisitions beyond
    # DB_POOL_SIZE wait up to DB_POOL_TIMEOUT seconds.
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_size": DB_POOL_SIZE,
        "max_overflow": 0,
        "pool_timeout": DB_POOL_TIMEOUT,
        "pool_pre_ping": True,
    }

    # --- PayPal ---
    PAYPAL_WEBHOOK_ID = os.environ.get("PAYPAL_WEBHOOK_ID")
    PAYPAL_CLIENT_ID = os.environ.get("PAYPAL_CLIENT_ID")
    PAYPAL_CLIENT_SECRET = os.environ.get("PAYPAL_CLIENT_SECRET")
    PAYPAL_API_BASE = os.environ.get("PAYPAL_API_BASE", "https://api-m.paypal.com")
    PAYPAL_TIMEOUT = float(os.environ.get("PAYPAL_TIMEOUT", 15))

    # --- Telegram ---
    # Leave token or chat id unset to disable notifications entirely.
    TELEGRAM_BOT_TOKEN = os.environ.get("TELEGRAM_BOT_TOKEN")
    TELEGRAM_CHAT_ID = os.environ.get("TELEGRAM_CHAT_ID")
    TELEGRAM_API_BASE = os.environ.get("TELEGRAM_API_BASE", "https://api.telegram.org")
    TELEGRAM_TIMEOUT = float(os.environ.get("TELEGRAM_TIMEOUT", 10))
    SERVICE_NAME = os.environ.get("SERVICE_NAME", "My Webservice")
    MESSAGE_TEMPLATE = os.environ.get("MESSAGE_TEMPLATE", DEFAULT_MESSAGE_TEMPLATE)

    NOTIFY_DELAY_SECONDS = float(os.environ.get("NOTIFY_DELAY_SECONDS", 5))
    NOTIFY_IN_BACKGROUND = _env_flag("NOTIFY_IN_BACKGROUND", "true")

    # --- Rate limiting ---
    # memory:// limits per process; use redis://... to share counters
    # across instances and keep them across restarts.
    RATE_LIMIT_ENABLED = _env_flag("RATE_LIMIT_ENABLED", "true")
    RATE_LIMIT_MAX_REQUESTS = int(os.environ.get("RATE_LIMIT_MAX_REQUESTS", 100))
    RATE_LIMIT_WINDOW = int(os.environ.get("RATE_LIMIT_WINDOW", 3600))
    RATE_LIMIT_STORAGE_URI = os.environ.get("RATE_LIMIT_STORAGE_URI", "memory://")
    RATE_LIMIT_STRATEGY = os.environ.get("RATE_LIMIT_STRATEGY", "moving-window")

    # Number of trusted proxies in front of the app (X-Forwarded-For hops).
    PROXY_FIX_X_FOR = int(os.environ.get("PROXY_FIX_X_FOR", 0))

    # --- Logging ---
    LOG_FILE = os.environ.get("LOG_FILE")
    LOG_MAX_BYTES = int(os.environ.get("LOG_MAX_BYTES", 5 * 1024 * 1024))
    LOG_BACKUP_COUNT = int(os.environ.get("LOG_BACKUP_COUNT", 5))

    @staticmethod
    def validate():
        """Fail fast if required env vars are missing."""
        required = [
            "PAYPAL_WEBHOOK_ID",
            "PAYPAL_CLIENT_ID",
            "PAYPAL_CLIENT_SECRET",
        ]
        missing = [v for v in required if not os.environ.get(v)]
        if missing:
            raise RuntimeError(
                f"Missing required environment variables: {', '.join(missing)}"
            )


class DevConfig(Config):
    """Local development."""

    DEBUG = True


class TestConfig(Config):
    """Testing — in-memory SQLite, no delays, rate limiting off."""

    TESTING = True
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    # In-memory SQLite runs on a StaticPool, which takes no sizing options.
    SQLALCHEMY_ENGINE_OPTIONS = {}
    PAYPAL_WEBHOOK_ID = "WH-TEST-0001"
    PAYPAL_CLIENT_ID = "client-id-test"
    PAYPAL_CLIENT_SECRET = "client-secret-test"
    PAYPAL_API_BASE = "https://api-m.sandbox.paypal.com"
    TELEGRAM_BOT_TOKEN = "123456:test-bot-token"
    TELEGRAM_CHAT_ID = "-1000000000001"
    SERVICE_NAME = "Test Shop"
    MESSAGE_TEMPLATE = DEFAULT_MESSAGE_TEMPLATE
    NOTIFY_DELAY_SECONDS = 0
    NOTIFY_IN_BACKGROUND = False
    RATE_LIMIT_ENABLED = False  # enabled per-test where needed
    RATE_LIMIT_STORAGE_URI = "memory://"
    LOG_FILE = None

    @staticmethod
    def validate():
        """Skip validation in test mode — everything is hardcoded."""
        pass


class ProdConfig(Config):
    """Production."""

    DEBUG = False


config_by_name = {
    "development": DevConfig,
    "production": ProdConfig,
    "testing": TestConfig,
}
