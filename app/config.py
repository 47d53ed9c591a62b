import os


def _env_flag(name):
    return os.environ.get(name, "").lower() in ("1", "true", "yes")


class Config:
    """Base configuration. Shared across all environments."""

    # --- Required ---
    SECRET_KEY = os.environ.get("SECRET_KEY")

    # Handle DATABASE_URL: some PaaS providers (Neon, Heroku) use
    # "postgres://" which SQLAlchemy 1.4+ doesn't accept.
    _db_url = os.environ.get("DATABASE_URL", "")
    if _db_url.startswith("postgres://"):
        _db_url = _db_url.replace("postgres://", "postgresql://", 1)
    SQLALCHEMY_DATABASE_URI = _db_url or None

    STRIPE_SECRET_KEY = os.environ.get("STRIPE_SECRET_KEY")
    STRIPE_WEBHOOK_SECRET = os.environ.get("STRIPE_WEBHOOK_SECRET")
    STRIPE_PRICE_ID = os.environ.get("STRIPE_PRICE_ID")
    CLIENT_URL = os.environ.get("CLIENT_URL", "http://localhost:3000")

    # --- CORS ---
    ALLOWED_ORIGINS = [
        o.strip()
        for o in os.environ.get(
            "ALLOWED_ORIGINS", "http://localhost:3000,https://websimple.ai"
        ).split(",")
        if o.strip()
    ]

    # --- Operator endpoints (/api/deploy/*) ---
    ADMIN_API_TOKEN = os.environ.get("ADMIN_API_TOKEN")

    # --- Content generation (Gemini REST API) ---
    GEMINI_API_KEY = os.environ.get("GEMINI_API_KEY")
    GEMINI_MODEL = os.environ.get("GEMINI_MODEL", "gemini-2.0-flash")
    GEMINI_API_BASE = os.environ.get(
        "GEMINI_API_BASE", "https://generativelanguage.googleapis.com/v1beta"
    )
    LLM_TIMEOUT = int(os.environ.get("LLM_TIMEOUT", 30))  # seconds

    # --- Publishing (Cloudflare Pages via wrangler) ---
    CLOUDFLARE_ACCOUNT_ID = os.environ.get("CLOUDFLARE_ACCOUNT_ID")
    CLOUDFLARE_API_TOKEN = os.environ.get("CLOUDFLARE_API_TOKEN")
    WRANGLER_COMMAND = os.environ.get("WRANGLER_COMMAND", "npx wrangler")
    PUBLISH_TIMEOUT = int(os.environ.get("PUBLISH_TIMEOUT", 120))  # seconds
    SITE_DOMAIN = os.environ.get("SITE_DOMAIN", "llc-us.com")
    PROJECT_PREFIX = os.environ.get("PROJECT_PREFIX", "llc-")

    # --- Slug holds ---
    RESERVATION_HOLD_MINUTES = int(os.environ.get("RESERVATION_HOLD_MINUTES", 30))
    # Stripe requires checkout sessions to live between 30 minutes and 24 hours
    CHECKOUT_HOLD_MINUTES = int(os.environ.get("CHECKOUT_HOLD_MINUTES", 60))

    # --- Deploy queue ---
    DEPLOY_MAX_ATTEMPTS = int(os.environ.get("DEPLOY_MAX_ATTEMPTS", 3))
    DEPLOY_STALE_MINUTES = int(os.environ.get("DEPLOY_STALE_MINUTES", 15))
    DEPLOY_POLL_INTERVAL = float(os.environ.get("DEPLOY_POLL_INTERVAL", 5))

    # --- Billing ---
    SUSPENSION_GRACE_DAYS = int(os.environ.get("SUSPENSION_GRACE_DAYS", 7))
    WEBHOOK_CLAIM_MINUTES = int(os.environ.get("WEBHOOK_CLAIM_MINUTES", 10))

    # --- SQLAlchemy ---
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,
    }

    # --- Rate limiting ---
    RATELIMIT_ENABLED = not _env_flag("RATELIMIT_DISABLED")

    @staticmethod
    def validate():
        """Fail fast if required env vars are missing."""
        required = [
            "SECRET_KEY",
            "DATABASE_URL",
            "STRIPE_SECRET_KEY",
            "STRIPE_WEBHOOK_SECRET",
            "STRIPE_PRICE_ID",
            "GEMINI_API_KEY",
            "CLOUDFLARE_ACCOUNT_ID",
            "CLOUDFLARE_API_TOKEN",
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
    """Testing — in-memory SQLite, external services faked."""

    TESTING = True
    DEBUG = True
    SECRET_KEY = "test-secret-key-not-for-production"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_ENGINE_OPTIONS = {}
    STRIPE_SECRET_KEY = "sk_test_fake"
    STRIPE_WEBHOOK_SECRET = "whsec_test_fake"
    STRIPE_PRICE_ID = "price_starter_test"
    CLIENT_URL = "http://localhost:3000"
    GEMINI_API_KEY = "gemini_test_fake"
    CLOUDFLARE_ACCOUNT_ID = "cf_account_test"
    CLOUDFLARE_API_TOKEN = "cf_token_test"
    ADMIN_API_TOKEN = "admin-test-token"
    RATELIMIT_ENABLED = False  # disable rate limiting in tests
    SERVER_NAME = "localhost"

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
