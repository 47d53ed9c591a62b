"""
Deferred extension instances.

Created here, bound to the app in create_app() via init_app().
The SQLAlchemy engine (and its connection pool) is owned by the app
instance, so it is built at startup and disposed with the app.
"""

from flask_cors import CORS
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

db = SQLAlchemy()
migrate = Migrate()
cors = CORS()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],  # No global limit; limits are per-route
    storage_uri="memory://",
)
