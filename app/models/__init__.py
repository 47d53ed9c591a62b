# Import all models here so Alembic can discover them.

from app.models.reservation import SlugReservation  # noqa: F401
from app.models.customer import Customer  # noqa: F401
from app.models.site import Site, SiteStatus  # noqa: F401
from app.models.payment_event import PaymentEvent  # noqa: F401
from app.models.deploy_job import DeployJob, DeployStatus  # noqa: F401
