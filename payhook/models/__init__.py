# Models package — import all models here so create_all() can discover them.

from payhook.models.payment import Payment  # noqa: F401
