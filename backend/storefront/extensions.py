# Overview: Flask extension instances for the database, migrations and outbound integrations.

from flask import current_app
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from sqlalchemy import MetaData

# Stable constraint names so Alembic autogenerate can diff unique/foreign keys.
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_N_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

db = SQLAlchemy(metadata=MetaData(naming_convention=NAMING_CONVENTION))
migrate = Migrate()

PAYMENT_PROVIDER_KEY = "storefront.payment_provider"
MAILER_KEY = "storefront.mailer"


def get_payment_provider():
    """Hosted-checkout client bound to the current app."""
    return current_app.extensions[PAYMENT_PROVIDER_KEY]


def get_mailer():
    """Transactional email client bound to the current app."""
    return current_app.extensions[MAILER_KEY]
