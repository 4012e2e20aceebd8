from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool, create_engine

from app.core.config import settings
from app.db.session import Base

# Import all models so Alembic sees them in metadata
from app.models.trip import Trip  # noqa: F401
from app.models.seat import Seat  # noqa: F401
from app.models.seat_lock import SeatLock  # noqa: F401
from app.models.booking import Booking  # noqa: F401
from app.models.booking_item import BookingItem  # noqa: F401
from app.models.payment import Payment  # noqa: F401
from app.models.payment_log import PaymentLog  # noqa: F401
from app.models.invoice import Invoice  # noqa: F401
from app.models.voucher import Voucher  # noqa: F401
from app.models.voucher_usage import VoucherUsage  # noqa: F401
from app.models.vnpay_transaction import VNPayTransaction  # noqa: F401
from app.models.email_log import EmailLog  # noqa: F401


# Alembic Config object
config = context.config

# Migrations always target the runtime DATABASE_URL; alembic.ini leaves it blank
config.set_main_option("sqlalchemy.url", settings.DATABASE_URL)

# Logging config
if config.config_file_name is not None:
    fileConfig(config.config_file_name, disable_existing_loggers=False)

# Target metadata for autogenerate
target_metadata = Base.metadata


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode."""
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode."""
    url = config.get_main_option("sqlalchemy.url")

    # Build the engine from DATABASE_URL directly; alembic.ini leaves sqlalchemy.url blank.
    connectable = create_engine(url, poolclass=pool.NullPool)

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
