import os



def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_list(value: str | None, default: tuple[str, ...]) -> tuple[str, ...]:
    if value is None:
        return default
    items = tuple(item.strip().lower() for item in value.split(",") if item.strip())
    return items or default

APP_ENV = os.getenv("APP_ENV", "development")

CORS_ALLOWED_ORIGINS = _get_list(os.getenv("CORS_ALLOWED_ORIGINS"), ("http://localhost:5173",))

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", "60"))

APPOINTMENT_STATUSES = ("scheduled", "pending", "confirmed", "cancelled")

SLOT_LENGTH_MINUTES = int(os.getenv("SLOT_LENGTH_MINUTES", "60"))
MAX_RECURRING_APPOINTMENTS = int(os.getenv("MAX_RECURRING_APPOINTMENTS", "12"))

# Statuses that consume a slot's capacity.
CAPACITY_STATUSES = _get_list(os.getenv("CAPACITY_STATUSES"), ("scheduled", "confirmed"))

BOOKING_CAPACITY_GUARD = _get_bool(os.getenv("BOOKING_CAPACITY_GUARD"), default=True)
MERGE_OVERLAPPING_SLOTS = _get_bool(os.getenv("MERGE_OVERLAPPING_SLOTS"), default=False)

def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")

    unknown_statuses = set(CAPACITY_STATUSES) - set(APPOINTMENT_STATUSES)
    if unknown_statuses:
        raise RuntimeError(f"CAPACITY_STATUSES contains unknown statuses: {sorted(unknown_statuses)}")
    if "cancelled" in CAPACITY_STATUSES:
        raise RuntimeError("Cancelled appointments can never consume capacity.")

    if SLOT_LENGTH_MINUTES <= 0:
        raise RuntimeError("SLOT_LENGTH_MINUTES must be positive.")
    if MAX_RECURRING_APPOINTMENTS < 1:
        raise RuntimeError("MAX_RECURRING_APPOINTMENTS must be at least 1.")
