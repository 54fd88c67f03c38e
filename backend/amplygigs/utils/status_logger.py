import logging
from sqlalchemy import event
from sqlalchemy.orm.attributes import NO_VALUE

from .. import models

logger = logging.getLogger(__name__)

# (model, attribute) pairs whose transitions are worth an audit trail in logs
TRACKED_STATUS_COLUMNS = (
    (models.Booking, "status"),
    (models.Booking, "payment_status"),
    (models.EscrowTransaction, "status"),
    (models.UserReport, "status"),
    (models.TicketPurchase, "payment_status"),
)

_registered = False


def _label(value):
    return getattr(value, "value", value)


def _listener_factory(model_name: str, attr: str):
    """Return a SQLAlchemy attribute listener that logs status changes."""

    def _status_change(target, value, oldvalue, initiator):  # noqa: ANN001
        if oldvalue is NO_VALUE or oldvalue is None or _label(oldvalue) == _label(value):
            return value
        logger.info(
            "%s id=%s %s changed from %s to %s",
            model_name,
            getattr(target, "id", "unknown"),
            attr,
            _label(oldvalue),
            _label(value),
        )
        return value

    return _status_change


def register_status_listeners() -> None:
    """Attach listeners for the tracked status columns (idempotent)."""
    global _registered
    if _registered:
        return
    for model, attr in TRACKED_STATUS_COLUMNS:
        event.listen(
            getattr(model, attr),
            "set",
            _listener_factory(model.__name__, attr),
            retval=False,
            propagate=True,
        )
    _registered = True
