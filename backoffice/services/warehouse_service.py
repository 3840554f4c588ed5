"""Warehouse lookup helpers shared by the ledger and the MCG sync."""
import logging
from sqlalchemy.exc import IntegrityError
from backoffice.models import Warehouse, MAIN_WAREHOUSE_NAME
from backoffice.exceptions import ValidationError, NotFoundError

logger = logging.getLogger(__name__)


def ensure_main_warehouse(session) -> Warehouse:
    """Return the "Main Warehouse", creating it on first use."""
    warehouse = session.query(Warehouse).filter_by(name=MAIN_WAREHOUSE_NAME).first()
    if warehouse:
        return warehouse

    try:
        warehouse = Warehouse(name=MAIN_WAREHOUSE_NAME)
        session.add(warehouse)
        session.commit()
        logger.info(f"[INVENTORY] Created default warehouse '{MAIN_WAREHOUSE_NAME}' (id={warehouse.id})")
        return warehouse
    except IntegrityError:
        # Created concurrently by another writer
        session.rollback()
        return session.query(Warehouse).filter_by(name=MAIN_WAREHOUSE_NAME).one()


def resolve_default_warehouse(session) -> Warehouse:
    """
    Pick the warehouse to use when the caller did not name one.

    No warehouses -> Main Warehouse is created; exactly one -> that one;
    several -> the caller has to choose.
    """
    warehouses = session.query(Warehouse).order_by(Warehouse.id).limit(2).all()
    if not warehouses:
        return ensure_main_warehouse(session)
    if len(warehouses) == 1:
        return warehouses[0]
    raise ValidationError('warehouse_id is required when multiple warehouses exist')


def get_warehouse_or_404(session, warehouse_id) -> Warehouse:
    warehouse = session.get(Warehouse, warehouse_id)
    if warehouse is None:
        raise NotFoundError(f'Warehouse {warehouse_id} not found')
    return warehouse
