"""
Order Store for persisting the order audit trail

SQLAlchemy-backed table of orders. Blocking database calls run in a worker
thread under the store's own concurrency bound, so a slow write suspends only
the job that issued it.
"""

import asyncio
from typing import Any, Callable, List, Optional

from loguru import logger
from sqlalchemy import CheckConstraint, Column, DateTime, Integer, Numeric, String, Text, create_engine, select, text, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from ..config import StoreConfig
from ..errors import DuplicateKeyError, StoreUnavailableError, ValidationError
from ..orders.order_schemas import Order, OrderStatus, utcnow


Base = declarative_base()


class StoredOrder(Base):
    """Database model for orders"""
    __tablename__ = 'orders'
    __table_args__ = (CheckConstraint('amount > 0', name='ck_orders_amount_positive'),)

    id = Column(String, primary_key=True)
    token_in = Column(String, nullable=False)
    token_out = Column(String, nullable=False)
    amount = Column(Numeric(36, 18), nullable=False)
    status = Column(String, nullable=False)
    tx_hash = Column(String, nullable=True)
    error = Column(Text, nullable=True)
    attempts = Column(Integer, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)


class OrderStore:
    """
    Create/update/read access to the orders table.

    Call initialize() before use and close() when done.
    """

    def __init__(self, config: Optional[StoreConfig] = None):
        self.config = config or StoreConfig()
        self.engine = None
        self.session_factory = None
        self._semaphore: Optional[asyncio.Semaphore] = None

    @property
    def is_sqlite(self) -> bool:
        return self.config.database_url.startswith('sqlite')

    async def initialize(self) -> None:
        """Connect and create the orders table if missing"""
        engine_kwargs = {'echo': self.config.echo_sql}
        max_concurrency = self.config.max_concurrent_calls

        if self.is_sqlite:
            engine_kwargs['connect_args'] = {'check_same_thread': False}
            if self.config.database_url in ('sqlite://', 'sqlite:///:memory:'):
                engine_kwargs['poolclass'] = StaticPool
            # SQLite allows a single writer
            max_concurrency = 1

        self.engine = create_engine(self.config.database_url, **engine_kwargs)
        self.session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)
        self._semaphore = asyncio.Semaphore(max(1, max_concurrency))

        try:
            await asyncio.to_thread(Base.metadata.create_all, self.engine)
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"Failed to initialize order store: {e}") from e

        logger.info(f"OrderStore initialized with database: {self.config.database_url}")

    async def close(self) -> None:
        if self.engine is not None:
            await asyncio.to_thread(self.engine.dispose)
            self.engine = None
            logger.info("OrderStore closed")

    async def create_order(self, order: Order) -> None:
        """
        Insert a new order record

        Raises:
            DuplicateKeyError: an order with the same id already exists
            StoreUnavailableError: the database could not be reached
        """
        await self.run_sync(self._create_order, order)
        logger.debug(f"Stored order {order.order_id}")

    async def update_order_status(
        self,
        order_id: str,
        status: OrderStatus,
        tx_hash: Optional[str] = None,
        error: Optional[str] = None,
        attempts: Optional[int] = None
    ) -> bool:
        """
        Set the order's status and optional extra fields.

        Repeating the same call only moves updated_at. Returns False when no
        order has the given id.
        """
        updated = await self.run_sync(self._update_order_status, order_id, status, tx_hash, error, attempts)
        if not updated:
            logger.debug(f"Status update for unknown order {order_id} ignored")
        return updated

    async def get_order(self, order_id: str) -> Optional[Order]:
        """Current snapshot of an order, or None when not found"""
        return await self.run_sync(self._get_order, order_id)

    async def get_unfinished_orders(self) -> List[Order]:
        """Orders not yet CONFIRMED or FAILED, oldest first"""
        return await self.run_sync(self._get_unfinished_orders)

    async def health_check(self) -> bool:
        """Lightweight liveness check"""
        try:
            await self.run_sync(self._ping)
            return True
        except StoreUnavailableError as e:
            logger.warning(f"Order store health check failed: {e}")
            return False

    async def run_sync(self, fn: Callable[..., Any], *args: Any) -> Any:
        """Run a blocking database call in a worker thread under the store's concurrency bound"""
        if self.engine is None:
            raise StoreUnavailableError("Order store is not initialized")

        async with self._semaphore:
            try:
                return await asyncio.to_thread(fn, *args)
            except SQLAlchemyError as e:
                raise StoreUnavailableError(str(e)) from e

    def _create_order(self, order: Order) -> None:
        session = self.session_factory()
        try:
            session.add(StoredOrder(
                id=order.order_id,
                token_in=order.token_in,
                token_out=order.token_out,
                amount=order.amount,
                status=order.status.value,
                tx_hash=order.tx_hash,
                error=order.error,
                attempts=order.attempts,
                created_at=order.created_at,
                updated_at=order.updated_at,
            ))
            session.commit()
        except IntegrityError as e:
            session.rollback()
            if session.get(StoredOrder, order.order_id) is not None:
                raise DuplicateKeyError(order.order_id) from e
            raise ValidationError(f"Order {order.order_id} rejected by store: {e.orig}") from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def _update_order_status(
        self,
        order_id: str,
        status: OrderStatus,
        tx_hash: Optional[str],
        error: Optional[str],
        attempts: Optional[int]
    ) -> bool:
        values = {'status': status.value, 'updated_at': utcnow()}
        if tx_hash is not None:
            values['tx_hash'] = tx_hash
        if error is not None:
            values['error'] = error
        if attempts is not None:
            values['attempts'] = attempts

        session = self.session_factory()
        try:
            result = session.execute(
                update(StoredOrder).where(StoredOrder.id == order_id).values(**values)
            )
            session.commit()
            return result.rowcount > 0
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def _get_order(self, order_id: str) -> Optional[Order]:
        session = self.session_factory()
        try:
            row = session.get(StoredOrder, order_id)
            return _to_order(row) if row is not None else None
        finally:
            session.close()

    def _get_unfinished_orders(self) -> List[Order]:
        terminal = [status.value for status in OrderStatus if status.is_terminal()]
        session = self.session_factory()
        try:
            rows = session.scalars(
                select(StoredOrder)
                .where(StoredOrder.status.not_in(terminal))
                .order_by(StoredOrder.created_at)
            ).all()
            return [_to_order(row) for row in rows]
        finally:
            session.close()

    def _ping(self) -> None:
        with self.engine.connect() as connection:
            connection.execute(text('SELECT 1'))


def _to_order(row: StoredOrder) -> Order:
    return Order(
        order_id=row.id,
        token_in=row.token_in,
        token_out=row.token_out,
        amount=row.amount,
        status=OrderStatus(row.status),
        tx_hash=row.tx_hash,
        error=row.error,
        attempts=row.attempts,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
