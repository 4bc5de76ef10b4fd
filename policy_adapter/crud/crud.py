"""Relational store gateway: CRUD over the policy rule table."""
import copy
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple, TypeVar

from sqlalchemy import MetaData, and_, delete, func, insert, select, text, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from policy_adapter.core.database import create_db_engine
from policy_adapter.core.exceptions import PreconditionError, StorageError
from policy_adapter.core.logging_config import logger
from policy_adapter.models.models import MAX_RULE_VALUES, RULE_COLUMNS, VALUE_COLUMNS, build_rule_table
from policy_adapter.services.codec import to_row, to_rule
from policy_adapter.services.filters import PolicyFilter, apply_filter

Row = Dict[str, Optional[str]]
T = TypeVar("T")


class RuleStore:
    """Owns the engine and the rule table; every statement runs through here.

    Outside a transaction each call commits on its own. Inside
    ``transaction()``/``run_transaction()`` calls share one session and
    commit or roll back together.
    """

    def __init__(self, engine: Engine, table_name: str = "casbin_rule", owns_engine: bool = False):
        self._engine = engine
        self._owns_engine = owns_engine
        self.table_name = table_name
        self._metadata = MetaData()
        self.table = build_rule_table(self._metadata, table_name)
        self._session_factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
        self._session: Optional[Session] = None
        self._closed = False

    @classmethod
    def from_url(cls, url: str, table_name: str = "casbin_rule") -> "RuleStore":
        return cls(create_db_engine(url), table_name, owns_engine=True)

    @property
    def engine(self) -> Engine:
        return self._engine

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Mark the store closed; later calls raise ``StorageError``.

        The connection pool is only disposed when this store created the engine.
        """
        if not self._closed:
            if self._owns_engine:
                self._engine.dispose()
            self._closed = True
            logger.info(f"Policy store closed (table: {self.table_name})")

    def _check_open(self) -> None:
        if self._closed:
            raise StorageError("The policy store connection is closed.")

    @contextmanager
    def _scope(self) -> Iterator[Session]:
        """Session for one statement group: the bound one, or a fresh committing one."""
        try:
            if self._session is not None:
                yield self._session
            else:
                self._check_open()
                with self._session_factory.begin() as session:
                    yield session
        except SQLAlchemyError as e:
            logger.error(f"Policy store operation failed on {self.table_name}: {e}")
            raise StorageError(str(e)) from e

    # --- Schema ---

    def ensure_schema(self) -> None:
        """Create the rule table if it does not exist. Safe to call repeatedly."""
        self._check_open()
        try:
            self._metadata.create_all(self._engine, tables=[self.table], checkfirst=True)
        except SQLAlchemyError as e:
            logger.error(f"Failed to create policy table {self.table_name}: {e}")
            raise StorageError(str(e)) from e
        logger.info(f"Policy table ready: {self.table_name}")

    # --- Writes ---

    def insert(self, ptype: str, values: Sequence[Optional[str]]) -> None:
        row = to_row(ptype, values)
        with self._scope() as session:
            session.execute(insert(self.table).values(**row))

    def insert_batch(self, rules: Sequence[Tuple[str, Sequence[Optional[str]]]]) -> None:
        """Insert every ``(ptype, values)`` pair with a single multi-row INSERT."""
        rows = [to_row(ptype, values) for ptype, values in rules]
        if not rows:
            return
        with self._scope() as session:
            session.execute(insert(self.table).values(rows))

    def delete_where(self, ptype: str, values: Sequence[Optional[str]]) -> int:
        """Delete rows of ``ptype`` whose leading columns equal ``values``.

        Columns past ``len(values)`` are unconstrained.
        """
        if len(values) > MAX_RULE_VALUES:
            raise PreconditionError(f"A policy rule holds at most {MAX_RULE_VALUES} values.")
        conditions = [self.table.c.p_type == ptype]
        for column, value in zip(VALUE_COLUMNS, values):
            conditions.append(self.table.c[column] == value)
        with self._scope() as session:
            result = session.execute(delete(self.table).where(and_(*conditions)))
            return result.rowcount

    def _field_range_conditions(self, ptype: str, field_index: int, field_values: Sequence[Optional[str]]):
        if not 0 <= field_index < MAX_RULE_VALUES:
            raise PreconditionError(f"Field index must be between 0 and {MAX_RULE_VALUES - 1}, got {field_index}.")
        if field_index + len(field_values) > MAX_RULE_VALUES:
            raise PreconditionError(
                f"{len(field_values)} field values starting at v{field_index} run past v{MAX_RULE_VALUES - 1}."
            )
        conditions = [self.table.c.p_type == ptype]
        for offset, value in enumerate(field_values):
            if value is None or value == "":
                continue  # wildcard
            conditions.append(self.table.c[f"v{field_index + offset}"] == value)
        return conditions

    def delete_where_field_range(
        self, ptype: str, field_index: int, field_values: Sequence[Optional[str]]
    ) -> List[Tuple[str, List[str]]]:
        """Delete rows matching non-empty ``field_values`` from column ``v<field_index>`` on.

        Returns the matching rules as they were before deletion.
        """
        conditions = self._field_range_conditions(ptype, field_index, field_values)
        columns = [self.table.c[name] for name in RULE_COLUMNS]
        with self._scope() as session:
            statement = select(*columns).where(and_(*conditions)).order_by(self.table.c.id)
            matched = session.execute(statement).mappings().all()
            session.execute(delete(self.table).where(and_(*conditions)))
        return [to_rule(row) for row in matched]

    def update_row(self, ptype: str, old_values: Sequence[Optional[str]], new_values: Sequence[Optional[str]]) -> int:
        """Rewrite every column of rows matching ``ptype`` + exactly ``old_values``."""
        old_row = to_row(ptype, old_values)
        new_row = to_row(ptype, new_values)
        conditions = [self.table.c.p_type == ptype]
        for column in VALUE_COLUMNS[:len(old_values)]:
            conditions.append(self.table.c[column] == old_row[column])
        changes = {column: new_row[column] for column in VALUE_COLUMNS}
        with self._scope() as session:
            result = session.execute(update(self.table).where(and_(*conditions)).values(**changes))
            return result.rowcount

    # --- Reads ---

    def select_all(self) -> List[Row]:
        """Full scan in insertion order, columns ``(p_type, v0..v5)``."""
        columns = [self.table.c[name] for name in RULE_COLUMNS]
        statement = select(*columns).order_by(self.table.c.id)
        with self._scope() as session:
            return [dict(row) for row in session.execute(statement).mappings()]

    def select_where(self, policy_filter: PolicyFilter) -> List[Row]:
        columns = [self.table.c[name] for name in RULE_COLUMNS]
        with self._scope() as session:
            statement = apply_filter(select(*columns), policy_filter)
            return [dict(row) for row in session.execute(statement.order_by(self.table.c.id)).mappings()]

    # --- Transactions ---

    @contextmanager
    def transaction(self) -> Iterator["RuleStore"]:
        """Yield a store bound to one session: everything inside commits or nothing does."""
        if self._session is not None:
            yield self
            return
        self._check_open()
        try:
            with self._session_factory.begin() as session:
                bound = copy.copy(self)
                bound._session = session
                yield bound
        except SQLAlchemyError as e:
            logger.error(f"Policy store transaction rolled back on {self.table_name}: {e}")
            raise StorageError(str(e)) from e

    def run_transaction(self, work: Callable[["RuleStore"], T]) -> T:
        with self.transaction() as store:
            return work(store)

    def count(self, ptype: Optional[str] = None) -> int:
        """Number of stored rows, optionally of one type."""
        statement = select(func.count()).select_from(self.table)
        if ptype is not None:
            statement = statement.where(self.table.c.p_type == ptype)
        with self._scope() as session:
            return session.execute(statement).scalar_one()

    def ping(self) -> Any:
        with self._scope() as session:
            return session.execute(text("SELECT 1")).scalar()
