"""Query builder and execution for models.

A Query accumulates SELECT, JOIN, WHERE, GROUP BY, HAVING, ORDER BY and
LIMIT fragments, renders them into a single statement with `?` placeholders
and a positional argument vector, then hands both to the model's connection.

The argument vector is always `joins_args + conditions_args + having_args`,
the order in which their placeholders appear in the statement. Statements
are templates: `{self_and_related}`, `{alias}`... are substituted by the
model (see Table.resolve_statement) when the query is executed.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Iterator, Mapping, Optional, Union

from pydantic import BaseModel, Field

from .errors import ConfigurationError, RenderingError, ScopeNotDefined
from .statement import FetchMode, Statement
from .table import Table
from .utils.format_datetime import format_datetime

logger = logging.getLogger(__name__)


class Query(BaseModel):
    """Fluent, mutable SELECT builder bound to one model.

    Builder methods modify the query and return it, so calls can be chained:

        model.query().where({"!status": ["draft", "trash"]}).order("-created_at").limit(10).all()
    """

    model_config = {"arbitrary_types_allowed": True}

    model: Any = Field(exclude=True)
    """The Model this query targets."""
    select_expression: Optional[str] = None
    joins: list[str] = Field(default_factory=list)
    joins_args: list[Any] = Field(default_factory=list)
    conditions: list[str] = Field(default_factory=list)
    """Parenthesized conditions, joined with AND."""
    conditions_args: list[Any] = Field(default_factory=list)
    group_expression: Optional[str] = None
    having_expression: Optional[str] = None
    having_args: list[Any] = Field(default_factory=list)
    order_expression: Optional[str] = None
    offset_value: Optional[int] = None
    """Optional OFFSET (stored to avoid shadowing the offset() method)."""
    limit_value: Optional[int] = None
    """Optional LIMIT (stored to avoid shadowing the limit() method)."""
    fetch_mode: Optional[FetchMode] = None

    def __init__(self, model: Any = None, **data: Any):
        super().__init__(model=model, **data)

    def __getattr__(self, name: str) -> Any:
        if name.startswith("filter_by_"):
            return self._make_filter(name[len("filter_by_"):].split("_and_"))
        try:
            return super().__getattr__(name)
        except AttributeError:
            if name.startswith("_"):
                raise
            raise ScopeNotDefined(name, getattr(self.model, "id", None)) from None

    def _make_filter(self, columns: list[str]):
        def filter_by(*values: Any) -> Query:
            if len(values) != len(columns):
                raise ValueError(
                    f"filter_by_{'_and_'.join(columns)} expects {len(columns)} values, got {len(values)}"
                )
            return self.where(dict(zip(columns, values)))
        return filter_by

    def clone_query_with(self, **changes: Any) -> Query:
        """Return a new Query with the same state except for the given overrides.

        Args:
            **changes: Field names and values to set on the clone (e.g. limit_value=1).

        Returns:
            A new Query instance sharing no mutable state with this one.
        """
        data = {name: getattr(self, name) for name in type(self).model_fields}
        for name, value in data.items():
            if isinstance(value, list):
                data[name] = list(value)
        for name, value in changes.items():
            if name not in data:
                raise AttributeError(f"Query has no field `{name}`")
            data[name] = value
        return type(self)(**data)

    # helpers

    @property
    def _connection(self):
        return self.model.connection

    def _quote_column(self, name: str) -> str:
        """Quote `column` or `alias.column`."""
        return ".".join(self._connection.quote_identifier(part) for part in name.split("."))

    def _literal(self, value: Any) -> str:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return self._connection.quote_literal(format_datetime(value))

    @staticmethod
    def _flatten_args(args: tuple) -> list[Any]:
        if len(args) == 1 and isinstance(args[0], (list, tuple)):
            args = args[0]
        return [format_datetime(arg) for arg in args]

    # accumulation

    def select(self, expression: Union[str, Iterable[str]]) -> Query:
        """Set the SELECT expression; a sequence of names is quoted and comma-joined."""
        if not isinstance(expression, str):
            expression = ", ".join(self._quote_column(name) for name in expression)
        self.select_expression = expression
        return self

    def join(self, target: Any, *args: Any, on: Optional[str] = None, mode: str = "INNER",
             as_: Optional[str] = None) -> Query:
        """Add a JOIN.

        Args:
            target: A raw JOIN fragment (`args` are its arguments), a model or
                `":model_id"`, or a Query joined as a subquery.
            on: ` USING(...)` or ` ON ...` fragment for subqueries; resolved when omitted.
            mode: Join mode, e.g. INNER or LEFT.
            as_: Alias of the joined model or subquery.

        Raises:
            ConfigurationError: If no common key can be found.
        """
        if isinstance(target, Query):
            self._join_subquery(target, on=on, mode=mode, as_=as_)
        elif isinstance(target, str) and target.startswith(":"):
            self._join_model(self.model.models[target[1:]], mode=mode, as_=as_)
        elif isinstance(target, Table):
            self._join_model(target, mode=mode, as_=as_)
        elif isinstance(target, str):
            self.joins.append(target)
            self.joins_args.extend(self._flatten_args(args))
        else:
            raise TypeError(f"Cannot join {target!r}")
        return self

    def _join_model(self, target: Table, mode: str, as_: Optional[str]) -> None:
        key = self._resolve_join_key(self.model, target)
        alias = as_ or target.alias
        q = self._connection.quote_identifier
        self.joins.append(f"{mode} JOIN {q(target.name)} AS {q(alias)} USING({q(key)})")

    @staticmethod
    def _resolve_join_key(owner: Table, target: Table) -> str:
        candidates = list(owner.primary_columns)
        for ancestor in owner.ancestors:
            candidates.extend(ancestor.primary_columns)
        candidates.extend(target.primary_columns)
        for column in candidates:
            if column in target.extended_schema and column in owner.extended_schema:
                return column
        raise ConfigurationError(
            f"Unable to join `{target.name}` to `{owner.name}`: no common key among {candidates}"
        )

    def _join_subquery(self, query: Query, on: Optional[str], mode: str, as_: Optional[str]) -> None:
        alias = as_ or query.model.alias
        if on is None:
            on = self._resolve_join_on(query.model, alias)
        self.joins.append(f"{mode} JOIN({query}) {self._connection.quote_identifier(alias)}{on}")
        self.joins_args.extend(query.args)

    def _resolve_join_on(self, related: Table, alias: str) -> str:
        q = self._connection.quote_identifier
        if len(related.primary_columns) != 1:
            raise ConfigurationError(
                f"Cannot resolve a join on the composite key of `{related.name}`, use `on`"
            )
        column = related.primary_columns[0]
        if column in self.model.schema:
            return f" USING({q(column)})"
        for ancestor in self.model.ancestors:
            if column in ancestor.schema:
                return f" ON {q(alias)}.{q(column)} = {q(ancestor.alias)}.{q(column)}"
        raise ConfigurationError(
            f"Unable to resolve the join of `{related.name}` on `{self.model.name}`: unknown column `{column}`"
        )

    def where(self, conditions: Union[None, str, Mapping[str, Any]] = None, *args: Any, **kwargs: Any) -> Query:
        """Add a condition.

        `conditions` is either a statement fragment whose `?` placeholders are
        bound to `args`, or a mapping of columns to values:

        - `{"col": v}` renders `` `col` = ? ``
        - `{"col": [a, b]}` renders `` `col` IN(a,b) `` with inlined literals
        - `{"col": query}` renders `` `col` IN(<subquery>) ``
        - `{"col": None}` renders `` `col` IS NULL ``
        - a `!` prefix on the column negates the comparison

        Keyword arguments are treated as one more mapping.
        """
        if conditions is not None:
            self._add_condition(conditions, args)
        if kwargs:
            self._add_condition(kwargs, ())
        return self

    def and_(self, conditions: Union[None, str, Mapping[str, Any]] = None, *args: Any, **kwargs: Any) -> Query:
        """Alias of where()."""
        return self.where(conditions, *args, **kwargs)

    def _add_condition(self, conditions: Union[str, Mapping[str, Any]], args: tuple) -> None:
        if isinstance(conditions, Mapping):
            sql, values = self._render_mapping(conditions)
        elif isinstance(conditions, str):
            sql, values = conditions, self._flatten_args(args)
        else:
            raise TypeError(f"Conditions must be a str or a mapping, got {type(conditions).__name__}")
        if not sql:
            return
        self.conditions.append(f"({sql})")
        self.conditions_args.extend(values)

    def _render_mapping(self, conditions: Mapping[str, Any]) -> tuple[str, list[Any]]:
        parts = []
        args = []
        for column, value in conditions.items():
            negate = column.startswith("!")
            if negate:
                column = column[1:]
            quoted = self._quote_column(column)
            if isinstance(value, Query):
                parts.append(f"{quoted} {'NOT IN' if negate else 'IN'}({value})")
                args.extend(value.args)
            elif isinstance(value, (list, tuple, set, frozenset)):
                if not value:
                    parts.append("1 = 1" if negate else "1 = 0")
                    continue
                literals = ",".join(self._literal(item) for item in value)
                parts.append(f"{quoted} {'NOT IN' if negate else 'IN'}({literals})")
            elif value is None:
                parts.append(f"{quoted} IS {'NOT ' if negate else ''}NULL")
            else:
                parts.append(f"{quoted} {'!=' if negate else '='} ?")
                args.append(format_datetime(value))
        return " AND ".join(parts), args

    def group(self, expression: Optional[str]) -> Query:
        self.group_expression = expression
        return self

    def having(self, expression: Optional[str], *args: Any) -> Query:
        self.having_expression = expression
        self.having_args = self._flatten_args(args)
        return self

    def order(self, *args: Any) -> Query:
        """Set the ORDER BY expression.

        With a single expression, each comma-separated `-column` becomes
        `column DESC`. With a column followed by values, rows are ordered by
        the position of the column's value among them.
        """
        if not args or args[0] is None:
            self.order_expression = None
            return self
        if len(args) == 1:
            expression = args[0]
            if "(" not in expression:
                expression = ", ".join(
                    f"{item[1:].strip()} DESC" if item.startswith("-") else item
                    for item in (part.strip() for part in expression.split(","))
                )
            self.order_expression = expression
            return self
        field, values = args[0], args[1:]
        if len(values) == 1 and isinstance(values[0], (list, tuple)):
            values = values[0]
        self.order_expression = self._connection.dialect.render_order_by_field(
            self._quote_column(field), [self._literal(value) for value in values]
        )
        return self

    def limit(self, limit: Optional[int], limit_or_none: Optional[int] = None) -> Query:
        """`limit(n)` sets the limit, `limit(offset, n)` sets both."""
        if limit_or_none is None:
            self.limit_value = limit
        else:
            self.offset_value = limit
            self.limit_value = limit_or_none
        return self

    def offset(self, offset: Optional[int]) -> Query:
        self.offset_value = offset
        return self

    def mode(self, mode: Union[FetchMode, str, None]) -> Query:
        self.fetch_mode = None if mode is None else FetchMode(mode)
        return self

    # rendering

    def _render_conditions(self) -> str:
        if not self.conditions:
            return ""
        return " WHERE " + " AND ".join(self.conditions)

    def _render_limit(self) -> str:
        if self.offset_value:
            limit = self.limit_value if self.limit_value is not None else self._connection.dialect.LIMIT_MAX
            return f" LIMIT {self.offset_value}, {limit}"
        if self.limit_value is not None:
            return f" LIMIT {self.limit_value}"
        return ""

    def _render_main(self) -> str:
        """Everything after the SELECT clause."""
        sql = "FROM {self_and_related}"
        if self.joins:
            sql += " " + " ".join(self.joins)
        sql += self._render_conditions()
        if self.group_expression:
            sql += f" GROUP BY {self.group_expression}"
            if self.having_expression:
                sql += f" HAVING {self.having_expression}"
        if self.order_expression:
            sql += f" ORDER BY {self.order_expression}"
        return sql + self._render_limit()

    @property
    def sql(self) -> str:
        """The statement template, before placeholder substitution."""
        return f"SELECT {self.select_expression or '*'} {self._render_main()}"

    @property
    def args(self) -> list[Any]:
        return self.joins_args + self.conditions_args + self.having_args

    def __str__(self) -> str:
        return self.model.resolve_statement(self.sql)

    def __repr__(self) -> str:
        return f"<Query {self.model.id if hasattr(self.model, 'id') else self.model!r}: {self.sql}>"

    # execution

    def prepare(self) -> Statement:
        return self.model.prepare(self.sql)

    def execute(self) -> Statement:
        return self.prepare().execute(self.args)

    def _resolve_fetch_mode(self, mode: Union[FetchMode, str, None]) -> FetchMode:
        if mode is not None:
            return FetchMode(mode)
        if self.fetch_mode is not None:
            return self.fetch_mode
        if self.select_expression:
            return FetchMode.ASSOC
        return FetchMode.RECORD

    def all(self, mode: Union[FetchMode, str, None] = None) -> list[Any]:
        """Execute the query and return every row.

        Rows are records unless a mode is given, set with mode(), or a select
        expression is set (rows are then dicts).
        """
        return self.execute().all(self._resolve_fetch_mode(mode), factory=self.model.instantiate)

    def __iter__(self) -> Iterator[Any]:
        return iter(self.all())

    def one(self, mode: Union[FetchMode, str, None] = None) -> Any:
        """Return the first row, or None; the query itself is left unchanged."""
        query = self.clone_query_with(limit_value=1)
        return query.execute().one(self._resolve_fetch_mode(mode), factory=self.model.instantiate)

    def pairs(self) -> dict[Any, Any]:
        return self.execute().pairs()

    @property
    def rc(self) -> Any:
        """The first column of the first row, or None."""
        return self.clone_query_with(limit_value=1).execute().rc

    def exists(self, *keys: Any) -> Union[bool, dict[Any, bool]]:
        """Whether rows exist.

        Without keys, whether the query matches any row. With one key, whether
        that record exists. With several (or one list), True when they all
        exist, False when none does, otherwise a mapping of key to bool.
        """
        if not keys:
            return self.clone_query_with(select_expression="1").rc is not None
        many = len(keys) > 1
        if len(keys) == 1 and isinstance(keys[0], (list, tuple, set)):
            keys = tuple(keys[0])
            many = True
        primary = self.model.primary
        if not isinstance(primary, str):
            raise ConfigurationError(f"exists() by key is not supported for the composite key of `{self.model.name}`")
        column = f"{self.model.alias}.{primary}"
        query = self.clone_query_with(
            select_expression=self._quote_column(column), limit_value=None, offset_value=None,
        ).where({column: list(keys)})
        found = {str(value) for value in query.all(FetchMode.COLUMN)}
        result = {key: str(key) in found for key in keys}
        if many:
            if not any(result.values()):
                return False
            if all(result.values()):
                return True
            return result
        return result[keys[0]]

    def compute(self, method: str, column: Optional[str] = None) -> Any:
        """Run an aggregate function over the matching rows.

        `COUNT` with a column groups by that column and returns a mapping of
        value to count; every other form returns a scalar.
        """
        method = method.upper()
        if column is None:
            return self.clone_query_with(select_expression=f"{method}(*)").rc
        quoted = self._quote_column(column)
        if method == "COUNT":
            query = self.clone_query_with(
                select_expression=f"{quoted}, COUNT({quoted})", group_expression=quoted,
            )
            return {key: int(count) for key, count in query.pairs().items()}
        return self.clone_query_with(select_expression=f"{method}({quoted})").rc

    def count(self, column: Optional[str] = None) -> Union[int, dict[Any, int]]:
        if column is None:
            return int(self.compute("COUNT") or 0)
        return self.compute("COUNT", column)

    def average(self, column: str) -> Any:
        return self.compute("AVG", column)

    def minimum(self, column: str) -> Any:
        return self.compute("MIN", column)

    def maximum(self, column: str) -> Any:
        return self.compute("MAX", column)

    def sum(self, column: str) -> Any:
        return self.compute("SUM", column)

    def delete(self, tables: Optional[str] = None) -> int:
        """Delete the rows matched by the conditions and joins of the query.

        The model's record cache is cleared.

        Returns:
            The number of deleted rows, as reported by the driver.

        Raises:
            RenderingError: If the query has joins and the dialect cannot delete across them.
        """
        dialect = self._connection.dialect
        if self.joins:
            if not dialect.supports_delete_join:
                raise RenderingError(
                    f"{dialect.NAME}: DELETE cannot join other tables", dialect=dialect.NAME,
                )
            sql = f"DELETE {tables or '{alias}'} FROM {{self}} AS {{alias}} " + " ".join(self.joins)
            args = self.joins_args + self.conditions_args
        else:
            sql = "DELETE FROM {self}"
            args = list(self.conditions_args)
        sql += self._render_conditions()
        statement = self.model.execute(sql, args)
        self.model.cache.clear()
        logger.debug("Deleted %s rows from `%s`", statement.rowcount, self.model.name)
        return statement.rowcount


__all__ = ["Query"]
