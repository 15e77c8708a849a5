"""Incremental SQL statement builder with positional parameter binding."""

from __future__ import annotations

from typing import Any, Iterable

ParamGroup = tuple[Any, Any]


def flatten(groups: Iterable[Any]) -> list[Any]:
    """Flatten arbitrarily nested lists/tuples into a flat list, preserving order."""
    out: list[Any] = []
    for item in groups:
        if isinstance(item, (list, tuple)):
            out.extend(flatten(item))
        else:
            out.append(item)
    return out


class QueryBuilder:
    """Assemble a statement region by region.

    Every region that takes parameters keeps them in its own groups so that
    `render()` can emit types and values in the same order as the `?`
    placeholders appear in the text: CTEs, then the body, then WHERE terms,
    then WHERE NOT terms.
    """

    def __init__(self, body: str = "", types: Any = None, values: Any = None):
        self._ctes: list[str] = []
        self._cte_params: list[ParamGroup] = []
        self._body = ""
        self._body_params: list[ParamGroup] = []
        self._joins: list[str] = []
        self._where: list[str] = []
        self._where_params: list[ParamGroup] = []
        self._where_not: list[str] = []
        self._where_not_params: list[ParamGroup] = []
        self._group: list[str] = []
        self._order: list[str] = []
        self._limit = 0
        self._offset = 0
        self.set_body(body, types, values)

    def set_body(self, sql: str = "", types: Any = None, values: Any = None) -> "QueryBuilder":
        self._body = sql
        if types is not None:
            self._body_params.append((types, values))
        return self

    def add_cte(
        self,
        name_and_columns: str,
        sql: str,
        types: Any = None,
        values: Any = None,
        join: str | None = None,
    ) -> "QueryBuilder":
        """Append a common table expression, optionally joining it into the body."""
        self._ctes.append(f"{name_and_columns} as ({sql})")
        if types is not None:
            self._cte_params.append((types, values))
        if join:
            self._joins.append(join)
        return self

    def add_join(self, clause: str) -> "QueryBuilder":
        self._joins.append(clause)
        return self

    def add_where(self, expr: str, types: Any = None, values: Any = None) -> "QueryBuilder":
        self._where.append(expr)
        if types is not None:
            self._where_params.append((types, values))
        return self

    def add_where_not(self, expr: str, types: Any = None, values: Any = None) -> "QueryBuilder":
        self._where_not.append(expr)
        if types is not None:
            self._where_not_params.append((types, values))
        return self

    def set_group_by(self, *columns: str) -> "QueryBuilder":
        self._group.extend(columns)
        return self

    def set_order_by(self, *terms: str) -> "QueryBuilder":
        self._order.extend(terms)
        return self

    def set_limit(self, limit: int, offset: int = 0) -> "QueryBuilder":
        self._limit = limit
        self._offset = offset
        return self

    def promote_body_to_cte(self, name_and_columns: str) -> "QueryBuilder":
        """Turn the current body into the last CTE so an outer statement can use it.

        The body's joins, WHERE terms, grouping, ordering and limit move into the
        CTE along with their parameters. Existing CTEs are left untouched.
        """
        body_groups = self._body_params + self._where_params + self._where_not_params
        types = [group[0] for group in body_groups]
        values = [group[1] for group in body_groups]
        self.add_cte(name_and_columns, self._build_body(), types, values)
        self._body = ""
        self._body_params = []
        self._joins = []
        self._where = []
        self._where_params = []
        self._where_not = []
        self._where_not_params = []
        self._group = []
        self._order = []
        self._limit = 0
        self._offset = 0
        return self

    def render(self) -> tuple[str, list[Any], list[Any]]:
        """Return the statement text with its flattened parameter types and values."""
        sql = ""
        if self._ctes:
            sql += "WITH RECURSIVE " + ", ".join(self._ctes) + " "
        sql += self._build_body()
        return sql, flatten(self._groups(0)), flatten(self._groups(1))

    @property
    def sql(self) -> str:
        return self.render()[0]

    def __str__(self) -> str:
        return self.sql

    def _groups(self, index: int) -> list[Any]:
        ordered = self._cte_params + self._body_params + self._where_params + self._where_not_params
        return [group[index] for group in ordered]

    def _build_body(self) -> str:
        out = self._body
        if self._joins:
            out += " " + " ".join(self._joins)
        if self._where or self._where_not:
            terms = list(self._where)
            if self._where_not:
                terms.append("NOT (" + " OR ".join(self._where_not) + ")")
            out += " WHERE " + " AND ".join(terms)
        if self._group:
            out += " GROUP BY " + ", ".join(self._group)
        if self._order:
            out += " ORDER BY " + ", ".join(self._order)
        if self._limit > 0 or self._offset > 0:
            out += f" LIMIT {self._limit if self._limit > 0 else -1}"
            if self._offset > 0:
                out += f" OFFSET {self._offset}"
        return out
