"""
Name: Query Builder Tests

Responsibilities:
  - Test placeholder rebinding per convention
  - Test SELECT / INSERT / UPDATE / DELETE rendering
  - Test validation of caller order-by, limit and where

Notes:
  - Pure functions, no DB
"""

from datetime import datetime, timezone

import pytest

from saaskit.crosscutting.exceptions import BadRequestError
from saaskit.infrastructure.db.sqlbuilder import (
    And,
    AnyEqual,
    Assign,
    DeleteBuilder,
    Equal,
    In,
    InsertBuilder,
    IsNull,
    NotEqual,
    Or,
    SelectBuilder,
    UpdateBuilder,
    clamp_limit,
    count_placeholders,
    parse_order,
    parse_where,
    rebind,
)

COLUMNS = ["id", "name", "status", "created_at", "archived_at"]


@pytest.mark.unit
class TestRebind:
    def test_dollar_numbers_placeholders(self):
        sql = "SELECT * FROM t WHERE a = ? AND b = ?"
        assert rebind(sql, "dollar") == "SELECT * FROM t WHERE a = $1 AND b = $2"

    def test_named_and_at_conventions(self):
        assert rebind("a = ? OR b = ?", "named") == "a = :arg1 OR b = :arg2"
        assert rebind("a = ? OR b = ?", "at") == "a = @p1 OR b = @p2"

    def test_question_is_identity(self):
        assert rebind("a = ?", "question") == "a = ?"

    def test_format_escapes_percent(self):
        assert rebind("a LIKE '%x' AND b = ?", "format") == "a LIKE '%%x' AND b = %s"

    def test_quoted_question_mark_is_not_a_placeholder(self):
        assert rebind("a = '?' AND b = ?", "dollar") == "a = '?' AND b = $1"
        assert count_placeholders("a = '?' AND b = ?") == 1

    def test_unknown_bindtype_raises(self):
        with pytest.raises(ValueError, match="unknown bindtype"):
            rebind("a = ?", "colon")


@pytest.mark.unit
class TestPredicates:
    def test_equal_and_not_equal(self):
        assert Equal("name", "Acme").render() == ("name = ?", ["Acme"])
        assert NotEqual("id", "1").render() == ("id <> ?", ["1"])

    def test_in_list(self):
        assert In("id", ["a", "b"]).render() == ("id IN (?, ?)", ["a", "b"])

    def test_in_empty_list_matches_nothing(self):
        assert In("id", []).render() == ("FALSE", [])

    def test_in_subquery_carries_its_args(self):
        sub = SelectBuilder("users_accounts", ["account_id"]).where(
            Equal("user_id", "u1")
        )
        sql, args = In("id", sub).render()
        assert sql == "id IN (SELECT account_id FROM users_accounts WHERE user_id = ?)"
        assert args == ["u1"]

    def test_any_equal(self):
        assert AnyEqual("roles", "admin").render() == ("? = ANY (roles)", ["admin"])

    def test_or_wraps_multiple_parts(self):
        sql, args = Or(Equal("a", 1), Equal("b", 2)).render()
        assert sql == "(a = ? OR b = ?)"
        assert args == [1, 2]

    def test_single_part_is_not_wrapped_and_none_is_dropped(self):
        assert Or(Equal("a", 1), None).render() == ("a = ?", [1])

    def test_empty_combinators(self):
        assert And().render() == ("TRUE", [])
        assert Or().render() == ("FALSE", [])


@pytest.mark.unit
class TestSelectBuilder:
    def test_full_select(self):
        sql, args = (
            SelectBuilder("accounts", ["id", "name"])
            .where(Equal("name", "Acme"), IsNull("archived_at"))
            .order_by("created_at desc")
            .limit(2)
            .offset(1)
            .build()
        )
        assert sql == (
            "SELECT id, name FROM accounts WHERE name = ? AND archived_at IS NULL"
            " ORDER BY created_at desc LIMIT 2 OFFSET 1"
        )
        assert args == ["Acme"]

    def test_offset_without_limit(self):
        sql, _ = SelectBuilder("accounts", ["id"]).offset(3).build()
        assert sql == "SELECT id FROM accounts OFFSET 3"

    def test_no_where_when_no_predicates(self):
        sql, args = SelectBuilder("accounts", ["id"]).where(None).build()
        assert sql == "SELECT id FROM accounts"
        assert args == []

    def test_or_inside_where_keeps_parentheses(self):
        sql, args = (
            SelectBuilder("t", ["id"])
            .where(Or(Equal("a", 1), Equal("b", 2)), IsNull("archived_at"))
            .build()
        )
        assert sql == "SELECT id FROM t WHERE (a = ? OR b = ?) AND archived_at IS NULL"
        assert count_placeholders(sql) == len(args)

    def test_lone_and_is_flattened_into_where(self):
        sql, args = (
            SelectBuilder("users_accounts", ["roles"])
            .where(And(Equal("account_id", "acc1"), Equal("user_id", "u1")))
            .limit(1)
            .build()
        )
        assert sql == (
            "SELECT roles FROM users_accounts"
            " WHERE account_id = ? AND user_id = ? LIMIT 1"
        )
        assert args == ["acc1", "u1"]

    def test_nested_and_keeps_inner_or_parentheses(self):
        sql, args = (
            SelectBuilder("t", ["id"])
            .where(And(Equal("a", 1), And(Or(Equal("b", 2), Equal("c", 3)))))
            .build()
        )
        assert sql == "SELECT id FROM t WHERE a = ? AND (b = ? OR c = ?)"
        assert args == [1, 2, 3]


@pytest.mark.unit
class TestWriteBuilders:
    def test_insert_with_upsert_and_returning(self):
        sql, args = (
            InsertBuilder("account_preferences")
            .set("account_id", "a")
            .set("name", "date_format")
            .set("value", "2006-01-02")
            .on_conflict_constraint(
                "account_preferences_pkey",
                excluded=["value"],
                assign=[Assign("archived_at", None)],
            )
            .returning("account_id", "value")
            .build()
        )
        assert sql == (
            "INSERT INTO account_preferences (account_id, name, value) VALUES (?, ?, ?)"
            " ON CONFLICT ON CONSTRAINT account_preferences_pkey"
            " DO UPDATE SET value = EXCLUDED.value, archived_at = ?"
            " RETURNING account_id, value"
        )
        assert args == ["a", "date_format", "2006-01-02", None]

    def test_update_args_follow_set_then_where(self):
        now = datetime(2024, 1, 1, tzinfo=timezone.utc)
        sql, args = (
            UpdateBuilder("accounts")
            .set(Assign("name", "B"), Assign("updated_at", now))
            .where(Equal("id", "1"), IsNull("archived_at"))
            .build()
        )
        assert sql == (
            "UPDATE accounts SET name = ?, updated_at = ?"
            " WHERE id = ? AND archived_at IS NULL"
        )
        assert args == ["B", now, "1"]

    def test_update_without_assignments_raises(self):
        with pytest.raises(ValueError, match="without assignments"):
            UpdateBuilder("accounts").where(Equal("id", "1")).build()

    def test_delete(self):
        sql, args = DeleteBuilder("users_accounts").where(Equal("account_id", "a")).build()
        assert sql == "DELETE FROM users_accounts WHERE account_id = ?"
        assert args == ["a"]


@pytest.mark.unit
class TestCallerInput:
    def test_parse_order_normalizes_direction(self):
        assert parse_order(["created_at DESC", "name"], COLUMNS) == [
            "created_at desc",
            "name",
        ]

    @pytest.mark.parametrize(
        "entry, rule",
        [
            ("password_hash", "column"),
            ("name sideways", "order"),
            ("name; DROP TABLE accounts", "order"),
            ("", "order"),
        ],
    )
    def test_parse_order_rejects(self, entry, rule):
        with pytest.raises(BadRequestError) as exc_info:
            parse_order([entry], COLUMNS)
        assert exc_info.value.has("order", rule)

    @pytest.mark.parametrize(
        "limit, expected", [(None, None), (0, 1), (-3, 1), (5, 5), (5000, 100)]
    )
    def test_clamp_limit(self, limit, expected):
        assert clamp_limit(limit, 100) == expected

    def test_parse_where_accepts_known_columns_and_keywords(self):
        raw = parse_where(
            "name = ? AND (status = ? OR archived_at IS NOT NULL)",
            ["Acme", "active"],
            COLUMNS,
        )
        sql, args = raw.render()
        assert sql == "(name = ? AND (status = ? OR archived_at IS NOT NULL))"
        assert args == ["Acme", "active"]

    def test_parse_where_empty_is_none(self):
        assert parse_where("  ", [], COLUMNS) is None

    @pytest.mark.parametrize(
        "text, args, field, rule",
        [
            ("name = 'x'", [], "where", "where"),
            ("name = ?; DROP TABLE accounts", ["x"], "where", "where"),
            ("name = ? -- comment", ["x"], "where", "where"),
            ("password_hash = ?", ["x"], "where", "column"),
            ("(name = ?", ["x"], "where", "where"),
            ("name = ?", [], "args", "placeholders"),
            (None, ["x"], "args", "placeholders"),
        ],
    )
    def test_parse_where_rejects(self, text, args, field, rule):
        with pytest.raises(BadRequestError) as exc_info:
            parse_where(text, args, COLUMNS)
        assert exc_info.value.has(field, rule)
