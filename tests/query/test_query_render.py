"""Tests for relmap.query: statement rendering and argument ordering (no database involved)."""

import datetime

import pytest

from relmap.errors import ConfigurationError, ScopeNotDefined
from relmap.query import Query


@pytest.fixture
def customers(shop):
    return shop["customers"]


@pytest.fixture
def orders(shop):
    return shop["orders"]


class TestShape:

    def test_bare_query(self, customers):
        assert str(customers.query()) == "SELECT * FROM `customers` `customer`"

    def test_inheritance_read_shape(self, mysql_zoo):
        query = mysql_zoo["dogs"].query().order("-bark_volume")
        assert str(query) == (
            "SELECT * FROM `dogs` `dog` INNER JOIN `animals` `animal` USING(`id`) ORDER BY bark_volume DESC"
        )

    def test_sql_is_the_unresolved_template(self, customers):
        assert customers.query().where({"name": "x"}).sql == "SELECT * FROM {self_and_related} WHERE (`name` = ?)"

    def test_full_shape(self, orders):
        query = (
            orders.query()
            .select("status, SUM(total)")
            .join("INNER JOIN `customers` `c` USING(`customer_id`)")
            .where("total > ?", 10)
            .group("status")
            .having("SUM(total) > ?", 100)
            .order("status")
            .limit(5)
        )
        assert str(query) == (
            "SELECT status, SUM(total) FROM `orders` `order`"
            " INNER JOIN `customers` `c` USING(`customer_id`)"
            " WHERE (total > ?) GROUP BY status HAVING SUM(total) > ? ORDER BY status LIMIT 5"
        )

    def test_rendering_is_idempotent(self, customers):
        query = customers.query().where({"status": ["a", "b"]}).order("-name").limit(2, 3)
        assert str(query) == str(query)
        assert query.args == query.args

    def test_select_columns(self, customers):
        assert str(customers.query().select(["name", "customer.status"])) == (
            "SELECT `name`, `customer`.`status` FROM `customers` `customer`"
        )

    def test_placeholders_in_fragments(self, customers):
        query = customers.query().where("{alias}.{primary} > ?", 3)
        assert str(query) == "SELECT * FROM `customers` `customer` WHERE (`customer`.`customer_id` > ?)"


class TestArguments:

    def test_joins_then_conditions_then_having(self, orders):
        query = (
            orders.query()
            .where("total > ?", 1)
            .join("INNER JOIN `customers` `c` ON `c`.`customer_id` = `order`.`customer_id` AND `c`.`status` = ?", 2)
            .group("status")
            .having("COUNT(*) > ?", 3)
        )
        assert query.args == [2, 1, 3]

    def test_single_list_of_arguments(self, orders):
        assert orders.query().where("total BETWEEN ? AND ?", [1, 9]).args == [1, 9]

    def test_datetime_arguments_are_normalized(self, customers):
        moment = datetime.datetime(2024, 3, 1, 12, 0, tzinfo=datetime.timezone.utc)
        assert customers.query().where({"deleted_at": moment}).args == ["2024-03-01 12:00:00"]
        assert customers.query().where("deleted_at < ?", moment).args == ["2024-03-01 12:00:00"]


class TestConditions:

    def test_mapping_equality(self, customers):
        query = customers.query().where({"name": "x", "status": "y"})
        assert query.conditions == ["(`name` = ? AND `status` = ?)"]
        assert query.args == ["x", "y"]

    def test_keyword_conditions(self, customers):
        query = customers.query().where(name="x")
        assert query.conditions == ["(`name` = ?)"]

    def test_negated_in_list(self, customers):
        query = customers.query().where({"!status": ["a", "b"]})
        assert str(query) == "SELECT * FROM `customers` `customer` WHERE (`status` NOT IN('a','b'))"
        assert query.args == []

    def test_numbers_are_inlined(self, customers):
        assert customers.query().where({"customer_id": [1, 2, 3]}).conditions == ["(`customer_id` IN(1,2,3))"]

    def test_empty_lists(self, customers):
        assert customers.query().where({"customer_id": []}).conditions == ["(1 = 0)"]
        assert customers.query().where({"!customer_id": []}).conditions == ["(1 = 1)"]

    def test_none(self, customers):
        assert customers.query().where({"deleted_at": None}).conditions == ["(`deleted_at` IS NULL)"]
        assert customers.query().where({"!deleted_at": None}).conditions == ["(`deleted_at` IS NOT NULL)"]

    def test_negated_equality(self, customers):
        assert customers.query().where({"!status": "gone"}).conditions == ["(`status` != ?)"]

    def test_subquery(self, customers, orders):
        active = customers.query().select("customer_id").where({"status": "active"})
        query = orders.query().where({"customer_id": active})
        assert str(query) == (
            "SELECT * FROM `orders` `order` WHERE (`customer_id` IN("
            "SELECT customer_id FROM `customers` `customer` WHERE (`status` = ?)))"
        )
        assert query.args == ["active"]

    def test_each_where_appends(self, customers):
        query = customers.query().where({"name": "x"}).and_("LENGTH(name) > ?", 3)
        assert str(query).endswith("WHERE (`name` = ?) AND (LENGTH(name) > ?)")
        assert query.args == ["x", 3]

    def test_dynamic_filter(self, customers):
        query = customers.query().filter_by_name_and_status("x", "y")
        assert query.conditions == ["(`name` = ? AND `status` = ?)"]
        assert query.args == ["x", "y"]

    def test_dynamic_filter_arity(self, customers):
        with pytest.raises(ValueError):
            customers.query().filter_by_name_and_status("x")

    def test_unknown_scope(self, customers):
        with pytest.raises(ScopeNotDefined, match="`active`"):
            customers.query().active()
        with pytest.raises(AttributeError):
            customers.query().active
        assert not hasattr(customers.query(), "active")

    def test_bad_condition_type(self, customers):
        with pytest.raises(TypeError):
            customers.query().where(42)


class TestOrderAndLimit:

    def test_dashes_become_desc(self, customers):
        assert customers.query().order("-status, name").order_expression == "status DESC, name"

    def test_function_expressions_are_kept(self, customers):
        assert customers.query().order("FIELD(status, -1)").order_expression == "FIELD(status, -1)"

    def test_order_by_field_mysql(self, customers):
        query = customers.query().order("status", "b", "a")
        assert query.order_expression == "FIELD(`status`, 'b', 'a')"
        assert customers.query().order("status", ["b", "a"]).order_expression == "FIELD(`status`, 'b', 'a')"

    def test_order_by_field_sqlite(self, blog):
        assert blog["users"].query().order("id", [3, 1]).order_expression == (
            "CASE `id` WHEN 3 THEN 0 WHEN 1 THEN 1 ELSE 2 END"
        )

    def test_singular_clauses_are_overwritten(self, customers):
        query = customers.query().order("name").order("status").limit(1).limit(2)
        assert str(query).endswith("ORDER BY status LIMIT 2")

    def test_limit_and_offset(self, customers):
        assert str(customers.query().limit(10, 20)).endswith(" LIMIT 10, 20")
        assert str(customers.query().offset(5).limit(10)).endswith(" LIMIT 5, 10")
        assert str(customers.query().offset(5)).endswith(" LIMIT 5, 18446744073709551615")


class TestJoins:

    def test_join_model_by_id(self, orders):
        assert str(orders.query().join(":customers")) == (
            "SELECT * FROM `orders` `order` INNER JOIN `customers` AS `customer` USING(`customer_id`)"
        )

    def test_join_model_with_alias_and_mode(self, orders, customers):
        assert str(orders.query().join(customers, mode="LEFT", as_="buyer")) == (
            "SELECT * FROM `orders` `order` LEFT JOIN `customers` AS `buyer` USING(`customer_id`)"
        )

    def test_join_model_without_a_common_key(self, mysql_zoo, customers):
        with pytest.raises(ConfigurationError, match="no common key"):
            customers.query().join(mysql_zoo["animals"])

    def test_join_subquery(self, orders, customers):
        active = customers.query().select("customer_id").where({"status": "active"})
        query = orders.query().join(active, as_="active").where({"total": 5})
        assert str(query) == (
            "SELECT * FROM `orders` `order` INNER JOIN(SELECT customer_id FROM `customers` `customer`"
            " WHERE (`status` = ?)) `active` USING(`customer_id`)"
            " WHERE (`total` = ?)"
        )
        assert query.args == ["active", 5]

    def test_join_subquery_with_explicit_on(self, orders, customers):
        names = customers.query().select("customer_id, name")
        query = orders.query().join(names, on=" ON `named`.`customer_id` = `order`.`customer_id`", as_="named")
        assert query.joins == [
            "INNER JOIN(SELECT customer_id, name FROM `customers` `customer`) `named`"
            " ON `named`.`customer_id` = `order`.`customer_id`",
        ]

    def test_join_subquery_on_the_parent_key(self, mysql_zoo):
        names = mysql_zoo["animals"].query().select("id").where({"name": "Rex"})
        assert mysql_zoo["dogs"].query().join(names, as_="named").joins == [
            "INNER JOIN(SELECT id FROM `animals` `animal` WHERE (`name` = ?)) `named` USING(`id`)",
        ]

    def test_join_unknown_target(self, orders):
        with pytest.raises(TypeError):
            orders.query().join(42)


class TestClone:

    def test_clone_is_independent(self, customers):
        query = customers.query().where({"name": "x"})
        clone = query.clone_query_with(limit_value=1)
        clone.where({"status": "y"})
        assert query.conditions == ["(`name` = ?)"]
        assert query.limit_value is None
        assert clone.limit_value == 1
        assert clone.args == ["x", "y"]

    def test_clone_unknown_field(self, customers):
        with pytest.raises(AttributeError):
            customers.query().clone_query_with(nope=1)

    def test_query_class(self, customers):
        assert isinstance(customers.query(), Query)
