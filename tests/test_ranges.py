"""Tests for lazily populated range tables."""

from gridlocate import LazyTable, TableByRange


def test_range_index():
    table = TableByRange([1, 10, 25, 100], list)
    assert table.range_index(0) == 0
    assert table.range_index(1) == 1
    assert table.range_index(9.5) == 1
    assert table.range_index(10) == 2
    assert table.range_index(500) == 4


def test_collectors_created_lazily():
    created = []

    def create():
        created.append(1)
        return []

    table = TableByRange([1, 10], create)
    assert len(table) == 0
    table.get_collector(3).append("a")
    table.get_collector(5).append("b")
    assert len(created) == 1
    assert table.get_collector(7) == ["a", "b"]


def test_iter_ranges_sorted_with_open_ends():
    table = TableByRange([10, 1], list)
    table.get_collector(50).append("high")
    table.get_collector(-3).append("low")
    table.get_collector(2).append("mid")
    assert list(table.iter_ranges()) == [
        (None, 1, ["low"]),
        (1, 10, ["mid"]),
        (10, None, ["high"]),
    ]


def test_lazy_table():
    table = LazyTable(list)
    assert table.get(0.5) is None
    table.get_collector(0.5).append("x")
    table.get_collector(0.0).append("y")
    assert 0.5 in table
    assert len(table) == 2
    assert [key for key, _ in table.items()] == [0.0, 0.5]
