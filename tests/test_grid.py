"""Tests for grids, cells and coordinate helpers."""

import pytest

from gridlocate import (
    TEST,
    TRAINING,
    ConfigError,
    DataError,
    DocumentFactory,
    GridLocateParams,
    GridStateError,
    LangModelFactory,
    MultiRegularGrid,
    RawDocument,
    SphereCoord,
    TimeGrid,
    degree_dist,
    spheredist,
)

from conftest import BOUNDS, TRAINING_DOCS


def test_nonempty_cells_sorted_by_index(grid):
    cells = grid.iter_nonempty_cells()
    assert [c.index for c in cells] == [(0, 0), (0, 1), (1, 0)]
    assert grid.num_non_empty_cells == 3
    assert grid.total_num_cells == 4
    assert grid.total_num_docs == 5
    assert grid.total_prior_weighting == 5.0


def test_iter_returns_copy(grid):
    cells = grid.iter_nonempty_cells()
    cells.clear()
    assert len(grid.iter_nonempty_cells()) == 3


def test_cell_statistics(grid, cell):
    paris = cell(grid, 0.5, 0.5)
    assert paris.num_docs == 2
    assert paris.salience == 6.0
    assert paris.most_popular_document.title == "paris-a"
    assert paris.lm.get_item("paris") == 18.0
    assert paris.finished


def test_centroid_and_central_point(make_grid, cell):
    grid = make_grid()
    nyc = cell(grid, 3.0, 0.5)
    assert nyc.get_centroid() == SphereCoord(3.25, 0.75)
    assert nyc.get_true_center() == SphereCoord(3.0, 1.0)
    assert nyc.get_central_point() == SphereCoord(3.25, 0.75)

    centered = make_grid(GridLocateParams(center_method="center"))
    assert cell(centered, 3.0, 0.5).get_central_point() == SphereCoord(3.0, 1.0)


def test_prior_weighting_by_salience(make_grid, cell):
    grid = make_grid(GridLocateParams(prior_method="salience"))
    assert cell(grid, 0.5, 3.0).prior_weighting == 20.0
    assert grid.total_prior_weighting == 31.0


def test_finish_twice_raises(grid):
    with pytest.raises(GridStateError):
        grid.finish()


def test_add_after_finish_raises(grid):
    with pytest.raises(GridStateError):
        grid.add_training_documents_to_grid(TRAINING_DOCS)
    late = grid.docfact.raw_document_to_document(
        RawDocument("late", TRAINING, coord=SphereCoord(3.0, 3.0), counts={"paris": 4})
    )
    with pytest.raises(GridStateError):
        grid.add_document_to_grid(late)
    assert grid.find_best_cell_for_coord(SphereCoord(3.0, 3.0)) is None
    assert grid.num_non_empty_cells == 3


def test_iterate_before_finish_raises():
    docfact = DocumentFactory(LangModelFactory())
    grid = MultiRegularGrid(docfact, 2.0, bounds=BOUNDS)
    grid.add_training_documents_to_grid(TRAINING_DOCS)
    with pytest.raises(GridStateError):
        grid.iter_nonempty_cells()


def test_cell_rejects_non_training_document(grid, make_doc):
    doc = make_doc(grid, "test-doc", 3.0, 3.0, {"paris": 1}, split=TEST)
    with pytest.raises(DataError):
        grid.create_cell((1, 1)).add_document(doc)


def test_cell_rejects_document_without_coord(grid, make_doc):
    doc = make_doc(grid, "no-coord", None, None, {"paris": 1}, split=TRAINING)
    with pytest.raises(DataError):
        grid.create_cell((1, 1)).add_document(doc)


def test_finished_cell_rejects_documents(grid, make_doc, cell):
    doc = make_doc(grid, "late", 0.5, 0.5, {"paris": 1}, split=TRAINING)
    with pytest.raises(GridStateError):
        cell(grid, 0.5, 0.5).add_document(doc)


def test_skipped_and_out_of_range_documents():
    docfact = DocumentFactory(LangModelFactory())
    grid = MultiRegularGrid(docfact, 2.0, bounds=BOUNDS)
    grid.add_training_documents_to_grid([
        *TRAINING_DOCS,
        RawDocument("far-away", TRAINING, coord=SphereCoord(40.0, 40.0), counts={"x": 1}),
        RawDocument("nowhere", TRAINING, counts={"x": 1}),
        RawDocument("held-out", TEST, coord=SphereCoord(1.0, 1.0), counts={"x": 1}),
    ])
    grid.finish()
    assert grid.num_docs_out_of_range == 1
    assert grid.total_num_docs == 5
    assert docfact.num_skipped["training documents without coordinates"] == 1
    assert docfact.num_skipped["non-training documents"] == 1


def test_find_best_cell_for_coord(grid):
    assert grid.find_best_cell_for_coord(SphereCoord(3.0, 3.0)) is None
    transient = grid.find_best_cell_for_coord(SphereCoord(3.0, 3.0), create_non_recorded=True)
    assert transient is not None
    assert transient.num_docs == 0
    assert transient.finished
    assert (1, 1) not in grid.cells
    assert transient.get_central_point() == SphereCoord(3.0, 3.0)


def test_max_edge_belongs_to_last_cell(grid):
    assert grid.coord_to_index(SphereCoord(4.0, 4.0)) == (1, 1)
    assert grid.coord_to_index(SphereCoord(2.0, 0.0)) == (1, 0)


def test_iter_nonempty_cells_including(grid):
    transient = grid.find_best_cell_for_coord(SphereCoord(3.0, 3.0), create_non_recorded=True)
    cells = grid.iter_nonempty_cells_including(transient, include_correct=True)
    assert sum(1 for c in cells if c is transient) == 1
    recorded = grid.find_best_cell_for_coord(SphereCoord(0.5, 0.5))
    cells = grid.iter_nonempty_cells_including(recorded, include_correct=True)
    assert len(cells) == 3


def test_get_subdivided_cells(grid, make_grid, cell):
    fine = make_grid(degrees_per_cell=1.0)
    children = fine.get_subdivided_cells(cell(grid, 0.5, 0.5))
    assert [c.index for c in children] == [(0, 0), (1, 1)]
    assert fine.get_subdivided_cells(cell(grid, 0.5, 3.0))[0].index == (0, 3)


def test_format_ranking_marks_correct(grid, cell):
    paris = cell(grid, 0.5, 0.5)
    ranking = [(c, float(-i)) for i, c in enumerate(grid.iter_nonempty_cells())]
    lines = grid.format_ranking(ranking, paris, limit=2)
    assert len(lines) == 2
    assert lines[0].startswith("*")
    assert lines[1].startswith(" ")


def test_to_row(grid, cell):
    row = cell(grid, 0.5, 0.5).to_row()
    assert row["num_docs"] == 2
    assert row["indices"] == "0,0"
    assert row["most_popular_document"] == "paris-a"


def test_bad_grid_options():
    docfact = DocumentFactory(LangModelFactory())
    with pytest.raises(ConfigError):
        MultiRegularGrid(docfact, 0.0)
    with pytest.raises(ConfigError):
        MultiRegularGrid(docfact, 1.0, bounds=(5.0, 0.0, 5.0, 1.0))
    with pytest.raises(ConfigError):
        TimeGrid(docfact, 2000, 1900, 10)


def test_spheredist():
    assert spheredist(SphereCoord(0, 0), SphereCoord(0, 1)) == pytest.approx(111.195, abs=0.01)
    assert spheredist(SphereCoord(10, 20), SphereCoord(10, 20)) == 0.0


def test_degree_dist_wraps_longitude():
    assert degree_dist(SphereCoord(0, 179), SphereCoord(0, -179)) == pytest.approx(2.0)
    assert degree_dist(SphereCoord(0, 0), SphereCoord(3, 4)) == pytest.approx(5.0)


def test_time_grid():
    docfact = DocumentFactory(LangModelFactory())
    grid = TimeGrid(docfact, 1900, 2000, 10)
    grid.add_training_documents_to_grid([
        RawDocument("a", TRAINING, coord=1905.0, counts={"war": 2}),
        RawDocument("b", TRAINING, coord=1907.0, counts={"war": 1}),
        RawDocument("c", TRAINING, coord=2000.0, counts={"web": 3}),
    ])
    grid.finish()
    assert grid.total_num_cells == 10
    assert [c.index for c in grid.iter_nonempty_cells()] == [0, 9]
    first = grid.iter_nonempty_cells()[0]
    assert first.get_true_center() == 1905.0
    assert first.get_centroid() == 1906.0
    assert first.describe_location() == "1900-1910"
    assert grid.distance(1900.0, 1950.5) == 50.5
    assert grid.cell_size == 10.0
