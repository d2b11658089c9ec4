import pytest

from amazon_gllvm.config import DISEASE_LABELS, ID_COL, POPULATION_COL
from amazon_gllvm.errors import InputDataError
from amazon_gllvm.loader import load_analysis_data, validate_alignment

from conftest import N_MUN, STATES, write_tables


def test_load_renames_diseases_and_normalizes_states(data_dir):
    data = load_analysis_data(data_dir)

    assert data.n_municipalities == N_MUN
    assert data.diseases == list(DISEASE_LABELS.values())
    assert set(data.states) <= set(STATES)
    assert (data.y.dtypes == float).all()
    assert data.y.index.equals(data.X.index)
    assert data.y.index.equals(data.population.index)


def test_missing_token_rows_are_dropped(tmp_path, tables):
    dis, cov, pop = tables
    dis = dis.astype({"DENGUE": object})
    dis.loc[3, "DENGUE"] = "-"
    dropped_id = dis.loc[3, ID_COL]

    data = load_analysis_data(write_tables(tmp_path, dis, cov, pop))

    assert data.n_municipalities == N_MUN - 1
    assert dropped_id not in data.y.index
    assert data.y.index.equals(data.X.index)


def test_misordered_population_is_rejected(tmp_path, tables):
    dis, cov, pop = tables
    pop = pop.iloc[::-1].reset_index(drop=True)

    with pytest.raises(InputDataError, match="order differs"):
        load_analysis_data(write_tables(tmp_path, dis, cov, pop))


def test_row_count_mismatch_is_rejected(tmp_path, tables):
    dis, cov, pop = tables

    with pytest.raises(InputDataError, match="Row counts differ"):
        load_analysis_data(write_tables(tmp_path, dis, cov.iloc[:-1], pop))


def test_validate_alignment_accepts_identical_order(tables):
    dis, cov, pop = tables
    validate_alignment(dis.set_index(ID_COL), cov.set_index(ID_COL), pop.set_index(ID_COL)[POPULATION_COL])


def test_missing_covariate_column(tmp_path, tables):
    dis, cov, pop = tables

    with pytest.raises(InputDataError, match="GINI"):
        load_analysis_data(write_tables(tmp_path, dis, cov.drop(columns=["GINI"]), pop))


def test_missing_file(tmp_path):
    with pytest.raises(InputDataError, match="not found"):
        load_analysis_data(str(tmp_path))


def test_negative_counts_are_rejected(tmp_path, tables):
    dis, cov, pop = tables
    dis.loc[0, "MALARIA_RUR"] = -1

    with pytest.raises(InputDataError, match="negative"):
        load_analysis_data(write_tables(tmp_path, dis, cov, pop))


def test_duplicated_ids_are_rejected(tmp_path, tables):
    dis, cov, pop = tables
    dis.loc[1, ID_COL] = dis.loc[0, ID_COL]

    with pytest.raises(InputDataError, match="duplicated"):
        load_analysis_data(write_tables(tmp_path, dis, cov, pop))


def test_non_positive_population(tmp_path, tables):
    dis, cov, pop = tables
    pop.loc[2, POPULATION_COL] = 0

    with pytest.raises(InputDataError, match="positive"):
        load_analysis_data(write_tables(tmp_path, dis, cov, pop))
