import numpy as np
import pytest
from joblib import Parallel

from dcvar.association.dcvar_z import DCVAR_ZTest
from dcvar.matrix.case_control import map_genotypes_to_model, split_expression_case_control
from dcvar.utils import stats as stats_utils


def _pair_with_correlation(n, r, rng):
    """Two centered vectors whose Pearson correlation is exactly r."""
    u = rng.standard_normal(n)
    u -= u.mean()
    u /= np.linalg.norm(u)
    v = rng.standard_normal(n)
    v -= v.mean()
    v -= (v @ u) * u
    v /= np.linalg.norm(v)
    return u, r * u + np.sqrt(1.0 - r * r) * v


@pytest.fixture
def correlated_expression():
    """4 genes x 20 subjects; A/B correlate 0.9 in the first 10 subjects, 0.1 in the rest."""
    rng = np.random.default_rng(11)
    a_case, b_case = _pair_with_correlation(10, 0.9, rng)
    a_ctrl, b_ctrl = _pair_with_correlation(10, 0.1, rng)
    expr = np.vstack([
        np.concatenate([a_case, a_ctrl]),
        np.concatenate([b_case, b_ctrl]),
        rng.standard_normal(20),
        rng.standard_normal(20),
    ])
    genotypes = np.array([2] * 10 + [0] * 10)
    return expr, genotypes


def test_differential_pair_is_stored_at_default_threshold(correlated_expression) -> None:
    expr, genotypes = correlated_expression
    labels = map_genotypes_to_model(genotypes, 'dom')
    cases, ctrls = split_expression_case_control(expr, labels)

    results = DCVAR_ZTest(cases, ctrls)

    expected_z = stats_utils.differential_correlation_z(0.9, 0.1, 10, 10)
    assert (0, 1) in results.matrices
    assert results.matrices.get_z(0, 1) == pytest.approx(expected_z, rel=1e-9)
    assert results.matrices.get_p(1, 0) == pytest.approx(stats_utils.two_sided_pvalue(expected_z), rel=1e-9)
    assert results.matrices.get_p(0, 1) < 0.05


def test_z_matches_reference_for_every_pair() -> None:
    rng = np.random.default_rng(5)
    cases = rng.standard_normal((12, 5))
    ctrls = rng.standard_normal((15, 5))

    results = DCVAR_ZTest(cases, ctrls, p_threshold=1.0)

    r1 = np.corrcoef(cases, rowvar=False)
    r2 = np.corrcoef(ctrls, rowvar=False)
    for i, j, z, p in results.matrices.items():
        expected = stats_utils.differential_correlation_z(r1[i, j], r2[i, j], 12, 15)
        assert z == pytest.approx(expected, rel=1e-8, abs=1e-10)
        assert p == pytest.approx(stats_utils.two_sided_pvalue(expected), rel=1e-8, abs=1e-10)
    assert results.n_passed == 10


def test_counters_cover_every_pair() -> None:
    rng = np.random.default_rng(1)
    cases = rng.standard_normal((10, 6))
    ctrls = rng.standard_normal((12, 6))

    results = DCVAR_ZTest(cases, ctrls, p_threshold=0.2)

    assert results.n_infinite + results.n_failed + results.n_passed == 15
    assert results.n_tests == stats_utils.n_gene_combinations(6)
    assert results.matrices.nnz == results.n_passed
    for _, _, _, p in results.matrices.items():
        assert p <= 0.2


def test_perfect_correlation_goes_to_infinite_bucket() -> None:
    rng = np.random.default_rng(2)
    base_case = rng.standard_normal(8)
    base_ctrl = rng.standard_normal(8)
    cases = np.column_stack([base_case, 2.0 * base_case + 1.0])
    ctrls = np.column_stack([base_ctrl, -3.0 * base_ctrl])

    results = DCVAR_ZTest(cases, ctrls)

    assert results.n_infinite == 1
    assert results.matrices.nnz == 0


def test_zero_variance_gene_is_never_stored() -> None:
    rng = np.random.default_rng(4)
    cases = rng.standard_normal((10, 3))
    cases[:, 2] = 7.0
    ctrls = rng.standard_normal((10, 3))

    results = DCVAR_ZTest(cases, ctrls, p_threshold=1.0)

    assert results.n_infinite == 2
    assert (0, 2) not in results.matrices
    assert (1, 2) not in results.matrices
    assert (0, 1) in results.matrices


def test_groups_of_three_or_fewer_are_all_infinite() -> None:
    rng = np.random.default_rng(6)

    results = DCVAR_ZTest(rng.standard_normal((3, 4)), rng.standard_normal((9, 4)), p_threshold=1.0)

    assert results.n_infinite == 6
    assert results.matrices.nnz == 0
    assert np.isnan(results.min_p)


def test_threaded_run_matches_sequential() -> None:
    rng = np.random.default_rng(8)
    cases = rng.standard_normal((20, 30))
    ctrls = rng.standard_normal((25, 30))

    sequential = DCVAR_ZTest(cases, ctrls, p_threshold=0.3, cpu=1)
    threaded = DCVAR_ZTest(cases, ctrls, p_threshold=0.3, cpu=4)
    with Parallel(n_jobs=2, backend='threading') as parallel:
        shared = DCVAR_ZTest(cases, ctrls, p_threshold=0.3, parallel=parallel)

    expected = list(sequential.matrices.items())
    assert list(threaded.matrices.items()) == expected
    assert list(shared.matrices.items()) == expected
    assert threaded.n_failed == sequential.n_failed
    assert shared.min_p == sequential.min_p


def test_min_and_max_p_track_passed_pairs() -> None:
    rng = np.random.default_rng(9)
    results = DCVAR_ZTest(rng.standard_normal((12, 6)), rng.standard_normal((12, 6)), p_threshold=1.0)

    pvals = [p for _, _, _, p in results.matrices.items()]
    assert results.min_p == pytest.approx(min(pvals))
    assert results.max_p == pytest.approx(max(pvals))


def test_mismatched_gene_counts_raise() -> None:
    with pytest.raises(ValueError):
        DCVAR_ZTest(np.ones((5, 3)), np.ones((5, 4)))


def test_verbose_report_goes_to_given_log(correlated_expression, capsys) -> None:
    expr, genotypes = correlated_expression
    cases, ctrls = split_expression_case_control(expr, map_genotypes_to_model(genotypes, 'dom'))
    lines = []

    results = DCVAR_ZTest(cases, ctrls, verbose=True, log=lines.append)

    assert f"\t[ {results.n_failed} ] p-values failed threshold test" in lines
    assert f"\t[ {results.n_passed} ] p-values passed threshold test" in lines
    assert capsys.readouterr().out == ""
