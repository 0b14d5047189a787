"""Tests for anova_lc50 (analysis of deviance)."""

import numpy as np
import pytest
from scipy.stats import chi2

from pystatstox.lc50 import (
    DevianceTable,
    IncompatibleModelsError,
    anova_lc50,
    fit_lc50,
)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(scope="module")
def sequential(factorial_fit):
    return anova_lc50(factorial_fit)


@pytest.fixture(scope="module")
def intercept_fit(factorial_data):
    _, y, conc, group = factorial_data
    return fit_lc50(
        np.ones((len(conc), 1)), y, conc, group,
        column_names=["(Intercept)"],
        response_name="cbind(alive, dead)",
    )


@pytest.fixture(scope="module")
def temp_fit(factorial_data):
    x, y, conc, group = factorial_data
    return fit_lc50(
        x[:, :2], y, conc, group,
        column_names=["(Intercept)", "temp"],
        term_labels=["temp"],
        response_name="cbind(alive, dead)",
    )


# ---------------------------------------------------------------------------
# Sequential table
# ---------------------------------------------------------------------------

class TestSequentialAnova:
    """Terms added one at a time."""

    def test_type(self, sequential):
        assert isinstance(sequential, DevianceTable)
        assert sequential.sequential
        assert sequential.test is None

    def test_labels(self, sequential):
        assert sequential.labels == ("NULL", "temp", "salt")

    def test_heading(self, sequential):
        assert "Response: cbind(alive, dead)" in sequential.heading
        assert "Terms added sequentially" in sequential.heading

    def test_resid_df(self, sequential):
        # n = 28 samples, G = 4 groups
        np.testing.assert_array_equal(sequential.resid_df, [23, 22, 21])

    def test_resid_dev_non_increasing(self, sequential):
        assert np.all(np.diff(sequential.resid_dev) <= 1e-6)

    def test_last_row_is_full_model(self, sequential, factorial_fit):
        last = sequential.rows[-1]
        assert last.resid_dev == factorial_fit.deviance
        assert last.resid_df == factorial_fit.df_residual

    def test_first_row_has_no_change(self, sequential):
        first = sequential.rows[0]
        assert first.df is None
        assert first.deviance is None

    def test_changes(self, sequential):
        rows = sequential.rows
        for prev, cur in zip(rows[:-1], rows[1:]):
            assert cur.df == 1
            assert cur.deviance == pytest.approx(max(0.0, prev.resid_dev - cur.resid_dev))
            assert cur.deviance >= 0

    def test_first_row_matches_intercept_model(self, sequential, intercept_fit):
        assert sequential.rows[0].resid_dev == pytest.approx(intercept_fit.deviance, abs=1e-2)

    def test_stressors_explain_deviance(self, sequential):
        assert sequential.rows[1].deviance > 1.0

    @pytest.mark.parametrize("test", ["Chisq", "LRT"])
    def test_chisq_p_values(self, factorial_fit, test):
        tab = anova_lc50(factorial_fit, test=test)
        assert tab.test == test
        assert tab.rows[0].p_value is None
        for r in tab.rows[1:]:
            assert r.p_value == pytest.approx(chi2.sf(r.deviance, r.df))
            assert 0.0 <= r.p_value <= 1.0

    def test_cp(self, factorial_fit):
        tab = anova_lc50(factorial_fit, test="Cp")
        n = factorial_fit.n_obs
        for r in tab.rows:
            assert r.cp == pytest.approx(r.resid_dev + 2 * (n - r.resid_df))
            assert r.p_value is None

    def test_intercept_only_single_row(self, intercept_fit):
        tab = anova_lc50(intercept_fit)
        assert tab.labels == ("NULL",)
        assert tab.rows[0].resid_dev == intercept_fit.deviance
        assert tab.rows[0].resid_df == intercept_fit.df_residual

    def test_default_names_keep_intercept_in_null_model(self, factorial_data):
        x, y, conc, group = factorial_data
        fit = fit_lc50(x, y, conc, group)
        tab = anova_lc50(fit)
        assert tab.labels == ("NULL", "x1", "x2")
        np.testing.assert_array_equal(tab.resid_df, [23, 22, 21])

    def test_refits_use_full_model_settings(self, factorial_data, monkeypatch):
        from pystatstox.lc50 import _fit

        x, y, conc, group = factorial_data
        fit = fit_lc50(
            x, y, conc, group,
            column_names=["(Intercept)", "temp", "salt"],
            max_iter=500, gtol=1e-4,
        )
        assert fit.optimizer.max_iter == 500
        assert fit.optimizer.gtol == 1e-4

        calls = []
        original = _fit._fit_observations

        def recording(obs, start, **kwargs):
            calls.append(kwargs)
            return original(obs, start, **kwargs)

        monkeypatch.setattr(_fit, "_fit_observations", recording)
        anova_lc50(fit)
        assert calls == [{"max_iter": 500, "gtol": 1e-4}] * 2

    def test_method(self, factorial_fit, sequential):
        tab = factorial_fit.anova()
        assert tab.labels == sequential.labels
        np.testing.assert_allclose(tab.resid_dev, sequential.resid_dev)


# ---------------------------------------------------------------------------
# Several models
# ---------------------------------------------------------------------------

class TestModelComparison:
    """Comparison of nested fits."""

    def test_rows(self, intercept_fit, temp_fit, factorial_fit):
        tab = anova_lc50(intercept_fit, temp_fit, factorial_fit)
        assert not tab.sequential
        assert tab.labels == ("1", "2", "3")
        np.testing.assert_array_equal(tab.resid_df, [23, 22, 21])
        np.testing.assert_allclose(
            tab.resid_dev,
            [intercept_fit.deviance, temp_fit.deviance, factorial_fit.deviance],
        )

    def test_differences(self, intercept_fit, factorial_fit):
        tab = anova_lc50(intercept_fit, factorial_fit, test="Chisq")
        r = tab.rows[1]
        assert r.df == 2
        assert r.deviance == pytest.approx(intercept_fit.deviance - factorial_fit.deviance)
        assert r.p_value == pytest.approx(chi2.sf(r.deviance, 2))

    def test_reverse_order_negative_df(self, intercept_fit, factorial_fit):
        tab = anova_lc50(factorial_fit, intercept_fit, test="Chisq")
        r = tab.rows[1]
        assert r.df == -2
        assert r.p_value == pytest.approx(chi2.sf(-r.deviance, 2))

    def test_heading_lists_models(self, intercept_fit, temp_fit):
        tab = anova_lc50(intercept_fit, temp_fit)
        assert "Model 1: cbind(alive, dead) ~ 1" in tab.heading
        assert "Model 2: cbind(alive, dead) ~ temp" in tab.heading

    def test_cp_uses_largest_model(self, intercept_fit, factorial_fit):
        tab = anova_lc50(intercept_fit, factorial_fit, test="Cp")
        n = factorial_fit.n_obs
        assert tab.rows[0].cp == pytest.approx(intercept_fit.deviance + 2 * (n - 23))

    def test_method_with_others(self, intercept_fit, factorial_fit):
        tab = intercept_fit.anova(factorial_fit)
        assert tab.labels == ("1", "2")


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class TestAnovaErrors:
    """Incompatible models and bad arguments."""

    def test_different_response(self, factorial_data, factorial_fit):
        x, y, conc, group = factorial_data
        other = fit_lc50(x, y, conc, group, response_name="cbind(live, dead)")
        with pytest.raises(IncompatibleModelsError, match="response") as exc:
            anova_lc50(factorial_fit, other)
        assert exc.value.model_index == 2

    def test_different_sample_count(self, two_group_data, factorial_fit):
        x, y, conc, group = two_group_data
        other = fit_lc50(x, y, conc, group, response_name="cbind(alive, dead)")
        with pytest.raises(IncompatibleModelsError, match="same size") as exc:
            anova_lc50(factorial_fit, other)
        assert exc.value.model_index == 2

    def test_incompatible_is_value_error(self, factorial_data, factorial_fit):
        x, y, conc, group = factorial_data
        other = fit_lc50(x, y, conc, group)
        with pytest.raises(ValueError):
            anova_lc50(factorial_fit, other)

    def test_invalid_test(self, factorial_fit):
        with pytest.raises(ValueError, match="test must be one of"):
            anova_lc50(factorial_fit, test="F")

    def test_non_result_argument(self, factorial_fit):
        with pytest.raises(TypeError, match="LC50Result"):
            anova_lc50(factorial_fit, "model")
