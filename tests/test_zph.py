import numpy as np
import pandas as pd
import pytest
from lifelines import CoxPHFitter
from lifelines.datasets import load_rossi
from lifelines.statistics import proportional_hazard_test

from zphplot.core.errors import InvalidInputError
from zphplot.stats.result import DiagnosticResult
from zphplot.stats.zph import cox_zph, km_transform, zph_table


@pytest.fixture(scope="module")
def rossi():
    return load_rossi()


@pytest.fixture(scope="module")
def cph(rossi):
    return CoxPHFitter().fit(rossi, duration_col="week", event_col="arrest")


def test_km_transform(rossi, cph):
    res = cox_zph(cph, rossi)

    assert isinstance(res, DiagnosticResult)
    assert res.transform == "km"
    assert res.names == tuple(cph.params_.index)
    assert res.n_events == int(rossi["arrest"].sum())
    assert np.all(np.diff(res.times) >= 0)
    assert np.all((res.x >= 0) & (res.x <= 1))
    assert np.all(np.diff(res.x) >= 0)
    assert np.allclose(res.var, cph.variance_matrix_.to_numpy())


def test_beta_t_centres_on_coefficients(rossi, cph):
    res = cox_zph(cph, rossi, transform="identity")

    # Scaled Schoenfeld residuals average out near zero, so beta(t) averages
    # near the fitted coefficient.
    scaled = cph.compute_residuals(rossi, kind="scaled_schoenfeld")[list(res.names)]
    assert np.allclose(np.sort(res.y[:, 0]), np.sort(scaled.iloc[:, 0].to_numpy() + cph.params_.iloc[0]))
    assert np.array_equal(res.x, res.times)


def test_p_values_match_lifelines(rossi, cph):
    res = cox_zph(cph, rossi, transform="rank")
    expected = proportional_hazard_test(cph, rossi, time_transform="rank").p_value

    assert np.allclose(res.p_values, expected)
    assert np.all((res.p_values >= 0) & (res.p_values <= 1))
    table = zph_table(res)
    assert list(table["covariate"]) == list(res.names)


def test_log_transform(rossi, cph):
    res = cox_zph(cph, rossi, transform="log")
    assert np.allclose(res.x, np.log(res.times))


def test_km_transform_uses_survival_before_each_event():
    durations = pd.Series([1.0, 2.0, 3.0, 4.0])
    events = pd.Series([1, 1, 0, 1])
    out = km_transform(durations, events, np.array([1.0, 2.0, 4.0]))

    # S(t-) = 1, 3/4, 3/4 * 2/3
    assert np.allclose(out, [0.0, 0.25, 0.5])


def test_rejects_other_objects(rossi, cph):
    with pytest.raises(InvalidInputError, match="Can't handle"):
        cox_zph(object(), rossi)
    with pytest.raises(InvalidInputError, match="not been fitted"):
        cox_zph(CoxPHFitter(), rossi)
    with pytest.raises(InvalidInputError, match="Unknown time transform"):
        cox_zph(cph, rossi, transform="sqrt")
