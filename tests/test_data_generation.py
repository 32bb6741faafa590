import numpy as np
import pytest

import dataset_generation as dg
import filters as filt
from les_errors import ConfigurationError

DT = 1.0 / 256


@pytest.fixture
def les_data(dns16, les8):
    filters = [[filt.FaceAverage(2), filt.VolumeAverage(2)]]
    return dg.create_les_data(dns16, [les8], filters, seed=11, dt=DT, nburn=2, nt=10, savefreq=2, kp=3)


def test_dataset_layout(les_data):
    assert set(les_data) == {(8, "FaceAverage"), (8, "VolumeAverage")}
    for res in les_data.values():
        assert res["u"].shape == (6, 2, 8, 8)
        assert res["c"].shape == (6, 2, 8, 8)
        np.testing.assert_allclose(res["t"], np.arange(6) * 2 * DT)
        assert set(res["observe"]) == {"Dv", "Pv", "Pc", "c", "E"}
        assert all(v.shape == (6,) for v in res["observe"].values())
        assert res["comptime"] > 0.0
        assert np.all(np.isfinite(res["u"])) and np.all(np.isfinite(res["c"]))


def test_face_average_data_is_consistent(les_data):
    obs = les_data[8, "FaceAverage"]["observe"]
    assert np.all(obs["Dv"] < 1e-9)
    assert np.all(obs["Pv"] < 1e-9)
    assert np.all(obs["Pc"] < 1e-9)
    assert np.all(obs["c"] > 0.0)
    assert np.all(obs["E"] > 0.5)


def test_volume_average_data_is_not_divergence_free(les_data):
    obs = les_data[8, "VolumeAverage"]["observe"]
    assert np.all(obs["Dv"] > 1e-6)
    assert np.all(obs["Pc"] > 1e-6)


def test_generation_is_deterministic(dns16, les8, les_data):
    again = dg.create_les_data(dns16, [les8], [[filt.FaceAverage(2), filt.VolumeAverage(2)]], seed=11, dt=DT,
                               nburn=2, nt=10, savefreq=2, kp=3)
    for key, res in les_data.items():
        np.testing.assert_array_equal(again[key]["u"], res["u"])
        np.testing.assert_array_equal(again[key]["c"], res["c"])
    other = dg.create_les_data(dns16, [les8], [[filt.FaceAverage(2)]], seed=12, dt=DT, nburn=2, nt=10,
                               savefreq=2, kp=3)
    assert np.max(np.abs(other[8, "FaceAverage"]["u"] - les_data[8, "FaceAverage"]["u"])) > 1e-3


def test_invalid_generation_parameters(dns16, les8):
    with pytest.raises(ConfigurationError):
        dg.create_les_data(dns16, [les8], [[filt.FaceAverage(2)]], seed=1, dt=DT, nburn=0, nt=10, savefreq=3)
    with pytest.raises(ConfigurationError):
        dg.create_les_data(dns16, [les8], [[filt.FaceAverage(4)]], seed=1, dt=DT, nburn=0, nt=10, savefreq=1)
    with pytest.raises(ConfigurationError):
        dg.create_les_data(dns16, [les8, les8], [[filt.FaceAverage(2)]], seed=1, dt=DT, nburn=0, nt=10,
                           savefreq=1)


def test_io_arrays(les_data, les8, dns16):
    data = [les_data[8, "FaceAverage"], les_data[8, "FaceAverage"]]
    io = dg.create_io_arrays(data, les8)
    assert io["u"].shape == (2, 6, 2, 10, 10)
    assert io["c"].shape == (2, 6, 2, 10, 10)
    np.testing.assert_array_equal(io["u"][0, 3, :, 1:-1, 1:-1], data[0]["u"][3])
    # periodic ghost layer
    np.testing.assert_array_equal(io["u"][..., 0, 1:-1], io["u"][..., -2, 1:-1])

    samples = dg.flatten_samples(io)
    assert samples["u"].shape == (12, 2, 10, 10)
    subset = dg.select_samples(samples, 5, seed=0)
    assert subset["u"].shape == (5, 2, 10, 10)
    np.testing.assert_array_equal(subset["u"], dg.select_samples(samples, 5, seed=0)["u"])

    with pytest.raises(ConfigurationError):
        dg.create_io_arrays(data, dns16)
