import os
import numpy as np
import pytest

import dataset_generation as dg
import les_dl_train as dltrain
import write_netcdf as wnc
import write_zarr as wz


def trajectory(nt=4, n=8, seed=0):
    rng = np.random.default_rng(seed)
    return {
        "t": np.arange(nt) * 0.1,
        "u": rng.standard_normal((nt, 2, n, n)),
        "c": rng.standard_normal((nt, 2, n, n)),
        "observe": {"Dv": rng.random(nt), "E": rng.random(nt)},
        "comptime": 1.5,
    }


def test_key_to_path(tmp_path):
    path = wz.key_to_path(str(tmp_path), wz.DataKey(nles=64, filter="FaceAverage", seed=17))
    assert path == os.path.join(str(tmp_path), "data_nles64_FaceAverage_seed17.zarr")
    post = wz.key_to_path(str(tmp_path), wz.PostKey(nles=32, filter="VolumeAverage", project_order="last"))
    assert os.path.basename(post) == "post_nles32_VolumeAverage_last"
    prior = wz.key_to_path(str(tmp_path), wz.PriorKey(nles=32, filter="VolumeAverage"))
    assert prior != post


def test_zarr_roundtrip(tmp_path):
    data = trajectory()
    path = wz.key_to_path(str(tmp_path), wz.DataKey(nles=8, filter="FaceAverage", seed=3))
    wz.save2zarr(path, data, {"seed": 3, "filter": "FaceAverage"})
    assert not os.path.exists(path + ".tmp")
    back = wz.read_zarr(path)
    for name in ("t", "u", "c"):
        np.testing.assert_array_equal(back[name], data[name])
    for name in ("Dv", "E"):
        np.testing.assert_array_equal(back["observe"][name], data["observe"][name])
    assert back["attrs"] == {"seed": 3, "filter": "FaceAverage"}

    # rewriting replaces the old store
    data2 = trajectory(seed=1)
    wz.save2zarr(path, data2, {"seed": 3})
    np.testing.assert_array_equal(wz.read_zarr(path)["u"], data2["u"])


def test_les_data_roundtrip(tmp_path):
    results = {(8, "FaceAverage"): trajectory(seed=2), (8, "VolumeAverage"): trajectory(seed=3)}
    paths = dg.save_les_data(str(tmp_path), results, seed=5)
    assert len(paths) == 2
    loaded = dg.load_les_data(str(tmp_path), 8, "VolumeAverage", [5])
    np.testing.assert_array_equal(loaded[0]["c"], results[8, "VolumeAverage"]["c"])
    assert loaded[0]["attrs"]["comptime"] == 1.5
    with pytest.raises(FileNotFoundError):
        dg.load_les_data(str(tmp_path), 8, "VolumeAverage", [6])


def test_netcdf_roundtrip(tmp_path):
    filename = str(tmp_path / "errors.nc")
    eprior = np.array([[0.3, np.nan]])
    epost = np.random.default_rng(0).random((1, 2, 2, 3))
    coords = {"nles": [8], "filter": ["FaceAverage", "VolumeAverage"], "projectorder": ["first", "last"],
              "tsave": [1, 2, 4]}
    wnc.save2nc(filename, {"eprior_prior": eprior, "epost_nomodel": epost}, coords, {"Re": 6000.0})
    variables, attrs = wnc.load_nc(filename)
    np.testing.assert_array_equal(variables["eprior_prior"], eprior)
    np.testing.assert_array_equal(variables["epost_nomodel"], epost)
    np.testing.assert_array_equal(variables["tsave"], [1.0, 2.0, 4.0])
    assert attrs["filter"] == "FaceAverage,VolumeAverage"
    assert attrs["Re"] == 6000.0
    assert not os.path.exists(filename + ".tmp")


def test_missing_files(tmp_path):
    with pytest.raises(FileNotFoundError):
        wz.read_zarr(str(tmp_path / "missing.zarr"))
    with pytest.raises(FileNotFoundError):
        wnc.load_nc(str(tmp_path / "missing.nc"))
    with pytest.raises(FileNotFoundError):
        dltrain.load_params(str(tmp_path / "missing"))


def test_params_roundtrip(tmp_path):
    theta = np.linspace(-1.0, 1.0, 11)
    hist = np.array([[10.0, 0.5], [20.0, 0.25]])
    path = dltrain.save_params(str(tmp_path / "prior"), theta, hist, 12.5)
    theta_back, hist_back, comptime = dltrain.load_params(path)
    np.testing.assert_array_equal(theta_back, theta)
    np.testing.assert_array_equal(hist_back, hist)
    assert comptime == 12.5
