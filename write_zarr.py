""" Save filtered DNS trajectories to Zarr stores, addressed by explicit content keys """

import os
import shutil
from typing import NamedTuple
import numpy as np
import zarr

import namelist_n_constants as nl


class DataKey(NamedTuple):
    nles: int
    filter: str
    seed: int


class PriorKey(NamedTuple):
    nles: int
    filter: str


class PostKey(NamedTuple):
    nles: int
    filter: str
    project_order: str


class SmagKey(NamedTuple):
    nles: int
    filter: str
    project_order: str


name_formats = {
    DataKey: nl.data_name_format,
    PriorKey: nl.prior_name_format,
    PostKey: nl.post_name_format,
    SmagKey: nl.smag_name_format,
}


def key_to_path(outdir, key):
    """ The one place where a content key becomes a file name """
    return os.path.abspath(os.path.join(outdir, name_formats[type(key)].format(**key._asdict())))


def replace_path(tmp_path, path):
    """ Move a finished temporary output onto its final path """
    if os.path.isdir(path):
        shutil.rmtree(path)
    os.replace(tmp_path, path)


def save2zarr(path, data, attrs):
    """ Write one trajectory (interior arrays) atomically

    data: dict with 't' (nt,), 'u' and 'c' (nt, D, n, ...), and optionally 'observe', a dict of
    (nt,) diagnostics. attrs must be JSON serializable.
    """
    tmp_path = path + ".tmp"
    if os.path.isdir(tmp_path):
        shutil.rmtree(tmp_path)

    zarr_store = zarr.storage.LocalStore(tmp_path)
    root = zarr.create_group(store=zarr_store)
    compressors = zarr.codecs.BloscCodec(cname='zstd', clevel=3, shuffle=zarr.codecs.BloscShuffle.bitshuffle)

    for name in ("t", "u", "c"):
        arr = np.asarray(data[name], dtype=np.float64)
        chunks = (1,) + arr.shape[1:] if arr.ndim > 1 else arr.shape
        z = root.create_array(name=name, shape=arr.shape, chunks=chunks, dtype="float64", compressors=compressors)
        z[:] = arr

    if "observe" in data:
        obs = root.create_group("observe")
        for name, values in data["observe"].items():
            arr = np.asarray(values, dtype=np.float64)
            z = obs.create_array(name=name, shape=arr.shape, chunks=arr.shape, dtype="float64")
            z[:] = arr

    root.attrs.update(attrs)
    replace_path(tmp_path, path)
    return path


def read_zarr(path):
    """ Load a trajectory written by save2zarr """
    if not os.path.isdir(path):
        raise FileNotFoundError("!!! Dataset %s does not exist !!!" % path)
    zarr_store = zarr.open_group(path, mode="r")
    data = {name: np.copy(zarr_store[name]) for name in ("t", "u", "c")}
    if "observe" in zarr_store:
        obs = zarr_store["observe"]
        data["observe"] = {name: np.copy(arr) for name, arr in obs.arrays()}
    data["attrs"] = dict(zarr_store.attrs)
    return data
