""" Save evaluation results to NetCDF files """

import os
import netCDF4 as nc4
import numpy as np

# dimensions of every variable that may appear in a result file
var_dims = {
    "eprior_prior": ("nles", "filter"),
    "eprior_post": ("nles", "filter", "projectorder"),
    "tprior_prior": ("nles", "filter"),
    "tprior_post": ("nles", "filter", "projectorder"),
    "epost_nomodel": ("nles", "filter", "projectorder", "tsave"),
    "epost_smag": ("nles", "filter", "projectorder", "tsave"),
    "epost_model_prior": ("nles", "filter", "projectorder", "tsave"),
    "epost_model_post": ("nles", "filter", "projectorder", "tsave"),
    "tpost_nomodel": ("nles", "filter", "projectorder"),
    "tpost_smag": ("nles", "filter", "projectorder"),
    "tpost_model_prior": ("nles", "filter", "projectorder"),
    "tpost_model_post": ("nles", "filter", "projectorder"),
    "theta_range": ("theta",),
    "smag_errors": ("theta",),
    "theta_best": (),
    "comptime": (),
}
for _model in ("reference", "nomodel", "smag", "model_prior", "model_post"):
    var_dims["divergence_" + _model] = ("nles", "filter", "projectorder", "time")
    var_dims["energy_" + _model] = ("nles", "filter", "projectorder", "time")
var_dims["time"] = ("time",)


def save2nc(filename, variables, coords, attrs=None):
    """ Write a result bundle; coords maps dimension names to numeric or string labels

    String labels are stored as comma-separated global attributes. The file is written under a
    temporary name and renamed when complete.
    """
    tmp_name = filename + ".tmp"
    nc_file = nc4.Dataset(tmp_name, mode="w", format="NETCDF4")
    for dim, labels in coords.items():
        nc_file.createDimension(dim, len(labels))
        if len(labels) and isinstance(labels[0], str):
            nc_file.setncattr(dim, ",".join(labels))
        elif dim not in variables:
            label_nc = nc_file.createVariable(dim, np.float64, (dim,))
            label_nc[:] = np.asarray(labels, dtype=np.float64)

    for name, values in variables.items():
        dims = var_dims[name]
        var_nc = nc_file.createVariable(name, np.float64, dims, fill_value=1.0e36, zlib=True, complevel=2)
        var_nc[...] = np.asarray(values, dtype=np.float64)

    for key, value in (attrs or {}).items():
        nc_file.setncattr(key, value)
    nc_file.close()
    os.replace(tmp_name, filename)
    return filename


def load_nc(filename):
    """ Read every variable and global attribute of a result file """
    if not os.path.isfile(filename):
        raise FileNotFoundError("!!! Result file %s does not exist !!!" % filename)
    with nc4.Dataset(filename, mode="r") as nc_file:
        nc_file.set_auto_mask(False)
        variables = {name: np.array(var[...]) for name, var in nc_file.variables.items()}
        attrs = {key: nc_file.getncattr(key) for key in nc_file.ncattrs()}
    return variables, attrs
