""" Functions for filling ghost points and slicing staggered fields

All fields carry ng ghost layers on each side of every spatial axis. Spatial axes are the trailing
`dimension` axes; a velocity field has one extra leading axis for its components. Component alpha
at interior index I sits on the right face of cell I in direction alpha, scalars sit at cell centers.
"""

import jax.numpy as jnp

from les_errors import ConfigurationError

ng = 1    # number of ghost points on one side of every direction

supported_bc = ("periodic",)


def check_bc(bc_name):
    """ Only periodic boundaries are implemented """
    if bc_name not in supported_bc:
        raise ConfigurationError("!!! Unsupported boundary condition '%s' !!!" % bc_name)


def pad_periodic(arr, dimension):
    """ Padding the trailing spatial axes of an interior array with periodic ghost points """
    pad_width = [(0, 0)] * (arr.ndim - dimension) + [(ng, ng)] * dimension
    return jnp.pad(arr, pad_width, mode="wrap")


def interior(arr, dimension):
    """ Strip the ghost points of the trailing spatial axes """
    return arr[(Ellipsis,) + (slice(ng, -ng),) * dimension]


def shifted(arr, dimension, axis, offset):
    """ Interior-sized view of a padded array, shifted by offset cells along spatial axis

    offset must satisfy |offset| <= ng.
    """
    n = arr.shape[arr.ndim - dimension + axis] - 2 * ng
    index = [slice(ng, -ng)] * dimension
    index[axis] = slice(ng + offset, ng + offset + n)
    return arr[(Ellipsis,) + tuple(index)]


def apply_bc_u(u, setup):
    """ Refill the ghost points of a velocity (or tendency) field """
    return pad_periodic(interior(u, setup.dimension), setup.dimension)
