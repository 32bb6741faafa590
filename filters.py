""" Discrete filters mapping DNS velocities onto a coarse LES grid

Coarse cell I covers the fine cells I*c ... I*c + c - 1 in every direction, so the coarse face in
direction alpha coincides with the fine face (I + 1)*c - 1.
"""

import dataclasses
from functools import partial
import jax
import jax.numpy as jnp

import boundary_conditions as bc
from les_errors import ConfigurationError


def block_mean(arr, axis, compression):
    """ Average consecutive blocks of `compression` entries along axis """
    shape = arr.shape
    new_shape = shape[:axis] + (shape[axis] // compression, compression) + shape[axis + 1:]
    return jnp.mean(arr.reshape(new_shape), axis=axis + 1)


def block_average(scalar, compression, dimension):
    """ Average a fine interior scalar over the fine cells composing each coarse cell """
    for axis in range(dimension):
        scalar = block_mean(scalar, axis, compression)
    return scalar


def coarse_faces(arr, axis, compression):
    """ Pick the fine faces that coincide with coarse faces along axis """
    index = [slice(None)] * arr.ndim
    index[axis] = slice(compression - 1, None, compression)
    return arr[tuple(index)]


def face_weights(compression):
    """ Top-hat weights of width H over the fine faces, centered on a coarse face """
    half = compression // 2
    if compression % 2 == 1:
        return {o: 1.0 for o in range(-half, half + 1)}
    weights = {o: 1.0 for o in range(-half + 1, half)}
    weights[-half] = 0.5
    weights[half] = 0.5
    return weights


@partial(jax.jit, static_argnames=["compression", "dimension"])
def face_average(u_fine, compression, dimension):
    """ Average u_alpha over the fine faces tiling each coarse face """
    u_int = bc.interior(u_fine, dimension)
    comps = []
    for alpha in range(dimension):
        ua = coarse_faces(u_int[alpha], alpha, compression)
        for beta in range(dimension):
            if beta != alpha:
                ua = block_mean(ua, beta, compression)
        comps.append(ua)
    return bc.pad_periodic(jnp.stack(comps), dimension)


@partial(jax.jit, static_argnames=["compression", "dimension"])
def volume_average(u_fine, compression, dimension):
    """ Average u_alpha over a coarse-cell-sized box centered on each coarse face """
    u_int = bc.interior(u_fine, dimension)
    comps = []
    for alpha in range(dimension):
        ua = u_int[alpha]
        smooth = sum(w * jnp.roll(ua, -offset, axis=alpha) for offset, w in face_weights(compression).items())
        ua = coarse_faces(smooth, alpha, compression) / compression
        for beta in range(dimension):
            if beta != alpha:
                ua = block_mean(ua, beta, compression)
        comps.append(ua)
    return bc.pad_periodic(jnp.stack(comps), dimension)


def check_shapes(u_fine, setup, compression):
    """ Fine field must be a padded velocity on a grid `compression` times finer than setup """
    dim = setup.dimension
    if u_fine.ndim != dim + 1 or u_fine.shape[0] != dim:
        raise ConfigurationError("!!! Expected a %dD velocity field, got shape %s !!!" % (dim, u_fine.shape))
    nfine = compression * setup.n
    if any(s != nfine + 2 * bc.ng for s in u_fine.shape[1:]):
        raise ConfigurationError(
            "!!! Fine grid of shape %s does not match %d x %d coarse cells !!!" % (u_fine.shape[1:], setup.n, compression))


@dataclasses.dataclass(frozen=True)
class FaceAverage:
    """ Divergence-consistent filter: commutes with the discrete divergence """
    compression: int
    name = "FaceAverage"

    def __call__(self, u_fine, setup):
        check_shapes(u_fine, setup, self.compression)
        return face_average(u_fine, self.compression, setup.dimension)


@dataclasses.dataclass(frozen=True)
class VolumeAverage:
    """ Divergence-inconsistent filter: leaves a residual divergence on the coarse grid """
    compression: int
    name = "VolumeAverage"

    def __call__(self, u_fine, setup):
        check_shapes(u_fine, setup, self.compression)
        return volume_average(u_fine, self.compression, setup.dimension)


filter_types = {"FaceAverage": FaceAverage, "VolumeAverage": VolumeAverage}


def get_filter(name, compression):
    """ Filter operator by name """
    if name not in filter_types:
        raise ConfigurationError("!!! Unknown filter '%s' !!!" % name)
    if compression < 1 or int(compression) != compression:
        raise ConfigurationError("!!! Compression must be a positive integer, got %s !!!" % compression)
    return filter_types[name](int(compression))
