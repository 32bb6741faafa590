""" Functions for solving the pressure Poisson equation and projecting velocities

The Poisson equation is solved exactly in Fourier space using the eigenvalues of the discrete
Laplacian div(grad(.)), so the projection is a fixed linear map that jax can differentiate.
"""

import jax.numpy as jnp

import boundary_conditions as bc
from advection import get_divergence


def poisson(rhs, setup):
    """ Solve laplace(p) = rhs for an interior rhs, returns p with ghost points

    The mean of p is set to zero.
    """
    dim = setup.dimension
    axes = tuple(range(-dim, 0))
    rhs_hat = jnp.fft.rfftn(rhs, axes=axes)
    p_hat = rhs_hat / setup.laplace_eig
    p_hat = p_hat.at[(0,) * dim].set(0.0)
    p = jnp.fft.irfftn(p_hat, s=rhs.shape[-dim:], axes=axes)
    return bc.pad_periodic(p, dim)


def pressure_gradient(p, setup):
    """ Gradient of a padded pressure at the velocity faces, interior only """
    dim, h = setup.dimension, setup.h
    return jnp.stack([(bc.shifted(p, dim, alpha, 1) - bc.interior(p, dim)) / h for alpha in range(dim)])


def project(u, setup):
    """ Remove the gradient part of u so that its discrete divergence vanishes """
    dim = setup.dimension
    p = poisson(get_divergence(u, setup), setup)
    u_new = bc.interior(u, dim) - pressure_gradient(p, setup)
    return bc.pad_periodic(u_new, dim)
