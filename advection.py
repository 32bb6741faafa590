""" Functions for calculating the momentum tendencies on the staggered grid

Second-order finite volumes on a uniform periodic grid. Velocity component alpha at interior index I
sits at x_I + h/2 e_alpha. All functions take padded fields and return interior arrays unless stated
otherwise.
"""

import jax.numpy as jnp

import boundary_conditions as bc


def get_divergence(u, setup):
    """ Discrete divergence at cell centers, interior only """
    dim, h = setup.dimension, setup.h
    div = 0.0
    for alpha in range(dim):
        div = div + (bc.interior(u[alpha], dim) - bc.shifted(u[alpha], dim, alpha, -1)) / h
    return div


def convection(u, setup):
    """ Convection term -d(u_alpha u_beta)/dx_beta in divergence form

    Normal fluxes are evaluated at cell centers and cross fluxes at cell corners.
    """
    dim, h = setup.dimension, setup.h
    tendency = []
    for alpha in range(dim):
        ua = u[alpha]
        ua_c = bc.interior(ua, dim)
        # normal flux at the centers on both sides of the face
        center_minus = 0.5 * (bc.shifted(ua, dim, alpha, -1) + ua_c)
        center_plus = 0.5 * (ua_c + bc.shifted(ua, dim, alpha, 1))
        conv = -(center_plus ** 2 - center_minus ** 2) / h
        for beta in range(dim):
            if beta == alpha:
                continue
            # cross flux at the corner x_I + h/2 e_alpha + h/2 e_beta
            ub_corner = 0.5 * (bc.interior(u[beta], dim) + bc.shifted(u[beta], dim, alpha, 1))
            ua_corner = 0.5 * (ua_c + bc.shifted(ua, dim, beta, 1))
            flux = bc.pad_periodic(ub_corner * ua_corner, dim)
            conv = conv - (bc.interior(flux, dim) - bc.shifted(flux, dim, beta, -1)) / h
        tendency.append(conv)
    return jnp.stack(tendency)


def diffusion(u, setup):
    """ Viscous term nu * laplace(u_alpha) with nu = 1/Re """
    dim, h = setup.dimension, setup.h
    visc = 1.0 / setup.Re
    tendency = []
    for alpha in range(dim):
        ua = u[alpha]
        lap = 0.0
        for beta in range(dim):
            lap = lap + (bc.shifted(ua, dim, beta, 1) - 2.0 * bc.interior(ua, dim) +
                         bc.shifted(ua, dim, beta, -1)) / h ** 2
        tendency.append(visc * lap)
    return jnp.stack(tendency)


def momentum(u, setup):
    """ Right-hand side of the momentum equation without pressure, with ghost points filled """
    rhs = convection(u, setup) + diffusion(u, setup) + setup.bodyforce
    return bc.pad_periodic(rhs, setup.dimension)
