""" Functions for the Smagorinsky eddy-viscosity closure

Diagonal strain components live at cell centers, off-diagonal ones at the cell corners
x_I + h/2 e_alpha + h/2 e_beta. Intermediate arrays are re-padded so that every stencil only needs
one ghost layer.
"""

import jax.numpy as jnp

import boundary_conditions as bc


def compute_strain(u, setup):
    """ Strain rate tensor S_ab = (du_a/dx_b + du_b/dx_a)/2

    Returns a dict keyed by (a, b) with a <= b; every entry is padded.
    """
    dim, h = setup.dimension, setup.h
    strain = {}
    for alpha in range(dim):
        ua = u[alpha]
        strain[alpha, alpha] = bc.pad_periodic(
            (bc.interior(ua, dim) - bc.shifted(ua, dim, alpha, -1)) / h, dim)
        for beta in range(alpha + 1, dim):
            ub = u[beta]
            dua_dxb = (bc.shifted(ua, dim, beta, 1) - bc.interior(ua, dim)) / h
            dub_dxa = (bc.shifted(ub, dim, alpha, 1) - bc.interior(ub, dim)) / h
            strain[alpha, beta] = bc.pad_periodic(0.5 * (dua_dxb + dub_dxa), dim)
    return strain


def corner_to_center(arr, dim, alpha, beta):
    """ Average a padded corner quantity onto the cell centers, interior only """
    ab = bc.pad_periodic(bc.shifted(arr, dim, alpha, -1), dim)
    return 0.25 * (bc.interior(arr, dim) + bc.shifted(arr, dim, alpha, -1) +
                   bc.shifted(arr, dim, beta, -1) + bc.shifted(ab, dim, beta, -1))


def center_to_corner(arr, dim, alpha, beta):
    """ Average a padded center quantity onto the cell corners, interior only """
    ab = bc.pad_periodic(bc.shifted(arr, dim, alpha, 1), dim)
    return 0.25 * (bc.interior(arr, dim) + bc.shifted(arr, dim, alpha, 1) +
                   bc.shifted(arr, dim, beta, 1) + bc.shifted(ab, dim, beta, 1))


def strain_magnitude(strain, dim):
    """ |S| = sqrt(2 S:S) at the cell centers, interior only """
    ss = 0.0
    for alpha in range(dim):
        ss = ss + bc.interior(strain[alpha, alpha], dim) ** 2
        for beta in range(alpha + 1, dim):
            ss = ss + 2.0 * corner_to_center(strain[alpha, beta] ** 2, dim, alpha, beta)
    return jnp.sqrt(2.0 * ss)


def compute_smag(u, theta, setup):
    """ Smagorinsky closure div(2 nu_t S) with nu_t = (theta h)^2 |S|, padded """
    dim, h = setup.dimension, setup.h
    strain = compute_strain(u, setup)
    nu_t = bc.pad_periodic(theta ** 2 * h ** 2 * strain_magnitude(strain, dim), dim)

    # stress tensor, same locations as the strain
    stress = {}
    for alpha in range(dim):
        stress[alpha, alpha] = bc.pad_periodic(
            2.0 * bc.interior(nu_t, dim) * bc.interior(strain[alpha, alpha], dim), dim)
        for beta in range(alpha + 1, dim):
            stress[alpha, beta] = bc.pad_periodic(
                2.0 * center_to_corner(nu_t, dim, alpha, beta) * bc.interior(strain[alpha, beta], dim), dim)

    closure = []
    for alpha in range(dim):
        s_aa = stress[alpha, alpha]
        div = (bc.shifted(s_aa, dim, alpha, 1) - bc.interior(s_aa, dim)) / h
        for beta in range(dim):
            if beta == alpha:
                continue
            s_ab = stress[min(alpha, beta), max(alpha, beta)]
            div = div + (bc.interior(s_ab, dim) - bc.shifted(s_ab, dim, beta, -1)) / h
        closure.append(div)
    return bc.pad_periodic(jnp.stack(closure), dim)
