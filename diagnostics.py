""" Diagnostics of velocity fields: divergence, kinetic energy and filter consistency """

import jax
import jax.numpy as jnp

import advection as adv
import boundary_conditions as bc
import pressure_equations as pres_eqn


def field_norm(u, setup):
    """ Euclidean norm of the interior of a padded field """
    return jnp.sqrt(jnp.sum(bc.interior(u, setup.dimension) ** 2))


def divergence_norm(u, setup):
    """ Euclidean norm of the discrete divergence """
    return jnp.sqrt(jnp.sum(adv.get_divergence(u, setup) ** 2))


def divergence_rms(u, setup):
    """ Root mean square of the discrete divergence over the cells """
    return jnp.sqrt(jnp.mean(adv.get_divergence(u, setup) ** 2))


def kinetic_energy(u, setup):
    """ Total kinetic energy, velocities interpolated to the cell centers """
    dim = setup.dimension
    e = 0.0
    for alpha in range(dim):
        uc = 0.5 * (bc.interior(u[alpha], dim) + bc.shifted(u[alpha], dim, alpha, -1))
        e = e + 0.5 * jnp.sum(uc ** 2)
    return e * setup.h ** dim


@jax.jit
def observe(v, c, phi_pf, energy_dns, setup):
    """ Consistency of a filtered DNS snapshot

    v: filtered velocity, c: commutator error, phi_pf: filtered projected DNS tendency,
    energy_dns: kinetic energy of the unfiltered DNS snapshot.
    Dv is the relative divergence, Pv and Pc the relative projection defects of v and c,
    c the size of the commutator relative to the filtered tendency, E the resolved energy ratio.
    """
    norm_v = field_norm(v, setup)
    norm_c = field_norm(c, setup)
    return {
        "Dv": divergence_norm(v, setup) / norm_v,
        "Pv": field_norm(pres_eqn.project(v, setup) - v, setup) / norm_v,
        "Pc": field_norm(pres_eqn.project(c, setup) - c, setup) / norm_c,
        "c": norm_c / field_norm(phi_pf, setup),
        "E": kinetic_energy(v, setup) / energy_dns,
    }
