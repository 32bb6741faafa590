import jax
import jax.numpy as jnp
import numpy as np
import pytest

import advection as adv
import boundary_conditions as bc
import pressure_equations as pres_eqn
import setup_les as setl


@pytest.mark.parametrize("dimension, n", [(2, 8), (2, 9), (3, 6)])
def test_projection_removes_divergence(rough_field, dimension, n):
    setup = setl.get_setup(dimension, n)
    u = rough_field(setup, seed=1)
    pu = pres_eqn.project(u, setup)
    assert float(jnp.max(jnp.abs(adv.get_divergence(u, setup)))) > 1.0
    assert float(jnp.max(jnp.abs(adv.get_divergence(pu, setup)))) < 1e-10


def test_projection_is_idempotent(rough_field, les8):
    pu = pres_eqn.project(rough_field(les8, seed=2), les8)
    ppu = pres_eqn.project(pu, les8)
    np.testing.assert_allclose(ppu, pu, rtol=0, atol=1e-12)


def test_projection_keeps_divergence_free_fields(random_u, les8):
    np.testing.assert_allclose(pres_eqn.project(random_u, les8), random_u, rtol=0, atol=1e-12)


def test_poisson_inverts_discrete_laplacian(les8):
    rng = np.random.default_rng(5)
    rhs = rng.standard_normal((8, 8))
    rhs = jnp.asarray(rhs - rhs.mean())
    p = pres_eqn.poisson(rhs, les8)
    lap = adv.get_divergence(bc.pad_periodic(pres_eqn.pressure_gradient(p, les8), 2), les8)
    np.testing.assert_allclose(lap, rhs, rtol=0, atol=1e-10)
    assert abs(float(jnp.mean(bc.interior(p, 2)))) < 1e-12


def test_projection_is_differentiable(rough_field, les8):
    u = rough_field(les8, seed=3)
    w = rough_field(les8, seed=4)

    def f(scale):
        return jnp.sum(bc.interior(pres_eqn.project(scale * u, les8) * w, 2))

    g = jax.grad(f)(1.0)
    # the projection is linear, so d/ds f(s) = f(1)
    np.testing.assert_allclose(g, f(1.0), rtol=1e-10)
