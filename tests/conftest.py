import jax
jax.config.update("jax_enable_x64", True)
import jax.numpy as jnp
import numpy as np
import pytest

import boundary_conditions as bc
import setup_les as setl


@pytest.fixture
def les8():
    """ 8x8 periodic grid without forcing """
    return setl.get_setup(2, 8, Re=100.0)


@pytest.fixture
def dns16():
    return setl.get_setup(2, 16, Re=100.0)


@pytest.fixture
def random_u(les8):
    """ Smooth divergence-free field on the 8x8 grid """
    return setl.random_field(les8, jax.random.PRNGKey(0), kp=3)


@pytest.fixture
def rough_field():
    """ Factory of padded random velocities that are not divergence-free """
    def make(setup, seed=0):
        rng = np.random.default_rng(seed)
        u = rng.standard_normal((setup.dimension,) + (setup.n,) * setup.dimension)
        return bc.pad_periodic(jnp.asarray(u), setup.dimension)
    return make
