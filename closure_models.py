""" Closure models: a correction to the LES momentum right-hand side

Every variant exposes apply(u, theta, setup) returning a padded field, so the stepper never
special-cases the absence of a model. Instances are frozen and hashable, which lets them be passed
as static arguments to jitted functions.
"""

import dataclasses
from typing import Callable
import jax
import jax.numpy as jnp
from jax.flatten_util import ravel_pytree

import boundary_conditions as bc
import dl_models as dlm
import turbulence as turb
from les_errors import ConfigurationError


@dataclasses.dataclass(frozen=True)
class NoClosure:
    """ Zero correction """
    name = "nomodel"
    active = False    # the stepper leaves the closure term out

    def apply(self, u, theta, setup):
        return jnp.zeros_like(u)


@dataclasses.dataclass(frozen=True)
class SmagorinskyClosure:
    """ Eddy viscosity nu_t = (theta h)^2 |S| with a scalar theta """
    name = "smag"
    active = True

    def apply(self, u, theta, setup):
        return turb.compute_smag(u, theta, setup)


@dataclasses.dataclass(frozen=True)
class ConvNetClosure:
    """ CNN closure; theta is the flattened parameter vector of `model` """
    model: dlm.ClosureCNN
    unravel: Callable
    name = "cnn"
    active = True

    def apply(self, u, theta, setup):
        dim = setup.dimension
        x = dlm.field_to_channels(bc.interior(u, dim))
        y = self.model.apply({'params': self.unravel(theta)}, x)
        return bc.pad_periodic(dlm.channels_to_field(y), dim)


def cnn(setup, radii, channels, use_bias, key):
    """ Create a CNN closure and its initial flat parameters """
    if not len(radii) == len(channels) == len(use_bias):
        raise ConfigurationError("!!! radii, channels and use_bias must have equal lengths !!!")
    if channels[-1] != setup.dimension:
        raise ConfigurationError("!!! The last CNN layer needs %d channels, got %d !!!" %
                                 (setup.dimension, channels[-1]))
    model = dlm.ClosureCNN(radii=tuple(radii), channels=tuple(channels), use_bias=tuple(use_bias))
    x = jnp.zeros((1,) + (setup.n,) * setup.dimension + (setup.dimension,))
    params = model.init(key, x)['params']
    theta, unravel = ravel_pytree(params)
    return ConvNetClosure(model=model, unravel=unravel), theta


def theta_start(setup, seed, radii, channels, use_bias):
    """ CNN closure initialized from its own seeded stream """
    return cnn(setup, radii, channels, use_bias, jax.random.PRNGKey(seed))
