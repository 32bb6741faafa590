""" Functions for one step of the LES integration

Explicit Runge-Kutta schemes written in the shifted form
    u_i = u_0 + dt * sum_{j<=i} a[i][j] * k_j,  k_j = F(u_{j-1}) + closure(u_{j-1}),
combined with a pressure projection whose position in the stage is set by ProjectOrder.
"""

import enum
from functools import partial
from typing import NamedTuple
import jax
import jax.numpy as jnp

import advection as adv
import boundary_conditions as bc
import pressure_equations as pres_eqn
from les_errors import ConfigurationError


class ProjectOrder(enum.Enum):
    """ When the divergence-free projection is applied within a RK stage """
    FIRST = "first"      # project the momentum tendency before adding the closure (DIF)
    SECOND = "second"    # project the tendency after adding the closure
    LAST = "last"        # project the stage velocity (DCF)


class StepperState(NamedTuple):
    u: jax.Array
    t: jax.Array
    n: jax.Array


# (a, c) in shifted form; row i holds the weights of stage i
rk_tableaus = {
    "euler": (((1.0,),), (1.0,)),
    "wray3": (((8.0 / 15.0,), (1.0 / 4.0, 5.0 / 12.0), (1.0 / 4.0, 0.0, 3.0 / 4.0)),
              (8.0 / 15.0, 2.0 / 3.0, 1.0)),
    "rk4": (((0.5,), (0.0, 0.5), (0.0, 0.0, 1.0), (1.0 / 6.0, 1.0 / 3.0, 1.0 / 3.0, 1.0 / 6.0)),
            (0.5, 0.5, 1.0, 1.0)),
}


def get_project_order(order):
    """ Accept either a ProjectOrder or its string value """
    try:
        return ProjectOrder(order) if not isinstance(order, ProjectOrder) else order
    except ValueError:
        raise ConfigurationError("!!! Unknown projection order '%s' !!!" % order) from None


def check_method(method):
    if method not in rk_tableaus:
        raise ConfigurationError("!!! Unknown RK method '%s', choose from %s !!!" % (method, list(rk_tableaus)))


def initial_state(u, t=0.0):
    """ Fresh stepper state for a new rollout """
    return StepperState(u=jnp.asarray(u), t=jnp.asarray(t, dtype=jnp.float64), n=jnp.asarray(0))


@partial(jax.jit, static_argnames=['closure_model', 'method', 'project_order'])
def timestep(state, dt, setup, closure_model, theta, method="wray3", project_order=ProjectOrder.LAST):
    """ Advance the velocity by one RK step of size dt """
    check_method(method)
    project_order = get_project_order(project_order)
    a, c = rk_tableaus[method]
    u0 = state.u
    u = u0
    ks = []
    for i in range(len(c)):
        force = adv.momentum(u, setup)
        if project_order == ProjectOrder.FIRST:
            force = pres_eqn.project(force, setup)
        if closure_model.active:
            force = force + closure_model.apply(u, theta, setup)
        if project_order == ProjectOrder.SECOND:
            force = pres_eqn.project(force, setup)
        ks.append(force)

        # stage combination
        u = u0
        for j in range(i + 1):
            if a[i][j] != 0.0:
                u = u + dt * a[i][j] * ks[j]
        u = bc.apply_bc_u(u, setup)
        if project_order == ProjectOrder.LAST:
            u = pres_eqn.project(u, setup)
    return StepperState(u=u, t=state.t + c[-1] * dt, n=state.n + 1)


def cfl_number(u, dt, setup):
    """ Advective CFL number max|u| dt / h """
    return jnp.max(jnp.abs(bc.interior(u, setup.dimension))) * dt / setup.h
