""" One sprint means many steps between two saved snapshots

Two flavours: `rollout` steps on the host and checks every sub-step for non-finite values, and
`unroll` is a single traced computation that jax can differentiate through.
"""

from functools import partial
import jax
import jax.numpy as jnp
from jax import lax

import one_step_integration as one
from les_errors import NonFiniteFieldError


def is_finite(u):
    return bool(jnp.all(jnp.isfinite(u)))


def rollout(state, dt, nstep, setup, closure_model, theta, method="wray3",
            project_order=one.ProjectOrder.LAST, context=None):
    """ Integrate nstep sub-steps, raising NonFiniteFieldError as soon as the field blows up """
    for _ in range(nstep):
        state = one.timestep(state, dt, setup, closure_model, theta, method, project_order)
        if not is_finite(state.u):
            raise NonFiniteFieldError(int(state.n), context)
    return state


@partial(jax.jit, static_argnames=['closure_model', 'method', 'project_order', 'nunroll', 'nsubstep'])
def unroll(u, theta, setup, dt, closure_model, method, project_order, nunroll, nsubstep):
    """ Differentiable rollout of nunroll steps of nsubstep sub-steps each

    Returns the velocities after every step, shape (nunroll,) + u.shape. Each sub-step is
    rematerialized in the backward pass, so memory grows with nunroll*nsubstep states only.
    """
    project_order = one.get_project_order(project_order)

    @jax.checkpoint
    def substep(state):
        return one.timestep(state, dt, setup, closure_model, theta, method, project_order)

    def inner(state, _):
        return substep(state), None

    def outer(state, _):
        state, _ = lax.scan(inner, state, None, length=nsubstep)
        return state, state.u

    state = one.StepperState(u=u, t=jnp.zeros((), dtype=u.dtype), n=jnp.zeros((), dtype=int))
    _, us = lax.scan(outer, state, None, length=nunroll)
    return us
