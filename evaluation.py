""" A-priori and a-posteriori error measures of closure models """

import time as Time
from functools import partial
import jax
import jax.numpy as jnp
import numpy as np

import boundary_conditions as bc
import diagnostics as diag
import one_sprint_functions as sp
import one_step_integration as one
from les_errors import ConfigurationError


@partial(jax.jit, static_argnames=['closure_model'])
def prior_error_sums(u, c, theta, setup, closure_model):
    """ Squared error and squared label summed over a batch of snapshots """
    pred = jax.vmap(closure_model.apply, in_axes=(0, None, None))(u, theta, setup)
    dim = setup.dimension
    err = jnp.sum((bc.interior(pred, dim) - bc.interior(c, dim)) ** 2)
    ref = jnp.sum(bc.interior(c, dim) ** 2)
    return err, ref


def relerr_prior(closure_model, theta, setup, dataset, batchsize=64):
    """ sqrt(mean |m(u) - c|^2) / sqrt(mean |c|^2) over all samples, and the inference time

    dataset holds padded sample arrays 'u' and 'c' of shape (nsample, D, ...).
    """
    u, c = dataset['u'], dataset['c']
    start = Time.time()
    err, ref = 0.0, 0.0
    for i in range(0, u.shape[0], batchsize):
        e, r = prior_error_sums(u[i:i + batchsize], c[i:i + batchsize], theta, setup, closure_model)
        err, ref = err + float(e), ref + float(r)
    return np.sqrt(err / ref), Time.time() - start


def relative_error(u, uref, setup):
    """ |u - uref| / |uref| over the interior """
    dim = setup.dimension
    return jnp.sqrt(jnp.sum((bc.interior(u, dim) - bc.interior(uref, dim)) ** 2) /
                    jnp.sum(bc.interior(uref, dim) ** 2))


def check_tsave(tsave, nt):
    """ Requested snapshot indices must lie in [1, nt - 1] """
    bad = [it for it in tsave if not 1 <= it <= nt - 1]
    if bad:
        raise ConfigurationError("!!! Snapshot indices %s outside [1, %d] !!!" % (bad, nt - 1))


def time_averaged_errors(errors, tsave):
    """ Running mean of the per-snapshot errors, reported at the requested indices

    errors[it - 1] is the error at snapshot it >= 1; the value at it is sum(errors[:it]) / it.
    """
    running = np.cumsum(np.asarray(errors, dtype=np.float64))
    return np.array([running[it - 1] / it for it in tsave])


def relerr_post(closure_model, theta, setup, u_ref, t, tsave, nsubstep=1, method="wray3",
                project_order=one.ProjectOrder.LAST, context=None):
    """ Cumulative time-averaged relative error of a LES rollout against a reference trajectory

    The rollout starts from u_ref[0] and takes nsubstep sub-steps between reference snapshots.
    Returns the errors at the snapshot indices tsave and the wall time of the rollout.
    """
    nt = u_ref.shape[0]
    check_tsave(tsave, nt)
    start = Time.time()
    state = one.initial_state(u_ref[0], t[0])
    errors = []
    for it in range(1, nt):
        dt = (t[it] - t[it - 1]) / nsubstep
        ctx = dict(context or {}, snapshot=it)
        state = sp.rollout(state, dt, nsubstep, setup, closure_model, theta, method, project_order, ctx)
        errors.append(float(relative_error(state.u, u_ref[it], setup)))
    return time_averaged_errors(errors, tsave), Time.time() - start


@partial(jax.jit, static_argnames=['closure_model', 'method', 'project_order', 'nsubstep'])
def relerr_post_window(u_window, theta, setup, dt, closure_model, method, project_order, nsubstep):
    """ relerr_post over a short window without host checks; blow-ups show up as NaN """
    nunroll = u_window.shape[0] - 1
    us = sp.unroll(u_window[0], theta, setup, dt, closure_model, method, project_order, nunroll, nsubstep)
    errors = jax.vmap(relative_error, in_axes=(0, 0, None))(us, u_window[1:], setup)
    return jnp.mean(errors)


def history_nstep(project_order, nstep, dt_save, t_dif):
    """ Number of history steps; divergence-inconsistent rollouts stop at t_dif """
    if one.get_project_order(project_order) == one.ProjectOrder.FIRST:
        return min(nstep, int(np.floor(t_dif / dt_save + 1e-8)))
    return nstep


def rollout_history(closure_model, theta, setup, u0, dt, nstep, nsubstep=1, method="wray3",
                    project_order=one.ProjectOrder.LAST, context=None, nsave=None):
    """ RMS divergence and kinetic energy after every nsubstep sub-steps

    The arrays hold nsave + 1 entries (nsave defaults to nstep); entries beyond nstep are NaN.
    """
    nsave = nstep if nsave is None else nsave
    if nstep > nsave:
        raise ConfigurationError("!!! nstep=%d exceeds the history length %d !!!" % (nstep, nsave))
    history = {name: np.full(nsave + 1, np.nan) for name in ("t", "divergence", "energy")}
    state = one.initial_state(u0)
    for i in range(nstep + 1):
        if i > 0:
            state = sp.rollout(state, dt, nsubstep, setup, closure_model, theta, method, project_order, context)
        history["t"][i] = float(state.t)
        history["divergence"][i] = float(diag.divergence_rms(state.u, setup))
        history["energy"][i] = float(diag.kinetic_energy(state.u, setup))
    return history
