""" Training of the LES closure models

A-priori: fit the closure to the commutator error of single snapshots.
A-posteriori: fit the closure through short unrolled LES trajectories.
Smagorinsky: grid search of the scalar coefficient on the a-posteriori error.
"""

import os
import time as Time
from functools import partial
from typing import Any
import jax
jax.config.update("jax_enable_x64", True)
from jax import numpy as jnp
import numpy as np
import optax
import orbax.checkpoint
from flax.training import train_state, orbax_utils

import boundary_conditions as bc
import closure_models as cm
import evaluation as ev
import one_sprint_functions as sp
import one_step_integration as one
from les_errors import ConfigurationError, NonFiniteFieldError


class ClosureTrainState(train_state.TrainState):
    """ `TrainState` carrying the batch PRNG stream, the validation history and the best parameters

    params is {'theta': flat parameter vector}. hist rows are (iteration, validation error), NaN
    beyond nhist.
    """
    key: jax.Array
    hist: jax.Array
    nhist: jax.Array
    best_params: Any
    best_loss: jax.Array


optimizers = {"adam": optax.adam, "adamw": optax.adamw, "lamb": optax.lamb}


def get_optimizer(name, learning_rate):
    if name not in optimizers:
        raise ConfigurationError("!!! Unknown optimizer '%s', choose from %s !!!" % (name, list(optimizers)))
    return optimizers[name](learning_rate)


def create_train_state(closure_model, theta0, tx, seed, nhistmax):
    """ Create initial `TrainState` """
    params = {'theta': jnp.asarray(theta0)}
    return ClosureTrainState.create(apply_fn=closure_model.apply, params=params, tx=tx,
                                    key=jax.random.PRNGKey(seed),
                                    hist=jnp.full((nhistmax, 2), jnp.nan), nhist=jnp.asarray(0),
                                    best_params=params, best_loss=jnp.asarray(jnp.inf))


def get_niter(niter, nepoch, nsample, batchsize):
    """ Iteration budget: whichever of niter and nepoch is reached first """
    if niter is None and nepoch is None:
        raise ConfigurationError("!!! Set at least one of niter and nepoch !!!")
    limits = []
    if niter is not None:
        limits.append(int(niter))
    if nepoch is not None:
        limits.append(int(nepoch) * int(np.ceil(nsample / batchsize)))
    return min(limits)


# --------------------------------------------------------------------------------
# Checkpointing
# --------------------------------------------------------------------------------
def checkpoint_target(state):
    return {
        'dl_state': state,
        'iteration': 0,
        'training_metrics': {'loss': 0.0},
        'testing_metrics': {'relerr': 0.0},
    }


def save_checkpoint(ckpt_dir, state, iteration, loss, relerr):
    """ Atomic orbax checkpoint of the full training state """
    start = Time.time()
    checkpoint = {
        'dl_state': state,
        'iteration': iteration,
        'training_metrics': {'loss': float(loss)},
        'testing_metrics': {'relerr': float(relerr)},
    }
    orbax_checkpointer = orbax.checkpoint.PyTreeCheckpointer()
    save_args = orbax_utils.save_args_from_target(checkpoint)
    orbax_checkpointer.save(os.path.abspath(ckpt_dir), checkpoint, save_args=save_args, force=True)
    print('*** Saving checkpoint time: %.2f' % (Time.time() - start))


def restore_checkpoint(ckpt_dir, state):
    """ Restore a checkpoint saved by save_checkpoint into the structure of state """
    ckpt_dir = os.path.abspath(ckpt_dir)
    if not os.path.isdir(ckpt_dir):
        raise FileNotFoundError("!!! Checkpoint %s does not exist !!!" % ckpt_dir)
    target = checkpoint_target(state)
    restore_args = orbax.checkpoint.checkpoint_utils.construct_restore_args(target)
    orbax_checkpointer = orbax.checkpoint.PyTreeCheckpointer()
    restored = orbax_checkpointer.restore(ckpt_dir, item=target, restore_args=restore_args)
    print("*** Restored checkpoint %s at iteration %d" % (ckpt_dir, int(restored['iteration'])))
    return restored['dl_state'], int(restored['iteration'])


def save_params(path, theta, hist, comptime):
    """ Final parameters of a training run """
    orbax_checkpointer = orbax.checkpoint.PyTreeCheckpointer()
    item = {'theta': np.asarray(theta), 'hist': np.asarray(hist), 'comptime': float(comptime)}
    orbax_checkpointer.save(os.path.abspath(path), item, force=True)
    return path


def load_params(path):
    """ Read parameters saved by save_params """
    path = os.path.abspath(path)
    if not os.path.isdir(path):
        raise FileNotFoundError("!!! Parameter file %s does not exist !!!" % path)
    restored = orbax.checkpoint.PyTreeCheckpointer().restore(path)
    return jnp.asarray(restored['theta']), np.asarray(restored['hist']), float(restored['comptime'])


# --------------------------------------------------------------------------------
# Shared callback
# --------------------------------------------------------------------------------
def record_validation(state, iteration, relerr):
    """ Append to the history and keep the best parameters; non-finite errors are only recorded """
    hist = state.hist.at[state.nhist].set(jnp.array([iteration, relerr]))
    state = state.replace(hist=hist, nhist=state.nhist + 1)
    if bool(relerr < state.best_loss):
        state = state.replace(best_params=state.params, best_loss=jnp.asarray(relerr))
    return state


def training_result(state):
    """ Best validated parameters (or the latest if none validated finite) and the history """
    params = state.best_params if bool(jnp.isfinite(state.best_loss)) else state.params
    return params['theta'], np.asarray(state.hist[:int(state.nhist)])


# --------------------------------------------------------------------------------
# A-priori training
# --------------------------------------------------------------------------------
def prior_loss(theta, u, c, setup, closure_model, lam):
    """ Mean squared commutator error of a batch plus L2 regularization """
    pred = jax.vmap(closure_model.apply, in_axes=(0, None, None))(u, theta, setup)
    dim = setup.dimension
    mse = jnp.mean(optax.squared_error(bc.interior(pred, dim), bc.interior(c, dim)))
    return mse + lam * jnp.sum(theta ** 2)


@partial(jax.jit, static_argnames=['closure_model', 'batchsize'])
def prior_train_step(state, u_all, c_all, setup, lam, closure_model, batchsize):
    """ Sample a batch of (trajectory, time) pairs and apply one optimizer update """
    key, key_traj, key_time = jax.random.split(state.key, 3)
    ntraj, nt = u_all.shape[:2]
    itraj = jax.random.randint(key_traj, (batchsize,), 0, ntraj)
    itime = jax.random.randint(key_time, (batchsize,), 0, nt)
    loss_fn = lambda params: prior_loss(params['theta'], u_all[itraj, itime], c_all[itraj, itime],
                                        setup, closure_model, lam)
    loss, grads = jax.value_and_grad(loss_fn)(state.params)
    state = state.apply_gradients(grads=grads)
    return state.replace(key=key), loss


def train_prior(trainset, validset, closure_model, theta0, setup, optimizer="adam", learning_rate=1.0e-3,
                lam=5.0e-5, batchsize=32, niter=None, nepoch=None, nupdate_callback=20, seed=345,
                checkpoint=None, loadcheckpoint=False, eval_batchsize=64):
    """ A-priori training

    trainset: padded arrays 'u' and 'c' of shape (ntraj, nt, D, ...); validset: padded sample arrays
    'u' and 'c' of shape (nsample, D, ...). Returns the best validated parameters and the history.
    """
    ntraj, nt = trainset["u"].shape[:2]
    niter_total = get_niter(niter, nepoch, ntraj * nt, batchsize)
    tx = get_optimizer(optimizer, learning_rate)
    state = create_train_state(closure_model, theta0, tx, seed, niter_total // nupdate_callback + 1)

    istart = 0
    if loadcheckpoint:
        state, istart = restore_checkpoint(checkpoint, state)

    u_all, c_all = jnp.asarray(trainset["u"]), jnp.asarray(trainset["c"])
    print("*** A-priori training: %d iterations, batch size %d" % (niter_total, batchsize))
    start = Time.time()
    loss = jnp.nan
    for i in range(istart, niter_total):
        state, loss = prior_train_step(state, u_all, c_all, setup, lam, closure_model, batchsize)
        if (i + 1) % nupdate_callback == 0:
            relerr, _ = ev.relerr_prior(closure_model, state.params['theta'], setup, validset, eval_batchsize)
            state = record_validation(state, i + 1, relerr)
            print(">>> Iteration %d - training loss: %.4e, validation error: %.4e" % (i + 1, loss, relerr))
            if checkpoint is not None:
                save_checkpoint(checkpoint, state, i + 1, loss, relerr)
    print('*** Training time: %.2f' % (Time.time() - start))
    return training_result(state)


# --------------------------------------------------------------------------------
# A-posteriori training
# --------------------------------------------------------------------------------
def post_loss(theta, u_window, setup, dt, closure_model, method, project_order, nsubstep):
    """ Relative squared error of an unrolled trajectory, averaged over the window """
    dim = setup.dimension
    nunroll = u_window.shape[0] - 1
    us = sp.unroll(u_window[0], theta, setup, dt, closure_model, method, project_order, nunroll, nsubstep)
    ref = bc.interior(u_window[1:], dim)
    axes = tuple(range(1, ref.ndim))
    err = jnp.sum((bc.interior(us, dim) - ref) ** 2, axis=axes) / jnp.sum(ref ** 2, axis=axes)
    return jnp.mean(err)


@partial(jax.jit, static_argnames=['closure_model', 'method', 'project_order', 'nunroll', 'nsubstep',
                                   'ntrajectory'])
def post_grads(state, u_all, setup, dt, lam, closure_model, method, project_order, nunroll, nsubstep,
               ntrajectory):
    """ Gradient over ntrajectory random windows, ignoring the windows that blew up

    Returns the new PRNG key, the masked mean gradient, the mean loss of the valid windows and the
    number of valid windows.
    """
    key, key_traj, key_start = jax.random.split(state.key, 3)
    ntraj, nt = u_all.shape[:2]
    itraj = jax.random.randint(key_traj, (ntrajectory,), 0, ntraj)
    istart = jax.random.randint(key_start, (ntrajectory,), 0, nt - nunroll)
    windows = jax.vmap(lambda i, s: jax.lax.dynamic_slice_in_dim(u_all[i], s, nunroll + 1, axis=0))(itraj, istart)

    loss_fn = lambda params, window: post_loss(params['theta'], window, setup, dt, closure_model, method,
                                               project_order, nsubstep)
    losses, grads = jax.vmap(jax.value_and_grad(loss_fn), in_axes=(None, 0))(state.params, windows)

    theta = state.params['theta']
    valid = jnp.isfinite(losses) & jnp.all(jnp.isfinite(grads['theta']), axis=1)
    nvalid = jnp.sum(valid)
    denom = jnp.maximum(nvalid, 1)
    grad = jnp.sum(jnp.where(valid[:, None], grads['theta'], 0.0), axis=0) / denom + 2.0 * lam * theta
    loss = jnp.sum(jnp.where(valid, losses, 0.0)) / denom + lam * jnp.sum(theta ** 2)
    return key, {'theta': grad}, loss, nvalid


@jax.jit
def apply_update(state, grad):
    return state.apply_gradients(grads=grad)


def validation_error_post(validset, theta, setup, dt, closure_model, method, project_order, nunroll, nsubstep):
    """ Mean windowed a-posteriori error over the first nunroll steps of every validation trajectory """
    errors = [ev.relerr_post_window(u[:nunroll + 1], theta, setup, dt, closure_model, method, project_order,
                                    nsubstep) for u in validset["u"]]
    return float(np.mean(errors))


def train_post(trainset, validset, closure_model, theta0, setup, project_order=one.ProjectOrder.LAST,
               method="wray3", optimizer="adam", learning_rate=1.0e-4, lam=5.0e-8, nunroll=5, nsubstep=5,
               ntrajectory=5, nunroll_valid=5, niter=None, nepoch=None, nupdate_callback=10, seed=456,
               checkpoint=None, loadcheckpoint=False):
    """ A-posteriori training through unrolled LES trajectories

    trainset and validset: padded 'u' of shape (ntraj, nt, D, ...) and times 't'. Sub-steps have size
    (t[1] - t[0]) / nsubstep. Returns the best validated parameters and the history.
    """
    project_order = one.get_project_order(project_order)
    one.check_method(method)
    ntraj, nt = trainset["u"].shape[:2]
    if nunroll >= nt or nunroll_valid >= validset["u"].shape[1]:
        raise ConfigurationError("!!! Unroll length exceeds the trajectory length %d !!!" % nt)
    t = np.asarray(trainset["t"])
    dt = float(t[1] - t[0]) / nsubstep

    niter_total = get_niter(niter, nepoch, ntraj * (nt - nunroll), ntrajectory)
    tx = get_optimizer(optimizer, learning_rate)
    state = create_train_state(closure_model, theta0, tx, seed, niter_total // nupdate_callback + 1)

    istart = 0
    if loadcheckpoint:
        state, istart = restore_checkpoint(checkpoint, state)

    u_all = jnp.asarray(trainset["u"])
    print("*** A-posteriori training (%s): %d iterations, %d windows of %d x %d sub-steps" %
          (project_order.value, niter_total, ntrajectory, nunroll, nsubstep))
    start = Time.time()
    loss = jnp.nan
    for i in range(istart, niter_total):
        key, grad, loss, nvalid = post_grads(state, u_all, setup, dt, lam, closure_model, method, project_order,
                                             nunroll, nsubstep, ntrajectory)
        state = state.replace(key=key)
        if int(nvalid) == 0:
            print("!!! Iteration %d: every window blew up, skipping the update !!!" % (i + 1))
        else:
            state = apply_update(state, grad)
        if (i + 1) % nupdate_callback == 0:
            relerr = validation_error_post(validset, state.params['theta'], setup, dt, closure_model, method, project_order,
                                           nunroll_valid, nsubstep)
            state = record_validation(state, i + 1, relerr)
            print(">>> Iteration %d - training loss: %.4e, validation error: %.4e" % (i + 1, loss, relerr))
            if checkpoint is not None:
                save_checkpoint(checkpoint, state, i + 1, loss, relerr)
    print('*** Training time: %.2f' % (Time.time() - start))
    return training_result(state)


# --------------------------------------------------------------------------------
# Smagorinsky grid search
# --------------------------------------------------------------------------------
def train_smagorinsky(trainset, setup, theta_range, project_order=one.ProjectOrder.LAST, method="wray3",
                      nunroll=50, nsubstep=5):
    """ Pick the Smagorinsky coefficient with the smallest a-posteriori error

    The error of one theta is the mean over the training trajectories of the time-averaged error after
    nunroll snapshots; blown-up rollouts count as infinite error.
    """
    smag = cm.SmagorinskyClosure()
    u_all, t = np.asarray(trainset["u"]), np.asarray(trainset["t"])
    if nunroll >= len(t):
        raise ConfigurationError("!!! nunroll=%d exceeds the trajectory length %d !!!" % (nunroll, len(t)))
    errors = np.zeros(len(theta_range))
    for i, theta in enumerate(theta_range):
        e = []
        for u_ref in u_all:
            try:
                es, _ = ev.relerr_post(smag, theta, setup, u_ref[:nunroll + 1], t[:nunroll + 1], [nunroll],
                                       nsubstep, method, project_order)
                e.append(es[-1])
            except NonFiniteFieldError:
                e.append(np.inf)
        errors[i] = np.mean(e)
    ibest = int(np.argmin(errors))
    print(">>> Smagorinsky (%s): theta = %.4f, error = %.4e" %
          (one.get_project_order(project_order).value, theta_range[ibest], errors[ibest]))
    return float(theta_range[ibest]), errors
