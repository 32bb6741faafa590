import jax.numpy as jnp
import numpy as np
import pytest

import advection as adv
import closure_models as cm
import diagnostics as diag
import evaluation as ev
import one_sprint_functions as sp
import one_step_integration as one
from les_errors import ConfigurationError, NonFiniteFieldError

DT = 1.0 / 128


def reference_trajectory(u0, setup, nt, nsubstep):
    state = one.initial_state(u0)
    us = [state.u]
    for _ in range(nt - 1):
        state = sp.rollout(state, DT, nsubstep, setup, cm.NoClosure(), None)
        us.append(state.u)
    return jnp.stack(us), np.arange(nt) * nsubstep * DT


def test_relative_error(random_u, les8):
    assert float(ev.relative_error(random_u, random_u, les8)) == 0.0
    np.testing.assert_allclose(float(ev.relative_error(1.5 * random_u, random_u, les8)), 0.5)
    np.testing.assert_allclose(float(ev.relative_error(-random_u, random_u, les8)), 2.0)


def test_time_averaged_errors():
    errors = [1.0, 3.0, 2.0, 6.0]
    np.testing.assert_allclose(ev.time_averaged_errors(errors, [1, 2, 4]), [1.0, 2.0, 3.0])


def test_relerr_post_against_own_rollout(random_u, les8):
    u_ref, t = reference_trajectory(random_u, les8, 5, 2)
    es, wall = ev.relerr_post(cm.NoClosure(), None, les8, u_ref, t, [1, 4], nsubstep=2)
    assert es.shape == (2,)
    np.testing.assert_allclose(es, 0.0, atol=1e-13)
    assert wall >= 0.0


def test_relerr_post_detects_a_different_model(random_u, les8):
    u_ref, t = reference_trajectory(random_u, les8, 5, 2)
    es, _ = ev.relerr_post(cm.SmagorinskyClosure(), 0.3, les8, u_ref, t, [1, 4], nsubstep=2)
    assert np.all(es > 0.0)
    # a growing deviation gives a growing running mean
    assert es[1] > es[0]


def test_relerr_post_window_matches_host_rollout(random_u, les8):
    u_ref, t = reference_trajectory(random_u, les8, 4, 2)
    smag = cm.SmagorinskyClosure()
    es, _ = ev.relerr_post(smag, 0.3, les8, u_ref, t, [3], nsubstep=2)
    ew = ev.relerr_post_window(u_ref, 0.3, les8, DT, smag, "wray3", one.ProjectOrder.LAST, 2)
    np.testing.assert_allclose(float(ew), es[0], rtol=1e-10)


def test_tsave_out_of_range(random_u, les8):
    u_ref, t = reference_trajectory(random_u, les8, 3, 1)
    for tsave in ([0], [3]):
        with pytest.raises(ConfigurationError):
            ev.relerr_post(cm.NoClosure(), None, les8, u_ref, t, tsave)


def test_relerr_post_blow_up(random_u, les8):
    u_ref, t = reference_trajectory(random_u, les8, 3, 1)
    u_ref = u_ref.at[0, 0, 2, 2].set(jnp.inf)
    with pytest.raises(NonFiniteFieldError) as err:
        ev.relerr_post(cm.NoClosure(), None, les8, u_ref, t, [2], context={"trajectory": 0})
    assert err.value.context["trajectory"] == 0
    assert err.value.context["snapshot"] == 1


def test_relerr_prior(random_u, les8):
    u = jnp.stack([random_u, 2.0 * random_u, -random_u])
    c = cm.SmagorinskyClosure().apply
    c = jnp.stack([c(x, 0.2, les8) for x in u])
    dataset = {"u": u, "c": c}
    err, _ = ev.relerr_prior(cm.SmagorinskyClosure(), 0.2, les8, dataset, batchsize=2)
    assert err < 1e-12
    err, _ = ev.relerr_prior(cm.NoClosure(), None, les8, dataset)
    np.testing.assert_allclose(err, 1.0)
    dataset = {"u": u, "c": 2.0 * c}
    err, _ = ev.relerr_prior(cm.SmagorinskyClosure(), 0.2, les8, dataset, batchsize=2)
    np.testing.assert_allclose(err, 0.5)


def test_rollout_history(random_u, les8):
    hist = ev.rollout_history(cm.NoClosure(), None, les8, random_u, DT, 4, nsubstep=2)
    assert hist["t"].shape == hist["energy"].shape == hist["divergence"].shape == (5,)
    np.testing.assert_allclose(hist["t"], np.arange(5) * 2 * DT)
    assert np.all(np.diff(hist["energy"]) < 0.0)
    assert np.all(hist["divergence"] < 1e-10)


def test_history_horizon_of_first_order():
    assert ev.history_nstep("first", 100, 2 * DT, 0.1) == 6
    assert ev.history_nstep("first", 4, 2 * DT, 0.1) == 4
    assert ev.history_nstep(one.ProjectOrder.FIRST, 100, 0.25, 1.0) == 4
    assert ev.history_nstep("last", 100, 2 * DT, 0.1) == 100
    assert ev.history_nstep("second", 100, 2 * DT, 0.1) == 100


def test_short_history_is_padded(random_u, les8):
    nstep = ev.history_nstep("first", 6, 2 * DT, 3 * DT)
    hist = ev.rollout_history(cm.NoClosure(), None, les8, random_u, DT, nstep, nsubstep=2,
                              project_order="first", nsave=6)
    assert nstep == 1
    for name in ("t", "divergence", "energy"):
        assert hist[name].shape == (7,)
        assert np.all(np.isfinite(hist[name][:2]))
        assert np.all(np.isnan(hist[name][2:]))
    with pytest.raises(ConfigurationError):
        ev.rollout_history(cm.NoClosure(), None, les8, random_u, DT, 3, nsave=2)


def test_history_divergence_is_root_mean_square(rough_field, les8):
    u = rough_field(les8, seed=6)
    hist = ev.rollout_history(cm.NoClosure(), None, les8, u, DT, 0)
    div = np.asarray(adv.get_divergence(u, les8))
    np.testing.assert_allclose(hist["divergence"][0], np.sqrt(np.mean(div ** 2)), rtol=1e-12)
    np.testing.assert_allclose(hist["divergence"][0] * les8.n, float(diag.divergence_norm(u, les8)), rtol=1e-12)
