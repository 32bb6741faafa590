""" Generate filtered LES datasets from DNS trajectories """

import time as Time
import jax
import jax.numpy as jnp
import numpy as np

import advection as adv
import boundary_conditions as bc
import closure_models as cm
import diagnostics as diag
import one_sprint_functions as sp
import one_step_integration as one
import pressure_equations as pres_eqn
import setup_les as setl
import write_zarr as wz
from les_errors import ConfigurationError


@jax.jit
def projected_tendency(u, setup):
    """ P F(u): divergence-free part of the momentum tendency """
    return pres_eqn.project(adv.momentum(u, setup), setup)


def filter_snapshot(u, pf_dns, energy_dns, les, filt):
    """ Filtered velocity, commutator error c = filter(P F(u)) - P F(filter(u)) and diagnostics """
    v = filt(u, les)
    phi_pf = filt(pf_dns, les)
    c = bc.apply_bc_u(phi_pf - projected_tendency(v, les), les)
    return v, c, diag.observe(v, c, phi_pf, energy_dns, les)


def check_filters(dns, les_setups, filters):
    """ Every LES grid must divide the DNS grid """
    if len(les_setups) != len(filters):
        raise ConfigurationError("!!! Need one filter list per LES setup !!!")
    for les, filt_list in zip(les_setups, filters):
        if les.dimension != dns.dimension:
            raise ConfigurationError("!!! DNS and LES dimensions differ !!!")
        for filt in filt_list:
            if filt.compression * les.n != dns.n:
                raise ConfigurationError("!!! %s with compression %d does not map %d onto %d cells !!!" %
                                         (filt.name, filt.compression, dns.n, les.n))


def create_les_data(dns, les_setups, filters, seed, dt, nburn, nt, savefreq, kp=20, amplitude=1.0,
                    method="wray3", cfl_check_freq=0):
    """ Run one DNS and filter it onto every LES grid

    filters[i] lists the filters for les_setups[i]. The DNS starts from a random field drawn from
    `seed`, runs nburn burn-in steps and then nt steps, saving every savefreq steps (the first
    snapshot is the state right after burn-in).
    Returns {(nles, filter name): {'t', 'u', 'c', 'observe', 'comptime'}} with interior arrays.
    """
    check_filters(dns, les_setups, filters)
    if savefreq < 1 or nt % savefreq != 0:
        raise ConfigurationError("!!! nt=%d is not a multiple of savefreq=%d !!!" % (nt, savefreq))

    start = Time.time()
    nomodel = cm.NoClosure()
    context = {"n": dns.n, "seed": seed}
    state = one.initial_state(setl.random_field(dns, jax.random.PRNGKey(seed), kp, amplitude))
    state = sp.rollout(state, dt, nburn, dns, nomodel, None, method, one.ProjectOrder.LAST,
                       dict(context, phase="burn-in"))
    state = one.initial_state(state.u)

    results = {}
    for les, filt_list in zip(les_setups, filters):
        for filt in filt_list:
            results[les.n, filt.name] = {"t": [], "u": [], "c": [],
                                         "observe": {"Dv": [], "Pv": [], "Pc": [], "c": [], "E": []}}

    def save_snapshot(state):
        u = state.u
        pf = projected_tendency(u, dns)
        energy = diag.kinetic_energy(u, dns)
        for les, filt_list in zip(les_setups, filters):
            for filt in filt_list:
                v, c, obs = filter_snapshot(u, pf, energy, les, filt)
                res = results[les.n, filt.name]
                res["t"].append(float(state.t))
                res["u"].append(np.asarray(bc.interior(v, les.dimension)))
                res["c"].append(np.asarray(bc.interior(c, les.dimension)))
                for name, value in obs.items():
                    res["observe"][name].append(float(value))

    save_snapshot(state)
    for isave in range(nt // savefreq):
        state = sp.rollout(state, dt, savefreq, dns, nomodel, None, method, one.ProjectOrder.LAST, context)
        save_snapshot(state)
        if cfl_check_freq and (isave + 1) * savefreq % cfl_check_freq == 0:
            print("    Step %d, t = %.4f, CFL = %.3f" % (int(state.n), float(state.t),
                                                         float(one.cfl_number(state.u, dt, dns))))

    comptime = Time.time() - start
    for res in results.values():
        res["t"] = np.array(res["t"])
        res["u"] = np.stack(res["u"])
        res["c"] = np.stack(res["c"])
        res["observe"] = {name: np.array(values) for name, values in res["observe"].items()}
        res["comptime"] = comptime
    print("*** DNS seed %d done, data generation time: %.2f" % (seed, comptime))
    return results


def save_les_data(outdir, results, seed):
    """ Persist every (nles, filter) trajectory of one DNS """
    paths = []
    for (nles, filter_name), res in results.items():
        path = wz.key_to_path(outdir, wz.DataKey(nles=nles, filter=filter_name, seed=seed))
        attrs = {"comptime": float(res["comptime"]), "seed": int(seed), "nles": int(nles), "filter": filter_name}
        paths.append(wz.save2zarr(path, res, attrs))
    return paths


def load_les_data(outdir, nles, filter_name, seeds):
    """ Read the trajectories of several seeds """
    return [wz.read_zarr(wz.key_to_path(outdir, wz.DataKey(nles=nles, filter=filter_name, seed=seed)))
            for seed in seeds]


def create_io_arrays(data, setup):
    """ Stack trajectories into padded arrays of shape (ntraj, nt, D, n+2, ...)

    All trajectories must share the time grid and the grid of setup.
    """
    expected = (setup.dimension,) + (setup.n,) * setup.dimension
    nt = data[0]["u"].shape[0]
    for d in data:
        if d["u"].shape[1:] != expected or d["c"].shape[1:] != expected or d["u"].shape[0] != nt:
            raise ConfigurationError("!!! Trajectory of shape %s does not match grid %s with %d snapshots !!!" %
                                     (d["u"].shape, expected, nt))
    u = bc.pad_periodic(jnp.asarray(np.stack([d["u"] for d in data])), setup.dimension)
    c = bc.pad_periodic(jnp.asarray(np.stack([d["c"] for d in data])), setup.dimension)
    return {"u": u, "c": c, "t": np.asarray(data[0]["t"])}


def flatten_samples(io_arrays):
    """ Merge trajectory and time axes into one sample axis """
    u, c = io_arrays["u"], io_arrays["c"]
    return {"u": u.reshape((-1,) + u.shape[2:]), "c": c.reshape((-1,) + c.shape[2:])}


def select_samples(samples, nsample, seed):
    """ A fixed random subset of samples, e.g. for validation """
    rng = np.random.default_rng(seed)
    total = samples["u"].shape[0]
    idx = np.sort(rng.choice(total, min(nsample, total), replace=False))
    return {"u": samples["u"][idx], "c": samples["c"][idx]}
