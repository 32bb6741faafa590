""" One relay runs the complete experiment: data, training of all closures and evaluation

Settings are read from namelist_n_constants.py.
"""

import os
import time
import jax
import numpy as np

import closure_models as cm
import dataset_generation as dgen
import diagnostics as diag
import evaluation as ev
import filters as filt
import les_dl_train as train
import namelist_n_constants as nl
import one_step_integration as one
import setup_les as setl
import write_netcdf as wnc
import write_zarr as wz
from les_errors import ConfigurationError


def get_setups():
    """ DNS setup, LES setups and the filters of every LES grid """
    kwargs = dict(lims=nl.lims, Re=nl.Re, bc_name=nl.boundary, force_amplitude=nl.force_amplitude,
                  force_wavenumber=nl.force_wavenumber)
    dns = setl.get_setup(nl.dimension, nl.ndns, **kwargs)
    les_setups = [setl.get_setup(nl.dimension, n, **kwargs) for n in nl.nles]
    filters = [[filt.get_filter(name, nl.ndns // n) for name in nl.filter_names] for n in nl.nles]
    return dns, les_setups, filters


def split_trajectories():
    """ DNS seeds for training, validation and testing """
    seeds = setl.split_seed(nl.seed_dns, nl.ntrajectory_dns)
    return seeds[:nl.ntrain], seeds[nl.ntrain:nl.ntrain + nl.nvalid], seeds[nl.ntrain + nl.nvalid:]


def check_config():
    """ Validate the namelist against the trajectory length before any expensive work

    Returns the number of saved snapshots per trajectory.
    """
    nt = int(round(nl.tsim / nl.dt))
    if nl.savefreq < 1 or nt % nl.savefreq != 0:
        raise ConfigurationError("!!! nt=%d is not a multiple of savefreq=%d !!!" % (nt, nl.savefreq))
    nsnapshot = nt // nl.savefreq + 1
    ev.check_tsave(nl.tsave, nsnapshot)
    for name in ("post_nunroll", "post_nunroll_valid", "smag_nunroll"):
        if not 1 <= getattr(nl, name) <= nsnapshot - 1:
            raise ConfigurationError("!!! %s=%d outside [1, %d] !!!" % (name, getattr(nl, name), nsnapshot - 1))
    if nl.ntrain < 1 or nl.nvalid < 1 or nl.ntrain + nl.nvalid >= nl.ntrajectory_dns:
        raise ConfigurationError("!!! Need at least one training, validation and test trajectory !!!")
    for order in nl.project_orders:
        one.get_project_order(order)
    one.check_method(nl.method)
    return nsnapshot


def create_data(dns, les_setups, filters, seeds):
    nburn = int(round(nl.tburn / nl.dt))
    nt = int(round(nl.tsim / nl.dt))
    for seed in seeds:
        results = dgen.create_les_data(dns, les_setups, filters, seed, nl.dt, nburn, nt, nl.savefreq,
                                       kp=nl.kp, amplitude=nl.ic_amplitude, method=nl.method,
                                       cfl_check_freq=nl.cfl_check_freq)
        dgen.save_les_data(nl.outdir, results, seed)


def checkpoint_path(path):
    return nl.checkpoint_name_format.format(name=path)


def fit_prior(les, filter_name, trainset, validset):
    """ A-priori CNN, trained or loaded """
    closure, theta0 = cm.theta_start(les, nl.seed_theta_start, nl.cnn_radii, nl.cnn_channels, nl.cnn_use_bias)
    path = wz.key_to_path(nl.outdir, wz.PriorKey(nles=les.n, filter=filter_name))
    if not nl.doprior:
        theta, _, _ = train.load_params(path)
        return closure, theta
    start = time.time()
    valid_samples = dgen.select_samples(dgen.flatten_samples(validset), nl.prior_nvalid, nl.seed_prior)
    theta, hist = train.train_prior(trainset, valid_samples, closure, theta0, les,
                                    optimizer=nl.prior_optimizer, learning_rate=nl.prior_learning_rate,
                                    lam=nl.prior_lambda, batchsize=nl.prior_batchsize, niter=nl.prior_niter,
                                    nepoch=nl.prior_nepoch, nupdate_callback=nl.prior_nupdate_callback,
                                    seed=nl.seed_prior, checkpoint=checkpoint_path(path),
                                    loadcheckpoint=nl.loadcheckpoint, eval_batchsize=nl.eval_batchsize)
    train.save_params(path, theta, hist, time.time() - start)
    return closure, theta


def fit_post(les, filter_name, order, closure, theta_prior, trainset, validset):
    """ A-posteriori CNN starting from the a-priori parameters, trained or loaded """
    path = wz.key_to_path(nl.outdir, wz.PostKey(nles=les.n, filter=filter_name, project_order=order))
    if not nl.dopost:
        theta, _, _ = train.load_params(path)
        return theta
    start = time.time()
    theta, hist = train.train_post(trainset, validset, closure, theta_prior, les, project_order=order,
                                   method=nl.method, optimizer=nl.post_optimizer,
                                   learning_rate=nl.post_learning_rate, lam=nl.post_lambda,
                                   nunroll=nl.post_nunroll, nsubstep=nl.post_nsubstep,
                                   ntrajectory=nl.post_ntrajectory, nunroll_valid=nl.post_nunroll_valid,
                                   niter=nl.post_niter, nepoch=nl.post_nepoch,
                                   nupdate_callback=nl.post_nupdate_callback, seed=nl.seed_post,
                                   checkpoint=checkpoint_path(path), loadcheckpoint=nl.loadcheckpoint)
    train.save_params(path, theta, hist, time.time() - start)
    return theta


def fit_smagorinsky(les, filter_name, order, trainset):
    """ Smagorinsky coefficient, searched or loaded """
    path = wz.key_to_path(nl.outdir, wz.SmagKey(nles=les.n, filter=filter_name, project_order=order))
    if not nl.dosmag:
        variables, _ = wnc.load_nc(path)
        return float(variables["theta_best"])
    start = time.time()
    theta_range = np.linspace(*nl.smag_theta_range)
    theta, errors = train.train_smagorinsky(trainset, les, theta_range, project_order=order, method=nl.method,
                                            nunroll=nl.smag_nunroll, nsubstep=nl.smag_nsubstep)
    wnc.save2nc(path, {"theta_range": theta_range, "smag_errors": errors, "theta_best": theta,
                       "comptime": time.time() - start}, {"theta": theta_range})
    return theta


def history_arrays(nfilter, norder, ntime):
    shape = (len(nl.nles), nfilter, norder, ntime)
    return {"%s_%s" % (q, m): np.full(shape, np.nan)
            for q in ("divergence", "energy")
            for m in ("reference", "nomodel", "smag", "model_prior", "model_post")}


def main():
    start_time = time.time()
    nsnapshot = check_config()
    os.makedirs(nl.outdir, exist_ok=True)
    print("*** JAX devices: %s" % [d.id for d in jax.devices()])
    dns, les_setups, filters = get_setups()
    train_seeds, valid_seeds, test_seeds = split_trajectories()

    if nl.docreatedata:
        create_data(dns, les_setups, filters, train_seeds + valid_seeds + test_seeds)
    time_data = time.time() - start_time

    nles, nfilter, norder, ntsave = len(nl.nles), len(nl.filter_names), len(nl.project_orders), len(nl.tsave)
    errors = {"eprior_prior": np.full((nles, nfilter), np.nan),
              "tprior_prior": np.full((nles, nfilter), np.nan),
              "eprior_post": np.full((nles, nfilter, norder), np.nan),
              "tprior_post": np.full((nles, nfilter, norder), np.nan)}
    for m in ("nomodel", "smag", "model_prior", "model_post"):
        errors["epost_" + m] = np.full((nles, nfilter, norder, ntsave), np.nan)
        errors["tpost_" + m] = np.full((nles, nfilter, norder), np.nan)
    history = history_arrays(nfilter, norder, nsnapshot)
    history_runs = []

    wall_time = time.time()
    for ig, les in enumerate(les_setups):
        for ifil, filter_name in enumerate(nl.filter_names):
            print("==================================")
            print("*** nles = %d, filter = %s" % (les.n, filter_name))
            trainset = dgen.create_io_arrays(dgen.load_les_data(nl.outdir, les.n, filter_name, train_seeds), les)
            validset = dgen.create_io_arrays(dgen.load_les_data(nl.outdir, les.n, filter_name, valid_seeds), les)
            testset = dgen.create_io_arrays(dgen.load_les_data(nl.outdir, les.n, filter_name, test_seeds), les)
            test_samples = dgen.flatten_samples(testset)
            u_test, t_test = np.asarray(testset["u"][0]), testset["t"]
            history["time"] = t_test

            closure, theta_prior = fit_prior(les, filter_name, trainset, validset)
            errors["eprior_prior"][ig, ifil], errors["tprior_prior"][ig, ifil] = ev.relerr_prior(
                closure, theta_prior, les, test_samples, nl.eval_batchsize)

            for iorder, order in enumerate(nl.project_orders):
                theta_post = fit_post(les, filter_name, order, closure, theta_prior, trainset, validset)
                theta_smag = fit_smagorinsky(les, filter_name, order, trainset)
                errors["eprior_post"][ig, ifil, iorder], errors["tprior_post"][ig, ifil, iorder] = ev.relerr_prior(
                    closure, theta_post, les, test_samples, nl.eval_batchsize)

                models = {"nomodel": (cm.NoClosure(), None),
                          "smag": (cm.SmagorinskyClosure(), theta_smag),
                          "model_prior": (closure, theta_prior),
                          "model_post": (closure, theta_post)}
                history["divergence_reference"][ig, ifil, iorder] = [float(diag.divergence_rms(u, les))
                                                                     for u in u_test]
                history["energy_reference"][ig, ifil, iorder] = [float(diag.kinetic_energy(u, les))
                                                                 for u in u_test]
                for name, (model, theta) in models.items():
                    context = {"nles": les.n, "filter": filter_name, "order": order, "model": name}
                    es, wall = ev.relerr_post(model, theta, les, u_test, t_test, nl.tsave, nl.eval_nsubstep,
                                              nl.method, order, context)
                    errors["epost_" + name][ig, ifil, iorder] = es
                    errors["tpost_" + name][ig, ifil, iorder] = wall
                    print(">>> %s (%s): a-posteriori error at t[%d] = %.4e, inference time %.2f" %
                          (name, order, nl.tsave[-1], es[-1], wall))
                    history_runs.append(((ig, ifil, iorder), name, model, theta, les, u_test[0], t_test, order,
                                         context))
    time_eval = time.time() - wall_time

    wall_time = time.time()
    coords = {"nles": nl.nles, "filter": nl.filter_names, "projectorder": nl.project_orders, "tsave": nl.tsave}
    wnc.save2nc(os.path.join(nl.outdir, nl.errors_file_name), errors, coords)
    time_write = time.time() - wall_time

    # divergence and energy histories, written after the errors are safe on disk
    wall_time = time.time()
    for index, name, model, theta, les, u0, t_test, order, context in history_runs:
        dt_save = float(t_test[1] - t_test[0])
        nstep = ev.history_nstep(order, len(t_test) - 1, dt_save, nl.t_dif)
        hist = ev.rollout_history(model, theta, les, u0, dt_save / nl.eval_nsubstep, nstep, nl.eval_nsubstep,
                                  nl.method, order, context, nsave=len(t_test) - 1)
        history["divergence_" + name][index] = hist["divergence"]
        history["energy_" + name][index] = hist["energy"]
    time_hist = time.time() - wall_time

    wall_time = time.time()
    coords = {"nles": nl.nles, "filter": nl.filter_names, "projectorder": nl.project_orders,
              "time": history["time"]}
    wnc.save2nc(os.path.join(nl.outdir, nl.history_file_name), history, coords)
    time_write += time.time() - wall_time

    print("Completion of the experiment")
    print("-------------------------")
    print("Timing statistics")
    print("***")
    print("Data generation:     %10.6f" % time_data)
    print("Training + eval:     %10.6f" % time_eval)
    print("Histories:           %10.6f" % time_hist)
    print("Writing results:     %10.6f" % time_write)
    print("Total wall time:     %10.6f" % (time.time() - start_time))
    print("-------------------------\n")


if __name__ == "__main__":
    main()
