""" Functions for setting up the grid, forcing and initial conditions """

import jax
jax.config.update("jax_enable_x64", True)
import jax.numpy as jnp
import numpy as np
from flax import struct

import boundary_conditions as bc
import pressure_equations as pres_eqn
from les_errors import ConfigurationError


@struct.dataclass
class Setup:
    """ Immutable grid and physics bundle, shared read-only by all stepper calls

    Static fields are part of the jit cache key, array fields are traced.
    """
    dimension: int = struct.field(pytree_node=False)
    n: int = struct.field(pytree_node=False)
    lims: tuple = struct.field(pytree_node=False)
    Re: float = struct.field(pytree_node=False)
    bc: str = struct.field(pytree_node=False)
    h: float = struct.field(pytree_node=False)
    bodyforce: jax.Array
    laplace_eig: jax.Array


def get_setup(dimension, n, lims=(0.0, 1.0), Re=1.0e3, bc_name="periodic",
              force_amplitude=0.0, force_wavenumber=8.0):
    """ Set up the grid mesh, the body force and the spectral Laplacian """
    if dimension not in (2, 3):
        raise ConfigurationError("!!! Only 2D and 3D grids are supported, got %s !!!" % dimension)
    if n < 2:
        raise ConfigurationError("!!! Need at least 2 grid cells per direction, got %s !!!" % n)
    if not lims[1] > lims[0]:
        raise ConfigurationError("!!! Invalid domain limits %s !!!" % (lims,))
    if not Re > 0.0:
        raise ConfigurationError("!!! Reynolds number must be positive, got %s !!!" % Re)
    bc.check_bc(bc_name)

    h = (lims[1] - lims[0]) / n
    _, xcenter = grid_coordinates(n, lims)

    # Steady Kolmogorov forcing in x, varying in y. u lives on x-faces, so y is a cell center.
    force = np.zeros((dimension,) + (n,) * dimension)
    shape = [1] * dimension
    shape[1] = n
    force[0] = force_amplitude * np.sin(force_wavenumber * np.pi * xcenter).reshape(shape)

    return Setup(dimension=dimension, n=n, lims=tuple(lims), Re=float(Re), bc=bc_name, h=h,
                 bodyforce=jnp.asarray(force),
                 laplace_eig=jnp.asarray(laplace_eigenvalues(dimension, n, h)))


def grid_coordinates(n, lims):
    """ Face (right cell boundary) and center coordinates of the interior cells """
    h = (lims[1] - lims[0]) / n
    xface = lims[0] + h * np.arange(1, n + 1)
    xcenter = lims[0] + h * (np.arange(n) + 0.5)
    return xface, xcenter


def laplace_eigenvalues(dimension, n, h):
    """ Eigenvalues of the second-order discrete Laplacian in rfftn layout

    The zero mode is set to 1 so that the Poisson solve can divide by it; its coefficient is
    overwritten by zero in the solve.
    """
    freqs = [np.fft.fftfreq(n, 1.0 / n)] * (dimension - 1) + [np.fft.rfftfreq(n, 1.0 / n)]
    ks = np.meshgrid(*freqs, indexing="ij")
    eig = sum((2.0 * np.cos(2.0 * np.pi * k / n) - 2.0) / h ** 2 for k in ks)
    eig[(0,) * dimension] = 1.0
    return eig


def split_seed(seed, n):
    """ Derive n independent seeds from one master seed """
    rng = np.random.default_rng(seed)
    return [int(s) for s in rng.integers(0, 2 ** 31 - 1, size=n)]


def random_field(setup, key, kp=20, amplitude=1.0):
    """ Random divergence-free velocity with energy spectrum ~ k^4 exp(-2 (k/kp)^2)

    The field is scaled to an RMS velocity of amplitude.
    """
    dimension, n = setup.dimension, setup.n
    freqs = [np.fft.fftfreq(n, 1.0 / n)] * dimension
    ks = np.meshgrid(*freqs, indexing="ij")
    kk = np.sqrt(sum(k ** 2 for k in ks))
    spectrum = kk ** 4 * np.exp(-2.0 * (kk / kp) ** 2)
    # energy of a shell is spread over ~k^(D-1) modes
    amp = np.sqrt(spectrum / np.maximum(kk, 1.0) ** (dimension - 1))

    keys = jax.random.split(key, dimension)
    comps = []
    for alpha in range(dimension):
        noise = jax.random.normal(keys[alpha], (n,) * dimension)
        uhat = jnp.fft.fftn(noise) * amp
        comps.append(jnp.real(jnp.fft.ifftn(uhat)))
    u = bc.pad_periodic(jnp.stack(comps), dimension)
    u = pres_eqn.project(u, setup)

    rms = jnp.sqrt(jnp.mean(bc.interior(u, dimension) ** 2))
    return u * amplitude / rms
