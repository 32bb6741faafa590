""" Deep neural networks for parameterizing the LES closure

Check the network with the following commands
    x = jnp.ones((1, 64, 64, 2))
    tabulate_fn = nn.tabulate(ClosureCNN(radii=(2,)*5, channels=(24, 24, 24, 24, 2),
                              use_bias=(True,)*4 + (False,)), jax.random.key(0))
    print(tabulate_fn(x))
The staggered velocity components are fed as channels without interpolation; the periodic domain
is respected through circular padding.
"""

from typing import Sequence
from flax import linen as nn
import jax.numpy as jnp


class ClosureCNN(nn.Module):
    """ Convolutional closure: tanh hidden layers, linear last layer with one channel per dimension """
    radii: Sequence[int]
    channels: Sequence[int]
    use_bias: Sequence[bool]
    param_dtype: jnp.dtype = jnp.float64

    @nn.compact
    def __call__(self, x):
        dim = x.ndim - 2    # batch and channel axes
        nlayer = len(self.channels)
        for i, (r, c, b) in enumerate(zip(self.radii, self.channels, self.use_bias)):
            x = nn.Conv(features=c, kernel_size=(2 * r + 1,) * dim, strides=(1,) * dim, padding='CIRCULAR',
                        use_bias=b, param_dtype=self.param_dtype)(x)
            if i < nlayer - 1:
                x = nn.tanh(x)
        return x


def field_to_channels(u_int):
    """ (D, n, ..., n) interior velocity to a (1, n, ..., n, D) network input """
    return jnp.moveaxis(u_int, 0, -1)[None]


def channels_to_field(x):
    """ (1, n, ..., n, D) network output back to a (D, n, ..., n) interior field """
    return jnp.moveaxis(x[0], -1, 0)
