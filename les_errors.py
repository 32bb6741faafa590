""" Exceptions raised by the LES closure pipeline """


class NonFiniteFieldError(RuntimeError):
    """ Non-finite velocity detected at a sub-step boundary

    context holds whatever identifies the failing run, e.g. resolution, filter, seed and time index.
    """

    def __init__(self, step, context=None):
        self.step = step
        self.context = dict(context or {})
        where = ", ".join("%s=%s" % (k, v) for k, v in self.context.items())
        super().__init__("!!! Non-finite velocity after step %d (%s) !!!" % (step, where))


class ConfigurationError(ValueError):
    """ Inconsistent configuration, raised before any expensive computation """
