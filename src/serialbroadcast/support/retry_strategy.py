from serialbroadcast.support.mixins import CommonEqualityMixin


class RetryStrategy:
    """ Retries immediately. """
    def __call__(self, *args, **kwargs):
        return 0

    def reset(self):
        """ called when the retried operation succeeds """


class BackoffRetryStrategy(RetryStrategy, CommonEqualityMixin):
    """
    The delay to wait after each consecutive failure. The delay starts at `delay` and is multiplied
    by `factor` after every failure, up to `maximum`. With the default factor of 1 the delay is fixed.
    """

    def __init__(self, delay, factor=1, maximum=None):
        if delay < 0:
            raise ValueError("backoff delay must not be negative: %s" % delay)
        if factor < 1:
            raise ValueError("backoff factor must be at least 1: %s" % factor)
        self.delay = delay
        self.factor = factor
        self.maximum = maximum
        self.failures = 0

    def __call__(self):
        """ records a failure and returns the delay before the next attempt. """
        result = self.delay * (self.factor ** self.failures)
        if self.maximum is not None:
            result = min(result, self.maximum)
        self.failures += 1
        return result

    def reset(self):
        self.failures = 0
