import threading


class CommonEqualityMixin(object):
    """
    Value equality for events and strategies: instances of the same class are equal when their
    attributes are equal. Comparing a cycle of objects raises ValueError.
    """
    local = threading.local()

    def __eq__(self, other):
        if not isinstance(other, self.__class__) or not hasattr(other, '__dict__'):
            return False
        seen = CommonEqualityMixin.local.__dict__.setdefault('seen', set())
        pair = (id(self), id(other))
        if pair in seen:
            raise ValueError("recursive comparison of %s" % type(self).__name__)
        seen.add(pair)
        try:
            return self.__dict__ == other.__dict__
        finally:
            seen.discard(pair)

    def __ne__(self, other):
        return not self.__eq__(other)
