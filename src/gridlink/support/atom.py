"""
Compare-and-set cells for values shared between receiver threads.

An Atom holds an immutable value. Updates are computed outside of any lock and
committed with compare_and_set(); if another thread committed first, the update
function is re-applied to the newer value.
"""
import threading


class _Unset:
    def __repr__(self):
        return 'UNSET'

    def __bool__(self):
        return False


UNSET = _Unset()


class Atom:

    def __init__(self, value=UNSET):
        self._value = value
        self._lock = threading.Lock()   # guards the compare-and-set only

    def deref(self):
        return self._value

    def compare_and_set(self, expected, value):
        """
        Sets the value only if the current value is `expected` (by identity).
        :return: True if the value was set
        """
        with self._lock:
            if self._value is not expected:
                return False
            self._value = value
            return True

    def reset(self, value):
        with self._lock:
            self._value = value
        return value

    def swap(self, fn, *args, **kwargs):
        """
        Atomically replaces the value with fn(value, *args, **kwargs).
        fn may be called more than once under contention, so it must be free of side effects.
        :return: the new value
        """
        while True:
            old = self._value
            new = fn(old, *args, **kwargs)
            if self.compare_and_set(old, new):
                return new

    def swap_if_set(self, fn):
        """
        As swap(), but leaves an UNSET cell untouched.

        >>> Atom().swap_if_set(lambda v: v + 1)
        UNSET
        >>> Atom(1).swap_if_set(lambda v: v + 1)
        2
        """
        return self.swap(lambda v: v if v is UNSET else fn(v))

    def __repr__(self):
        return 'Atom(%r)' % (self._value,)
