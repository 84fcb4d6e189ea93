import unittest

import revbuild.utils.threaded as threaded


def identity(x):
    return x


def raiser(*args, **kwargs):
    raise Exception("Oh noes!")


def add(x, offset):
    return x + offset


class TestWrappers(unittest.TestCase):
    def test_catching_traceback_no_error(self):
        f = threaded.catching_traceback(identity)

        self.assertEqual(f(42), 42)

    def test_catching_traceback_exception(self):
        f = threaded.catching_traceback(raiser)

        rs = f(42)
        self.assertEqual(rs.args, ("Oh noes!",))


class TestRunStuff(unittest.TestCase):
    def test_run_normal(self):
        rs = threaded.run(identity, [42, 43, 44], 1)
        self.assertEqual(rs, [42, 43, 44])

    def test_run_keeps_order_with_many_threads(self):
        rs = threaded.run(identity, range(50), 10)
        self.assertEqual(rs, list(range(50)))

    def test_run_passes_kwargs(self):
        rs = threaded.run(add, [1, 2], 2, offset=10)
        self.assertEqual(rs, [11, 12])

    def test_run_empty(self):
        self.assertEqual(threaded.run(identity, [], 5), [])

    def test_run_normal_with_exceptions(self):
        with self.assertRaises(Exception):
            threaded.run(raiser, [42], 1)

    def test_run_catching(self):
        rs = threaded.run(identity, [42, 43, 44], 1, return_exceptions=True)
        self.assertEqual(rs, [42, 43, 44])

    def test_run_return_exceptions(self):
        rs = threaded.run(raiser, [42], 1, return_exceptions=True)
        self.assertEqual(rs[0].args, ("Oh noes!",))
        self.assertEqual(len(rs), 1)


class TestSplitResults(unittest.TestCase):
    def test_split_results(self):
        error = ValueError("bad")
        values, errors = threaded.split_results([1, error, 2])
        self.assertEqual(values, [1, 2])
        self.assertEqual(errors, [error])
