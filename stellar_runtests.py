import os
import sys
import unittest
import cProfile

if __name__ == '__main__':
    testdir = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'test')
    suite = unittest.TestLoader().discover(testdir)
    if 'perf' in sys.argv:
        cProfile.run("unittest.TextTestRunner(verbosity=1).run(suite)", sort='cumtime')
    else:
        result = unittest.TextTestRunner(verbosity=1).run(suite)
        sys.exit(0 if result.wasSuccessful() else 1)
