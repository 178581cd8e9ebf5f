"""
autobirther test suite.

unit/: no network, chain access is faked and the archive lives in a temp dir.
"""
