"""Examples directory.

The examples here are embedded in the README, and are linted along with the rest of the code
so that the documented usage stays in sync with the package.
"""
