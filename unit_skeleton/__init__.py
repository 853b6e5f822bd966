"""Generate unit-test skeletons with inferred mocks for Python classes."""
