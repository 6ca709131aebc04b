"""Financial aggregation and reporting engine.

Calculators here are read-only: they load records from the entity stores,
aggregate them, and return pydantic report models. Caching and
invalidation live in :mod:`fleetbooks.core.cache`.
"""
