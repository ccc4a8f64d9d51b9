"""
Model governance for the lifecycle engine.

This sub-package provides:

  governance/freshness.py — staleness of a cached model from its metadata.
  governance/registry.py  — per-tenant in-memory registry, lifecycle states,
                            in-flight markers and the store key layout.

Tenant isolation is enforced here: every key the engine reads or writes is
built by ``registry.model_key`` / ``meta_key`` / ``params_key`` from a
validated ``(tenant_id, model_type)`` pair.
"""
