"""
Domain layer containing core business logic and domain services.

Submodules:
- relay: Live feed relay (identity access, feed adapters, session registry, controller).
- utils: Domain-specific utilities (ID generation, clock).
"""
