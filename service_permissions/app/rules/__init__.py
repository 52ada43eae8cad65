"""
Rules package.

Defines the policy model and the hybrid RBAC/ABAC decision engine. RBAC
grants give a coarse per-role baseline; ABAC rules add data-dependent
access evaluated against resource and actor attributes in priority order.

Modules of interest:
- models: Actor, Resource, grant and rule records, request models.
- conditions: Named condition strategies and their registry.
- catalog: Shipped roles, actions, grant table and seed rules.
- engine: PermissionManager with the permissive, strict and cached checks.
- admin: Grant and rule mutations that clear the decision cache.
"""
