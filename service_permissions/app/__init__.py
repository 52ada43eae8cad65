"""
Permissions service package.

Decides whether a user may perform an action on a resource by combining
role-based grants with attribute-based rules. It provides:

- app.rules: Policy model, condition strategies, decision engine, admin.
- app.cache: In-memory and Redis caches for final decisions.
- app.persistence: In-memory and PostgreSQL stores for grants and rules.
- app.service: Wiring of the above from configuration.

Guidelines:
- Decisions are pure over (actor, action, resource, stored policy).
- A store failure is an error, never a denial.
- Any policy change clears the whole decision cache.
"""
