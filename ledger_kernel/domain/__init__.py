"""Pure domain layer: DTOs, money arithmetic, clock, tenant context, templates."""
