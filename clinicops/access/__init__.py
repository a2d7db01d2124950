"""Principal access resolution and role-scoped query policy."""
