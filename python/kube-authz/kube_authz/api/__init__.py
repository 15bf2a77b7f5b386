"""HTTP surface for the RBAC evaluator."""
