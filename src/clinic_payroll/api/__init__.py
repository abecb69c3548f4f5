"""HTTP surface for the payroll reconciliation service."""
