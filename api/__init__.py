"""HTTP interface for the calculation engine."""
