"""HTTP API for the payroll disbursement engine."""
