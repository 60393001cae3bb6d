"""Pure domain primitives for the payroll kernel. Zero I/O."""
