"""Allow running as ``python -m convergence_harness``."""

from .main import main

main()
