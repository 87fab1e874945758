"""Demo data for trying the analyzer without local logs."""
