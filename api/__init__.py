"""HTTP surface for the publishing pipeline."""
