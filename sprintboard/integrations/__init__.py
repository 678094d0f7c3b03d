"""HTTP clients for the sprint board API and the analysis service."""
