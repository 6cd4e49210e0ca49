"""Query preprocessing and intent classification."""
