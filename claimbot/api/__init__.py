"""HTTP trigger layer."""
