"""Block tree model, ordering engine and content limits."""
