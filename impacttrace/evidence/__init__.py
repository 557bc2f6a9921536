"""Evidence persistence: link-consistent writes (links) and reads (repository)."""
