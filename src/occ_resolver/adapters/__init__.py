"""Reference storage adapters."""
