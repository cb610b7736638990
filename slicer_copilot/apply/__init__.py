"""Change application engine and diff reports."""
