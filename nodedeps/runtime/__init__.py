"""Process execution, configuration loading and concurrent traversal."""
