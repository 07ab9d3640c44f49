"""Genre relatedness oracle and its caches."""
