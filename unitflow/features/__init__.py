"""Features — deployable bundles of a sub-catalog, code artifacts and variables."""
